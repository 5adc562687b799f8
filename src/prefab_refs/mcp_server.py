# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for the prefab reference index.

This module exposes the service as MCP tools with ZERO business logic. Cache
builds requested through a tool are driven from the asyncio loop: one batch
per step, yielding to the loop and reporting progress between batches.
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from prefab_refs.config import CONFIG_FILE_NAME, Config
from prefab_refs.logging_setup import get_build_logger, setup_logging
from prefab_refs.models import StepResult
from prefab_refs.service import ReferenceFinderService

logger = logging.getLogger(__name__)

SERVER_NAME = "prefab-reference-index"


class PrefabReferenceMCPServer:
    """MCP Protocol Layer for the prefab reference index.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate tool invocations to service calls
    - Drive cache builds cooperatively from the event loop

    All caching and query logic resides in ReferenceFinderService.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        service: Optional[ReferenceFinderService] = None,
        project_root: Optional[str] = None,
        build_logger: Optional[logging.Logger] = None,
    ):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from default location.
            service: Service layer instance. If None, creates default service.
            project_root: Project directory for the default service.
            build_logger: Build event logger for the default service.
        """
        if config is None:
            config = Config()
        self.config = config

        if service is None:
            service = ReferenceFinderService(
                config=config, project_root=project_root, build_logger=build_logger
            )
        self.service = service

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("PrefabReferenceMCPServer initialized")

    async def drive_build(self, ctx: Optional[Context] = None) -> Optional[StepResult]:
        """Advance the active build to completion, yielding between batches.

        Args:
            ctx: MCP context for progress reporting (optional).

        Returns:
            Final StepResult, or None if no build was active.
        """
        result: Optional[StepResult] = None
        while self.service.is_building:
            result = self.service.tick()
            if result is None:
                break
            if ctx is not None:
                await ctx.report_progress(result.completed, result.total)
            # Let other tasks (e.g. a cancel_build call) run between batches
            await asyncio.sleep(0)
        return result

    def _register_tools(self) -> None:
        """Register MCP tools with the server.

        Registers:
        - find_references: references to / dependencies of an asset
        - rebuild_cache: full rebuild of the graph cache
        - cancel_build: cancel the running build
        - get_build_status: cache/build state
        """

        @self.mcp.tool()
        async def find_references(
            asset_path: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Find which prefabs reference an asset and what the asset depends on.

            Builds the reference cache first if it is not available yet.

            Args:
                asset_path: Project-relative asset path (e.g. Assets/Hero.prefab)
                ctx: MCP context for logging and progress

            Returns:
                Dictionary with target, references (sorted) and dependencies
                grouped by category (prefab, texture, script, other).
            """
            await ctx.info(f"Finding references for {asset_path}")

            result = self.service.set_target(asset_path)
            while result is None:
                await ctx.info("Reference cache not available, building it")
                final = await self.drive_build(ctx)
                if final is not None and final.cancelled:
                    await ctx.error("Cache building cancelled")
                    return {"target": asset_path, "cancelled": True}

                # Completion re-queries the current target, even when the
                # build was invalidated midway
                last = self.service.last_result
                if final is not None and last is not None and last.target == asset_path:
                    result = last
                else:
                    result = self.service.set_target(asset_path)

            return result.to_dict()

        @self.mcp.tool()
        async def rebuild_cache(ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Rebuild the reference cache from scratch.

            Args:
                ctx: MCP context for logging and progress

            Returns:
                Build status after the rebuild finished or was cancelled.
            """
            if not self.service.rebuild():
                await ctx.info("Cache build already in progress")
            await self.drive_build(ctx)
            return self.service.build_status()

        @self.mcp.tool()
        async def cancel_build(ctx: Context[ServerSession, None]) -> Dict[str, Any]:
            """Cancel the running cache build, discarding its partial results.

            Args:
                ctx: MCP context for logging

            Returns:
                Current build status.
            """
            await ctx.info("Cancelling cache build")
            self.service.cancel_build()
            return self.service.build_status()

        @self.mcp.tool()
        async def get_build_status() -> Dict[str, Any]:
            """Report whether the reference cache is built, building, or stale.

            Returns:
                Dictionary with initialized/building/stale flags, progress and message.
            """
            return self.service.build_status()

        logger.info(
            "MCP tools registered: find_references, rebuild_cache, cancel_build, get_build_status"
        )

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: "stdio" (default), "streamable-http" or "sse".
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources."""
        logger.info("Shutting down MCP server")
        self.service.shutdown()


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Prefab Reference Index MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Project directory containing the asset corpus. Default: current directory",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file. Default: <project-root>/.prefab_refs.yml",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for log files. Default: ./.prefab_refs_logs",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    return parser.parse_args(argv)


def main() -> None:
    """Main entry point for MCP server."""
    args = parse_args()

    setup_logging(log_dir=args.log_dir, log_level=logging.INFO)

    project_root = args.project_root or Path.cwd()
    config = Config(config_path=args.config or project_root / CONFIG_FILE_NAME)

    server = PrefabReferenceMCPServer(
        config=config,
        project_root=str(project_root),
        build_logger=get_build_logger(args.log_dir),
    )
    logger.info(f"Starting MCP server for project_root={server.service.project_root}")
    try:
        server.run(transport=args.transport)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
