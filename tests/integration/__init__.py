# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for prefab reference index components.

This package contains integration tests that run the service, the default
corpus collaborators and the MCP tools against a project on disk.
"""
