# SSRS Reports Client
# File: tools/__init__.py
# Version: v2

"""MCP tool surface over the SSRS reports client."""

from __future__ import annotations

from .tasks import register_tools

__all__ = ["register_tools"]
