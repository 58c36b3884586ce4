# SSRS Reports Client
# File: transports/stdio_server.py
# Version: v2

"""STDIO entrypoint for the SSRS reports MCP server.

This is the script behind the ``ssrs-reports-mcp`` console command.

It:

- creates a FastMCP server,
- registers the report server tools, and
- runs the built-in stdio transport.
"""

from __future__ import annotations

import logging
import os

from mcp.server.fastmcp import FastMCP

from ..tools import tasks


def main() -> None:
    """Synchronous entrypoint for console_scripts."""
    # stdout carries the MCP protocol; logs go to stderr.
    logging.basicConfig(
        level=os.getenv("REPORTSERVER_LOG_LEVEL", "WARNING").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mcp = FastMCP("ssrs-reports-mcp")

    # Register report server tools (ping, list_children, render_report, …)
    tasks.register_tools(mcp)

    # Let FastMCP handle stdio + event loop setup.
    mcp.run()


if __name__ == "__main__":
    main()
