"""MCP operator console for the Shared Session Broker.

Exposes the broker's admin endpoints as tools:
- tool_broker_status: current shared session state
- tool_refresh_session: force a sign-in now
- tool_recent_attempts: acquisition history

The broker itself runs as a separate service
(``python -m session_broker.session_manager``).
"""

from __future__ import annotations

import logging
import sys

from mcp.server.fastmcp import FastMCP

from .tools.session_tools import broker_status, recent_attempts, refresh_session

# Configure logging to stderr (stdout is reserved for MCP JSON-RPC)
logging.basicConfig(
    stream=sys.stderr,
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("session-broker")


mcp = FastMCP(
    "session-broker",
    instructions=(
        "Shared Session Broker console. "
        "Call tool_broker_status to see whether the shared session is active, expired or missing. "
        "Call tool_refresh_session to force a new sign-in. "
        "Call tool_recent_attempts to see why recent sign-ins failed."
    ),
)


@mcp.tool()
async def tool_broker_status() -> str:
    """Check the shared session.

    Returns: state, cookie names and count, expiry, last failure.
    """
    return await broker_status()


@mcp.tool()
async def tool_refresh_session() -> str:
    """Force a new sign-in and wait for it to finish (up to about a minute)."""
    return await refresh_session()


@mcp.tool()
async def tool_recent_attempts(limit: int = 10) -> str:
    """Show recent sign-in attempts, newest first.

    Args:
        limit: Number of attempts to show (1-200, default 10).
    """
    return await recent_attempts(limit)


def main():
    logger.info("Starting Shared Session Broker MCP console")
    mcp.run()


if __name__ == "__main__":
    main()
