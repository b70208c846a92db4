"""MCP tools for operating the shared session broker."""

from __future__ import annotations

import json

import httpx

from ..config import BROKER_URL, PROXY_PASSWORD, PROXY_USERNAME
from ..constants import ADMIN_PREFIX


async def _call_broker(method: str, path: str, params: dict | None = None) -> dict:
    """Make a request to the broker's admin endpoints."""
    url = f"{BROKER_URL}{ADMIN_PREFIX}{path}"
    auth = (PROXY_USERNAME, PROXY_PASSWORD) if PROXY_USERNAME and PROXY_PASSWORD else None
    try:
        # A refresh can take up to the acquisition ceiling.
        async with httpx.AsyncClient(timeout=120.0, auth=auth) as client:
            if method == "GET":
                resp = await client.get(url, params=params)
            else:
                resp = await client.post(url)

            if resp.status_code == 401:
                return {"error": "Broker rejected the operator credentials."}
            data = resp.json()
            if resp.status_code >= 400:
                return {"error": data.get("error", f"HTTP {resp.status_code}"), **data}
            return data

    except httpx.ConnectError:
        return {
            "error": "Broker is not reachable at "
            f"{BROKER_URL}. Start it with: python -m session_broker.session_manager"
        }
    except httpx.TimeoutException:
        return {"error": "Broker timed out. A sign-in may still be running."}
    except Exception as e:
        return {"error": f"Failed to connect to broker: {e}"}


async def broker_status() -> str:
    """Report the shared session state.

    Returns:
        JSON-formatted session status.
    """
    result = await _call_broker("GET", "/status")

    if "error" in result:
        return f"Error: {result['error']}"

    return json.dumps(result, indent=2)


async def refresh_session() -> str:
    """Force a new sign-in and wait for the result.

    Returns:
        Outcome message.
    """
    result = await _call_broker("POST", "/refresh")

    if "error" in result:
        status = result.get("status") or {}
        if status.get("has_session"):
            return f"Refresh failed: {result['error']}. The previous session is still being served."
        return f"Refresh failed: {result['error']}"

    status = result.get("status", {})
    return (
        f"{result.get('message', 'Session refreshed.')} "
        f"{status.get('cookie_count', 0)} cookies, expires at {status.get('expires_at')}."
    )


async def recent_attempts(limit: int = 10) -> str:
    """List recent acquisition attempts with totals.

    Args:
        limit: How many attempts to show (newest first).
    """
    result = await _call_broker("GET", "/attempts", params={"limit": limit})

    if "error" in result:
        return f"Error: {result['error']}"

    attempts = result.get("attempts", [])
    if not attempts:
        return "No acquisition attempts recorded."

    lines = []
    for a in attempts:
        if a["outcome"] == "succeeded":
            lines.append(f"- {a['started_at']}: succeeded ({a['cookie_count']} cookies)")
        else:
            detail = f" ({a['failure_detail']})" if a.get("failure_detail") else ""
            lines.append(f"- {a['started_at']}: {a['failure_kind']}{detail}")

    stats = result.get("stats", {})
    if stats:
        lines.append(
            f"\nTotal: {stats.get('total_attempts', 0)}, "
            f"succeeded: {stats.get('succeeded', 0)}, failed: {stats.get('failed', 0)}"
        )
    return "\n".join(lines)
