"""Bot-challenge interstitial detection and waiting."""

from __future__ import annotations

import asyncio
import logging
import sys

from ..config import CHALLENGE_TIMEOUT_MS
from ..constants import CHALLENGE_INDICATORS
from .browser import DriverHandle

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


async def detect_challenge(handle: DriverHandle) -> bool:
    """Check if the current page shows a challenge interstitial."""
    content = await handle.content()
    return any(indicator in content for indicator in CHALLENGE_INDICATORS)


async def wait_for_challenge_resolution(
    handle: DriverHandle,
    timeout_ms: int = CHALLENGE_TIMEOUT_MS,
    poll_seconds: float = 2.0,
) -> bool:
    """Wait for a challenge to auto-resolve.

    Returns True if resolved, False if timed out.
    """
    logger.info("Challenge page detected, waiting for auto-resolution...")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + (timeout_ms / 1000)

    while loop.time() < deadline:
        if not await detect_challenge(handle):
            logger.info("Challenge resolved automatically.")
            return True
        await asyncio.sleep(poll_seconds)

    if not await detect_challenge(handle):
        return True
    logger.warning("Challenge did not auto-resolve within timeout.")
    return False
