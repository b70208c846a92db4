"""Automated sign-in that produces a credential snapshot.

An attempt walks ``navigating -> locating_fields -> submitting ->
awaiting_settlement`` and ends in ``succeeded`` or ``failed``. The driver
handle is opened per attempt and closed on every exit path. The acquirer
never writes the session store; the scheduler commits what it returns.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta
from enum import Enum
from typing import Optional

import httpx

from ..config import (
    ACQUISITION_TIMEOUT_SECONDS,
    BROKER_IDENTITY,
    BROKER_SECRET,
    CHALLENGE_TIMEOUT_MS,
    NAVIGATION_TIMEOUT_MS,
    SESSION_TTL_SECONDS,
    SETTLE_GRACE_MS,
    SETTLE_TIMEOUT_MS,
    SIGN_IN_URL,
    TYPING_DELAY_MS,
)
from ..constants import CONFIRM_KEY, SIGN_IN_PATH_SEGMENTS
from ..models.session import CredentialSnapshot, FieldRole, utcnow
from .browser import BrowserDriver, DriverHandle
from .challenge import detect_challenge, wait_for_challenge_resolution
from .errors import (
    AcquisitionTimeout,
    FieldNotFound,
    LoginRejected,
    NavigationError,
)
from .locator import ResilientLocator

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class AcquisitionStage(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    LOCATING_FIELDS = "locating_fields"
    SUBMITTING = "submitting"
    AWAITING_SETTLEMENT = "awaiting_settlement"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def is_sign_in_url(url: str) -> bool:
    """Check if a path segment of ``url`` names a sign-in or login surface.

    Host and query are ignored, so ``login.example.com/home`` or
    ``/dashboard?from=/login`` are not sign-in pages.
    """
    try:
        path = httpx.URL(url).path
    except httpx.InvalidURL:
        return False
    segments = {segment.lower() for segment in path.split("/") if segment}
    return not segments.isdisjoint(SIGN_IN_PATH_SEGMENTS)


class CredentialAcquirer:
    """Signs in through a browser and returns the resulting cookies."""

    def __init__(
        self,
        driver: BrowserDriver,
        locator: Optional[ResilientLocator] = None,
        identity: str = BROKER_IDENTITY,
        secret: str = BROKER_SECRET,
        sign_in_url: str = SIGN_IN_URL,
        session_ttl: timedelta = timedelta(seconds=SESSION_TTL_SECONDS),
        navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
        settle_timeout_ms: int = SETTLE_TIMEOUT_MS,
        settle_grace_ms: int = SETTLE_GRACE_MS,
        typing_delay_ms: int = TYPING_DELAY_MS,
        challenge_timeout_ms: int = CHALLENGE_TIMEOUT_MS,
        timeout_seconds: float = ACQUISITION_TIMEOUT_SECONDS,
    ):
        self._driver = driver
        self._locator = locator or ResilientLocator()
        self._identity = identity
        self._secret = secret
        self._sign_in_url = sign_in_url
        self._session_ttl = session_ttl
        self._navigation_timeout_ms = navigation_timeout_ms
        self._settle_timeout_ms = settle_timeout_ms
        self._settle_grace_ms = settle_grace_ms
        self._typing_delay_ms = typing_delay_ms
        self._challenge_timeout_ms = challenge_timeout_ms
        self._timeout_seconds = timeout_seconds
        self.stage = AcquisitionStage.IDLE

    @property
    def session_ttl(self) -> timedelta:
        return self._session_ttl

    def _enter(self, stage: AcquisitionStage):
        logger.info(f"Acquisition stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    async def acquire(self) -> CredentialSnapshot:
        """Run one sign-in attempt.

        Raises an AcquisitionError subtype on failure. The whole attempt is
        bounded by ``timeout_seconds``; on expiry the browser is closed and
        AcquisitionTimeout is raised.
        """
        self.stage = AcquisitionStage.IDLE
        try:
            snapshot = await asyncio.wait_for(self._attempt(), timeout=self._timeout_seconds)
        except asyncio.TimeoutError as e:
            failed_in = self.stage.value
            self._enter(AcquisitionStage.FAILED)
            raise AcquisitionTimeout(
                f"Acquisition exceeded {self._timeout_seconds}s (stage: {failed_in})"
            ) from e
        except (Exception, asyncio.CancelledError):
            self._enter(AcquisitionStage.FAILED)
            raise

        self._enter(AcquisitionStage.SUCCEEDED)
        return snapshot

    async def _attempt(self) -> CredentialSnapshot:
        self._enter(AcquisitionStage.NAVIGATING)
        async with self._driver.session() as handle:
            logger.info(f"Navigating to {self._sign_in_url}...")
            await handle.navigate(self._sign_in_url, self._navigation_timeout_ms)
            if await detect_challenge(handle):
                if not await wait_for_challenge_resolution(handle, self._challenge_timeout_ms):
                    raise NavigationError("Challenge page did not resolve")

            self._enter(AcquisitionStage.LOCATING_FIELDS)
            identity_field = await self._locator.locate(handle, FieldRole.IDENTITY)
            secret_field = await self._locator.locate(handle, FieldRole.SECRET)
            try:
                submit_control = await self._locator.locate(handle, FieldRole.SUBMIT)
            except FieldNotFound:
                submit_control = None

            self._enter(AcquisitionStage.SUBMITTING)
            previous_url = handle.current_url()
            await self._submit(handle, identity_field, secret_field, submit_control)

            self._enter(AcquisitionStage.AWAITING_SETTLEMENT)
            settled = await handle.wait_for_settled(previous_url, self._settle_timeout_ms)
            if not settled:
                logger.warning(
                    f"Page did not settle within {self._settle_timeout_ms}ms, checking result anyway"
                )
            # Session cookies may still be arriving after the redirect.
            await asyncio.sleep(self._settle_grace_ms / 1000)

            return await self._collect(handle)

    async def _submit(self, handle: DriverHandle, identity_field, secret_field, submit_control):
        await handle.type_into(identity_field, self._identity, self._typing_delay_ms)
        await handle.type_into(secret_field, self._secret, self._typing_delay_ms)
        if submit_control is not None:
            logger.info("Submitting sign-in form...")
            await handle.click(submit_control)
        else:
            logger.info(f"No submit control found, pressing {CONFIRM_KEY}...")
            await handle.press(CONFIRM_KEY)

    async def _collect(self, handle: DriverHandle) -> CredentialSnapshot:
        final_url = handle.current_url()
        cookies = await handle.extract_cookies()

        cookies = [(name, value) for name, value in cookies if name]
        if not cookies:
            raise LoginRejected("No cookies received after sign-in", final_url)
        if is_sign_in_url(final_url):
            raise LoginRejected("Still on sign-in page after submit", final_url)

        snapshot = CredentialSnapshot.build(cookies, self._session_ttl, now=utcnow(), final_url=final_url)
        logger.info(
            f"Session acquired with {len(snapshot.cookies)} cookies "
            f"({', '.join(snapshot.cookie_names[:10])}), expires at {snapshot.expires_at.isoformat()}"
        )
        return snapshot
