"""Refresh scheduling for the shared session.

Refreshes run at startup, on a fixed interval, and lazily when a reader
finds the snapshot expired. Every trigger claims the store's ``refreshing``
flag first, so at most one acquisition is ever in flight. Failures stop
here: they are logged, journaled and counted, and the current snapshot is
left in place.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timedelta
from typing import Optional

from ..config import LOGIN_REJECTED_ALERT_THRESHOLD, REFRESH_INTERVAL_SECONDS
from ..database.repository import AttemptRepository
from ..models.attempt import AcquisitionAttempt
from ..models.session import SessionStatus, utcnow
from .acquirer import CredentialAcquirer
from .errors import AcquisitionError, FieldNotFound, LoginRejected
from .store import SessionStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class RefreshScheduler:
    """Decides when to acquire and publishes results to the store."""

    def __init__(
        self,
        store: SessionStore,
        acquirer: CredentialAcquirer,
        refresh_interval: timedelta = timedelta(seconds=REFRESH_INTERVAL_SECONDS),
        repo: Optional[AttemptRepository] = None,
        alert_threshold: int = LOGIN_REJECTED_ALERT_THRESHOLD,
    ):
        self._store = store
        self._acquirer = acquirer
        self._refresh_interval = refresh_interval
        self._repo = repo
        self._alert_threshold = alert_threshold
        self._loop_task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None

        self.last_attempt_at: Optional[str] = None
        self.last_failure: Optional[str] = None
        self.consecutive_failures = 0
        self.rejections_since_success = 0

        if refresh_interval >= acquirer.session_ttl:
            logger.warning(
                f"Refresh interval ({refresh_interval}) is not shorter than the session TTL "
                f"({acquirer.session_ttl}); sessions will expire before they are refreshed"
            )

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self):
        """Run the startup refresh, then start the periodic loop.

        The startup refresh is best-effort: on failure the broker still
        starts and forwards requests without a credential.
        """
        logger.info("Establishing shared session...")
        await self.refresh_now()
        if self._store.read() is None:
            logger.warning("Starting without a shared session; requests will be forwarded unauthenticated")
        self._loop_task = asyncio.create_task(self._periodic(), name="session-refresh-loop")

    async def stop(self):
        """Cancel the periodic loop and abandon any in-flight acquisition."""
        tasks = [t for t in (self._loop_task, self._refresh_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._refresh_task = None
        logger.info("Refresh scheduler stopped.")

    async def _periodic(self):
        interval = self._refresh_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            logger.info("Periodic session refresh...")
            await self.refresh_now()

    # ── Triggers ─────────────────────────────────────────────────────────────

    def trigger(self) -> bool:
        """Start a background refresh unless one is already running.

        Must be called from the event loop. Returns True if this call
        started the refresh.
        """
        if not self._store.try_begin_refresh():
            return False
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._run_owned(), name="session-refresh"
        )
        return True

    def trigger_if_needed(self, now: Optional[datetime] = None) -> bool:
        """Lazy trigger for readers: refresh in the background if expired.

        Never waits for the refresh; the caller keeps using whatever
        ``store.read()`` returns.
        """
        if not self._store.is_expired(now) or self._store.refreshing:
            return False
        started = self.trigger()
        if started:
            logger.info("Shared session expired, refreshing in background")
        return started

    async def refresh_now(self) -> Optional[bool]:
        """Refresh and wait for the outcome.

        Returns True on success, False on failure, and None when another
        refresh was already in flight.
        """
        if not self._store.try_begin_refresh():
            logger.info("Refresh already in progress, skipping")
            return None
        task = asyncio.get_running_loop().create_task(self._run_owned(), name="session-refresh")
        self._refresh_task = task
        return await task

    async def wait_for_refresh(self):
        """Wait for the current background refresh, if any, to finish."""
        task = self._refresh_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # ── Refresh body (runs only while owning the refreshing flag) ────────────

    async def _run_owned(self) -> bool:
        attempt = AcquisitionAttempt()
        self.last_attempt_at = attempt.started_at
        committed = False
        try:
            snapshot = await self._acquirer.acquire()
            self._store.commit(snapshot)
            committed = True
        except asyncio.CancelledError:
            logger.info("Acquisition abandoned")
            raise
        except AcquisitionError as e:
            self._record_failure(attempt, e.kind, e)
        except Exception as e:
            logger.error(f"Unexpected acquisition failure: {e}", exc_info=True)
            self._record_failure(attempt, "unexpected_error", e)
        finally:
            if not committed:
                self._store.abort_refresh()

        if committed:
            self._record_success(attempt, snapshot)
        await self._journal(attempt)
        return committed

    def _record_success(self, attempt: AcquisitionAttempt, snapshot):
        attempt.outcome = "succeeded"
        attempt.finished_at = utcnow().isoformat()
        attempt.cookie_count = len(snapshot.cookies)
        attempt.final_url = snapshot.final_url
        self.consecutive_failures = 0
        self.rejections_since_success = 0
        self.last_failure = None
        logger.info(f"Shared session established, expires at {snapshot.expires_at.isoformat()}")

    def _record_failure(self, attempt: AcquisitionAttempt, kind: str, error: Exception):
        attempt.outcome = "failed"
        attempt.finished_at = utcnow().isoformat()
        attempt.failure_kind = kind
        attempt.failure_detail = str(error)
        self.consecutive_failures += 1
        self.last_failure = f"{kind}: {error}"
        keeping = "keeping previous session" if self._store.read() is not None else "no session available"

        if isinstance(error, FieldNotFound):
            attempt.failure_detail = error.role.value
            logger.error(
                f"Sign-in form changed: {error.role.value} not found, locator heuristics are stale ({keeping})"
            )
        elif isinstance(error, LoginRejected):
            attempt.final_url = error.url
            self.rejections_since_success += 1
            if self.rejections_since_success >= self._alert_threshold:
                logger.critical(
                    f"Sign-in rejected {self.rejections_since_success} times since the last success: "
                    f"{error}. Retrying with the same credentials will not help; operator action required"
                )
            else:
                logger.error(f"Sign-in rejected: {error} ({keeping})")
        elif kind != "unexpected_error":
            logger.error(f"Acquisition failed ({kind}): {error} ({keeping})")

    async def _journal(self, attempt: AcquisitionAttempt):
        if self._repo is None:
            return
        try:
            await self._repo.record_attempt(attempt)
        except Exception as e:
            logger.warning(f"Could not record acquisition attempt: {e}")

    # ── Status ───────────────────────────────────────────────────────────────

    def status(self, now: Optional[datetime] = None) -> SessionStatus:
        snapshot = self._store.read()
        expired = self._store.is_expired(now)
        if snapshot is None:
            state = "empty"
            message = "No session has been acquired yet."
        elif expired:
            state = "expired"
            message = "Serving a stale session until the next successful refresh."
        else:
            state = "active"
            message = "Shared session is active."
        return SessionStatus(
            state=state,
            has_session=snapshot is not None,
            refreshing=self._store.refreshing,
            expired=expired,
            cookie_count=len(snapshot.cookies) if snapshot else 0,
            cookie_names=snapshot.cookie_names if snapshot else [],
            acquired_at=snapshot.acquired_at.isoformat() if snapshot else None,
            expires_at=snapshot.expires_at.isoformat() if snapshot else None,
            last_attempt_at=self.last_attempt_at,
            last_failure=self.last_failure,
            consecutive_failures=self.consecutive_failures,
            message=message,
        )
