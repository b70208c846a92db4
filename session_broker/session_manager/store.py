"""Process-wide holder of the current credential snapshot."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional

from ..models.session import CredentialSnapshot, utcnow


class SessionStore:
    """Single-writer, many-reader cell for the shared snapshot.

    Readers get the snapshot reference directly; a snapshot is immutable and
    is swapped in one assignment, so a reader sees the old one or the new one
    and never a mix. The lock only guards the ``refreshing`` flag and the
    swap and is never held across an await.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[CredentialSnapshot] = None
        self._refreshing = False

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    def read(self) -> Optional[CredentialSnapshot]:
        return self._snapshot

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        snapshot = self._snapshot
        if snapshot is None:
            return True
        return snapshot.is_expired(now or utcnow())

    def try_begin_refresh(self) -> bool:
        """Claim the refresh. Returns True only for the caller that now owns it."""
        with self._lock:
            if self._refreshing:
                return False
            self._refreshing = True
            return True

    def commit(self, snapshot: CredentialSnapshot):
        """Publish ``snapshot`` and release the refresh claim."""
        if not isinstance(snapshot, CredentialSnapshot):
            raise TypeError(f"expected CredentialSnapshot, got {type(snapshot).__name__}")
        with self._lock:
            self._snapshot = snapshot
            self._refreshing = False

    def abort_refresh(self):
        """Release the refresh claim and keep the current snapshot."""
        with self._lock:
            self._refreshing = False
