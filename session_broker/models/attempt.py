"""Pydantic model for one recorded acquisition attempt."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from .session import utcnow


class AcquisitionAttempt(BaseModel):
    """Outcome of a single sign-in attempt. Never carries cookie values."""

    id: Optional[int] = None
    started_at: str = Field(default_factory=lambda: utcnow().isoformat())
    finished_at: Optional[str] = None
    outcome: str = "failed"  # "succeeded" or "failed"
    failure_kind: str = ""  # launch_error, navigation_error, field_not_found, ...
    failure_detail: str = ""
    cookie_count: int = 0
    final_url: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome == "succeeded"
