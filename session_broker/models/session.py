"""Pydantic models for the shared credential and its status."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FieldRole(str, Enum):
    """The three sign-in form elements the locator resolves."""

    IDENTITY = "identity-field"
    SECRET = "secret-field"
    SUBMIT = "submit-control"


class Candidate(BaseModel):
    """One element descriptor: a CSS selector, optionally narrowed by text."""

    model_config = ConfigDict(frozen=True)

    selector: str
    text: Optional[str] = None

    def __str__(self) -> str:
        if self.text:
            return f'{self.selector} (text~"{self.text}")'
        return self.selector


class ElementInfo(BaseModel):
    """Attributes and text of a live element, used by the fallback scan."""

    tag: str = ""
    type: str = ""
    name: str = ""
    id: str = ""
    placeholder: str = ""
    aria_label: str = ""
    test_id: str = ""
    text: str = ""
    value: str = ""

    def haystack(self) -> str:
        """Lowercased searchable text for keyword matching."""
        parts = [
            self.type, self.name, self.id, self.placeholder,
            self.aria_label, self.test_id, self.text, self.value,
        ]
        return " ".join(p.strip() for p in parts if p).lower()


class CredentialSnapshot(BaseModel):
    """An immutable cookie set captured by one successful acquisition."""

    model_config = ConfigDict(frozen=True)

    cookies: tuple[tuple[str, str], ...]
    acquired_at: datetime
    expires_at: datetime
    final_url: str = ""

    @field_validator("cookies")
    @classmethod
    def _non_empty_unique(cls, value: tuple[tuple[str, str], ...]):
        if not value:
            raise ValueError("a snapshot needs at least one cookie")
        names = [name for name, _ in value]
        if len(names) != len(set(names)):
            raise ValueError("cookie names must be unique within a snapshot")
        return value

    @classmethod
    def build(
        cls,
        cookies: Iterable[tuple[str, str]],
        ttl: timedelta,
        now: Optional[datetime] = None,
        final_url: str = "",
    ) -> CredentialSnapshot:
        """Build a snapshot from raw browser cookies.

        Browsers can report the same cookie name for several domains; the
        first occurrence wins so the header keeps acquisition order.
        """
        now = now or utcnow()
        seen: dict[str, str] = {}
        for name, value in cookies:
            if name and name not in seen:
                seen[name] = value
        return cls(
            cookies=tuple(seen.items()),
            acquired_at=now,
            expires_at=now + ttl,
            final_url=final_url,
        )

    @property
    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies)

    @property
    def cookie_map(self) -> dict[str, str]:
        return dict(self.cookies)

    @property
    def cookie_names(self) -> list[str]:
        return [name for name, _ in self.cookies]

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or utcnow())


class SessionStatus(BaseModel):
    """Current state of the shared session, safe to show to operators."""

    state: str = "empty"  # empty, active, expired
    has_session: bool = False
    refreshing: bool = False
    expired: bool = True
    cookie_count: int = 0
    cookie_names: list[str] = Field(default_factory=list)
    acquired_at: Optional[str] = None
    expires_at: Optional[str] = None
    last_attempt_at: Optional[str] = None
    last_failure: Optional[str] = None
    consecutive_failures: int = 0
    message: str = ""
