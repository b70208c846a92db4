"""Two-tier element location for sign-in forms.

Tier 1 probes an ordered list of precise candidates and returns the first
that appears. Tier 2, reached only when every candidate misses, scans all
elements of the role's generic kind and picks the first whose attributes or
text contain one of the role's keywords. Both tiers walk in a fixed order, so
the same DOM always yields the same element.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ..config import LOCATOR_FOLLOWUP_TIMEOUT_MS, LOCATOR_TIMEOUT_MS
from ..constants import (
    IDENTITY_CANDIDATES,
    IDENTITY_EXCLUDED_TYPES,
    IDENTITY_KEYWORDS,
    IDENTITY_SCAN_KINDS,
    SECRET_CANDIDATES,
    SECRET_EXCLUDED_TYPES,
    SECRET_KEYWORDS,
    SECRET_SCAN_KINDS,
    SUBMIT_CANDIDATES,
    SUBMIT_EXCLUDED_TYPES,
    SUBMIT_KEYWORDS,
    SUBMIT_SCAN_KINDS,
)
from ..models.session import Candidate, ElementInfo, FieldRole
from .browser import DriverHandle
from .errors import FieldNotFound

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class RoleProfile(BaseModel):
    """Everything the locator knows about one form role."""

    model_config = ConfigDict(frozen=True)

    candidates: tuple[Candidate, ...]
    scan_kinds: tuple[str, ...]
    keywords: tuple[str, ...]
    excluded_types: tuple[str, ...] = ()

    def matches(self, info: ElementInfo) -> bool:
        if info.type.lower() in self.excluded_types:
            return False
        haystack = info.haystack()
        return any(keyword in haystack for keyword in self.keywords)


def _candidates(entries) -> tuple[Candidate, ...]:
    return tuple(Candidate(selector=selector, text=text) for selector, text in entries)


DEFAULT_PROFILES: dict[FieldRole, RoleProfile] = {
    FieldRole.IDENTITY: RoleProfile(
        candidates=_candidates(IDENTITY_CANDIDATES),
        scan_kinds=tuple(IDENTITY_SCAN_KINDS),
        keywords=tuple(IDENTITY_KEYWORDS),
        excluded_types=tuple(IDENTITY_EXCLUDED_TYPES),
    ),
    FieldRole.SECRET: RoleProfile(
        candidates=_candidates(SECRET_CANDIDATES),
        scan_kinds=tuple(SECRET_SCAN_KINDS),
        keywords=tuple(SECRET_KEYWORDS),
        excluded_types=tuple(SECRET_EXCLUDED_TYPES),
    ),
    FieldRole.SUBMIT: RoleProfile(
        candidates=_candidates(SUBMIT_CANDIDATES),
        scan_kinds=tuple(SUBMIT_SCAN_KINDS),
        keywords=tuple(SUBMIT_KEYWORDS),
        excluded_types=tuple(SUBMIT_EXCLUDED_TYPES),
    ),
}


class ResilientLocator:
    """Finds sign-in form elements by ordered candidates, then by keywords."""

    def __init__(
        self,
        profiles: Optional[Mapping[FieldRole, RoleProfile]] = None,
        probe_timeout_ms: int = LOCATOR_TIMEOUT_MS,
        followup_timeout_ms: int = LOCATOR_FOLLOWUP_TIMEOUT_MS,
    ):
        self._profiles = dict(profiles or DEFAULT_PROFILES)
        self._probe_timeout_ms = probe_timeout_ms
        self._followup_timeout_ms = min(followup_timeout_ms, probe_timeout_ms)

    async def locate(
        self,
        handle: DriverHandle,
        role: FieldRole,
        candidates: Optional[Sequence[Candidate]] = None,
        probe_timeout_ms: Optional[int] = None,
    ) -> Any:
        """Return the first matching element for ``role`` or raise FieldNotFound.

        The first probe waits the full ``probe_timeout_ms`` since the page may
        still be rendering; later probes use the shorter follow-up timeout.
        """
        profile = self._profiles[role]
        ordered = list(candidates) if candidates is not None else list(profile.candidates)
        first_timeout = probe_timeout_ms if probe_timeout_ms is not None else self._probe_timeout_ms
        followup_timeout = min(self._followup_timeout_ms, first_timeout)

        for index, candidate in enumerate(ordered):
            timeout = first_timeout if index == 0 else followup_timeout
            element = await handle.probe(candidate, timeout)
            if element is not None:
                logger.info(f"Found {role.value} with selector: {candidate}")
                return element
            logger.debug(f"Selector not found for {role.value}: {candidate}")

        element = await self._scan(handle, role, profile)
        if element is not None:
            return element

        logger.warning(f"No {role.value} matched {len(ordered)} candidates or the keyword scan")
        raise FieldNotFound(role)

    async def _scan(self, handle: DriverHandle, role: FieldRole, profile: RoleProfile):
        """Keyword scan over every element of the role's generic kinds."""
        matches = []
        for kind in profile.scan_kinds:
            for element in await handle.query_all(kind):
                info = await handle.describe(element)
                if profile.matches(info):
                    matches.append((element, info))

        if not matches:
            return None
        element, info = matches[0]
        if len(matches) > 1:
            logger.info(f"Keyword scan for {role.value} matched {len(matches)} elements, using the first")
        logger.info(
            f"Found {role.value} by inspection: <{info.tag} type='{info.type}' "
            f"name='{info.name}' id='{info.id}'>"
        )
        return element
