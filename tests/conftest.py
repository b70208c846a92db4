"""Shared fixtures: a static-DOM driver that stands in for the browser."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Optional

import pytest
from bs4 import BeautifulSoup

from session_broker.models.session import Candidate, CredentialSnapshot, ElementInfo
from session_broker.session_manager.acquirer import CredentialAcquirer
from session_broker.session_manager.browser import BrowserDriver, DriverHandle
from session_broker.session_manager.errors import LaunchError, NavigationError
from session_broker.session_manager.locator import ResilientLocator

SIGN_IN_URL = "https://example.test/sign-in"
LANDING_URL = "https://example.test/dashboard"

STANDARD_SIGN_IN = """
<html><body>
  <form action="/sign-in" method="post">
    <input id="username" type="email" name="email">
    <input id="password" type="password" name="password">
    <button type="submit">Sign in</button>
  </form>
</body></html>
"""

NO_PASSWORD_SIGN_IN = """
<html><body>
  <form>
    <input id="username" type="text" name="username">
    <button type="submit">Continue</button>
  </form>
</body></html>
"""

NO_SUBMIT_SIGN_IN = """
<html><body>
  <form>
    <input id="username" type="email" name="email">
    <input id="password" type="password" name="password">
  </form>
</body></html>
"""


class FakeSite:
    """A synthetic upstream: pages by URL and what a form submission does."""

    def __init__(
        self,
        sign_in_html: str = STANDARD_SIGN_IN,
        sign_in_url: str = SIGN_IN_URL,
        landing_url: str = LANDING_URL,
        cookies=(("session", "abc"), ("csrf", "def")),
        hang_on_navigate: bool = False,
    ):
        self.pages = {sign_in_url: sign_in_html}
        self.sign_in_url = sign_in_url
        self.landing_url = landing_url
        self.cookies = list(cookies)
        self.hang_on_navigate = hang_on_navigate
        self.submissions: list[list[tuple[str, str]]] = []


class StaticHandle(DriverHandle):
    def __init__(self, driver: Optional[StaticDriver] = None, site: Optional[FakeSite] = None):
        self.driver = driver
        self.site = site or FakeSite()
        self.url = "about:blank"
        self.soup: Optional[BeautifulSoup] = None
        self.cookies: list[tuple[str, str]] = []
        self.typed: list[tuple[object, str]] = []
        self.clicked: list[object] = []
        self.pressed: list[str] = []
        self.probes: list[tuple[Candidate, int]] = []
        self.closed = False

    def load(self, html: str, url: str = SIGN_IN_URL):
        self.url = url
        self.soup = BeautifulSoup(html, "html.parser")
        return self

    async def navigate(self, url: str, timeout_ms: int) -> None:
        if self.site.hang_on_navigate:
            await asyncio.sleep(3600)
        if url not in self.site.pages:
            raise NavigationError(f"Failed to load {url}: net::ERR_NAME_NOT_RESOLVED")
        self.load(self.site.pages[url], url)

    def current_url(self) -> str:
        return self.url

    async def content(self) -> str:
        return str(self.soup) if self.soup is not None else ""

    async def probe(self, candidate: Candidate, timeout_ms: int):
        self.probes.append((candidate, timeout_ms))
        for element in self.soup.select(candidate.selector):
            if element.get("type") == "hidden":
                continue
            if candidate.text and candidate.text.lower() not in element.get_text(" ", strip=True).lower():
                continue
            return element
        return None

    async def query_all(self, kind: str) -> list:
        return list(self.soup.select(kind))

    async def describe(self, element) -> ElementInfo:
        input_type = element.get("type", "")
        return ElementInfo(
            tag=element.name,
            type=input_type,
            name=element.get("name", ""),
            id=element.get("id", ""),
            placeholder=element.get("placeholder", ""),
            aria_label=element.get("aria-label", ""),
            test_id=element.get("data-testid", ""),
            text=element.get_text(" ", strip=True),
            value=element.get("value", "") if input_type != "password" else "",
        )

    async def type_into(self, element, text: str, delay_ms: int = 0) -> None:
        self.typed.append((element, text))

    async def click(self, element) -> None:
        self.clicked.append(element)
        self._submit()

    async def press(self, key: str) -> None:
        self.pressed.append(key)
        if key == "Enter":
            self._submit()

    def _submit(self):
        self.site.submissions.append([(el.get("id", ""), text) for el, text in self.typed])
        self.url = self.site.landing_url
        self.cookies = list(self.site.cookies)

    async def wait_for_settled(self, previous_url, timeout_ms: int) -> bool:
        return self.url != previous_url

    async def extract_cookies(self) -> list[tuple[str, str]]:
        return list(self.cookies)

    async def close(self) -> None:
        self.closed = True
        if self.driver is not None:
            self.driver.close_count += 1


class StaticDriver(BrowserDriver):
    def __init__(self, site: Optional[FakeSite] = None, launch_error: bool = False, open_delay: float = 0):
        self.site = site or FakeSite()
        self.launch_error = launch_error
        self.open_delay = open_delay
        self.open_count = 0
        self.close_count = 0
        self.handles: list[StaticHandle] = []

    async def open(self) -> StaticHandle:
        self.open_count += 1
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.launch_error:
            raise LaunchError("Failed to start browser: executable not found")
        handle = StaticHandle(self, self.site)
        self.handles.append(handle)
        return handle


def make_acquirer(driver: BrowserDriver, **overrides) -> CredentialAcquirer:
    """An acquirer with test credentials and no real waiting."""
    options = dict(
        locator=ResilientLocator(probe_timeout_ms=50, followup_timeout_ms=10),
        identity="u@x.com",
        secret="p",
        sign_in_url=SIGN_IN_URL,
        session_ttl=timedelta(hours=4),
        navigation_timeout_ms=1000,
        settle_timeout_ms=1000,
        settle_grace_ms=0,
        typing_delay_ms=0,
        challenge_timeout_ms=0,
        timeout_seconds=5,
    )
    options.update(overrides)
    return CredentialAcquirer(driver, **options)


def make_snapshot(*cookies, ttl=timedelta(hours=4), now=None) -> CredentialSnapshot:
    return CredentialSnapshot.build(cookies or (("session", "old"),), ttl, now=now)


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def driver(site):
    return StaticDriver(site)
