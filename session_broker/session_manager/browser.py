"""Browser automation: launch, navigate, probe elements, extract cookies.

``BrowserDriver`` and ``DriverHandle`` are the seam between the sign-in flow
and the automation engine. ``CamoufoxDriver`` is the production engine; any
object honouring the same methods (for example a static-DOM driver in tests)
can replace it.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sys
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import BROWSER_HEADLESS, NETWORK_IDLE_TIMEOUT_MS
from ..constants import DEVICE_USER_AGENT, VIEWPORT
from ..models.session import Candidate, ElementInfo
from .errors import InteractionError, LaunchError, NavigationError

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

DESCRIBE_SCRIPT = """
(el) => ({
    tag: (el.tagName || '').toLowerCase(),
    type: el.getAttribute('type') || '',
    name: el.getAttribute('name') || '',
    id: el.id || '',
    placeholder: el.getAttribute('placeholder') || '',
    aria_label: el.getAttribute('aria-label') || '',
    test_id: el.getAttribute('data-testid') || '',
    text: (el.textContent || '').trim().slice(0, 200),
    value: el.tagName === 'INPUT' && el.type !== 'password' ? (el.value || '') : '',
})
"""


class DriverHandle(ABC):
    """One live automation session (a single page) used for one acquisition."""

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Load ``url``; raise NavigationError on timeout or network failure."""

    @abstractmethod
    def current_url(self) -> str:
        ...

    @abstractmethod
    async def content(self) -> str:
        ...

    @abstractmethod
    async def probe(self, candidate: Candidate, timeout_ms: int) -> Optional[Any]:
        """Wait up to ``timeout_ms`` for the candidate; return the element or None."""

    @abstractmethod
    async def query_all(self, kind: str) -> list[Any]:
        """Return every element matching ``kind`` in document order."""

    @abstractmethod
    async def describe(self, element: Any) -> ElementInfo:
        ...

    @abstractmethod
    async def type_into(self, element: Any, text: str, delay_ms: int = 0) -> None:
        ...

    @abstractmethod
    async def click(self, element: Any) -> None:
        ...

    @abstractmethod
    async def press(self, key: str) -> None:
        ...

    @abstractmethod
    async def wait_for_settled(self, previous_url: Optional[str], timeout_ms: int) -> bool:
        """Wait for a navigation away from ``previous_url``, then briefly for network idle.

        Returns False if the URL did not change within ``timeout_ms``; raises
        NavigationError if the page failed while waiting.
        """

    @abstractmethod
    async def extract_cookies(self) -> list[tuple[str, str]]:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the automation process. Must not raise."""


class BrowserDriver(ABC):
    """Factory for driver handles."""

    @abstractmethod
    async def open(self) -> DriverHandle:
        """Start the automation engine; raise LaunchError on failure."""

    @asynccontextmanager
    async def session(self) -> AsyncIterator[DriverHandle]:
        """Open a handle and close it on every exit path."""
        handle = await self.open()
        try:
            yield handle
        finally:
            await handle.close()


class CamoufoxHandle(DriverHandle):
    """Playwright page inside a Camoufox browser."""

    def __init__(
        self,
        camoufox: Optional[AsyncCamoufox],
        context: BrowserContext,
        page: Page,
        network_idle_timeout_ms: int = NETWORK_IDLE_TIMEOUT_MS,
    ):
        self._camoufox = camoufox
        self._context = context
        self._page = page
        self._network_idle_timeout_ms = network_idle_timeout_ms

    async def _wait_for_network_idle(self, budget_ms: float) -> bool:
        """Wait briefly for network idle. Pages that poll forever never get there."""
        timeout_ms = max(min(budget_ms, self._network_idle_timeout_ms), 1)
        try:
            await self._page.wait_for_load_state("networkidle", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            logger.debug(f"Network idle wait failed: {e}")
            return False

    async def navigate(self, url: str, timeout_ms: int) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationError(f"Timed out after {timeout_ms}ms loading {url}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Failed to load {url}: {e}") from e

        # Let client-side rendering finish, but don't fail on chatty pages.
        if not await self._wait_for_network_idle((deadline - loop.time()) * 1000):
            logger.info(f"Network still busy after loading {url}, continuing")

        try:
            title = await self._page.title()
        except PlaywrightError:
            title = ""
        logger.info(f"Landed on {self._page.url} (title: '{title}')")

    def current_url(self) -> str:
        return self._page.url

    async def content(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as e:
            logger.warning(f"Could not read page content: {e}")
            return ""

    async def probe(self, candidate: Candidate, timeout_ms: int):
        locator = self._page.locator(candidate.selector)
        if candidate.text:
            pattern = re.compile(re.escape(candidate.text), re.IGNORECASE)
            locator = locator.filter(has_text=pattern)
        locator = locator.first
        try:
            await locator.wait_for(state="visible", timeout=timeout_ms)
            return await locator.element_handle(timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return None
        except PlaywrightError as e:
            logger.debug(f"Probe error for {candidate}: {e}")
            return None

    async def query_all(self, kind: str) -> list:
        try:
            return await self._page.query_selector_all(kind)
        except PlaywrightError as e:
            logger.warning(f"Could not list '{kind}' elements: {e}")
            return []

    async def describe(self, element) -> ElementInfo:
        try:
            data = await element.evaluate(DESCRIBE_SCRIPT)
        except PlaywrightError:
            return ElementInfo()
        return ElementInfo(**data)

    async def type_into(self, element, text: str, delay_ms: int = 0) -> None:
        try:
            await element.click()
            await element.fill("")
            await element.type(text, delay=delay_ms)
        except PlaywrightError as e:
            raise InteractionError(f"Could not type into element: {e}") from e

    async def click(self, element) -> None:
        try:
            await element.click()
        except PlaywrightError as e:
            raise InteractionError(f"Could not click element: {e}") from e

    async def press(self, key: str) -> None:
        try:
            await self._page.keyboard.press(key)
        except PlaywrightError as e:
            raise InteractionError(f"Could not press {key}: {e}") from e

    async def wait_for_settled(self, previous_url: Optional[str], timeout_ms: int) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        if previous_url is not None:
            try:
                await self._page.wait_for_url(lambda url: url != previous_url, timeout=timeout_ms)
            except PlaywrightTimeoutError:
                return False
            except PlaywrightError as e:
                raise NavigationError(f"Page failed while waiting for navigation: {e}") from e

        # The URL already moved; a page that keeps polling still counts as settled.
        if not await self._wait_for_network_idle((deadline - loop.time()) * 1000):
            logger.info(f"Network still busy on {self._page.url}, treating as settled")
        return True

    async def extract_cookies(self) -> list[tuple[str, str]]:
        try:
            cookies = await self._context.cookies()
        except PlaywrightError as e:
            raise InteractionError(f"Could not read cookies: {e}") from e
        return [(c["name"], c["value"]) for c in cookies if "name" in c and "value" in c]

    async def close(self) -> None:
        try:
            await self._context.close()
        except Exception as e:
            logger.warning(f"Error closing context: {e}")
        if self._camoufox is not None:
            try:
                await self._camoufox.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing camoufox: {e}")
        logger.info("Browser closed.")


class CamoufoxDriver(BrowserDriver):
    """Launches a fresh headless Camoufox browser for every acquisition."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        user_agent: str = DEVICE_USER_AGENT,
        default_timeout_ms: int = 30000,
    ):
        self._headless = headless if headless is not None else BROWSER_HEADLESS
        self._user_agent = user_agent
        self._default_timeout_ms = default_timeout_ms

    async def open(self) -> CamoufoxHandle:
        logger.info(f"Launching Camoufox (headless={self._headless})...")
        camoufox = AsyncCamoufox(headless=self._headless, humanize=True)
        try:
            browser = await camoufox.__aenter__()
        except Exception as e:
            raise LaunchError(f"Failed to start browser: {e}") from e

        try:
            context = await browser.new_context(viewport=VIEWPORT, user_agent=self._user_agent)
            page = await context.new_page()
            page.set_default_timeout(self._default_timeout_ms)
        except Exception as e:
            try:
                await camoufox.__aexit__(None, None, None)
            except Exception as close_error:
                logger.warning(f"Error closing camoufox: {close_error}")
            raise LaunchError(f"Failed to open browser page: {e}") from e

        return CamoufoxHandle(camoufox, context, page)
