"""Request forwarding that injects the shared credential."""

from __future__ import annotations

import logging
import sys
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Iterable, Optional

import httpx
from aiohttp import web

from ..config import UPSTREAM_TIMEOUT_SECONDS, UPSTREAM_URL
from ..constants import (
    DEVICE_USER_AGENT,
    POWERED_BY,
    STRIPPED_REQUEST_HEADERS,
    STRIPPED_RESPONSE_HEADERS,
)
from ..models.session import CredentialSnapshot
from .scheduler import RefreshScheduler
from .store import SessionStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def create_upstream_client(**kwargs) -> httpx.AsyncClient:
    """Client for upstream calls.

    Its cookie jar accepts nothing, so Set-Cookie from one visitor's response
    is never replayed on another visitor's request.
    """
    kwargs.setdefault("timeout", UPSTREAM_TIMEOUT_SECONDS)
    return httpx.AsyncClient(
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        follow_redirects=False,
        **kwargs,
    )


def build_upstream_headers(
    incoming: Iterable[tuple[str, str]],
    snapshot: Optional[CredentialSnapshot],
    user_agent: str = DEVICE_USER_AGENT,
) -> list[tuple[str, str]]:
    """Headers for the upstream request.

    Repeated headers keep every value. The visitor's own cookies are always
    dropped; the shared cookie header replaces them when a snapshot exists.
    """
    headers = [(k, v) for k, v in incoming if k.lower() not in STRIPPED_REQUEST_HEADERS]
    headers.append(("User-Agent", user_agent))
    if snapshot is not None:
        headers.append(("Cookie", snapshot.cookie_header))
    return headers


def build_response_headers(upstream: httpx.Response) -> list[tuple[str, str]]:
    headers = [
        (key, value)
        for key, value in upstream.headers.multi_items()
        if key.lower() not in STRIPPED_RESPONSE_HEADERS and key.lower() != "x-powered-by"
    ]
    headers.append(("X-Powered-By", POWERED_BY))
    return headers


class ForwardingProxy:
    """Forwards visitor requests upstream under the shared identity."""

    def __init__(
        self,
        store: SessionStore,
        scheduler: Optional[RefreshScheduler],
        client: httpx.AsyncClient,
        upstream_url: str = UPSTREAM_URL,
        user_agent: str = DEVICE_USER_AGENT,
    ):
        self._store = store
        self._scheduler = scheduler
        self._client = client
        self._upstream_url = upstream_url.rstrip("/")
        self._user_agent = user_agent

    async def handle(self, request: web.Request) -> web.Response:
        if self._scheduler is not None:
            self._scheduler.trigger_if_needed()
        snapshot = self._store.read()

        url = f"{self._upstream_url}{request.raw_path}"
        headers = build_upstream_headers(request.headers.items(), snapshot, self._user_agent)
        body = await request.read()

        try:
            upstream = await self._client.request(
                request.method,
                url,
                headers=headers,
                content=body or None,
            )
        except httpx.HTTPError as e:
            logger.error(f"Proxy error for {request.method} {request.raw_path}: {e}")
            return web.json_response({"error": "Proxy error occurred"}, status=502)

        logger.debug(
            f"{request.method} {request.raw_path} -> {upstream.status_code} "
            f"({'shared session' if snapshot else 'no session'})"
        )
        return web.Response(
            status=upstream.status_code,
            body=upstream.content,
            headers=build_response_headers(upstream),
        )
