"""Shared Session Broker HTTP service.

Acquires the shared session at startup, keeps it fresh, and forwards every
other request to the upstream site with the shared cookies attached.

Endpoints:
    GET  /_broker/status    - Session state (never includes cookie values)
    POST /_broker/refresh   - Run a refresh now and wait for the outcome
    GET  /_broker/attempts  - Recent acquisition attempts and totals
    *    /{anything}        - Forwarded upstream under the shared identity
"""

from __future__ import annotations

import hmac
import logging
import sys
from datetime import timedelta
from typing import Optional

import aiosqlite
import httpx
from aiohttp import BasicAuth, hdrs, web

from ..config import (
    BROKER_HOST,
    BROKER_IDENTITY,
    BROKER_PORT,
    BROKER_SECRET,
    DB_PATH,
    PROXY_PASSWORD,
    PROXY_USERNAME,
    REFRESH_INTERVAL_SECONDS,
    UPSTREAM_URL,
    ensure_dirs,
)
from ..constants import ADMIN_PREFIX
from ..database.models import initialize_db
from ..database.repository import AttemptRepository
from .acquirer import CredentialAcquirer
from .browser import BrowserDriver, CamoufoxDriver
from .proxy import ForwardingProxy, create_upstream_client
from .scheduler import RefreshScheduler
from .store import SessionStore

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class BrokerService:
    """Owns the store, scheduler, journal and forwarding client."""

    def __init__(
        self,
        driver: Optional[BrowserDriver] = None,
        acquirer: Optional[CredentialAcquirer] = None,
        client: Optional[httpx.AsyncClient] = None,
        db_path: Optional[str] = str(DB_PATH),
        upstream_url: str = UPSTREAM_URL,
        refresh_interval: timedelta = timedelta(seconds=REFRESH_INTERVAL_SECONDS),
    ):
        self.store = SessionStore()
        self.acquirer = acquirer or CredentialAcquirer(driver or CamoufoxDriver())
        self.scheduler: RefreshScheduler | None = None
        self.proxy: ForwardingProxy | None = None
        self.db: aiosqlite.Connection | None = None
        self.repo: AttemptRepository | None = None
        self._client = client
        self._owns_client = client is None
        self._db_path = db_path
        self._upstream_url = upstream_url
        self._refresh_interval = refresh_interval

    async def setup(self):
        """Open the journal and wire the scheduler and proxy."""
        if self._db_path:
            self.db = await aiosqlite.connect(self._db_path)
            self.db.row_factory = aiosqlite.Row
            await initialize_db(self.db)
            self.repo = AttemptRepository(self.db)

        self.scheduler = RefreshScheduler(
            self.store, self.acquirer, self._refresh_interval, repo=self.repo
        )
        if self._client is None:
            self._client = create_upstream_client()
        self.proxy = ForwardingProxy(self.store, self.scheduler, self._client, self._upstream_url)

    async def start(self):
        await self.scheduler.start()

    async def cleanup(self):
        """Abandon any in-flight acquisition and release resources."""
        if self.scheduler:
            await self.scheduler.stop()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        if self.db:
            await self.db.close()


def basic_auth_middleware(username: str, password: str):
    """Gate every route behind a single operator username and password."""
    expected_user = username.encode()
    expected_password = password.encode()

    @web.middleware
    async def middleware(request: web.Request, handler):
        header = request.headers.get(hdrs.AUTHORIZATION, "")
        auth = None
        if header:
            try:
                auth = BasicAuth.decode(header)
            except ValueError:
                auth = None
        if auth is None or not (
            hmac.compare_digest(auth.login.encode(), expected_user)
            & hmac.compare_digest(auth.password.encode(), expected_password)
        ):
            return web.Response(
                status=401,
                text="Authentication required",
                headers={hdrs.WWW_AUTHENTICATE: 'Basic realm="Shared Session Broker"'},
            )
        return await handler(request)

    return middleware


# ── HTTP Handlers ────────────────────────────────────────────────────────────


async def handle_status(request: web.Request) -> web.Response:
    broker: BrokerService = request.app["broker"]
    return web.json_response(broker.scheduler.status().model_dump())


async def handle_refresh(request: web.Request) -> web.Response:
    broker: BrokerService = request.app["broker"]

    result = await broker.scheduler.refresh_now()
    status = broker.scheduler.status().model_dump()
    if result is None:
        return web.json_response(
            {"error": "Refresh already in progress.", "status": status},
            status=409,
        )
    if not result:
        return web.json_response(
            {"error": broker.scheduler.last_failure or "Refresh failed.", "status": status},
            status=502,
        )
    return web.json_response({"message": "Session refreshed.", "status": status})


async def handle_attempts(request: web.Request) -> web.Response:
    broker: BrokerService = request.app["broker"]
    try:
        limit = int(request.query.get("limit", "20"))
    except ValueError:
        return web.json_response({"error": "limit must be an integer."}, status=400)
    limit = max(1, min(limit, 200))

    if broker.repo is None:
        return web.json_response({"attempts": [], "stats": {}})

    try:
        attempts = await broker.repo.recent_attempts(limit)
        stats = await broker.repo.get_attempt_stats()
    except Exception as e:
        logger.error(f"Could not read acquisition attempts: {e}", exc_info=True)
        return web.json_response({"error": str(e)}, status=500)

    return web.json_response({
        "attempts": [a.model_dump() for a in attempts],
        "stats": stats,
    })


async def handle_proxy(request: web.Request) -> web.StreamResponse:
    broker: BrokerService = request.app["broker"]
    return await broker.proxy.handle(request)


# ── App Factory ──────────────────────────────────────────────────────────────


async def on_startup(app: web.Application):
    broker: BrokerService = app["broker"]
    await broker.setup()
    await broker.start()
    logger.info(f"Shared Session Broker ready, forwarding to {broker._upstream_url}")


async def on_cleanup(app: web.Application):
    broker: BrokerService = app["broker"]
    await broker.cleanup()
    logger.info("Shared Session Broker stopped.")


def create_app(
    broker: Optional[BrokerService] = None,
    username: str = PROXY_USERNAME,
    password: str = PROXY_PASSWORD,
) -> web.Application:
    middlewares = []
    if username and password:
        middlewares.append(basic_auth_middleware(username, password))
    else:
        logger.warning("PROXY_USERNAME/PROXY_PASSWORD not set, the proxy is open to anyone")

    app = web.Application(middlewares=middlewares)
    app["broker"] = broker or BrokerService()
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.router.add_get(f"{ADMIN_PREFIX}/status", handle_status)
    app.router.add_post(f"{ADMIN_PREFIX}/refresh", handle_refresh)
    app.router.add_get(f"{ADMIN_PREFIX}/attempts", handle_attempts)
    app.router.add_route("*", "/{tail:.*}", handle_proxy)

    return app


def main():
    """Run the broker as a standalone HTTP service."""
    ensure_dirs()
    if not BROKER_IDENTITY or not BROKER_SECRET:
        logger.warning("BROKER_IDENTITY/BROKER_SECRET not set, sign-in will be rejected")
    app = create_app()
    web.run_app(app, host=BROKER_HOST, port=BROKER_PORT)


if __name__ == "__main__":
    main()
