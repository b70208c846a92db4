"""Tests for the forwarding layer, operator gate and admin endpoints."""

import base64

import httpx
import pytest
from aiohttp import test_utils

from conftest import FakeSite, StaticDriver, make_acquirer, make_snapshot
from session_broker.constants import DEVICE_USER_AGENT, POWERED_BY
from session_broker.session_manager.manager import BrokerService, create_app
from session_broker.session_manager.proxy import build_upstream_headers, create_upstream_client

UPSTREAM = "https://upstream.test"


class Upstream:
    """Records forwarded requests and answers them."""

    def __init__(self, fail: bool = False):
        self.requests: list[httpx.Request] = []
        self.fail = fail

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(
            200,
            text=f"upstream saw {request.url.path}",
            headers={"content-type": "text/plain", "set-cookie": "tracking=1", "connection": "keep-alive"},
        )


def make_broker(upstream: Upstream, driver: StaticDriver) -> BrokerService:
    client = create_upstream_client(transport=httpx.MockTransport(upstream))
    return BrokerService(
        acquirer=make_acquirer(driver),
        client=client,
        db_path=":memory:",
        upstream_url=UPSTREAM,
    )


def basic(user: str, password: str) -> dict:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


class TestUpstreamHeaders:

    def test_visitor_cookies_replaced_by_shared_session(self):
        snapshot = make_snapshot(("session", "abc"), ("csrf", "def"))
        headers = dict(build_upstream_headers(
            [("Cookie", "visitor=1"), ("Accept", "text/html"), ("Host", "proxy.local"), ("Connection", "close")],
            snapshot,
        ))
        assert headers["Cookie"] == "session=abc; csrf=def"
        assert headers["User-Agent"] == DEVICE_USER_AGENT
        assert headers["Accept"] == "text/html"
        assert "Host" not in headers
        assert "Connection" not in headers

    def test_no_snapshot_forwards_without_cookie(self):
        headers = dict(build_upstream_headers([("Cookie", "visitor=1")], None))
        assert "Cookie" not in headers
        assert headers["User-Agent"] == DEVICE_USER_AGENT

    def test_repeated_headers_keep_every_value(self):
        headers = build_upstream_headers([("X-Tag", "a"), ("Accept", "text/html"), ("X-Tag", "b")], None)
        assert [v for k, v in headers if k == "X-Tag"] == ["a", "b"]


class TestForwarding:

    @pytest.mark.asyncio
    async def test_forwards_with_shared_cookie(self):
        upstream = Upstream()
        app = create_app(make_broker(upstream, StaticDriver()), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/items/42?sort=new", headers={"Cookie": "visitor=1"})
            body = await resp.text()

        assert resp.status == 200
        assert body == "upstream saw /items/42"
        assert resp.headers["X-Powered-By"] == POWERED_BY
        forwarded = upstream.requests[0]
        assert str(forwarded.url) == f"{UPSTREAM}/items/42?sort=new"
        assert forwarded.headers["cookie"] == "session=abc; csrf=def"
        assert forwarded.headers["user-agent"] == DEVICE_USER_AGENT

    @pytest.mark.asyncio
    async def test_forwards_body_and_method(self):
        upstream = Upstream()
        app = create_app(make_broker(upstream, StaticDriver()), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.post("/api/search", json={"q": "fonts"})

        assert resp.status == 200
        forwarded = upstream.requests[0]
        assert forwarded.method == "POST"
        assert forwarded.content == b'{"q": "fonts"}'

    @pytest.mark.asyncio
    async def test_forwards_repeated_request_headers(self):
        upstream = Upstream()
        app = create_app(make_broker(upstream, StaticDriver()), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/", headers=[("X-Tag", "a"), ("X-Tag", "b")])

        assert resp.status == 200
        assert upstream.requests[0].headers.get_list("x-tag") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_no_session_forwards_unauthenticated(self):
        upstream = Upstream()
        driver = StaticDriver(launch_error=True)
        app = create_app(make_broker(upstream, driver), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/", headers={"Cookie": "visitor=1"})

        assert resp.status == 200
        assert "cookie" not in upstream.requests[0].headers

    @pytest.mark.asyncio
    async def test_upstream_failure_is_502(self):
        upstream = Upstream(fail=True)
        app = create_app(make_broker(upstream, StaticDriver()), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/anything")
            data = await resp.json()

        assert resp.status == 502
        assert data == {"error": "Proxy error occurred"}


class TestOperatorGate:

    @pytest.mark.asyncio
    async def test_requires_credentials(self):
        upstream = Upstream()
        app = create_app(make_broker(upstream, StaticDriver()), username="admin", password="s3cret")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            anonymous = await client.get("/")
            wrong = await client.get("/", headers=basic("admin", "nope"))
            allowed = await client.get("/", headers=basic("admin", "s3cret"))

        assert anonymous.status == 401
        assert "Basic" in anonymous.headers["WWW-Authenticate"]
        assert wrong.status == 401
        assert allowed.status == 200
        assert len(upstream.requests) == 1
        assert "authorization" not in upstream.requests[0].headers


class TestAdminEndpoints:

    @pytest.mark.asyncio
    async def test_status(self):
        app = create_app(make_broker(Upstream(), StaticDriver()), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/_broker/status")
            data = await resp.json()

        assert resp.status == 200
        assert data["state"] == "active"
        assert data["cookie_count"] == 2
        assert "abc" not in str(data)

    @pytest.mark.asyncio
    async def test_refresh_and_attempts(self):
        driver = StaticDriver()
        app = create_app(make_broker(Upstream(), driver), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            refresh = await client.post("/_broker/refresh")
            attempts = await client.get("/_broker/attempts", params={"limit": "5"})
            data = await attempts.json()

        assert refresh.status == 200
        assert driver.open_count == 2
        assert data["stats"]["total_attempts"] == 2
        assert data["stats"]["succeeded"] == 2
        assert [a["outcome"] for a in data["attempts"]] == ["succeeded", "succeeded"]

    @pytest.mark.asyncio
    async def test_failed_refresh_reports_error(self):
        site = FakeSite(landing_url="https://example.test/sign-in")
        app = create_app(make_broker(Upstream(), StaticDriver(site)), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.post("/_broker/refresh")
            data = await resp.json()

        assert resp.status == 502
        assert data["error"].startswith("login_rejected")
        assert data["status"]["has_session"] is False

    @pytest.mark.asyncio
    async def test_attempts_rejects_bad_limit(self):
        app = create_app(make_broker(Upstream(), StaticDriver()), username="", password="")

        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            resp = await client.get("/_broker/attempts", params={"limit": "many"})

        assert resp.status == 400
