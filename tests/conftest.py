# ABOUTME: Pytest fixtures for Recharger tests
# ABOUTME: Provides a scriptable fake Recharge API, a recording sleep, and client fixtures

import re

import httpx
import pytest
import pytest_asyncio

from recharger.client import ClientProvider, RechargeClient
from recharger.config import Settings
from recharger.server import create_server

ADMIN_TOKEN = "admin_tok_0123456789abcdef"
SESSION_PATH = re.compile(r"^/customers/([^/]+)/sessions$")


class FakeRechargeAPI:
    """
    Stand-in for the Recharge API, served through httpx.MockTransport.

    Session creation hands out tokens from session_tokens in order and keeps
    repeating the last one. Storefront calls pop scripted (status, body)
    responses and answer 200 once the script runs out.
    """

    def __init__(self) -> None:
        self.customers: dict[str, str] = {}
        self.session_tokens: list[str] = ["tok_session_0001"]
        self.session_errors: list[tuple[int, dict]] = []
        self.storefront_responses: list[tuple[int, object]] = []
        self.requests: list[httpx.Request] = []
        self.lookup_calls = 0
        self.session_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == "/customers":
            self.lookup_calls += 1
            email = request.url.params.get("email")
            customer_id = self.customers.get(email)
            customers = [{"id": int(customer_id), "email": email}] if customer_id else []
            return httpx.Response(200, json={"customers": customers})

        match = SESSION_PATH.match(path)
        if request.method == "POST" and match:
            self.session_calls += 1
            if self.session_errors:
                status, body = self.session_errors.pop(0)
                return httpx.Response(status, json=body)
            token = self.session_tokens.pop(0) if len(self.session_tokens) > 1 else self.session_tokens[0]
            return httpx.Response(
                200,
                json={"customer_session": {"apiToken": token, "customer_id": match.group(1)}},
            )

        if self.storefront_responses:
            status, body = self.storefront_responses.pop(0)
            return httpx.Response(status, json=body)
        return httpx.Response(200, json={"customer": {"id": 42}})

    @property
    def storefront_requests(self) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.url.path != "/customers" and not SESSION_PATH.match(r.url.path)
        ]

    def tokens_used(self) -> list[str]:
        return [r.headers["X-Recharge-Access-Token"] for r in self.storefront_requests]


class SleepRecorder:
    """Async sleep replacement that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def settings():
    """Settings for a test store with an admin token and no default session."""
    return Settings(store_domain="test-shop.myshopify.com", admin_token=ADMIN_TOKEN)


@pytest.fixture
def fake_api():
    return FakeRechargeAPI()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest_asyncio.fixture
async def client(settings, fake_api, sleeps):
    """A RechargeClient wired to the fake API."""
    client = RechargeClient(settings, transport=httpx.MockTransport(fake_api.handler), sleep=sleeps)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def provider(settings, fake_api):
    """A ClientProvider wired to the fake API."""
    provider = ClientProvider(settings, transport=httpx.MockTransport(fake_api.handler))
    yield provider
    await provider.close()


@pytest.fixture
def mcp_server(settings, provider):
    """Create an MCP server with all tools registered against the fake API."""
    return create_server(settings, provider)
