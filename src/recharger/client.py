# ABOUTME: Recharge API client with session caching and expiry-aware retries
# ABOUTME: Provides the shared client provider and tool error handling for the MCP layer

import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

import httpx
from fastmcp.exceptions import ToolError

from recharger.auth import (
    CredentialManager,
    IdentityResolver,
    Sleep,
    backoff_delay,
)
from recharger.classifier import classify_response, classify_transport_error
from recharger.config import Settings
from recharger.exceptions import (
    ConfigurationError,
    CustomerNotFoundError,
    InvalidResponseError,
    RechargerError,
    SessionExpiredError,
    SessionRefreshError,
    ValidationError,
    format_error,
)
from recharger.session_cache import CredentialStore, is_valid_email
from recharger.types import (
    CacheStats,
    IdentityDescriptor,
    OperationSpec,
    PurgeResult,
    ResolvedIdentity,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
VALID_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
ACCESS_TOKEN_HEADER = "X-Recharge-Access-Token"
VERSION_HEADER = "X-Recharge-Version"

F = TypeVar("F", bound=Callable[..., Any])


def _validate_request(method: str, path: str) -> str:
    if not method or not isinstance(method, str):
        raise ValidationError("HTTP method is required")
    method = method.upper()
    if method not in VALID_METHODS:
        raise ValidationError(f"Invalid HTTP method: {method}")
    if not path or not isinstance(path, str):
        raise ValidationError("API endpoint is required")
    if not path.startswith("/"):
        raise ValidationError("API endpoint must start with /")
    return method


class RechargeClient:
    """
    Client for the Recharge Storefront API.

    Owns the credential store for its store domain. Customer-scoped calls get
    a cached or freshly created session token; when the API reports the
    session expired, the token is retired and the call is retried with a new
    one, up to MAX_RETRIES times.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        store: CredentialStore | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or CredentialStore()
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=settings.api_url,
            timeout=settings.timeout,
            follow_redirects=False,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                VERSION_HEADER: settings.api_version,
            },
        )
        self.resolver = IdentityResolver(
            self.store, self.lookup_customer_id, default_token=settings.session_token
        )
        self.credentials = CredentialManager(self.store, self.create_customer_session, sleep=sleep)

    async def _send(
        self,
        method: str,
        path: str,
        token: str,
        body: dict | None = None,
        query: dict | None = None,
    ) -> dict[str, Any] | list[Any]:
        """Issue one request and decode the payload, raising classified errors."""
        try:
            response = await self._http.request(
                method,
                path,
                json=body,
                params=query,
                headers={ACCESS_TOKEN_HEADER: token},
            )
        except httpx.TransportError as e:
            raise classify_transport_error(e, method, path) from e

        if not response.is_success:
            raise classify_response(response, method, path).error

        if response.status_code == 204:
            return {}
        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidResponseError(
                "Invalid response from API", status_code=response.status_code
            ) from e
        if not isinstance(payload, (dict, list)):
            raise InvalidResponseError("Invalid response from API", status_code=response.status_code)
        return payload

    async def admin_request(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        query: dict | None = None,
    ) -> dict[str, Any] | list[Any]:
        """Make a request with the admin token. Never retried."""
        if not self.settings.admin_token:
            raise ConfigurationError(
                "Admin token required for this operation. Please set RECHARGE_ADMIN_TOKEN."
            )
        method = _validate_request(method, path)
        logger.debug(f"Admin API request: {method} {path}")
        return await self._send(method, path, self.settings.admin_token, body, query)

    async def lookup_customer_id(self, email: str) -> str:
        """Find a customer's ID by email using the admin API."""
        if not isinstance(email, str) or not is_valid_email(email):
            raise ValidationError(f"Invalid email format: {email}")

        response = await self.admin_request("GET", "/customers", query={"email": email.strip()})
        customers = response.get("customers") if isinstance(response, dict) else None
        if not isinstance(customers, list):
            raise InvalidResponseError("Invalid response format from customer lookup API")
        if not customers:
            raise CustomerNotFoundError(f"Customer not found with email: {email}")

        customer_id = customers[0].get("id") if isinstance(customers[0], dict) else None
        if not customer_id:
            raise InvalidResponseError("Customer data is incomplete - missing ID")
        return str(customer_id)

    async def create_customer_session(self, customer_id: str) -> str | None:
        """Create a new customer session with the admin API and return its token."""
        response = await self.admin_request("POST", f"/customers/{customer_id}/sessions", body={})
        session = response.get("customer_session") if isinstance(response, dict) else None
        if not isinstance(session, dict):
            raise InvalidResponseError("Invalid response from session creation API")
        return session.get("apiToken") or session.get("api_token")

    async def _token_for(self, identity: ResolvedIdentity, stale_token: str | None) -> str:
        if identity.is_explicit:
            return identity.explicit_token  # type: ignore[return-value]
        return await self.credentials.obtain(
            identity.customer_id, identity.email, stale_token=stale_token  # type: ignore[arg-type]
        )

    async def execute(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        query: dict | None = None,
        identity: IdentityDescriptor | None = None,
    ) -> dict[str, Any] | list[Any]:
        """
        Make a customer-scoped storefront request, refreshing expired sessions.

        Args:
            method: HTTP verb
            path: Absolute API path, e.g. /subscriptions
            body: JSON body
            query: Query parameters
            identity: Who the request is made for

        Returns:
            Decoded JSON payload
        """
        method = _validate_request(method, path)
        resolved = await self.resolver.resolve(identity)

        first_error: RechargerError | None = None
        stale_token: str | None = None

        for retry_count in range(MAX_RETRIES + 1):
            token = None
            try:
                token = await self._token_for(resolved, stale_token)
                logger.debug(f"Storefront API request: {method} {path}")
                return await self._send(method, path, token, body, query)
            except RechargerError as e:
                if first_error is not None and retry_count == MAX_RETRIES:
                    raise SessionRefreshError(first_error, e, retry_count) from e
                # Explicit tokens belong to the caller; only cached sessions are refreshed
                if not isinstance(e, SessionExpiredError) or resolved.is_explicit or token is None:
                    raise

                logger.warning(
                    f"Session expired for customer {resolved.customer_id} "
                    f"(attempt {retry_count + 1}/{MAX_RETRIES + 1}), retrying with a new session"
                )
                first_error = first_error or e
                self.credentials.invalidate(resolved.customer_id, token)  # type: ignore[arg-type]
                stale_token = token
                await self._sleep(backoff_delay(retry_count))

        raise AssertionError("unreachable")

    async def resolve_and_execute(
        self, operation: OperationSpec, identity: IdentityDescriptor | None = None
    ) -> dict[str, Any] | list[Any]:
        """Entry point for tools: run an operation for the given identity."""
        return await self.execute(
            operation.method, operation.path, operation.body, operation.query, identity
        )

    def purge_credentials(
        self,
        all: bool = True,
        older_than_minutes: float | None = None,
        reason: str = "manual purge",
    ) -> PurgeResult:
        """
        Clear cached session tokens.

        An age limit takes precedence over clearing everything.
        """
        before = self.store.stats()
        if older_than_minutes is not None:
            expired = self.store.customer_ids_older_than(older_than_minutes)
            cleared = self.store.clear_older_than(older_than_minutes)
            self.credentials.forget(expired)
        elif all:
            self.store.clear_all()
            self.credentials.forget()
            cleared = before.count
        else:
            cleared = 0
        after = self.store.stats()

        logger.info(f"Purged {cleared} cached sessions ({reason})")
        return PurgeResult(
            cleared=cleared,
            reason=reason,
            email_mappings_cleared=before.email_mappings - after.email_mappings,
        )

    def credential_stats(self) -> CacheStats:
        return self.store.stats()

    async def close(self) -> None:
        """Close the HTTP client and drop cached sessions."""
        await self._http.aclose()
        self.store.clear_all()
        self.credentials.forget()


class ClientProvider:
    """
    Lazily creates and caches the RechargeClient for the configured store.

    The client (and with it the credential store) lives as long as the
    provider, so sessions are reused across tool calls.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: RechargeClient | None = None
        self._lock = asyncio.Lock()

    async def get_client(self) -> RechargeClient:
        """
        Get or create the Recharge client.

        Returns:
            The shared RechargeClient instance
        """
        async with self._lock:
            if self._client is None:
                if not self._settings.store_domain:
                    raise ConfigurationError(
                        "No store URL available. Set RECHARGE_STOREFRONT_DOMAIN "
                        "(example: your-shop.myshopify.com)."
                    )
                logger.info(f"Creating Recharge client for {self._settings.store_domain}")
                self._client = RechargeClient(self._settings, transport=self._transport)
            return self._client

    async def close(self) -> None:
        """Dispose of the client and every cached session."""
        async with self._lock:
            if self._client:
                await self._client.close()
                self._client = None
                logger.info("Closed Recharge client")


def with_tool_errors(func: F) -> F:
    """
    Decorator that turns Recharger errors into MCP tool errors.

    The tool error text carries the status, error code, and a remediation
    hint so the caller knows what to fix.

    Usage:
        @mcp.tool
        @with_tool_errors
        async def my_tool(...):
            client = await get_client()
            # ... use client
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except RechargerError as exc:
            logger.warning(f"{func.__name__} failed: {exc.message}")
            raise ToolError(format_error(exc)) from exc

    return wrapper  # type: ignore
