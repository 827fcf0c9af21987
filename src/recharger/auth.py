# ABOUTME: Authentication module for Recharge customer sessions
# ABOUTME: Validates tokens, resolves caller identity, and creates/caches session tokens

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable

from recharger.exceptions import (
    ConfigurationError,
    CredentialCreationError,
    CustomerNotFoundError,
    InvalidCredentialError,
    RechargerError,
    SecurityError,
    StaleCredentialError,
    ValidationError,
)
from recharger.session_cache import CredentialStore, is_valid_email, normalize_email
from recharger.types import IdentityDescriptor, ResolvedIdentity, TokenCheck

logger = logging.getLogger(__name__)

MAX_SESSION_ATTEMPTS = 3
MIN_TOKEN_LENGTH = 10
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_CAP_SECONDS = 5.0

PLACEHOLDER_TOKENS = frozenset(
    {
        "undefined",
        "null",
        "none",
        "your_session_token_here",
        "st_example",
        "test_token",
    }
)
TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")

CustomerLookup = Callable[[str], Awaitable[str]]
SessionFactory = Callable[[str], Awaitable[str | None]]
Sleep = Callable[[float], Awaitable[None]]


def validate_session_token(token: object) -> TokenCheck:
    """Check that a session token is plausibly real, explaining any rejection."""
    if token is None:
        return TokenCheck(is_valid=False, reason="Token is null or undefined")
    if not isinstance(token, str):
        return TokenCheck(is_valid=False, reason="Token must be a string")

    trimmed = token.strip()
    if not trimmed:
        return TokenCheck(is_valid=False, reason="Token cannot be empty")
    if len(trimmed) < MIN_TOKEN_LENGTH:
        return TokenCheck(
            is_valid=False,
            reason=f"Token appears too short (less than {MIN_TOKEN_LENGTH} characters)",
        )
    if trimmed.lower() in PLACEHOLDER_TOKENS:
        return TokenCheck(is_valid=False, reason="Token appears to be a placeholder or test value")
    if not TOKEN_PATTERN.match(trimmed):
        return TokenCheck(is_valid=False, reason="Token contains invalid characters")
    return TokenCheck(is_valid=True)


def require_valid_token(token: object, label: str = "session token") -> str:
    """Return the trimmed token or raise InvalidCredentialError with the reason."""
    check = validate_session_token(token)
    if not check.is_valid:
        raise InvalidCredentialError(f"Invalid {label}: {check.reason}")
    return token.strip()  # type: ignore[union-attr]


def backoff_delay(attempt: int) -> float:
    """Exponential backoff in seconds for a zero-based attempt index, capped at 5s."""
    return min(BACKOFF_BASE_SECONDS * 2**attempt, BACKOFF_CAP_SECONDS)


class IdentityResolver:
    """
    Determines which customer a request authenticates as.

    An explicit token wins outright. Otherwise a customer ID (or an email
    resolved through the store's index or a remote lookup) is used. With no
    identity at all, a configured default token is only used while the store
    is empty, so customer-scoped data cannot leak through a shared credential.
    """

    def __init__(
        self,
        store: CredentialStore,
        lookup_customer: CustomerLookup,
        default_token: str | None = None,
    ) -> None:
        self._store = store
        self._lookup_customer = lookup_customer
        self._default_token = default_token

    async def resolve(self, identity: IdentityDescriptor | None = None) -> ResolvedIdentity:
        identity = identity or IdentityDescriptor()

        if identity.explicit_token is not None:
            logger.debug("Using explicit session token")
            return ResolvedIdentity(explicit_token=require_valid_token(identity.explicit_token))

        if identity.has_customer:
            return await self._resolve_customer(identity)

        if self._store.has_any_entries():
            raise SecurityError(
                "Security Error: Cannot use default session token when customer-specific "
                "sessions exist. Please specify 'customer_id', 'customer_email', or "
                "'session_token' to ensure correct customer data access."
            )
        if self._default_token:
            logger.debug("Using default session token")
            return ResolvedIdentity(explicit_token=require_valid_token(self._default_token))

        raise ConfigurationError(
            "No session token available. Please provide customer_id, customer_email, or "
            "session_token parameter, or set RECHARGE_SESSION_TOKEN environment variable."
        )

    async def _resolve_customer(self, identity: IdentityDescriptor) -> ResolvedIdentity:
        email = None
        if identity.customer_email:
            if not is_valid_email(identity.customer_email):
                raise ValidationError(f"Invalid email format: {identity.customer_email}")
            email = normalize_email(identity.customer_email)

        if identity.customer_id is not None and str(identity.customer_id).strip():
            if identity.customer_email:
                logger.debug("Both customer_id and customer_email provided, using customer_id")
            return ResolvedIdentity(customer_id=str(identity.customer_id).strip(), email=email)

        if email is None:
            raise ValidationError("Customer ID cannot be empty")

        customer_id = self._store.get_customer_id_by_email(email)
        if customer_id is None:
            logger.debug("Looking up customer ID by email")
            customer_id = await self._lookup_customer(email)
            if not customer_id:
                raise CustomerNotFoundError(f"Customer not found with email: {email}")
            self._store.set_email_mapping(email, customer_id)

        return ResolvedIdentity(customer_id=customer_id, email=email)


class CredentialManager:
    """
    Creates, validates, and retires customer session tokens.

    Session creation is serialized per customer ID: concurrent callers for the
    same customer wait on one creation and then read the cached result.
    """

    def __init__(
        self,
        store: CredentialStore,
        create_session: SessionFactory,
        sleep: Sleep = asyncio.sleep,
        max_attempts: int = MAX_SESSION_ATTEMPTS,
    ) -> None:
        self._store = store
        self._create_session = create_session
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._locks: dict[str, asyncio.Lock] = {}
        # Calls holding or waiting on each lock; idle locks are dropped
        self._lock_users: dict[str, int] = {}
        self._locks_lock = asyncio.Lock()
        # Last token invalidated per customer, used to spot non-rotated sessions
        self._retired: dict[str, str] = {}

    async def _get_lock(self, customer_id: str) -> asyncio.Lock:
        async with self._locks_lock:
            if customer_id not in self._locks:
                self._locks[customer_id] = asyncio.Lock()
            self._lock_users[customer_id] = self._lock_users.get(customer_id, 0) + 1
            return self._locks[customer_id]

    def _release_lock(self, customer_id: str) -> None:
        self._lock_users[customer_id] -= 1
        if not self._lock_users[customer_id]:
            del self._lock_users[customer_id]
            del self._locks[customer_id]

    def forget(self, customer_ids: Iterable[str] | None = None) -> None:
        """
        Drop retired-token records, for the given customers or for everyone.

        Called when the store is purged so a purged customer starts fresh.
        """
        if customer_ids is None:
            self._retired.clear()
            return
        for customer_id in customer_ids:
            self._retired.pop(customer_id, None)

    def invalidate(self, customer_id: str, token: str) -> bool:
        """
        Retire a token that the API rejected.

        The cache entry is only cleared if it still holds that token; a newer
        token cached by a concurrent request is left alone.

        Returns:
            True if the token was retired
        """
        if not self._store.clear_if_matches(customer_id, token):
            return False
        self._retired[customer_id] = token
        logger.info(f"Invalidated expired session for customer {customer_id}")
        return True

    async def obtain(
        self,
        customer_id: str,
        email: str | None = None,
        stale_token: str | None = None,
    ) -> str:
        """
        Get a usable session token for a customer, creating one if needed.

        Args:
            customer_id: Customer to authenticate as
            email: Customer email, cached alongside the token when known
            stale_token: Token the caller just saw rejected; never returned

        Returns:
            A session token that passed validation
        """
        lock = await self._get_lock(customer_id)
        try:
            async with lock:
                return await self._obtain_locked(customer_id, email, stale_token)
        finally:
            self._release_lock(customer_id)

    async def _obtain_locked(
        self, customer_id: str, email: str | None, stale_token: str | None
    ) -> str:
        cached = self._store.get(customer_id)
        if cached is not None:
            check = validate_session_token(cached)
            if check.is_valid and cached != stale_token:
                logger.debug(f"Using cached session for customer {customer_id}")
                return cached
            if not check.is_valid:
                logger.debug(
                    f"Cached session invalid ({check.reason}), creating new session "
                    f"for customer {customer_id}"
                )
            self._store.clear(customer_id)
            self._retired[customer_id] = cached

        previous = stale_token or self._retired.get(customer_id)
        token = await self._create_with_retry(customer_id, previous)

        self._store.put(customer_id, token, email)
        self._retired.pop(customer_id, None)
        logger.debug(f"Created and cached new session for customer {customer_id}")
        return token

    async def _create_with_retry(self, customer_id: str, previous: str | None) -> str:
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            logger.debug(
                f"Creating session for customer {customer_id} "
                f"(attempt {attempt}/{self._max_attempts})"
            )
            try:
                token = require_valid_token(
                    await self._create_session(customer_id), "token from session creation"
                )
            except ConfigurationError:
                raise
            except RechargerError as e:
                last_error = e
                logger.warning(
                    f"Session creation attempt {attempt} failed for customer {customer_id}: {e}"
                )
                if attempt < self._max_attempts:
                    await self._sleep(backoff_delay(attempt - 1))
                continue

            if previous is not None and token == previous:
                logger.warning(
                    f"Session creation returned the retired token for customer {customer_id} "
                    f"(attempt {attempt})"
                )
                if attempt < self._max_attempts:
                    await self._sleep(BACKOFF_BASE_SECONDS * attempt)
                    continue
                raise StaleCredentialError(
                    "Session creation returned same token as expired session "
                    f"after {self._max_attempts} attempts",
                    details={"customer_id": customer_id, "attempts": self._max_attempts},
                )

            return token

        raise CredentialCreationError(
            f"Session creation failed after {self._max_attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
            details={"customer_id": customer_id, "attempts": self._max_attempts},
        ) from last_error
