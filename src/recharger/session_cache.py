# ABOUTME: In-process cache of customer session tokens
# ABOUTME: Maps customer IDs to tokens and emails to customer IDs, with age-based expiry

import logging
import re
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from recharger.exceptions import InvalidArgumentError
from recharger.types import CacheStats, CredentialEntry

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    """Trim and lowercase an email for use as an index key."""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email.strip()))


class CredentialStore:
    """
    Cache of customer session tokens owned by a single client.

    Holds at most one entry per customer ID plus an email -> customer ID index
    that is kept consistent with entry removal. All operations are synchronous
    and never touch the network.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._entries: dict[str, CredentialEntry] = {}
        self._email_index: dict[str, str] = {}
        self._clock = clock
        self._lock = threading.RLock()

    def get(self, customer_id: str) -> str | None:
        """Return the cached token for a customer and mark it as used."""
        if not customer_id or not isinstance(customer_id, str):
            return None
        with self._lock:
            entry = self._entries.get(customer_id)
            if entry is None:
                return None
            entry.last_used_at = self._clock()
            return entry.token

    def put(self, customer_id: str, token: str, email: str | None = None) -> None:
        """
        Cache a session token for a customer, replacing any previous entry.

        Args:
            customer_id: Customer ID (non-empty string)
            token: Session token (non-empty string)
            email: Optional customer email, indexed for reverse lookup

        Raises:
            InvalidArgumentError: If any argument is empty or malformed
        """
        if not isinstance(customer_id, str) or not customer_id.strip():
            raise InvalidArgumentError("Customer ID is required and must be a non-empty string")
        if not isinstance(token, str) or not token.strip():
            raise InvalidArgumentError("Session token is required and must be a non-empty string")

        normalized_email = None
        if email is not None:
            if not isinstance(email, str) or not is_valid_email(email):
                raise InvalidArgumentError(f"Invalid email format for caching: {email}")
            normalized_email = normalize_email(email)

        now = self._clock()
        with self._lock:
            previous = self._entries.get(customer_id)
            if previous and previous.email and previous.email != normalized_email:
                if self._email_index.get(previous.email) == customer_id:
                    del self._email_index[previous.email]

            self._entries[customer_id] = CredentialEntry(
                customer_id=customer_id,
                token=token,
                email=normalized_email,
                created_at=now,
                last_used_at=now,
            )
            if normalized_email:
                self._email_index[normalized_email] = customer_id

        # Never log the token itself
        logger.debug(f"Cached session for customer {customer_id}")

    def has_entry(self, customer_id: str) -> bool:
        with self._lock:
            return customer_id in self._entries

    def get_customer_id_by_email(self, email: str) -> str | None:
        if not email or not isinstance(email, str):
            return None
        with self._lock:
            return self._email_index.get(normalize_email(email))

    def set_email_mapping(self, email: str, customer_id: str) -> None:
        """Record an email -> customer ID lookup without caching a token."""
        if not isinstance(email, str) or not is_valid_email(email):
            raise InvalidArgumentError(f"Invalid email format for caching: {email}")
        if not isinstance(customer_id, str) or not customer_id.strip():
            raise InvalidArgumentError("Customer ID is required and must be a non-empty string")

        with self._lock:
            self._email_index[normalize_email(email)] = customer_id
        logger.debug(f"Cached email lookup for customer {customer_id}")

    def clear(self, customer_id: str) -> None:
        """Remove a customer's entry and its email mapping. Absent IDs are ignored."""
        if not customer_id or not isinstance(customer_id, str):
            return
        with self._lock:
            entry = self._entries.pop(customer_id, None)
            emails = [e for e, cid in self._email_index.items() if cid == customer_id]
            if entry and entry.email and entry.email not in emails:
                emails.append(entry.email)
            for email in emails:
                self._email_index.pop(email, None)
        if entry:
            logger.debug(f"Cleared session for customer {customer_id}")

    def clear_if_matches(self, customer_id: str, token: str) -> bool:
        """
        Clear a customer's entry only if it still holds the given token.

        Returns:
            True if the entry was cleared (or was already gone)
        """
        with self._lock:
            entry = self._entries.get(customer_id)
            if entry is not None and entry.token != token:
                logger.debug(
                    f"Session for customer {customer_id} was replaced by another request, not clearing"
                )
                return False
            self.clear(customer_id)
            return True

    def clear_by_email(self, email: str) -> None:
        customer_id = self.get_customer_id_by_email(email)
        if customer_id:
            self.clear(customer_id)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._email_index.clear()
        logger.debug("Cleared all cached sessions")

    def customer_ids_older_than(self, max_age_minutes: float) -> list[str]:
        """List customers whose entry was created more than max_age_minutes ago."""
        cutoff = self._clock() - timedelta(minutes=max_age_minutes)
        with self._lock:
            return [cid for cid, entry in self._entries.items() if entry.created_at < cutoff]

    def clear_older_than(self, max_age_minutes: float) -> int:
        """
        Remove entries created more than max_age_minutes ago.

        Returns:
            Number of entries removed
        """
        with self._lock:
            expired = self.customer_ids_older_than(max_age_minutes)
            for customer_id in expired:
                self.clear(customer_id)

        if expired:
            logger.debug(
                f"Cleared {len(expired)} sessions older than {max_age_minutes} minutes"
            )
        return len(expired)

    def has_any_entries(self) -> bool:
        with self._lock:
            return bool(self._entries)

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            created = [entry.created_at for entry in self._entries.values()]
            return CacheStats(
                count=len(self._entries),
                email_mappings=len(self._email_index),
                oldest_age_seconds=int((now - min(created)).total_seconds()) if created else None,
                newest_age_seconds=int((now - max(created)).total_seconds()) if created else None,
            )
