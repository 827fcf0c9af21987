# ABOUTME: Pydantic models for Recharger credential handling and tool I/O
# ABOUTME: Defines CredentialEntry, IdentityDescriptor, OperationSpec, and related types

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]


class CredentialEntry(BaseModel):
    """A cached customer session token."""

    customer_id: str
    token: str
    email: str | None = None
    created_at: datetime
    last_used_at: datetime


class CacheStats(BaseModel):
    """Snapshot of the credential store."""

    count: int = 0
    email_mappings: int = 0
    oldest_age_seconds: int | None = Field(default=None, description="Age of the oldest session")
    newest_age_seconds: int | None = Field(default=None, description="Age of the newest session")


class PurgeResult(BaseModel):
    """Outcome of a credential purge."""

    cleared: int
    reason: str
    email_mappings_cleared: int | None = None


class TokenCheck(BaseModel):
    """Result of the session token validity predicate."""

    is_valid: bool
    reason: str | None = None


class IdentityDescriptor(BaseModel):
    """Caller-supplied identity for one tool call. Never persisted."""

    explicit_token: str | None = None
    customer_id: str | int | None = None
    customer_email: str | None = None

    @field_validator("explicit_token", "customer_id", "customer_email", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def has_customer(self) -> bool:
        return bool(self.customer_id) or bool(self.customer_email)


class ResolvedIdentity(BaseModel):
    """The single effective identity a request authenticates as."""

    customer_id: str | None = None
    email: str | None = None
    explicit_token: str | None = None

    @property
    def is_explicit(self) -> bool:
        return self.explicit_token is not None


class OperationSpec(BaseModel):
    """A storefront API call requested by the tool layer."""

    method: str
    path: str
    body: dict[str, Any] | None = None
    query: dict[str, Any] | None = None
