# ABOUTME: Custom exception hierarchy for Recharger
# ABOUTME: Provides structured error handling and remediation hints for Recharge operations

from typing import Any


class RechargerError(Exception):
    """Base exception for all Recharger errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for tool responses and logs."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigurationError(RechargerError):
    """Missing or placeholder configuration, or no identity available."""


class SecurityError(RechargerError):
    """Refused to reuse a default credential while customer sessions exist."""


class InvalidCredentialError(RechargerError):
    """A session token failed the shape or placeholder checks."""


class ValidationError(RechargerError):
    """Invalid input provided to a tool or request."""


class InvalidArgumentError(ValidationError, ValueError):
    """An argument passed to the credential store was empty or malformed."""


class CustomerNotFoundError(RechargerError):
    """No customer matches the given email."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("status_code", 404)
        super().__init__(message, **kwargs)


class TransportError(RechargerError):
    """No response was received from the Recharge API."""

    def __init__(self, message: str, timeout: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.timeout = timeout


class APIError(RechargerError):
    """Structured error returned by the Recharge API."""


class SessionExpiredError(APIError):
    """The session token used for a request is no longer accepted."""


class PermissionDeniedError(APIError):
    """The API refused the request for a reason other than an expired session."""


class RedirectError(APIError):
    """The API answered with an unexpected redirect."""


class InvalidResponseError(RechargerError):
    """The API returned a success status with a missing or malformed body."""


class CredentialCreationError(RechargerError):
    """Creating a customer session failed after all attempts."""


class StaleCredentialError(CredentialCreationError):
    """Session creation kept returning the token that was just retired."""


class SessionRefreshError(RechargerError):
    """Session refresh retries were exhausted for a request."""

    def __init__(
        self,
        original_error: RechargerError,
        final_error: RechargerError,
        retry_count: int,
    ) -> None:
        message = (
            f"Session refresh failed after {retry_count} attempts. "
            f"Original error: {original_error.message}. "
            f"Final retry error: {final_error.message}. "
            "This may indicate admin token expiry or insufficient permissions."
        )
        super().__init__(
            message,
            status_code=final_error.status_code,
            error_code=final_error.error_code,
            details={
                "original_error": original_error.to_dict(),
                "final_error": final_error.to_dict(),
                "retry_count": retry_count,
            },
        )
        self.original_error = original_error
        self.final_error = final_error
        self.retry_count = retry_count


def remediation_hint(error: Exception) -> str | None:
    """Return a human-readable hint for a surfaced error, keyed by kind and status."""
    if isinstance(error, SessionRefreshError):
        return (
            "Check that the admin token is still valid and has permission to "
            "create customer sessions."
        )
    if isinstance(error, RedirectError):
        return "Check RECHARGE_API_URL and the store domain; redirects usually mean a wrong endpoint."
    if isinstance(error, TransportError):
        if error.timeout:
            return "The API took too long to respond. Try again shortly."
        return "Could not reach the API. Check network connectivity and try again."
    if isinstance(error, (SecurityError, ConfigurationError)):
        return "Pass customer_id, customer_email or session_token with the tool call."

    status = getattr(error, "status_code", None)
    if status is None:
        return None
    if status == 401:
        return "Check your API access token and ensure it has the required permissions."
    if status == 403:
        return "The token lacks permission for this resource."
    if status == 404:
        return "Verify the resource ID exists and you have access to it."
    if status == 422:
        return "Check the request parameters - some required fields may be missing or invalid."
    if status == 429:
        return "You have exceeded the API rate limit. Please wait before making more requests."
    if status >= 500:
        return "This appears to be a server error. Please try again later."
    return None


def format_error(error: Exception) -> str:
    """Render an error as tool-facing text with its remediation hint."""
    if isinstance(error, RechargerError):
        text = error.message
        if error.status_code is not None:
            text = f"API Error ({error.status_code}): {text}"
        if error.error_code:
            text += f" (Code: {error.error_code})"
    else:
        text = f"Error: {error}"

    hint = remediation_hint(error)
    if hint:
        text += f"\n\nTip: {hint}"
    return text
