# ABOUTME: Tests for Recharge failure classification
# ABOUTME: Covers expiry heuristics, message extraction, redirects, and masking

import httpx
import pytest

from recharger.classifier import (
    SNIPPET_LIMIT,
    FailureKind,
    classify_response,
    classify_transport_error,
    extract_error_message,
    is_session_expired,
    sanitize_error_message,
)
from recharger.exceptions import (
    APIError,
    PermissionDeniedError,
    RedirectError,
    SessionExpiredError,
    TransportError,
    ValidationError,
)


class TestIsSessionExpired:
    """Test which statuses and messages mean an expired session."""

    def test_401_always_expired(self):
        assert is_session_expired(401, None) is True
        assert is_session_expired(401, "Something else entirely") is True

    @pytest.mark.parametrize(
        "message", ["Session expired", "Invalid token", "UNAUTHORIZED", "token revoked"]
    )
    def test_403_with_session_keywords(self, message):
        assert is_session_expired(403, message) is True

    def test_403_plain_permission(self):
        assert is_session_expired(403, "Forbidden: insufficient scope") is False

    def test_422_with_session_keywords(self):
        assert is_session_expired(422, "Token has expired") is True

    def test_422_invalid_alone_is_validation(self):
        assert is_session_expired(422, "Invalid date") is False

    @pytest.mark.parametrize("status", [400, 404, 429, 500, None])
    def test_other_statuses_never_expired(self, status):
        assert is_session_expired(status, "session token expired") is False


class TestExtractErrorMessage:
    """Test message priority for Recharge error bodies."""

    def test_message_wins(self):
        data = {"message": "first", "error": "second", "errors": ["third"]}
        assert extract_error_message(data, 400) == "first"

    def test_error_field(self):
        assert extract_error_message({"error": "bad thing"}, 400) == "bad thing"

    def test_errors_list_of_objects(self):
        data = {"errors": [{"message": "date is required"}, {"message": "other"}]}
        assert extract_error_message(data, 422) == "date is required"

    def test_errors_list_of_strings(self):
        assert extract_error_message({"errors": ["nope"]}, 422) == "nope"

    def test_errors_mapping_is_serialized(self):
        assert extract_error_message({"errors": {"date": ["is invalid"]}}, 422) == (
            '{"date": ["is invalid"]}'
        )

    def test_error_description(self):
        assert extract_error_message({"error_description": "expired"}, 401) == "expired"

    def test_falls_back_to_status(self):
        assert extract_error_message({}, 502) == "HTTP 502 Error"
        assert extract_error_message("<html>", 503) == "HTTP 503 Error"

    def test_unknown_without_status(self):
        assert extract_error_message(None) == "Unknown API error"


class TestSanitize:
    def test_masks_credentials(self):
        text = "X-Recharge-Access-Token: abc123 Bearer xyz.789 password=hunter2"
        masked = sanitize_error_message(text)
        assert "abc123" not in masked
        assert "xyz.789" not in masked
        assert "hunter2" not in masked
        assert "Bearer ***" in masked

    def test_non_string(self):
        assert sanitize_error_message(None) == "Invalid error message format"
        assert sanitize_error_message({"a": 1}) == "Invalid error message format"

    def test_plain_text_untouched(self):
        assert sanitize_error_message("Subscription not found") == "Subscription not found"


class TestClassifyResponse:
    """Test mapping failed responses to domain errors."""

    def classify(self, status, body=None, headers=None):
        response = httpx.Response(status, json=body, headers=headers)
        return classify_response(response, "GET", "/subscriptions")

    def test_401_is_session_expired(self):
        result = self.classify(401, {"error": "Unauthorized"})
        assert result.kind is FailureKind.SESSION_EXPIRED
        assert result.is_session_expired
        assert isinstance(result.error, SessionExpiredError)
        assert result.error.status_code == 401

    def test_403_permission(self):
        result = self.classify(403, {"error": "Forbidden"})
        assert result.kind is FailureKind.PERMISSION
        assert isinstance(result.error, PermissionDeniedError)
        assert not result.is_session_expired

    def test_403_token_message(self):
        result = self.classify(403, {"error": "token expired"})
        assert isinstance(result.error, SessionExpiredError)

    def test_422_validation(self):
        result = self.classify(422, {"errors": [{"message": "date is in the past"}]})
        assert result.kind is FailureKind.VALIDATION
        assert isinstance(result.error, ValidationError)
        assert result.error.message == "date is in the past"

    def test_500_generic(self):
        result = self.classify(500, {"message": "Internal error", "error_code": "E500"})
        assert result.kind is FailureKind.API
        assert type(result.error) is APIError
        assert result.error.error_code == "E500"
        assert result.error.details["method"] == "GET"
        assert result.error.details["path"] == "/subscriptions"

    def test_redirect(self):
        result = self.classify(302, headers={"location": "https://login.example.com"})
        assert result.kind is FailureKind.REDIRECT
        assert isinstance(result.error, RedirectError)
        assert result.error.error_code == "REDIRECT_ERROR"
        assert result.error.details["location"] == "https://login.example.com"

    def test_non_json_body(self):
        response = httpx.Response(502, text="<html>Bad Gateway</html>")
        result = classify_response(response, "GET", "/orders")
        assert result.error.message == "HTTP 502 Error"
        assert result.error.details["response"] == "<html>Bad Gateway</html>"

    def test_response_snippet_is_masked_and_truncated(self):
        body = {"message": "boom", "debug": "token=secretvalue " + "x" * 1000}
        result = self.classify(500, body)
        snippet = result.error.details["response"]
        assert "secretvalue" not in snippet
        assert len(snippet) <= SNIPPET_LIMIT


class TestClassifyTransportError:
    def test_timeout(self):
        error = classify_transport_error(httpx.ReadTimeout("timed out"), "GET", "/customer")
        assert isinstance(error, TransportError)
        assert error.timeout is True
        assert "timeout" in error.message
        assert error.status_code is None

    def test_network_error(self):
        error = classify_transport_error(httpx.ConnectError("refused"), "POST", "/charges")
        assert error.timeout is False
        assert error.message == "Network error: No response received from server"
        assert error.details["path"] == "/charges"
