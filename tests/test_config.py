# ABOUTME: Tests for environment configuration loading
# ABOUTME: Validates store domain normalization, token checks, and log level selection

import logging

import pytest

from recharger.config import (
    DEFAULT_API_URL,
    load_settings,
    normalize_api_url,
    normalize_store_domain,
)
from recharger.exceptions import ConfigurationError

BASE_ENV = {
    "RECHARGE_STOREFRONT_DOMAIN": "test-shop.myshopify.com",
    "RECHARGE_ADMIN_TOKEN": "admin_tok_0123456789abcdef",
}


class TestNormalizeStoreDomain:
    @pytest.mark.parametrize(
        "value",
        [
            "test-shop.myshopify.com",
            "https://test-shop.myshopify.com",
            "https://test-shop.myshopify.com/admin",
            "  test-shop.myshopify.com/  ",
        ],
    )
    def test_accepts_shopify_domains(self, value):
        assert normalize_store_domain(value) == "test-shop.myshopify.com"

    def test_rejects_other_domains(self):
        with pytest.raises(ValueError, match="must be a Shopify domain"):
            normalize_store_domain("shop.example.com")

    def test_rejects_placeholder(self):
        with pytest.raises(ValueError, match="placeholder"):
            normalize_store_domain("your-shop.myshopify.com")


class TestNormalizeApiUrl:
    def test_strips_trailing_slash(self):
        assert normalize_api_url("https://api.rechargeapps.com/") == "https://api.rechargeapps.com"

    def test_keeps_port(self):
        assert normalize_api_url("https://localhost:8443") == "https://localhost:8443"

    @pytest.mark.parametrize(
        "value", ["http://api.rechargeapps.com", "api.rechargeapps.com", "https://api.rechargeapps.com/v1"]
    )
    def test_rejects(self, value):
        with pytest.raises(ValueError):
            normalize_api_url(value)


class TestLoadSettings:
    """Test building Settings from environment variables."""

    def test_defaults(self):
        settings = load_settings(dict(BASE_ENV))
        assert settings.store_domain == "test-shop.myshopify.com"
        assert settings.api_url == DEFAULT_API_URL
        assert settings.api_version == "2021-11"
        assert settings.timeout == 30.0
        assert settings.session_token is None
        assert settings.server_name == "recharger"
        assert settings.log_level == "INFO"

    def test_overrides(self):
        env = dict(
            BASE_ENV,
            RECHARGE_API_URL="https://sandbox.rechargeapps.com",
            RECHARGE_TIMEOUT="10",
            RECHARGE_SESSION_TOKEN=" tok_default_0001 ",
            MCP_SERVER_NAME="recharge-dev",
            LOG_LEVEL="warning",
        )
        settings = load_settings(env)
        assert settings.api_url == "https://sandbox.rechargeapps.com"
        assert settings.timeout == 10.0
        assert settings.session_token == "tok_default_0001"
        assert settings.server_name == "recharge-dev"
        assert settings.log_level == "WARNING"

    def test_debug_flag_forces_debug_level(self):
        settings = load_settings(dict(BASE_ENV, LOG_LEVEL="ERROR", DEBUG="true"))
        assert settings.log_level == "DEBUG"

    def test_invalid_domain(self):
        with pytest.raises(ConfigurationError, match="Invalid Recharger configuration"):
            load_settings(dict(BASE_ENV, RECHARGE_STOREFRONT_DOMAIN="shop.example.com"))

    def test_placeholder_admin_token(self):
        with pytest.raises(ConfigurationError, match="not a valid admin token"):
            load_settings(dict(BASE_ENV, RECHARGE_ADMIN_TOKEN="your_admin_token_here"))

    def test_session_token_must_differ_from_admin_token(self):
        env = dict(BASE_ENV, RECHARGE_SESSION_TOKEN=BASE_ENV["RECHARGE_ADMIN_TOKEN"])
        with pytest.raises(ConfigurationError, match="cannot be the same value"):
            load_settings(env)

    def test_insecure_api_url(self):
        with pytest.raises(ConfigurationError, match="https"):
            load_settings(dict(BASE_ENV, RECHARGE_API_URL="http://api.rechargeapps.com"))

    def test_warns_when_unconfigured(self, caplog):
        with caplog.at_level(logging.WARNING, logger="recharger.config"):
            settings = load_settings({})
        assert settings.store_domain is None
        assert settings.admin_token is None
        assert "RECHARGE_STOREFRONT_DOMAIN is not set" in caplog.text
        assert "RECHARGE_ADMIN_TOKEN is not set" in caplog.text
