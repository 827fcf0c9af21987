# ABOUTME: Environment configuration for Recharger
# ABOUTME: Loads and validates store domain, API URL, and admin/session tokens

import logging
import os
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from recharger.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.rechargeapps.com"
DEFAULT_API_VERSION = "2021-11"
DEFAULT_TIMEOUT = 30.0

PLACEHOLDER_DOMAINS = {"your-shop.myshopify.com"}
PLACEHOLDER_ADMIN_TOKENS = {"your_admin_token_here", "your_admin_api_token_here"}


def normalize_store_domain(store_url: str) -> str:
    """Strip scheme and path from a store URL and check it is a Shopify domain."""
    value = store_url.strip()
    domain = urlparse(value).hostname if "://" in value else value.split("/")[0]
    if not domain or not domain.endswith(".myshopify.com"):
        raise ValueError(
            f"Invalid store URL format: {store_url}. "
            "Store URL must be a Shopify domain ending with .myshopify.com "
            "(example: your-shop.myshopify.com)"
        )
    if domain in PLACEHOLDER_DOMAINS:
        raise ValueError(
            'The placeholder "your-shop.myshopify.com" is not valid. '
            "Set RECHARGE_STOREFRONT_DOMAIN to your actual store domain."
        )
    return domain


def normalize_api_url(url: str) -> str:
    """Accept only bare https origins, dropping query strings and fragments."""
    parsed = urlparse(url.strip())
    if parsed.scheme != "https" or not parsed.hostname:
        raise ValueError(f"API URL must be a valid https URL: {url}")
    if parsed.path not in ("", "/"):
        raise ValueError(f"API URL should not contain path components: {url}")
    port = f":{parsed.port}" if parsed.port else ""
    return f"https://{parsed.hostname}{port}"


class Settings(BaseModel):
    """Validated Recharger configuration."""

    store_domain: str | None = None
    admin_token: str | None = None
    session_token: str | None = None
    api_url: str = DEFAULT_API_URL
    api_version: str = DEFAULT_API_VERSION
    timeout: float = DEFAULT_TIMEOUT
    server_name: str = "recharger"
    log_level: str = "INFO"

    @field_validator("store_domain")
    @classmethod
    def _check_domain(cls, value: str | None) -> str | None:
        return normalize_store_domain(value) if value else None

    @field_validator("api_url")
    @classmethod
    def _check_api_url(cls, value: str) -> str:
        return normalize_api_url(value)

    @field_validator("admin_token", "session_token")
    @classmethod
    def _strip_token(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("admin_token")
    @classmethod
    def _check_admin_token(cls, value: str | None) -> str | None:
        if value and value in PLACEHOLDER_ADMIN_TOKENS:
            raise ValueError(
                f'The placeholder "{value}" is not a valid admin token. '
                "Set RECHARGE_ADMIN_TOKEN to your actual admin token."
            )
        return value

    @model_validator(mode="after")
    def _tokens_differ(self) -> "Settings":
        if self.session_token and self.admin_token and self.session_token == self.admin_token:
            raise ValueError(
                "RECHARGE_SESSION_TOKEN and RECHARGE_ADMIN_TOKEN cannot be the same value. "
                "Admin tokens cannot be used as session tokens; remove RECHARGE_SESSION_TOKEN "
                "and sessions will be created automatically."
            )
        return self


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """
    Build Settings from environment variables.

    Raises:
        ConfigurationError: If any variable fails validation
    """
    env = os.environ if environ is None else environ

    log_level = env.get("LOG_LEVEL", "INFO").upper()
    if env.get("DEBUG", "").lower() == "true":
        log_level = "DEBUG"

    values = {
        "store_domain": env.get("RECHARGE_STOREFRONT_DOMAIN") or None,
        "admin_token": env.get("RECHARGE_ADMIN_TOKEN") or None,
        "session_token": env.get("RECHARGE_SESSION_TOKEN") or None,
        "api_url": env.get("RECHARGE_API_URL") or DEFAULT_API_URL,
        "api_version": env.get("RECHARGE_API_VERSION") or DEFAULT_API_VERSION,
        "timeout": env.get("RECHARGE_TIMEOUT") or DEFAULT_TIMEOUT,
        "server_name": env.get("MCP_SERVER_NAME") or "recharger",
        "log_level": log_level,
    }

    try:
        settings = Settings(**values)
    except ValidationError as e:
        problems = "; ".join(err["msg"] for err in e.errors())
        raise ConfigurationError(f"Invalid Recharger configuration: {problems}") from e

    if not settings.store_domain:
        logger.warning("RECHARGE_STOREFRONT_DOMAIN is not set")
    if not settings.admin_token:
        logger.warning("RECHARGE_ADMIN_TOKEN is not set; customer sessions cannot be created")
    return settings
