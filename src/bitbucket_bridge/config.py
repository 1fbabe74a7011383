"""Configuration management with pydantic-settings for the Bitbucket bridge.

- pydantic-settings v2 for type-safe configuration
- Automatic .env file loading with proper precedence
- Validation with clear error messages
- SecretStr for the API token
- Frozen config (thread-safe, immutable after load)

References:
- Pydantic Settings: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

import logging
from functools import lru_cache
from urllib.parse import urlsplit

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .connectors.bitbucket.client import ClientConfig
from .connectors.bitbucket.dialect import (
    Dialect,
    detect_dialect,
    extract_workspace_from_url,
    normalize_base_url,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_MCP_PORT",
    "BridgeConfig",
    "get_config",
    "reset_config",
]

DEFAULT_MCP_PORT = 3000


class BridgeConfig(BaseSettings):
    """Configuration for the Bitbucket bridge.

    Loads from (in order of precedence):
    1. Environment variables (highest priority)
    2. .env file in the working directory
    3. Default values (lowest priority)

    Attributes:
        bitbucket_url: Bitbucket URL, web or API form (Cloud or Data Center)
        bitbucket_token: API token (stored as SecretStr for security)
        bitbucket_workspace: Default workspace (Cloud) or project key (Data Center)
        bitbucket_insecure: Skip TLS certificate verification
        bitbucket_timeout: Per-attempt request timeout in milliseconds
        bitbucket_max_retries: Retries for transient failures (0-10)
        bitbucket_retry_delay: Base backoff delay in milliseconds
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json for production, text for development)
        mcp_transport: MCP transport (stdio or http)
        mcp_port: Port for the http transport
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,  # Use defaults instead of empty strings
        case_sensitive=False,  # BITBUCKET_URL = bitbucket_url
        validate_default=True,
        frozen=True,  # Immutable after creation (thread-safe)
        extra="ignore",
    )

    # Bitbucket connection
    bitbucket_url: str = Field(
        default="https://api.bitbucket.org/2.0",
        description="Bitbucket URL. bitbucket.org hosts and /2.0 URLs speak Cloud, anything else Data Center.",
    )

    bitbucket_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bitbucket API token (Cloud access token or Data Center HTTP access token)",
    )

    bitbucket_workspace: str | None = Field(
        default=None,
        description="Default workspace (Cloud) or project key (Data Center) for tools called without one",
    )

    bitbucket_insecure: bool = Field(
        default=False,
        description="Skip TLS certificate verification (self-signed Data Center installs)",
    )

    bitbucket_timeout: int = Field(
        default=30000,
        gt=0,
        description="Per-attempt request timeout in milliseconds",
    )

    bitbucket_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt for transport errors and 5xx responses",
    )

    bitbucket_retry_delay: int = Field(
        default=1000,
        gt=0,
        description="Base backoff delay in milliseconds, doubled per retry (capped at 30s)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$",
        description="Log level: DEBUG, INFO, WARNING, ERROR",
    )

    log_format: str = Field(
        default="json",
        pattern="^(json|text)$",
        description="Log format: json (production), text (development)",
    )

    # MCP server
    mcp_transport: str = Field(
        default="stdio",
        pattern="^(stdio|http)$",
        description="MCP transport: stdio (default) or http (streamable HTTP)",
    )

    mcp_port: int = Field(
        default=DEFAULT_MCP_PORT,
        ge=1,
        le=65535,
        description="Listen port for the http transport",
    )

    @field_validator("log_level", "log_format", "mcp_transport", mode="before")
    @classmethod
    def normalize_case(cls, v, info):
        """Accept LOG_LEVEL=debug, MCP_TRANSPORT=HTTP and similar."""
        if isinstance(v, str):
            v = v.strip()
            return v.upper() if info.field_name == "log_level" else v.lower()
        return v

    @field_validator("bitbucket_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL."""
        v = v.strip()
        parts = urlsplit(v)
        if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
            raise ValueError(f"BITBUCKET_URL must be an http(s) URL, got {v!r}")
        return v

    @field_validator("bitbucket_workspace", mode="before")
    @classmethod
    def strip_workspace(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v

    @model_validator(mode="after")
    def validate_token(self) -> "BridgeConfig":
        """Validate the token is present."""
        if not self.bitbucket_token.get_secret_value().strip():
            raise ValueError("BITBUCKET_TOKEN is required")
        return self

    @model_validator(mode="after")
    def warn_insecure(self) -> "BridgeConfig":
        """Warn when TLS verification is disabled. Does NOT raise."""
        if self.bitbucket_insecure:
            logger.warning(
                "tls_verification_disabled",
                extra={"bitbucket_url": self.bitbucket_url},
            )
        return self

    def get_base_url(self) -> str:
        """API root requests are sent to (see normalize_base_url)."""
        return normalize_base_url(self.bitbucket_url)

    def get_dialect(self) -> Dialect:
        return detect_dialect(self.get_base_url())

    def get_default_workspace(self) -> str | None:
        """Explicit BITBUCKET_WORKSPACE, else the workspace in a bitbucket.org web URL."""
        if self.bitbucket_workspace:
            return self.bitbucket_workspace
        return extract_workspace_from_url(self.bitbucket_url)

    def get_client_config(self) -> ClientConfig:
        """Build the client's connection settings (durations in seconds)."""
        return ClientConfig(
            base_url=self.get_base_url(),
            token=self.bitbucket_token.get_secret_value(),
            timeout=self.bitbucket_timeout / 1000.0,
            max_retries=self.bitbucket_max_retries,
            retry_delay=self.bitbucket_retry_delay / 1000.0,
            verify_tls=not self.bitbucket_insecure,
        )


# Module-level singleton with lru_cache for thread-safety
@lru_cache(maxsize=1)
def get_config() -> BridgeConfig:
    """Get global configuration singleton.

    First call loads from environment + .env file, subsequent calls return
    the cached instance.

    Returns:
        BridgeConfig singleton instance.

    Raises:
        ValidationError: If configuration values are invalid.

    Example:
        >>> config = get_config()
        >>> config.bitbucket_max_retries
        3
        >>> get_config() is config
        True
    """
    return BridgeConfig()


def reset_config() -> None:
    """Reset configuration singleton for testing.

    Warning:
        Only use in test code. Production code should not reset config.
    """
    get_config.cache_clear()
