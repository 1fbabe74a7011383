"""Bitbucket bridge - MCP server for Bitbucket Cloud and Data Center.

Provides read-only Bitbucket access for MCP clients through:
- Dialect detection (Cloud vs Data Center) from the configured URL
- Per-dialect request path construction
- Async request client with retries and normalized pagination
- Configuration management with environment overrides

Python Version: 3.10+ required
"""

# Logging Configuration - Configure before other imports
from .logging_config import StructuredFormatter, configure_logging

# Initialize structured logging on module import
configure_logging()

from .__version__ import __version__, __version_info__
from .config import BridgeConfig, get_config, reset_config
from .connectors.bitbucket import (
    BitbucketClient,
    BitbucketClientError,
    ClientConfig,
    Dialect,
    ErrorKind,
    PageRequest,
    PageResult,
    PathBuilder,
    detect_dialect,
)

__all__ = [
    "BitbucketClient",
    "BitbucketClientError",
    "BridgeConfig",
    "ClientConfig",
    "Dialect",
    "ErrorKind",
    "PageRequest",
    "PageResult",
    "PathBuilder",
    "StructuredFormatter",
    "__version__",
    "__version_info__",
    "configure_logging",
    "detect_dialect",
    "get_config",
    "reset_config",
]
