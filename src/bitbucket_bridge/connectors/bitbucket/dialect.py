"""Bitbucket dialect detection and base URL helpers.

Bitbucket ships two incompatible REST APIs:

- Cloud (https://api.bitbucket.org/2.0): workspaces, page/pagelen/next pagination
- Data Center (https://<host>/rest/api/latest): projects, start/limit/isLastPage

Cloud is the only dialect with a reliable positive signal (its hostnames and
the /2.0 version segment). Self-hosted installs use arbitrary hostnames, so
every other URL is treated as Data Center.
"""

import re
from enum import Enum
from urllib.parse import urlsplit

__all__ = [
    "CLOUD_API_URL",
    "Dialect",
    "detect_dialect",
    "extract_workspace_from_url",
    "normalize_base_url",
]

CLOUD_API_URL = "https://api.bitbucket.org/2.0"
DATA_CENTER_API_SUFFIX = "/rest/api/latest"

_CLOUD_WEB_HOSTS = {"bitbucket.org", "www.bitbucket.org"}
_CLOUD_API_HOST = "api.bitbucket.org"
_CLOUD_VERSION_SEGMENT = "/2.0"

_WEB_WORKSPACE_RE = re.compile(r"^https?://(?:www\.)?bitbucket\.org/([^/?#]+)", re.IGNORECASE)
_REST_PATH_RE = re.compile(r"/rest/api/", re.IGNORECASE)


class Dialect(str, Enum):
    """Bitbucket API dialect.

    Uses the (str, Enum) pattern so values serialize cleanly in logs:
        f"{Dialect.CLOUD.value}"  # "cloud"
    """

    CLOUD = "cloud"
    DATA_CENTER = "datacenter"


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def detect_dialect(url: str) -> Dialect:
    """Detect which Bitbucket dialect a base URL speaks.

    Total: never raises. Anything not recognized as Cloud is Data Center.

    Args:
        url: Configured base URL (web or API form)

    Returns:
        Dialect.CLOUD for bitbucket.org hosts or a /2.0 API path,
        Dialect.DATA_CENTER otherwise

    Example:
        >>> detect_dialect("https://api.bitbucket.org/2.0")
        <Dialect.CLOUD: 'cloud'>
        >>> detect_dialect("https://bitbucket.mycompany.com")
        <Dialect.DATA_CENTER: 'datacenter'>
    """
    if not isinstance(url, str):
        return Dialect.DATA_CENTER

    normalized = url.strip().rstrip("/")
    host = _hostname(normalized)

    if host in _CLOUD_WEB_HOSTS or host == _CLOUD_API_HOST:
        return Dialect.CLOUD

    # Proxies and mock servers in front of Cloud keep the API version segment
    if normalized.endswith(_CLOUD_VERSION_SEGMENT):
        return Dialect.CLOUD

    return Dialect.DATA_CENTER


def normalize_base_url(url: str) -> str:
    """Map a configured Bitbucket URL to the API root requests are sent to.

    - https://bitbucket.org/<workspace> -> https://api.bitbucket.org/2.0
    - https://api.bitbucket.org         -> https://api.bitbucket.org/2.0
    - <anything>/2.0                    -> unchanged
    - https://git.example.com           -> https://git.example.com/rest/api/latest

    Trailing slashes are always stripped.
    """
    normalized = url.strip().rstrip("/")
    host = _hostname(normalized)

    if host in _CLOUD_WEB_HOSTS:
        return CLOUD_API_URL

    if host == _CLOUD_API_HOST:
        return normalized if normalized.endswith(_CLOUD_VERSION_SEGMENT) else CLOUD_API_URL

    if normalized.endswith(_CLOUD_VERSION_SEGMENT):
        return normalized

    if not _REST_PATH_RE.search(normalized):
        return f"{normalized}{DATA_CENTER_API_SUFFIX}"

    return normalized


def extract_workspace_from_url(url: str) -> str | None:
    """Extract the workspace slug from a bitbucket.org web URL.

    Example:
        >>> extract_workspace_from_url("https://bitbucket.org/myworkspace/repo")
        'myworkspace'
        >>> extract_workspace_from_url("https://api.bitbucket.org/2.0") is None
        True
    """
    match = _WEB_WORKSPACE_RE.match(url.strip())
    return match.group(1) if match else None
