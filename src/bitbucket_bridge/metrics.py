"""
Prometheus metrics definitions for the Bitbucket bridge.

Counts upstream HTTP attempts, retries and fetch-all truncations, and
tool invocations. Naming: snake_case with a bitbucket_bridge_ prefix.
"""

from prometheus_client import Counter, Histogram

__all__ = [
    "bitbucket_pagination_truncations_total",
    "bitbucket_request_duration_seconds",
    "bitbucket_requests_total",
    "bitbucket_retries_total",
    "tool_calls_total",
]

# ==============================================================================
# COUNTERS - Monotonically increasing values
# ==============================================================================

bitbucket_requests_total = Counter(
    "bitbucket_bridge_requests_total",
    "Upstream Bitbucket HTTP attempts",
    ["dialect", "outcome"],
    # dialect: cloud, datacenter
    # outcome: success, not_found, unauthorized, conflict, request_failed, transport
)

bitbucket_retries_total = Counter(
    "bitbucket_bridge_retries_total",
    "Upstream attempts retried after a transient failure",
    ["dialect", "reason"],
    # reason: server_error, transport
)

bitbucket_pagination_truncations_total = Counter(
    "bitbucket_bridge_pagination_truncations_total",
    "Fetch-all sequences cut at the item cap",
    ["dialect"],
)

tool_calls_total = Counter(
    "bitbucket_bridge_tool_calls_total",
    "MCP tool invocations",
    ["tool", "status"],
    # status: success, not_found, error
)

# ==============================================================================
# HISTOGRAMS - Distribution of values
# ==============================================================================

bitbucket_request_duration_seconds = Histogram(
    "bitbucket_bridge_request_duration_seconds",
    "Duration of a single upstream HTTP attempt",
    ["dialect"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)
