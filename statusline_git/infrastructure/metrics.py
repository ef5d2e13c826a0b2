"""Prometheus metrics collection and registry"""

from prometheus_client import REGISTRY, Counter, Histogram, Info

from statusline_git.core.config import settings

metrics_registry = REGISTRY

# ====================
# Service Information
# ====================

service_info = Info(
    "statusline_git_service",
    "statusline-git service information",
    registry=metrics_registry,
)

service_info.info({
    "version": settings.app_version,
    "environment": settings.environment,
    "service": settings.app_name,
})

# ====================
# Git Command Metrics
# ====================

git_commands_total = Counter(
    "statusline_git_commands_total",
    "Git subprocess invocations by outcome",
    ["subcommand", "status"],
    registry=metrics_registry,
)

git_command_duration_seconds = Histogram(
    "statusline_git_command_duration_seconds",
    "Wall time of a single git subprocess invocation",
    ["subcommand"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=metrics_registry,
)

# ====================
# Cache Metrics
# ====================

git_cache_requests_total = Counter(
    "statusline_git_cache_requests_total",
    "Cache lookups by key and result",
    ["key", "result"],
    registry=metrics_registry,
)

# ====================
# Service Metrics
# ====================

git_subquery_failures_total = Counter(
    "statusline_git_subquery_failures_total",
    "Sub-queries that degraded to their empty value",
    ["category"],
    registry=metrics_registry,
)
