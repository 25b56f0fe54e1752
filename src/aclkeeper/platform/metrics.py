"""Prometheus metrics for permission decisions."""

from prometheus_client import CollectorRegistry, Counter

REGISTRY = CollectorRegistry()

# outcome: allow | deny | error
permission_checks_total = Counter(
    "acl_permission_checks_total",
    "Permission checks evaluated by the PermissionService",
    ["resource_type", "outcome"],
    registry=REGISTRY,
)

# decision: author | admin | acl | unauthenticated | not_found | forbidden
guard_decisions_total = Counter(
    "acl_guard_decisions_total",
    "Resource-access guard decisions",
    ["resource_type", "decision"],
    registry=REGISTRY,
)

acl_writes_total = Counter(
    "acl_writes_total",
    "ACL write operations by kind",
    ["operation", "resource_type"],
    registry=REGISTRY,
)
