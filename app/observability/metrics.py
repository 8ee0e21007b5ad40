"""
Prometheus metrics for the report lifecycle service.
"""

from prometheus_client import Counter, Histogram


# ── Intake ───────────────────────────────────────────────────
reports_created_total = Counter(
    "reports_created_total",
    "Total reports created",
    ["category"],
)

duplicate_checks_total = Counter(
    "duplicate_checks_total",
    "Duplicate checks by outcome",
    ["outcome"],  # none, low, high, unavailable, skipped
)

duplicate_scores = Histogram(
    "duplicate_scores",
    "Distribution of the best duplicate score per check",
    buckets=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)

ticket_allocation_retries_total = Counter(
    "ticket_allocation_retries_total",
    "Ticket ID collisions that forced a retry",
)

# ── Workflow ─────────────────────────────────────────────────
workflow_transitions_total = Counter(
    "workflow_transitions_total",
    "Executed workflow transitions",
    ["from_status", "to_status", "action"],
)

workflow_transition_rejections_total = Counter(
    "workflow_transition_rejections_total",
    "Transitions refused before any mutation",
    ["error_code"],
)

workflow_stale_retries_total = Counter(
    "workflow_stale_retries_total",
    "Transitions re-planned after losing a concurrent write",
)

# ── SLA ──────────────────────────────────────────────────────
sla_violations_total = Counter(
    "sla_violations_total",
    "SLA violations detected",
    ["priority"],
)

# ── Notifications ────────────────────────────────────────────
notifications_published_total = Counter(
    "notifications_published_total",
    "Notification events handed to the sink",
    ["event_type"],
)

notifications_failed_total = Counter(
    "notifications_failed_total",
    "Notification events the sink refused",
    ["event_type"],
)
