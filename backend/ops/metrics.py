"""
Prometheus metrics endpoint.

Exposes application metrics in Prometheus format for scraping.

Metrics exposed:
- stitchcraft_authz_decisions_total: Permission decisions by outcome and reason
- stitchcraft_invitation_transitions_total: Invitation state transitions
- stitchcraft_audit_failures_total: Audit entries that could not be written
- stitchcraft_notification_failures_total: Notifications that could not be queued or sent
"""
import logging

from django.http import HttpResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

logger = logging.getLogger(__name__)

authz_decisions_total = Counter(
    "stitchcraft_authz_decisions_total",
    "Permission evaluator decisions",
    ["outcome", "reason"],
)

invitation_transitions_total = Counter(
    "stitchcraft_invitation_transitions_total",
    "Invitation lifecycle transitions",
    ["transition"],
)

audit_failures_total = Counter(
    "stitchcraft_audit_failures_total",
    "Audit entries dropped because the insert failed",
)

notification_failures_total = Counter(
    "stitchcraft_notification_failures_total",
    "Notifications that failed to enqueue or deliver",
    ["template"],
)


def record_authz_decision(allowed: bool, reason: str) -> None:
    authz_decisions_total.labels(
        outcome="allow" if allowed else "deny",
        reason=reason,
    ).inc()


def record_invitation_transition(transition: str, amount: int = 1) -> None:
    invitation_transitions_total.labels(transition=transition).inc(amount)


def record_audit_failure() -> None:
    audit_failures_total.inc()


def record_notification_failure(template: str) -> None:
    notification_failures_total.labels(template=template).inc()


def get_prometheus_response():
    """Generate Prometheus metrics response."""
    output = generate_latest()
    return HttpResponse(output, content_type=CONTENT_TYPE_LATEST)


class MetricsView(View):
    """
    Prometheus metrics endpoint.

    Exposes metrics in Prometheus format at /_metrics.
    Should be protected in production (internal network only).
    """

    def get(self, request):
        return get_prometheus_response()
