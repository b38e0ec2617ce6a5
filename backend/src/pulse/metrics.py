"""Business metrics for Prometheus monitoring."""
from prometheus_client import Counter

# Webhook metrics
webhooks_received_total = Counter(
    "webhooks_received_total",
    "Inbound provider webhooks by outcome",
    labelnames=["provider", "event_type", "outcome"],  # outcome: success, failed, duplicate, in_progress, invalid, record_failed
)

# WhatsApp instance metrics
whatsapp_status_checks_total = Counter(
    "whatsapp_status_checks_total",
    "Instance status checks issued by connection polls",
    labelnames=["outcome"],  # outcome: connected, waiting, error
)

whatsapp_polls_finished_total = Counter(
    "whatsapp_polls_finished_total",
    "Connection polls that stopped",
    labelnames=["reason"],  # reason: connected, cancelled
)
