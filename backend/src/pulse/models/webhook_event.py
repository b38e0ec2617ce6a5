"""Webhook event model for inbound provider notifications."""
from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from pulse.models.base import Base


class WebhookEvent(Base):
    """
    Raw inbound webhook notification kept for audit.

    One row per distinct delivery. ``dedup_key`` is derived from the provider
    and the provider's event id, so a redelivered notification maps onto the
    row of its first delivery.
    """

    __tablename__ = "webhook_events"

    provider = Column(String(32), nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)  # PAYMENT_CONFIRMED, SUBSCRIPTION_CREATED, etc.
    external_event_id = Column(String, nullable=True)
    dedup_key = Column(String, nullable=False, unique=True)
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    claimed_at = Column(DateTime, nullable=True)  # Set while a delivery is running the handler
    processed_at = Column(DateTime, nullable=True)
    processing_result = Column(Text, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<WebhookEvent(id={self.id}, provider={self.provider}, event_type={self.event_type}, processed={self.processed})>"
