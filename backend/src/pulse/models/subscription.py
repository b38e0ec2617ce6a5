"""Subscription model for provider subscriptions."""
import enum

from sqlalchemy import Column, Date, Numeric, String, Text, UniqueConstraint

from pulse.models.base import Base


class SubscriptionStatus(enum.Enum):
    """Subscription statuses reported by Asaas."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"
    INACTIVE = "INACTIVE"


class SubscriptionRecord(Base):
    """
    Subscription created at the billing provider.

    ``status`` stores the provider's value verbatim.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_subscriptions_provider_external_id"),
    )

    external_id = Column(String, nullable=False, index=True)  # Asaas subscription id (sub_...)
    provider = Column(String(32), nullable=False, default="asaas")
    customer_id = Column(String, nullable=False, index=True)
    plan_value = Column(Numeric(12, 2), nullable=False)
    billing_type = Column(String(32), nullable=False)
    cycle = Column(String(32), nullable=True)  # MONTHLY, YEARLY, ...
    status = Column(String(16), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    next_billing_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<SubscriptionRecord(external_id={self.external_id}, status={self.status})>"
