"""Payment history model for provider payments."""
import enum

from sqlalchemy import Column, Date, Numeric, String, Text, UniqueConstraint

from pulse.models.base import Base


class PaymentRecordStatus(enum.Enum):
    """Status of a recorded provider payment."""

    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"
    FAILED = "FAILED"


class PaymentRecord(Base):
    """
    Payment reported by the billing provider.

    A provider payment id maps to a single row; later events for the same
    payment update it in place.
    """

    __tablename__ = "payment_history"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_payment_history_provider_external_id"),
    )

    external_id = Column(String, nullable=False, index=True)  # Asaas payment id (pay_...)
    provider = Column(String(32), nullable=False, default="asaas")
    customer_id = Column(String, nullable=False, index=True)  # Asaas customer id (cus_...)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    payment_method = Column(String(32), nullable=False)  # PIX, BOLETO, CREDIT_CARD, ...
    description = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=PaymentRecordStatus.PENDING.value, index=True)
    subscription_id = Column(String, nullable=True, index=True)
    invoice_url = Column(String, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<PaymentRecord(external_id={self.external_id}, status={self.status}, amount={self.amount})>"
