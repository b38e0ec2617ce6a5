"""Pydantic schemas and event taxonomy for Asaas webhook notifications."""
import enum
from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pulse.exceptions import MalformedEventError


class AsaasEventType(str, enum.Enum):
    """Webhook event tags sent by Asaas."""

    PAYMENT_CREATED = "PAYMENT_CREATED"
    PAYMENT_AWAITING_RISK_ANALYSIS = "PAYMENT_AWAITING_RISK_ANALYSIS"
    PAYMENT_APPROVED_BY_RISK_ANALYSIS = "PAYMENT_APPROVED_BY_RISK_ANALYSIS"
    PAYMENT_REPROVED_BY_RISK_ANALYSIS = "PAYMENT_REPROVED_BY_RISK_ANALYSIS"
    PAYMENT_AUTHORIZED = "PAYMENT_AUTHORIZED"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_CREDIT_CARD_CAPTURE_REFUSED = "PAYMENT_CREDIT_CARD_CAPTURE_REFUSED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
    PAYMENT_DELETED = "PAYMENT_DELETED"
    PAYMENT_RESTORED = "PAYMENT_RESTORED"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    PAYMENT_REFUND_FAILED = "PAYMENT_REFUND_FAILED"
    PAYMENT_RECEIVED_IN_CASH_UNDONE = "PAYMENT_RECEIVED_IN_CASH_UNDONE"
    PAYMENT_CHARGEBACK_REQUESTED = "PAYMENT_CHARGEBACK_REQUESTED"
    PAYMENT_CHARGEBACK_DISPUTE = "PAYMENT_CHARGEBACK_DISPUTE"
    PAYMENT_AWAITING_CHARGEBACK_REVERSAL = "PAYMENT_AWAITING_CHARGEBACK_REVERSAL"
    PAYMENT_DUNNING_RECEIVED = "PAYMENT_DUNNING_RECEIVED"
    PAYMENT_DUNNING_REQUESTED = "PAYMENT_DUNNING_REQUESTED"
    PAYMENT_BANK_SLIP_VIEWED = "PAYMENT_BANK_SLIP_VIEWED"
    PAYMENT_CHECKOUT_VIEWED = "PAYMENT_CHECKOUT_VIEWED"
    SUBSCRIPTION_CREATED = "SUBSCRIPTION_CREATED"
    SUBSCRIPTION_UPDATED = "SUBSCRIPTION_UPDATED"
    SUBSCRIPTION_ACTIVATED = "SUBSCRIPTION_ACTIVATED"
    SUBSCRIPTION_PAYMENT_CREATED = "SUBSCRIPTION_PAYMENT_CREATED"
    SUBSCRIPTION_PAYMENT_FAILED = "SUBSCRIPTION_PAYMENT_FAILED"
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"


class EventKind(enum.Enum):
    """What the dispatcher does with an event."""

    PAYMENT_CONFIRMED = "payment_confirmed"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_PAYMENT_CREATED = "subscription_payment_created"
    SUBSCRIPTION_PAYMENT_FAILED = "subscription_payment_failed"
    SUBSCRIPTION_ENDED = "subscription_ended"
    UNHANDLED = "unhandled"


# Every AsaasEventType must appear here exactly once.
EVENT_KINDS: dict[AsaasEventType, EventKind] = {
    AsaasEventType.PAYMENT_CREATED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_AWAITING_RISK_ANALYSIS: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_APPROVED_BY_RISK_ANALYSIS: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_REPROVED_BY_RISK_ANALYSIS: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_AUTHORIZED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_UPDATED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_CONFIRMED: EventKind.PAYMENT_CONFIRMED,
    AsaasEventType.PAYMENT_RECEIVED: EventKind.PAYMENT_CONFIRMED,
    AsaasEventType.PAYMENT_CREDIT_CARD_CAPTURE_REFUSED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_OVERDUE: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_DELETED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_RESTORED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_REFUNDED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_REFUND_FAILED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_RECEIVED_IN_CASH_UNDONE: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_CHARGEBACK_REQUESTED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_CHARGEBACK_DISPUTE: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_AWAITING_CHARGEBACK_REVERSAL: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_DUNNING_RECEIVED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_DUNNING_REQUESTED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_BANK_SLIP_VIEWED: EventKind.UNHANDLED,
    AsaasEventType.PAYMENT_CHECKOUT_VIEWED: EventKind.UNHANDLED,
    AsaasEventType.SUBSCRIPTION_CREATED: EventKind.SUBSCRIPTION_CREATED,
    AsaasEventType.SUBSCRIPTION_UPDATED: EventKind.UNHANDLED,
    AsaasEventType.SUBSCRIPTION_ACTIVATED: EventKind.UNHANDLED,
    AsaasEventType.SUBSCRIPTION_PAYMENT_CREATED: EventKind.SUBSCRIPTION_PAYMENT_CREATED,
    AsaasEventType.SUBSCRIPTION_PAYMENT_FAILED: EventKind.SUBSCRIPTION_PAYMENT_FAILED,
    AsaasEventType.SUBSCRIPTION_CANCELLED: EventKind.SUBSCRIPTION_ENDED,
    AsaasEventType.SUBSCRIPTION_EXPIRED: EventKind.SUBSCRIPTION_ENDED,
}


def classify_event(tag: str) -> EventKind:
    """
    Map a raw event tag to the dispatcher action.

    Tags Asaas may add in the future are not members of AsaasEventType and
    fall into EventKind.UNHANDLED.
    """
    try:
        return EVENT_KINDS[AsaasEventType(tag)]
    except ValueError:
        return EventKind.UNHANDLED


class AsaasPayment(BaseModel):
    """Payment sub-object of an Asaas notification."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    customer: str = Field(..., min_length=1)
    value: Decimal
    net_value: Decimal | None = Field(default=None, alias="netValue")
    billing_type: str = Field(..., alias="billingType")
    status: str | None = None
    due_date: date | None = Field(default=None, alias="dueDate")
    payment_date: date | None = Field(default=None, alias="paymentDate")
    description: str | None = None
    invoice_url: str | None = Field(default=None, alias="invoiceUrl")
    subscription: str | None = None


class AsaasSubscription(BaseModel):
    """Subscription sub-object of an Asaas notification."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    customer: str = Field(..., min_length=1)
    billing_type: str = Field(..., alias="billingType")
    value: Decimal
    next_due_date: date | None = Field(default=None, alias="nextDueDate")
    cycle: str | None = None
    description: str | None = None
    status: str


class AsaasNotification(BaseModel):
    """
    Envelope of an Asaas webhook notification.

    Sub-objects stay raw until a handler asks for them, so an event whose
    tag needs no sub-object is never rejected for the shape of one it
    ignores.
    """

    id: str | None = None
    event: str = Field(..., min_length=1)
    payment: dict[str, Any] | None = None
    subscription: dict[str, Any] | None = None

    @property
    def kind(self) -> EventKind:
        return classify_event(self.event)

    def require_payment(self) -> AsaasPayment:
        """Return the validated payment sub-object or raise MalformedEventError."""
        if not self.payment:
            raise MalformedEventError("Dados de pagamento não encontrados no evento")
        try:
            return AsaasPayment.model_validate(self.payment)
        except ValidationError as exc:
            raise MalformedEventError(
                f"Dados de pagamento inválidos: {exc.error_count()} erro(s)"
            ) from exc

    def require_subscription(self) -> AsaasSubscription:
        """Return the validated subscription sub-object or raise MalformedEventError."""
        if not self.subscription:
            raise MalformedEventError("Dados de assinatura não encontrados no evento")
        try:
            return AsaasSubscription.model_validate(self.subscription)
        except ValidationError as exc:
            raise MalformedEventError(
                f"Dados de assinatura inválidos: {exc.error_count()} erro(s)"
            ) from exc
