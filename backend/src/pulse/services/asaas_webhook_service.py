"""Service for processing Asaas payment webhooks."""
import hashlib
import json
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable

import structlog
from pydantic import ValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pulse.config import settings
from pulse.metrics import webhooks_received_total
from pulse.models.payment import PaymentRecord, PaymentRecordStatus
from pulse.models.subscription import SubscriptionRecord
from pulse.models.webhook_event import WebhookEvent
from pulse.schemas.asaas import (
    AsaasEventType,
    AsaasNotification,
    AsaasPayment,
    AsaasSubscription,
    EventKind,
)
from pulse.schemas.webhook_event import WebhookResult
from pulse.services.profile_service import ProfileService

logger = structlog.get_logger(__name__)

Handler = Callable[[AsaasNotification], Awaitable[WebhookResult]]

FAILURE_PREFIXES: dict[EventKind, str] = {
    EventKind.PAYMENT_CONFIRMED: "Erro ao processar pagamento",
    EventKind.SUBSCRIPTION_CREATED: "Erro ao processar criação de assinatura",
    EventKind.SUBSCRIPTION_PAYMENT_CREATED: "Erro ao processar pagamento de assinatura",
    EventKind.SUBSCRIPTION_PAYMENT_FAILED: "Erro ao processar falha de pagamento",
    EventKind.SUBSCRIPTION_ENDED: "Erro ao processar cancelamento",
    EventKind.UNHANDLED: "Erro ao processar evento",
}


class AsaasWebhookService:
    """
    Records, deduplicates and dispatches Asaas notifications.

    Processing happens in three steps, each with its own commit:

    1. the raw notification is stored in ``webhook_events`` (unprocessed);
    2. the event-specific handler runs as a single unit of work, so either
       all of its writes land or none do;
    3. the audit row is marked with the handler outcome (best effort).

    Before step 2 the row is claimed through a conditional update, so two
    concurrent deliveries of the same event never both run the handler. A
    claim older than ``asaas_event_claim_timeout_seconds`` is treated as
    abandoned and can be taken over.

    ``handle`` never raises; every failure is reported through the
    returned ``WebhookResult``.
    """

    PROVIDER = "asaas"
    RESULT_MAX_LENGTH = 1000

    def __init__(
        self,
        db: AsyncSession,
        deactivate_on_payment_failure: bool | None = None,
        claim_timeout_seconds: int | None = None,
    ):
        """
        Initialize webhook service with database session.

        Args:
            db: Database session
            deactivate_on_payment_failure: Policy for SUBSCRIPTION_PAYMENT_FAILED,
                defaults to ``settings.asaas_deactivate_on_payment_failure``
            claim_timeout_seconds: Age after which an unfinished claim is taken over,
                defaults to ``settings.asaas_event_claim_timeout_seconds``
        """
        self.db = db
        self.profiles = ProfileService(db)
        if deactivate_on_payment_failure is None:
            deactivate_on_payment_failure = settings.asaas_deactivate_on_payment_failure
        self.deactivate_on_payment_failure = deactivate_on_payment_failure
        self.claim_timeout = timedelta(
            seconds=claim_timeout_seconds
            if claim_timeout_seconds is not None
            else settings.asaas_event_claim_timeout_seconds
        )

        self.handlers: dict[EventKind, Handler] = {
            EventKind.PAYMENT_CONFIRMED: self._handle_payment_confirmed,
            EventKind.SUBSCRIPTION_CREATED: self._handle_subscription_created,
            EventKind.SUBSCRIPTION_PAYMENT_CREATED: self._handle_subscription_payment_created,
            EventKind.SUBSCRIPTION_PAYMENT_FAILED: self._handle_subscription_payment_failed,
            EventKind.SUBSCRIPTION_ENDED: self._handle_subscription_ended,
            EventKind.UNHANDLED: self._handle_unhandled,
        }

    async def handle(self, event_data: dict[str, Any] | None) -> WebhookResult:
        """
        Process one Asaas notification.

        Args:
            event_data: Decoded JSON body sent by Asaas

        Returns:
            Processing outcome
        """
        if not event_data or not isinstance(event_data, dict) or not event_data.get("event"):
            logger.warning("asaas_webhook_invalid_event")
            self._count("invalid", "invalid")
            return WebhookResult(success=False, message="Dados de evento inválidos")

        event_type = str(event_data["event"])
        log = logger.bind(event_type=event_type, external_event_id=event_data.get("id"))
        log.info("asaas_webhook_received")

        try:
            record = await self._record_event(event_type, event_data)
            claimed = record is not None and await self._claim(record.id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("asaas_webhook_record_failed", error=str(e))
            self._count(event_type, "record_failed")
            return WebhookResult(success=False, message=f"Erro ao salvar evento: {e}")

        if record is None:
            log.info("asaas_webhook_duplicate_skipped")
            self._count(event_type, "duplicate")
            return WebhookResult(success=True, message="Evento já processado", duplicate=True)

        if not claimed:
            log.info("asaas_webhook_in_progress_skipped", webhook_event_id=str(record.id))
            self._count(event_type, "in_progress")
            return WebhookResult(success=False, message="Evento já está sendo processado")

        record_id = record.id
        result = await self._dispatch(event_type, event_data, log)
        await self._mark_processed(record_id, result, log)

        log.info("asaas_webhook_completed", success=result.success)
        self._count(event_type, "success" if result.success else "failed")
        return result

    @classmethod
    def build_dedup_key(cls, event_data: dict[str, Any]) -> str:
        """
        Derive the idempotency key of a notification.

        Uses the provider event id when present; otherwise a hash of the
        canonical JSON body, so byte-identical redeliveries still collide.
        """
        event_id = event_data.get("id")
        if event_id:
            return f"{cls.PROVIDER}:{event_id}"

        canonical = json.dumps(event_data, sort_keys=True, separators=(",", ":"), default=str)
        return f"{cls.PROVIDER}:sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"

    async def _record_event(self, event_type: str, event_data: dict[str, Any]) -> WebhookEvent | None:
        """
        Store the raw notification before dispatch.

        Returns:
            The audit row to dispatch against, or None for an event that was
            already processed. A row left unprocessed by an earlier failed
            delivery is returned so the redelivery retries it.
        """
        dedup_key = self.build_dedup_key(event_data)

        result = await self.db.execute(
            select(WebhookEvent).where(WebhookEvent.dedup_key == dedup_key)
        )
        existing = result.scalar_one_or_none()

        if existing:
            if existing.processed:
                return None
            logger.info(
                "asaas_webhook_retrying_unprocessed",
                webhook_event_id=str(existing.id),
                dedup_key=dedup_key,
            )
            return existing

        event = WebhookEvent(
            provider=self.PROVIDER,
            event_type=event_type,
            external_event_id=event_data.get("id"),
            dedup_key=dedup_key,
            payload=event_data,
            processed=False,
        )
        self.db.add(event)

        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent delivery of the same event won the insert
            await self.db.rollback()
            return None

        logger.info("webhook_event_recorded", webhook_event_id=str(event.id), dedup_key=dedup_key)
        return event

    async def _dispatch(self, event_type: str, event_data: dict[str, Any], log: Any) -> WebhookResult:
        """Run the handler for the event as one unit of work."""
        try:
            notification = AsaasNotification.model_validate(event_data)
        except ValidationError as e:
            log.warning("asaas_webhook_malformed", errors=e.error_count())
            return WebhookResult(success=False, message=f"Dados do evento {event_type} malformados")

        kind = notification.kind
        log.info("asaas_webhook_dispatching", kind=kind.value)

        try:
            result = await self.handlers[kind](notification)
            await self.db.commit()
            return result
        except Exception as e:
            await self.db.rollback()
            log.error("asaas_webhook_handler_failed", kind=kind.value, error=str(e), exc_info=True)
            return WebhookResult(success=False, message=f"{FAILURE_PREFIXES[kind]}: {e}")

    async def _claim(self, record_id: Any) -> bool:
        """
        Take the audit row for this delivery.

        Returns:
            False when another delivery holds a recent claim or already
            processed the event
        """
        now = datetime.utcnow()
        stmt = (
            update(WebhookEvent)
            .where(
                WebhookEvent.id == record_id,
                WebhookEvent.processed.is_(False),
                or_(WebhookEvent.claimed_at.is_(None), WebhookEvent.claimed_at < now - self.claim_timeout),
            )
            .values(claimed_at=now)
            .returning(WebhookEvent.id)
            .execution_options(synchronize_session="fetch")
        )
        claimed = (await self.db.execute(stmt)).scalar_one_or_none()
        await self.db.commit()
        return claimed is not None

    async def _mark_processed(self, record_id: Any, result: WebhookResult, log: Any) -> None:
        """
        Write the handler outcome onto the audit row and release the claim.

        A row already marked processed is left alone. Failures are only logged.
        """
        stmt = (
            update(WebhookEvent)
            .where(WebhookEvent.id == record_id, WebhookEvent.processed.is_(False))
            .values(
                processed=result.success,
                processed_at=datetime.utcnow(),
                processing_result=result.message[: self.RESULT_MAX_LENGTH],
                claimed_at=None,
            )
            .returning(WebhookEvent.id)
            .execution_options(synchronize_session="fetch")
        )
        try:
            marked = (await self.db.execute(stmt)).scalar_one_or_none()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.error("webhook_event_mark_processed_failed", webhook_event_id=str(record_id), error=str(e))
            return

        if marked is None:
            log.warning("webhook_event_not_marked", webhook_event_id=str(record_id))

    async def _handle_payment_confirmed(self, notification: AsaasNotification) -> WebhookResult:
        """PAYMENT_CONFIRMED / PAYMENT_RECEIVED."""
        payment = notification.require_payment()
        logger.info("asaas_payment_confirmed", payment_id=payment.id, customer_id=payment.customer)

        await self._upsert_payment(
            payment,
            status=PaymentRecordStatus.CONFIRMED,
            payment_date=payment.payment_date or datetime.utcnow().date(),
            description=payment.description,
            subscription_id=payment.subscription,
        )

        if payment.subscription:
            await self.profiles.set_subscription_active(payment.customer, True)

        return WebhookResult(success=True, message=f"Pagamento {payment.id} processado com sucesso")

    async def _handle_subscription_created(self, notification: AsaasNotification) -> WebhookResult:
        """SUBSCRIPTION_CREATED."""
        subscription = notification.require_subscription()
        logger.info("asaas_subscription_created", subscription_id=subscription.id)

        await self._upsert_subscription(subscription)
        await self.profiles.set_subscription_active(subscription.customer, True)

        return WebhookResult(success=True, message=f"Assinatura {subscription.id} registrada com sucesso")

    async def _handle_subscription_payment_created(self, notification: AsaasNotification) -> WebhookResult:
        """SUBSCRIPTION_PAYMENT_CREATED."""
        payment, subscription = self._require_subscription_payment(notification)
        logger.info("asaas_subscription_payment_created", payment_id=payment.id, subscription_id=subscription.id)

        await self._upsert_payment(
            payment,
            status=PaymentRecordStatus.PENDING,
            payment_date=datetime.utcnow().date(),
            description=f"Pagamento de assinatura: {payment.description or ''}",
            subscription_id=subscription.id,
        )

        record = await self._get_subscription(subscription.id)
        if record:
            record.next_billing_date = subscription.next_due_date
            record.updated_at = datetime.utcnow()
        else:
            logger.warning("asaas_subscription_not_found", subscription_id=subscription.id)

        return WebhookResult(
            success=True,
            message=f"Pagamento de assinatura {payment.id} registrado com sucesso",
        )

    async def _handle_subscription_payment_failed(self, notification: AsaasNotification) -> WebhookResult:
        """SUBSCRIPTION_PAYMENT_FAILED."""
        payment, subscription = self._require_subscription_payment(notification)
        logger.info("asaas_subscription_payment_failed", payment_id=payment.id, subscription_id=subscription.id)

        await self._upsert_payment(
            payment,
            status=PaymentRecordStatus.FAILED,
            payment_date=datetime.utcnow().date(),
            description=f"Falha no pagamento de assinatura: {payment.description or ''}",
            subscription_id=subscription.id,
        )

        if self.deactivate_on_payment_failure:
            await self.profiles.set_subscription_active(payment.customer, False)

        return WebhookResult(success=True, message=f"Falha de pagamento {payment.id} registrada com sucesso")

    async def _handle_subscription_ended(self, notification: AsaasNotification) -> WebhookResult:
        """SUBSCRIPTION_CANCELLED / SUBSCRIPTION_EXPIRED."""
        subscription = notification.require_subscription()
        logger.info("asaas_subscription_ended", subscription_id=subscription.id, status=subscription.status)

        await self.profiles.set_subscription_active(subscription.customer, False)

        record = await self._get_subscription(subscription.id)
        if record:
            record.status = subscription.status
            record.updated_at = datetime.utcnow()
        else:
            logger.warning("asaas_subscription_not_found", subscription_id=subscription.id)

        return WebhookResult(success=True, message=f"Assinatura {subscription.id} cancelada com sucesso")

    async def _handle_unhandled(self, notification: AsaasNotification) -> WebhookResult:
        """Every other tag: recorded, nothing else."""
        known = notification.event in AsaasEventType.__members__
        logger.info("asaas_webhook_unhandled_event", event_type=notification.event, known=known)
        return WebhookResult(
            success=True,
            message=f"Evento {notification.event} registrado sem processamento específico",
        )

    @staticmethod
    def _require_subscription_payment(notification: AsaasNotification) -> tuple[AsaasPayment, AsaasSubscription]:
        return notification.require_payment(), notification.require_subscription()

    async def _get_subscription(self, external_id: str) -> SubscriptionRecord | None:
        result = await self.db.execute(
            select(SubscriptionRecord).where(
                SubscriptionRecord.provider == self.PROVIDER,
                SubscriptionRecord.external_id == external_id,
            )
        )
        return result.scalar_one_or_none()

    async def _upsert_payment(
        self,
        payment: AsaasPayment,
        status: PaymentRecordStatus,
        payment_date: date,
        description: str | None,
        subscription_id: str | None,
    ) -> PaymentRecord:
        """
        Insert or update the record of a provider payment.

        A confirmed payment is never moved back to PENDING by a late
        SUBSCRIPTION_PAYMENT_CREATED.
        """
        result = await self.db.execute(
            select(PaymentRecord).where(
                PaymentRecord.provider == self.PROVIDER,
                PaymentRecord.external_id == payment.id,
            )
        )
        record = result.scalar_one_or_none()

        if record is None:
            record = PaymentRecord(provider=self.PROVIDER, external_id=payment.id)
            self.db.add(record)
        elif record.status == PaymentRecordStatus.CONFIRMED.value and status == PaymentRecordStatus.PENDING:
            logger.info("asaas_payment_status_kept", payment_id=payment.id, status=record.status)
            status = PaymentRecordStatus.CONFIRMED
            payment_date = record.payment_date

        record.customer_id = payment.customer
        record.amount = payment.value
        record.payment_date = payment_date
        record.due_date = payment.due_date
        record.payment_method = payment.billing_type
        record.description = description
        record.status = status.value
        record.subscription_id = subscription_id
        record.invoice_url = payment.invoice_url
        record.updated_at = datetime.utcnow()

        await self.db.flush()
        return record

    async def _upsert_subscription(self, subscription: AsaasSubscription) -> SubscriptionRecord:
        """Insert or update the record of a provider subscription."""
        record = await self._get_subscription(subscription.id)
        if record is None:
            record = SubscriptionRecord(provider=self.PROVIDER, external_id=subscription.id)
            self.db.add(record)

        record.customer_id = subscription.customer
        record.plan_value = subscription.value
        record.billing_type = subscription.billing_type
        record.cycle = subscription.cycle
        record.status = subscription.status
        record.next_billing_date = subscription.next_due_date
        record.description = subscription.description
        record.updated_at = datetime.utcnow()

        await self.db.flush()
        return record

    def _count(self, event_type: str, outcome: str) -> None:
        label = event_type if event_type in AsaasEventType.__members__ else "unknown"
        webhooks_received_total.labels(provider=self.PROVIDER, event_type=label, outcome=outcome).inc()
