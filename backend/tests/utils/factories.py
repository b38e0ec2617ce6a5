"""Test data factories using Faker for generating realistic Asaas payloads."""
from datetime import date, timedelta
from typing import Any
from uuid import uuid4

from faker import Faker

fake = Faker("pt_BR")


def _customer_id() -> str:
    return f"cus_{fake.bothify('############')}"


class AsaasPaymentFactory:
    """Factory for the ``payment`` sub-object of a notification."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Create payment test data.

        Args:
            overrides: Optional field overrides

        Returns:
            dict: Payment data as sent by Asaas
        """
        value = fake.random_int(min=50, max=500)
        today = date.today()
        data = {
            "object": "payment",
            "id": f"pay_{fake.bothify('############')}",
            "customer": _customer_id(),
            "value": value,
            "netValue": value - 2,
            "billingType": fake.random_element(["PIX", "BOLETO", "CREDIT_CARD"]),
            "status": "CONFIRMED",
            "dueDate": (today + timedelta(days=3)).isoformat(),
            "paymentDate": today.isoformat(),
            "description": fake.sentence(nb_words=4),
            "invoiceUrl": fake.url(),
            "subscription": None,
        }
        if overrides:
            data.update(overrides)
        return data


class AsaasSubscriptionFactory:
    """Factory for the ``subscription`` sub-object of a notification."""

    @staticmethod
    def create(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Create subscription test data.

        Args:
            overrides: Optional field overrides

        Returns:
            dict: Subscription data as sent by Asaas
        """
        data = {
            "object": "subscription",
            "id": f"sub_{fake.bothify('############')}",
            "customer": _customer_id(),
            "billingType": fake.random_element(["PIX", "BOLETO", "CREDIT_CARD"]),
            "value": fake.random_element([49, 89, 149]),
            "nextDueDate": (date.today() + timedelta(days=30)).isoformat(),
            "cycle": "MONTHLY",
            "description": "Plano Pulse",
            "status": "ACTIVE",
        }
        if overrides:
            data.update(overrides)
        return data


class AsaasEventFactory:
    """Factory for whole webhook notifications."""

    @staticmethod
    def create(
        event: str,
        payment: dict[str, Any] | None = None,
        subscription: dict[str, Any] | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Create a notification envelope.

        Args:
            event: Asaas event tag
            payment: Optional payment sub-object
            subscription: Optional subscription sub-object
            overrides: Optional field overrides

        Returns:
            dict: Notification body
        """
        data: dict[str, Any] = {
            "id": f"evt_{uuid4().hex}",
            "event": event,
            "dateCreated": fake.date_time_this_month().strftime("%Y-%m-%d %H:%M:%S"),
        }
        if payment is not None:
            data["payment"] = payment
        if subscription is not None:
            data["subscription"] = subscription
        if overrides:
            data.update(overrides)
        return data

    @classmethod
    def subscription_payment(cls, event: str, customer_id: str) -> dict[str, Any]:
        """Notification carrying a subscription and one of its payments, both owned by ``customer_id``."""
        subscription = AsaasSubscriptionFactory.create({"customer": customer_id})
        payment = AsaasPaymentFactory.create(
            {"customer": customer_id, "subscription": subscription["id"], "status": "PENDING"}
        )
        return cls.create(event, payment=payment, subscription=subscription)
