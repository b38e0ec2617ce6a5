"""SQLAlchemy ORM models for the Pulse backend."""
# Import all models here to ensure they are registered with Alembic

from pulse.models.base import Base
from pulse.models.payment import PaymentRecord, PaymentRecordStatus
from pulse.models.profile import Profile
from pulse.models.subscription import SubscriptionRecord, SubscriptionStatus
from pulse.models.webhook_event import WebhookEvent

__all__ = [
    "Base",
    "PaymentRecord",
    "PaymentRecordStatus",
    "Profile",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "WebhookEvent",
]
