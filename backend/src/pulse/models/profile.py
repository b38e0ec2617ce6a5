"""Profile model for salon owner accounts."""
from sqlalchemy import Boolean, Column, String

from pulse.models.base import Base


class Profile(Base):
    """
    Salon owner profile.

    Linked to the billing provider through ``external_customer_id`` and to a
    WhatsApp instance through ``whatsapp_instance_token``.
    """

    __tablename__ = "profiles"

    external_customer_id = Column(String, nullable=True, unique=True, index=True)
    subscription_active = Column(Boolean, nullable=False, default=False)
    whatsapp_instance_token = Column(String, nullable=True)
    whatsapp_instance_status = Column(String(32), nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<Profile(id={self.id}, external_customer_id={self.external_customer_id}, active={self.subscription_active})>"
