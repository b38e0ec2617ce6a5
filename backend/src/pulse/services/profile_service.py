"""Service for profile lookups and subscription/instance flags."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pulse.exceptions import ProfileNotFoundError
from pulse.models.profile import Profile

logger = structlog.get_logger(__name__)


class ProfileService:
    """Service for profile management. Never commits; callers own the transaction."""

    def __init__(self, db: AsyncSession):
        """Initialize profile service with database session."""
        self.db = db

    async def resolve_by_customer_id(self, customer_id: str) -> Profile:
        """
        Find the profile linked to a billing provider customer.

        Looks up ``external_customer_id`` first. Profiles created before the
        provider link existed are found by primary key instead, and get their
        ``external_customer_id`` backfilled for future lookups.

        Args:
            customer_id: Provider customer id

        Returns:
            Matching profile

        Raises:
            ProfileNotFoundError: If neither lookup matches
        """
        result = await self.db.execute(
            select(Profile).where(Profile.external_customer_id == customer_id)
        )
        profile = result.scalar_one_or_none()
        if profile:
            return profile

        try:
            profile_id = UUID(customer_id)
        except ValueError:
            raise ProfileNotFoundError(customer_id)

        profile = await self.db.get(Profile, profile_id)
        if not profile:
            raise ProfileNotFoundError(customer_id)

        profile.external_customer_id = customer_id
        logger.info(
            "profile_customer_id_backfilled",
            profile_id=str(profile.id),
            customer_id=customer_id,
        )
        return profile

    async def set_subscription_active(self, customer_id: str, active: bool) -> Profile:
        """
        Flip the subscription flag of the profile linked to ``customer_id``.

        Args:
            customer_id: Provider customer id
            active: New flag value

        Returns:
            Updated profile
        """
        profile = await self.resolve_by_customer_id(customer_id)
        profile.subscription_active = active
        profile.updated_at = datetime.utcnow()
        await self.db.flush()

        logger.info(
            "profile_subscription_flag_updated",
            profile_id=str(profile.id),
            customer_id=customer_id,
            subscription_active=active,
        )
        return profile

    async def set_whatsapp_instance(self, profile_id: UUID, token: str, status: str) -> Profile | None:
        """Store the WhatsApp instance token and status on a profile."""
        profile = await self.db.get(Profile, profile_id)
        if not profile:
            logger.warning("profile_not_found_for_instance", profile_id=str(profile_id))
            return None

        profile.whatsapp_instance_token = token
        profile.whatsapp_instance_status = status
        await self.db.flush()
        return profile
