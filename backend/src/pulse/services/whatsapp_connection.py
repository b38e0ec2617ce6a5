"""Service tying uazapi instances to profiles and connection polls."""
from functools import partial
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse.cache import RedisCache, cache_key
from pulse.config import settings
from pulse.exceptions import InstanceNotFoundError
from pulse.integrations.uazapi_client import UazapiClient
from pulse.schemas.whatsapp import (
    ConnectionStarted,
    ConnectionState,
    InstanceStatus,
    MessagingInstance,
)
from pulse.services.profile_service import ProfileService
from pulse.services.status_poller import PollRegistry, StatusPollSession
from pulse.utils.masking import mask_secret

logger = structlog.get_logger(__name__)


class InstanceTokenCache:
    """Per-profile instance token kept in Redis for session continuity."""

    def __init__(self, cache: RedisCache, prefix: str | None = None):
        self.cache = cache
        self.prefix = prefix or settings.whatsapp_token_cache_prefix

    def _key(self, profile_id: UUID) -> str:
        return cache_key(self.prefix, str(profile_id))

    async def save(self, profile_id: UUID, token: str) -> bool:
        return await self.cache.set(self._key(profile_id), token)

    async def load(self, profile_id: UUID) -> str | None:
        token = await self.cache.get(self._key(profile_id))
        return token if isinstance(token, str) and token else None

    async def clear(self, profile_id: UUID) -> bool:
        return await self.cache.delete(self._key(profile_id))


class WhatsAppConnectionService:
    """
    Creates instances and drives them from QR code to connected.

    Polls are owned by the registry; this service only starts, inspects
    and cancels them.
    """

    def __init__(
        self,
        client: UazapiClient,
        token_cache: InstanceTokenCache,
        session_factory: async_sessionmaker[AsyncSession],
        registry: PollRegistry | None = None,
        poll_interval: float | None = None,
    ):
        self.client = client
        self.token_cache = token_cache
        self.session_factory = session_factory
        self.registry = registry or PollRegistry()
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.whatsapp_status_poll_interval_seconds
        )

    async def create_instance(self, name: str, profile_id: UUID) -> MessagingInstance:
        """
        Create an instance for a profile and remember its token.

        Args:
            name: Instance name
            profile_id: Owner profile

        Returns:
            Created instance
        """
        instance = await self.client.create_instance(name=name, user_id=str(profile_id))
        await self.token_cache.save(profile_id, instance.token)
        await self._save_to_profile(profile_id, instance)
        return instance

    async def restore_token(self, profile_id: UUID) -> str | None:
        """Return the cached instance token of a profile, if any."""
        return await self.token_cache.load(profile_id)

    async def begin_connection(self, profile_id: UUID, token: str | None = None) -> ConnectionStarted:
        """
        Ask for a QR code and start polling until the instance connects.

        Args:
            profile_id: Owner profile
            token: Instance token; the cached token is used when omitted

        Returns:
            QR/pair code to display

        Raises:
            InstanceNotFoundError: If no token is given or cached
            MessagingAPIError: If the connect call fails
        """
        token = token or await self.restore_token(profile_id)
        if not token:
            raise InstanceNotFoundError(f"Nenhuma instância do WhatsApp encontrada para o perfil {profile_id}")

        result = await self.client.connect_instance(token)

        session = StatusPollSession(
            token=token,
            fetch_status=self.client.get_instance_status,
            interval=self.poll_interval,
            on_connected=partial(self._on_connected, profile_id),
            instance=MessagingInstance(
                token=token,
                status="connecting",
                qrcode=result.qrcode,
                paircode=result.paircode,
            ),
        )
        self.registry.replace(profile_id, session)
        session.start()

        logger.info(
            "whatsapp_connection_started",
            profile_id=str(profile_id),
            token=mask_secret(token),
            has_qrcode=result.qrcode is not None,
        )

        return ConnectionStarted(
            profile_id=profile_id,
            token=token,
            qrcode=result.qrcode,
            paircode=result.paircode,
            poll_interval_seconds=self.poll_interval,
        )

    def get_state(self, profile_id: UUID) -> ConnectionState | None:
        """Snapshot of the profile's poll; pending notifications are drained."""
        session = self.registry.get(profile_id)
        if session is None:
            return None

        return ConnectionState(
            profile_id=profile_id,
            outcome=session.outcome,
            ticks=session.ticks,
            instance=session.instance,
            notifications=session.drain_notifications(),
        )

    def cancel(self, profile_id: UUID) -> bool:
        """Stop the profile's poll (QR dialog closed)."""
        cancelled = self.registry.cancel(profile_id)
        logger.info("whatsapp_connection_cancelled", profile_id=str(profile_id), cancelled=cancelled)
        return cancelled

    async def instance_status(self, token: str) -> InstanceStatus:
        """Live status of an instance."""
        return await self.client.get_instance_status(token)

    async def disconnect(self, token: str) -> dict[str, Any]:
        """Log an instance out of WhatsApp."""
        data = await self.client.disconnect_instance(token)
        logger.info("whatsapp_instance_disconnected", token=mask_secret(token))
        return data

    async def shutdown(self) -> None:
        await self.registry.shutdown()

    async def _on_connected(self, profile_id: UUID, instance: MessagingInstance) -> None:
        await self.token_cache.save(profile_id, instance.token)
        await self._save_to_profile(profile_id, instance)
        logger.info("whatsapp_instance_connected", profile_id=str(profile_id), profile_name=instance.profile_name)

    async def _save_to_profile(self, profile_id: UUID, instance: MessagingInstance) -> None:
        async with self.session_factory() as db:
            await ProfileService(db).set_whatsapp_instance(profile_id, instance.token, instance.status)
            await db.commit()
