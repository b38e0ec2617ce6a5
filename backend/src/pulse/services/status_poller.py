"""Fixed-interval polling of a WhatsApp instance until it reports connected."""
import asyncio
from collections import deque
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from pulse.config import settings
from pulse.metrics import whatsapp_polls_finished_total, whatsapp_status_checks_total
from pulse.schemas.whatsapp import (
    InstanceState,
    InstanceStatus,
    MessagingInstance,
    Notification,
    NotificationVariant,
    PollOutcome,
)
from pulse.utils.masking import mask_secret

logger = structlog.get_logger(__name__)

# Oldest notifications are dropped once this many are waiting to be drained
MAX_PENDING_NOTIFICATIONS = 20

StatusFetcher = Callable[[str], Awaitable[InstanceStatus]]
ConnectedHook = Callable[[MessagingInstance], Awaitable[None]]


class StatusPollSession:
    """
    Polls the status of one instance while its QR code is on screen.

    The first check runs as soon as the session starts, later checks run
    ``interval`` seconds after the previous one finished. There is no
    attempt limit and no backoff: a failed check is reported as a
    notification and the next one runs on the same interval. The poll ends
    only when the instance reports ``connected`` or ``stop()`` is called.
    """

    def __init__(
        self,
        token: str,
        fetch_status: StatusFetcher,
        interval: float | None = None,
        on_connected: Optional[ConnectedHook] = None,
        instance: MessagingInstance | None = None,
    ):
        self.token = token
        self.fetch_status = fetch_status
        self.interval = interval if interval is not None else settings.whatsapp_status_poll_interval_seconds
        self.on_connected = on_connected
        self.instance = instance or MessagingInstance(token=token, status=InstanceState.CONNECTING.value)
        self.notifications: deque[Notification] = deque(maxlen=MAX_PENDING_NOTIFICATIONS)
        self.ticks = 0
        self.outcome = PollOutcome.IDLE
        self._task: asyncio.Task | None = None
        self._log = logger.bind(token=mask_secret(token))

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling. Restarts from scratch if already running."""
        if self.running:
            self._task.cancel()
            self._log.info("whatsapp_status_poll_restarted")

        self.ticks = 0
        self.outcome = PollOutcome.RUNNING
        self._task = asyncio.create_task(self._run())
        self._log.info("whatsapp_status_poll_started", interval=self.interval)

    def stop(self) -> bool:
        """
        Cancel the poll.

        Returns:
            True if a running poll was cancelled, False if nothing was running
        """
        # A poll that already saw "connected" may still be persisting the instance
        if not self.running or self.outcome is not PollOutcome.RUNNING:
            return False

        self._task.cancel()
        self._finish(PollOutcome.CANCELLED)
        return True

    async def wait(self) -> PollOutcome:
        """Wait until the poll has ended and return how it ended."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self.outcome

    def drain_notifications(self) -> list[Notification]:
        """Return pending notifications, oldest first, and clear them."""
        pending = list(self.notifications)
        self.notifications.clear()
        return pending

    async def _run(self) -> None:
        while True:
            if await self._tick():
                return
            await asyncio.sleep(self.interval)

    async def _tick(self) -> bool:
        """Run one status check. Returns True when the poll is over."""
        self.ticks += 1

        try:
            status = await self.fetch_status(self.token)
        except Exception as e:
            self._log.warning("whatsapp_status_check_failed", tick=self.ticks, error=str(e))
            whatsapp_status_checks_total.labels(outcome="error").inc()
            self._notify(
                "Erro ao verificar status",
                str(e) or "Erro desconhecido ao verificar status",
                NotificationVariant.DESTRUCTIVE,
            )
            return False

        if not status.is_connected:
            whatsapp_status_checks_total.labels(outcome="waiting").inc()
            return False

        whatsapp_status_checks_total.labels(outcome="connected").inc()
        self._finish(PollOutcome.CONNECTED)

        connected = self.instance.model_copy(
            update={
                "status": InstanceState.CONNECTED.value,
                "profile_name": status.profile_name or self.instance.profile_name,
                "qrcode": None,
                "paircode": None,
            }
        )

        if self.on_connected is not None:
            try:
                await self.on_connected(connected)
            except Exception as e:
                self._log.error("whatsapp_instance_persist_failed", error=str(e), exc_info=True)
                self._notify(
                    "Erro ao salvar instância",
                    "A conexão foi estabelecida, mas não foi possível salvar a instância",
                    NotificationVariant.DESTRUCTIVE,
                )

        self.instance = connected
        self._notify(
            "WhatsApp conectado",
            f"Conexão estabelecida com sucesso para {connected.profile_name or 'sua conta do WhatsApp'}",
        )
        return True

    def _finish(self, outcome: PollOutcome) -> None:
        self.outcome = outcome
        whatsapp_polls_finished_total.labels(reason=outcome.value).inc()
        self._log.info("whatsapp_status_poll_stopped", reason=outcome.value, ticks=self.ticks)

    def _notify(
        self,
        title: str,
        description: str,
        variant: NotificationVariant = NotificationVariant.DEFAULT,
    ) -> None:
        self.notifications.append(Notification(title=title, description=description, variant=variant))


class PollRegistry:
    """At most one poll session per profile."""

    def __init__(self) -> None:
        self._sessions: dict[UUID, StatusPollSession] = {}

    def get(self, profile_id: UUID) -> StatusPollSession | None:
        return self._sessions.get(profile_id)

    def replace(self, profile_id: UUID, session: StatusPollSession) -> None:
        """Register ``session`` for the profile, stopping the poll it replaces."""
        previous = self._sessions.get(profile_id)
        if previous is not None and previous is not session:
            previous.stop()
        self._sessions[profile_id] = session

    def cancel(self, profile_id: UUID) -> bool:
        """Stop the profile's poll. Idempotent."""
        session = self._sessions.get(profile_id)
        if session is None:
            return False
        return session.stop()

    async def shutdown(self) -> None:
        """Stop every poll and wait for them to end."""
        sessions = list(self._sessions.values())
        for session in sessions:
            session.stop()
        for session in sessions:
            await session.wait()
        self._sessions.clear()
        logger.info("whatsapp_status_polls_shutdown", count=len(sessions))
