"""Unit tests for the WhatsApp connection status poll."""
import asyncio
from uuid import uuid4

import pytest

from pulse.exceptions import MessagingAPIError
from pulse.schemas.whatsapp import (
    InstanceStatus,
    MessagingInstance,
    NotificationVariant,
    PollOutcome,
)
from pulse.services.status_poller import MAX_PENDING_NOTIFICATIONS, PollRegistry, StatusPollSession

CONNECTING = InstanceStatus(status="connecting", connected=False)
CONNECTED = InstanceStatus(status="connected", connected=True, profile_name="Studio Bela Vista")


class ScriptedStatus:
    """Status fetcher replaying a script; the last step repeats."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = 0
        self.called = asyncio.Event()

    async def __call__(self, token: str) -> InstanceStatus:
        self.calls += 1
        self.called.set()
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        return step


class RecordingHook:
    def __init__(self, error: Exception | None = None):
        self.instances: list[MessagingInstance] = []
        self.error = error

    async def __call__(self, instance: MessagingInstance) -> None:
        self.instances.append(instance)
        if self.error:
            raise self.error


@pytest.mark.asyncio
async def test_first_check_runs_immediately() -> None:
    fetch = ScriptedStatus(CONNECTING)
    session = StatusPollSession("tok_1", fetch, interval=60)

    session.start()
    await asyncio.wait_for(fetch.called.wait(), timeout=1)

    assert fetch.calls == 1
    assert session.outcome is PollOutcome.RUNNING
    assert session.stop() is True
    assert await session.wait() is PollOutcome.CANCELLED


@pytest.mark.asyncio
async def test_poll_ends_once_connected() -> None:
    """The hook runs once and no check follows the connected one."""
    fetch = ScriptedStatus(CONNECTING, CONNECTING, CONNECTED)
    hook = RecordingHook()
    session = StatusPollSession(
        "tok_1",
        fetch,
        interval=0.01,
        on_connected=hook,
        instance=MessagingInstance(token="tok_1", status="connecting", qrcode="data:image/png;base64,AAAA"),
    )

    session.start()
    outcome = await asyncio.wait_for(session.wait(), timeout=2)
    await asyncio.sleep(0.05)

    assert outcome is PollOutcome.CONNECTED
    assert fetch.calls == 3
    assert session.ticks == 3
    assert len(hook.instances) == 1
    assert hook.instances[0].status == "connected"
    assert hook.instances[0].profile_name == "Studio Bela Vista"
    assert session.instance.is_connected
    assert session.instance.qrcode is None

    notifications = session.drain_notifications()
    assert [n.title for n in notifications] == ["WhatsApp conectado"]
    assert "Studio Bela Vista" in notifications[0].description
    assert session.drain_notifications() == []


@pytest.mark.asyncio
async def test_stop_prevents_further_checks() -> None:
    fetch = ScriptedStatus(CONNECTING)
    session = StatusPollSession("tok_1", fetch, interval=0.01)

    session.start()
    await asyncio.wait_for(fetch.called.wait(), timeout=1)
    assert session.stop() is True
    await session.wait()
    calls = fetch.calls
    await asyncio.sleep(0.05)

    assert fetch.calls == calls
    assert session.outcome is PollOutcome.CANCELLED
    assert session.running is False


@pytest.mark.asyncio
async def test_stop_is_idempotent() -> None:
    session = StatusPollSession("tok_1", ScriptedStatus(CONNECTING), interval=0.01)

    assert session.stop() is False

    session.start()
    assert session.stop() is True
    assert session.stop() is False
    await session.wait()
    assert session.stop() is False


@pytest.mark.asyncio
async def test_stop_after_connected_is_a_no_op() -> None:
    session = StatusPollSession("tok_1", ScriptedStatus(CONNECTED), interval=0.01)

    session.start()
    await session.wait()

    assert session.stop() is False
    assert session.outcome is PollOutcome.CONNECTED


@pytest.mark.asyncio
async def test_failed_check_notifies_and_keeps_polling() -> None:
    fetch = ScriptedStatus(MessagingAPIError("instance unavailable", status_code=503), CONNECTED)
    session = StatusPollSession("tok_1", fetch, interval=0.01)

    session.start()
    outcome = await asyncio.wait_for(session.wait(), timeout=2)

    assert outcome is PollOutcome.CONNECTED
    assert fetch.calls == 2

    first, second = session.drain_notifications()
    assert first.title == "Erro ao verificar status"
    assert first.description == "instance unavailable"
    assert first.variant is NotificationVariant.DESTRUCTIVE
    assert second.title == "WhatsApp conectado"


@pytest.mark.asyncio
async def test_hook_failure_is_reported() -> None:
    """The instance still counts as connected when persisting it fails."""
    hook = RecordingHook(error=RuntimeError("redis down"))
    session = StatusPollSession("tok_1", ScriptedStatus(CONNECTED), interval=0.01, on_connected=hook)

    session.start()
    outcome = await asyncio.wait_for(session.wait(), timeout=2)

    assert outcome is PollOutcome.CONNECTED
    assert session.instance.is_connected
    titles = [n.title for n in session.drain_notifications()]
    assert titles == ["Erro ao salvar instância", "WhatsApp conectado"]


@pytest.mark.asyncio
async def test_restart_resets_ticks() -> None:
    fetch = ScriptedStatus(CONNECTING)
    session = StatusPollSession("tok_1", fetch, interval=60)

    session.start()
    await asyncio.wait_for(fetch.called.wait(), timeout=1)
    fetch.called.clear()

    session.start()
    await asyncio.wait_for(fetch.called.wait(), timeout=1)

    assert session.ticks == 1
    assert fetch.calls == 2
    assert session.running is True
    session.stop()
    await session.wait()


@pytest.mark.asyncio
async def test_registry_keeps_one_session_per_profile() -> None:
    registry = PollRegistry()
    profile_id = uuid4()
    first = StatusPollSession("tok_1", ScriptedStatus(CONNECTING), interval=60)
    second = StatusPollSession("tok_1", ScriptedStatus(CONNECTING), interval=60)

    first.start()
    registry.replace(profile_id, first)
    second.start()
    registry.replace(profile_id, second)
    await first.wait()

    assert first.outcome is PollOutcome.CANCELLED
    assert registry.get(profile_id) is second
    assert registry.cancel(profile_id) is True
    assert registry.cancel(profile_id) is False
    assert registry.cancel(uuid4()) is False


@pytest.mark.asyncio
async def test_registry_shutdown_stops_every_session() -> None:
    registry = PollRegistry()
    sessions = [StatusPollSession(f"tok_{i}", ScriptedStatus(CONNECTING), interval=60) for i in range(3)]
    for session in sessions:
        session.start()
        registry.replace(uuid4(), session)

    await registry.shutdown()

    assert all(s.outcome is PollOutcome.CANCELLED for s in sessions)
    assert all(not s.running for s in sessions)


@pytest.mark.asyncio
async def test_repeated_failures_do_not_end_the_poll() -> None:
    error = MessagingAPIError("timeout")
    fetch = ScriptedStatus(error, error, error, error, error, CONNECTING)
    session = StatusPollSession("tok_1", fetch, interval=0.001)

    session.start()
    for _ in range(200):
        if fetch.calls > 5:
            break
        await asyncio.sleep(0.005)

    assert fetch.calls > 5
    assert session.running is True
    assert session.outcome is PollOutcome.RUNNING
    assert len(session.drain_notifications()) == 5

    session.stop()
    await session.wait()


@pytest.mark.asyncio
async def test_undrained_notifications_are_bounded() -> None:
    """A poll nobody reads keeps only the most recent notifications."""
    fetch = ScriptedStatus(MessagingAPIError("instance unavailable", status_code=503))
    session = StatusPollSession("tok_1", fetch, interval=0)

    session.start()
    for _ in range(500):
        if fetch.calls > MAX_PENDING_NOTIFICATIONS * 3:
            break
        await asyncio.sleep(0)

    assert fetch.calls > MAX_PENDING_NOTIFICATIONS * 3
    assert len(session.notifications) == MAX_PENDING_NOTIFICATIONS

    session.stop()
    await session.wait()

    assert len(session.drain_notifications()) == MAX_PENDING_NOTIFICATIONS
    assert session.drain_notifications() == []
