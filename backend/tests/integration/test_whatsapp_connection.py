"""Integration tests for the WhatsApp connection service."""
import asyncio
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from pulse.exceptions import InstanceNotFoundError, MessagingAPIError
from pulse.models.profile import Profile
from pulse.schemas.whatsapp import PollOutcome
from pulse.services.whatsapp_connection import WhatsAppConnectionService
from pulse.cache import RedisCache
from utils.fakes import FakeUazapi


@pytest.mark.asyncio
async def test_create_instance_stores_token(
    whatsapp_service: WhatsAppConnectionService,
    fake_cache: RedisCache,
    db_session: AsyncSession,
    test_profile: Profile,
) -> None:
    instance = await whatsapp_service.create_instance(name="salao-bela", profile_id=test_profile.id)

    assert instance.token == "tok_live_0001"
    assert await fake_cache.get(f"test_instance_token:{test_profile.id}") == "tok_live_0001"
    assert await whatsapp_service.restore_token(test_profile.id) == "tok_live_0001"

    await db_session.refresh(test_profile)
    assert test_profile.whatsapp_instance_token == "tok_live_0001"
    assert test_profile.whatsapp_instance_status == "disconnected"


@pytest.mark.asyncio
async def test_create_instance_for_unknown_profile(
    whatsapp_service: WhatsAppConnectionService, fake_cache: RedisCache
) -> None:
    """The token is still cached when no profile row exists yet."""
    profile_id = uuid4()

    instance = await whatsapp_service.create_instance(name="salao-bela", profile_id=profile_id)

    assert await whatsapp_service.restore_token(profile_id) == instance.token


@pytest.mark.asyncio
async def test_begin_connection_without_token(whatsapp_service: WhatsAppConnectionService) -> None:
    with pytest.raises(InstanceNotFoundError):
        await whatsapp_service.begin_connection(uuid4())


@pytest.mark.asyncio
async def test_connection_persists_instance_once_connected(
    whatsapp_service: WhatsAppConnectionService,
    fake_uazapi: FakeUazapi,
    fake_cache: RedisCache,
    db_session: AsyncSession,
    test_profile: Profile,
) -> None:
    fake_uazapi.statuses = ["connecting", "connecting", "connected"]
    await fake_cache.set(f"test_instance_token:{test_profile.id}", "tok_cached")

    started = await whatsapp_service.begin_connection(test_profile.id)

    assert started.token == "tok_cached"
    assert started.qrcode.startswith("data:image/png;base64,")
    assert started.paircode == "ABCD-1234"
    assert started.poll_interval_seconds == 0.01

    session = whatsapp_service.registry.get(test_profile.id)
    outcome = await asyncio.wait_for(session.wait(), timeout=2)
    assert outcome is PollOutcome.CONNECTED
    assert fake_uazapi.status_checks == 3

    state = whatsapp_service.get_state(test_profile.id)
    assert state.outcome is PollOutcome.CONNECTED
    assert state.instance.status == "connected"
    assert state.instance.profile_name == "Studio Bela Vista"
    assert [n.title for n in state.notifications] == ["WhatsApp conectado"]
    assert whatsapp_service.get_state(test_profile.id).notifications == []

    await db_session.refresh(test_profile)
    assert test_profile.whatsapp_instance_token == "tok_cached"
    assert test_profile.whatsapp_instance_status == "connected"


@pytest.mark.asyncio
async def test_new_connection_replaces_running_poll(
    whatsapp_service: WhatsAppConnectionService, fake_uazapi: FakeUazapi
) -> None:
    profile_id = uuid4()

    await whatsapp_service.begin_connection(profile_id, token="tok_1")
    first = whatsapp_service.registry.get(profile_id)
    await whatsapp_service.begin_connection(profile_id, token="tok_1")
    second = whatsapp_service.registry.get(profile_id)
    await first.wait()

    assert first is not second
    assert first.outcome is PollOutcome.CANCELLED
    assert second.running is True


@pytest.mark.asyncio
async def test_cancel_connection(whatsapp_service: WhatsAppConnectionService) -> None:
    profile_id = uuid4()
    await whatsapp_service.begin_connection(profile_id, token="tok_1")

    assert whatsapp_service.cancel(profile_id) is True
    assert whatsapp_service.cancel(profile_id) is False
    assert whatsapp_service.get_state(profile_id).outcome is PollOutcome.CANCELLED
    assert whatsapp_service.get_state(uuid4()) is None


@pytest.mark.asyncio
async def test_connect_failure_starts_no_poll(
    whatsapp_service: WhatsAppConnectionService, fake_uazapi: FakeUazapi, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def refuse(token: str):
        raise MessagingAPIError("Instance not found", status_code=404)

    monkeypatch.setattr(whatsapp_service.client, "connect_instance", refuse)
    profile_id = uuid4()

    with pytest.raises(MessagingAPIError):
        await whatsapp_service.begin_connection(profile_id, token="tok_gone")

    assert whatsapp_service.registry.get(profile_id) is None


@pytest.mark.asyncio
async def test_disconnect(whatsapp_service: WhatsAppConnectionService, fake_uazapi: FakeUazapi) -> None:
    data = await whatsapp_service.disconnect("tok_1")

    assert data == {"response": "Disconnected"}
    assert fake_uazapi.requests[-1].url.path == "/instance/logout"
