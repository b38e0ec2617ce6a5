"""Pydantic schemas for WhatsApp instances and connection polling."""
import enum
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class InstanceState(str, enum.Enum):
    """Connection state reported by the BSP."""

    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


class MessagingInstance(BaseModel):
    """A WhatsApp instance; the token is its identity."""

    token: str
    name: str | None = None
    status: str = InstanceState.DISCONNECTED.value
    qrcode: str | None = None
    paircode: str | None = None
    profile_name: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.status == InstanceState.CONNECTED.value


class InstanceStatus(BaseModel):
    """Body of ``GET /instance/status``."""

    status: str | None = None
    connected: bool = False
    profile_name: str | None = None
    name: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.status == InstanceState.CONNECTED.value

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "InstanceStatus":
        instance = data.get("instance") or {}
        return cls(
            status=instance.get("status"),
            connected=bool(data.get("connected")),
            profile_name=instance.get("profileName"),
            name=instance.get("name"),
        )


class ConnectResult(BaseModel):
    """Body of ``POST /instance/connect``."""

    qrcode: str | None = None
    paircode: str | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "ConnectResult":
        instance = data.get("instance") or {}
        return cls(qrcode=instance.get("qrcode"), paircode=instance.get("paircode"))


class NotificationVariant(str, enum.Enum):
    """Toast style."""

    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


class Notification(BaseModel):
    """Transient user notification produced by a poll."""

    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PollOutcome(str, enum.Enum):
    """Lifecycle of a connection poll."""

    IDLE = "idle"
    RUNNING = "running"
    CONNECTED = "connected"
    CANCELLED = "cancelled"


class InstanceCreate(BaseModel):
    """Schema for creating an instance."""

    name: str = Field(..., min_length=1, max_length=100)
    profile_id: UUID


class ConnectionStart(BaseModel):
    """Schema for starting a connection poll."""

    profile_id: UUID
    token: str | None = Field(default=None, description="Instance token; falls back to the cached token")


class ConnectionStarted(BaseModel):
    """QR/pair code handed to the UI while the poll runs."""

    profile_id: UUID
    token: str
    qrcode: str | None = None
    paircode: str | None = None
    poll_interval_seconds: float


class ConnectionState(BaseModel):
    """Snapshot of a connection poll."""

    profile_id: UUID
    outcome: PollOutcome
    ticks: int
    instance: MessagingInstance | None = None
    notifications: list[Notification] = Field(default_factory=list)
