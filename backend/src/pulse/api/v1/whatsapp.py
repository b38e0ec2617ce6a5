"""WhatsApp instance API endpoints."""
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status

from pulse.api.deps import get_whatsapp_service
from pulse.exceptions import InstanceNotFoundError
from pulse.schemas.whatsapp import (
    ConnectionStart,
    ConnectionStarted,
    ConnectionState,
    InstanceCreate,
    InstanceStatus,
    MessagingInstance,
)
from pulse.services.whatsapp_connection import WhatsAppConnectionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/whatsapp")


@router.post("/instances", response_model=MessagingInstance, status_code=status.HTTP_201_CREATED)
async def create_instance(
    body: InstanceCreate,
    service: WhatsAppConnectionService = Depends(get_whatsapp_service),
) -> MessagingInstance:
    """Create a WhatsApp instance for a profile."""
    return await service.create_instance(name=body.name, profile_id=body.profile_id)


@router.get("/instances/status", response_model=InstanceStatus)
async def get_instance_status(
    token: str = Header(..., description="Instance token"),
    service: WhatsAppConnectionService = Depends(get_whatsapp_service),
) -> InstanceStatus:
    """Live status of an instance."""
    return await service.instance_status(token)


@router.post("/connections", response_model=ConnectionStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_connection(
    body: ConnectionStart,
    service: WhatsAppConnectionService = Depends(get_whatsapp_service),
) -> ConnectionStarted:
    """
    Request a QR code and start polling the instance status.

    Poll progress is read from ``GET /whatsapp/connections/{profile_id}``.
    """
    try:
        return await service.begin_connection(body.profile_id, body.token)
    except InstanceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/connections/{profile_id}", response_model=ConnectionState)
async def get_connection(
    profile_id: UUID,
    service: WhatsAppConnectionService = Depends(get_whatsapp_service),
) -> ConnectionState:
    """Poll state, instance data and pending notifications."""
    state = service.get_state(profile_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nenhuma conexão em andamento")
    return state


@router.delete("/connections/{profile_id}")
async def cancel_connection(
    profile_id: UUID,
    service: WhatsAppConnectionService = Depends(get_whatsapp_service),
) -> dict[str, bool]:
    """Stop polling (QR code dialog closed). Safe to call repeatedly."""
    return {"cancelled": service.cancel(profile_id)}


@router.delete("/instances")
async def disconnect_instance(
    token: str = Header(..., description="Instance token"),
    service: WhatsAppConnectionService = Depends(get_whatsapp_service),
) -> dict:
    """Log the instance out of WhatsApp."""
    return await service.disconnect(token)
