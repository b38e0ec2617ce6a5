"""FastAPI dependencies for services."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pulse.database import get_db
from pulse.services.asaas_webhook_service import AsaasWebhookService
from pulse.services.whatsapp_connection import WhatsAppConnectionService


def get_asaas_webhook_service(db: AsyncSession = Depends(get_db)) -> AsaasWebhookService:
    """Dependency injection for AsaasWebhookService."""
    return AsaasWebhookService(db)


def get_whatsapp_service(request: Request) -> WhatsAppConnectionService:
    """The application-wide WhatsApp connection service created at startup."""
    return request.app.state.whatsapp_service
