"""Asaas webhook endpoint."""
import hmac
import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse

from pulse.api.deps import get_asaas_webhook_service
from pulse.config import settings
from pulse.middleware.logging import get_request_id
from pulse.schemas.webhook_event import AsaasWebhookResponse
from pulse.services.asaas_webhook_service import AsaasWebhookService
from pulse.utils.masking import mask_secret

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks/asaas")


def _reject(status_code: int, message: str, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "request_id": request_id},
    )


@router.post("", response_model=AsaasWebhookResponse)
async def handle_asaas_webhook(
    request: Request,
    service: AsaasWebhookService = Depends(get_asaas_webhook_service),
    asaas_access_token: Optional[str] = Header(default=None),
):
    """
    Receive an Asaas notification.

    The processing outcome is always answered with HTTP 200 so Asaas does
    not pause the webhook queue; ``success`` tells whether the event was
    applied. Only transport-level problems (bad token, empty or non-JSON
    body) get 4xx answers.
    """
    request_id = get_request_id(request)

    logger.info("asaas_webhook_request", auth=mask_secret(asaas_access_token))

    expected = settings.asaas_webhook_token
    if expected and not hmac.compare_digest(asaas_access_token or "", expected):
        logger.warning("asaas_webhook_unauthorized")
        return _reject(status.HTTP_401_UNAUTHORIZED, "Token de acesso inválido", request_id)

    body = await request.body()
    try:
        event_data = json.loads(body) if body else None
    except ValueError:
        event_data = None

    if not event_data or not isinstance(event_data, dict):
        logger.warning("asaas_webhook_empty_body")
        return _reject(status.HTTP_400_BAD_REQUEST, "Corpo da requisição vazio ou inválido", request_id)

    payment = event_data.get("payment")
    payment_id = payment.get("id") if isinstance(payment, dict) else None
    logger.info("asaas_webhook_accepted", event_type=event_data.get("event"), payment_id=payment_id or "N/A")

    result = await service.handle(event_data)

    logger.info("asaas_webhook_processed", success=result.success, result_message=result.message)

    return AsaasWebhookResponse(success=result.success, message=result.message, request_id=request_id)
