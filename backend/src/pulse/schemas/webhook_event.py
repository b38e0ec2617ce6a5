"""Pydantic schemas for webhook processing results."""
from pydantic import BaseModel, Field


class WebhookResult(BaseModel):
    """Outcome of processing one inbound notification."""

    success: bool
    message: str
    duplicate: bool = Field(default=False, description="True when the event had already been processed")


class AsaasWebhookResponse(BaseModel):
    """HTTP body returned to Asaas."""

    success: bool
    message: str
    request_id: str
