"""HTTP client for the uazapi WhatsApp API."""
from typing import Any

import httpx
import structlog

from pulse.config import settings
from pulse.exceptions import MessagingAPIError
from pulse.schemas.whatsapp import ConnectResult, InstanceStatus, MessagingInstance
from pulse.utils.masking import mask_mapping, mask_secret

logger = structlog.get_logger(__name__)


class UazapiClient:
    """
    Client for uazapi instance management.

    Instance calls authenticate with the per-instance ``token`` header;
    instance creation uses the ``admintoken`` header.
    """

    def __init__(
        self,
        base_url: str | None = None,
        admin_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.uazapi_base_url).rstrip("/")
        self.admin_token = admin_token if admin_token is not None else settings.uazapi_admin_token
        self.timeout = timeout or settings.uazapi_request_timeout_seconds
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        request_headers = {"Accept": "application/json", "Content-Type": "application/json", **headers}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=request_headers, json=json)
        except httpx.TimeoutException:
            logger.warning("uazapi_timeout", method=method, path=path)
            raise MessagingAPIError(f"Tempo esgotado ao chamar {path}")
        except httpx.HTTPError as e:
            logger.error("uazapi_http_error", method=method, path=path, error=str(e))
            raise MessagingAPIError(f"Erro de comunicação com a API do WhatsApp: {e}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not isinstance(data, dict):
            data = {"data": data}

        if response.status_code >= 400:
            message = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
            logger.warning(
                "uazapi_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                response=mask_mapping(data),
            )
            raise MessagingAPIError(str(message), status_code=response.status_code)

        return data

    async def create_instance(self, name: str, user_id: str, admin_field: str = "") -> MessagingInstance:
        """
        Create a new instance owned by ``user_id``.

        Args:
            name: Instance name
            user_id: Owner profile id, stored in ``adminField01``
            admin_field: Free-form ``adminField02``

        Returns:
            Created instance with its token
        """
        data = await self._request(
            "POST",
            "/instance/init",
            headers={"admintoken": self.admin_token},
            json={
                "name": name,
                "systemName": settings.uazapi_system_name,
                "adminField01": user_id,
                "adminField02": admin_field,
            },
        )

        token = data.get("token")
        if not token:
            logger.error("uazapi_instance_token_missing", response=mask_mapping(data))
            raise MessagingAPIError("Token da instância não encontrado na resposta")

        instance = data.get("instance") or {}
        logger.info("uazapi_instance_created", name=name, token=mask_secret(token))
        return MessagingInstance(
            token=token,
            name=instance.get("name", name),
            status=instance.get("status") or "disconnected",
        )

    async def connect_instance(self, token: str) -> ConnectResult:
        """Request a QR code (no phone number) for the instance."""
        data = await self._request("POST", "/instance/connect", headers={"token": token}, json={})
        return ConnectResult.from_response(data)

    async def get_instance_status(self, token: str) -> InstanceStatus:
        """Fetch the current connection status of the instance."""
        data = await self._request("GET", "/instance/status", headers={"token": token})
        return InstanceStatus.from_response(data)

    async def disconnect_instance(self, token: str) -> dict[str, Any]:
        """Log the instance out of WhatsApp."""
        return await self._request("DELETE", "/instance/logout", headers={"token": token})
