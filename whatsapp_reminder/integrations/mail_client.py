from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from whatsapp_reminder.core.exceptions import DispatchTransportError, MailServiceError
from whatsapp_reminder.schemas.mail import MailErrorBody, MailRequest, MailResponse

logger = logging.getLogger(__name__)

SEND_PATH = "/v1/sendmail"


class MailClient:
    """Client for the HTTP mail service (``POST /v1/sendmail``, ``GET /``)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        health_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or 30.0
        self.health_timeout = health_timeout or self.timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def send_mail(self, request: MailRequest) -> MailResponse:
        if not request.to:
            raise MailServiceError("recipient email address is required")
        if not request.subject:
            raise MailServiceError("email subject is required")
        if not request.html_content:
            raise MailServiceError("email content is required")

        try:
            async with self._client(self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}{SEND_PATH}",
                    headers={"Content-Type": "application/json"},
                    json=request.to_wire(),
                )
        except httpx.TransportError as exc:
            raise DispatchTransportError(f"failed to send request: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_from(response)

        try:
            return MailResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise MailServiceError(f"failed to parse response: {exc}", http_status=response.status_code) from exc

    async def health_check(self) -> None:
        try:
            async with self._client(self.health_timeout) as client:
                response = await client.get(f"{self.base_url}/")
        except httpx.TransportError as exc:
            raise DispatchTransportError(f"root health check failed: {exc}") from exc

        if response.status_code != 200:
            raise MailServiceError(
                f"root health check failed: {response.text.strip()[:500]}",
                http_status=response.status_code,
            )

    @staticmethod
    def _error_from(response: httpx.Response) -> MailServiceError:
        try:
            body = MailErrorBody.model_validate(response.json())
            message = body.message or response.text
        except (ValueError, ValidationError):
            message = response.text
        return MailServiceError(message.strip()[:500], http_status=response.status_code)
