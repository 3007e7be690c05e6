from __future__ import annotations

import asyncio
import logging

from whatsapp_reminder.core.exceptions import DispatchTransportError
from whatsapp_reminder.integrations.mail_client import MailClient
from whatsapp_reminder.schemas.mail import MailRequest
from whatsapp_reminder.schemas.reminder import ReminderPayload
from whatsapp_reminder.services.email_templates import render_digest
from whatsapp_reminder.services.notifier import Notifier, group_by_recipient

logger = logging.getLogger(__name__)


class EmailNotifier(Notifier):
    """Mails each recipient one digest with a WhatsApp link per reminder."""

    def __init__(
        self,
        mail_client: MailClient,
        origin_address: str,
        origin_name: str,
        subject: str = "WhatsApp Reminder",
    ) -> None:
        self.mail_client = mail_client
        self.origin_address = origin_address
        self.origin_name = origin_name
        self.subject = subject

    def build_request(self, payloads: list[ReminderPayload]) -> MailRequest:
        return MailRequest(
            to=payloads[0].mail_address,
            subject=self.subject,
            html_content=render_digest(payloads),
            origin_address=self.origin_address or None,
            origin_name=self.origin_name or None,
        )

    async def _send_group(self, recipient: str, payloads: list[ReminderPayload]) -> list[ReminderPayload]:
        await self.mail_client.send_mail(self.build_request(payloads))
        return payloads

    async def dispatch(self, payloads: list[ReminderPayload]) -> list[ReminderPayload]:
        groups = group_by_recipient(payloads)
        if not groups:
            return []

        results = await asyncio.gather(
            *(self._send_group(recipient, items) for recipient, items in groups.items()),
            return_exceptions=True,
        )

        delivered: list[ReminderPayload] = []
        transport_errors: list[DispatchTransportError] = []
        for (recipient, items), result in zip(groups.items(), results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                if isinstance(result, DispatchTransportError):
                    transport_errors.append(result)
                logger.warning(
                    "Could not send reminder mail",
                    extra={"recipient": recipient, "reminders": len(items), "error": str(result)},
                )
                continue
            delivered.extend(result)

        if not delivered and transport_errors:
            raise DispatchTransportError(
                f"All {len(groups)} reminder mails failed",
                details={"errors": [error.message for error in transport_errors]},
            )
        return delivered

    async def probe(self) -> None:
        await self.mail_client.health_check()
