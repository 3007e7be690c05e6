from __future__ import annotations

import abc
from collections.abc import Iterable

from whatsapp_reminder.schemas.reminder import ReminderPayload


class Notifier(abc.ABC):
    @abc.abstractmethod
    async def dispatch(self, payloads: list[ReminderPayload]) -> list[ReminderPayload]:
        """Attempt delivery and return the payloads that were delivered.

        Partial failures are reported by omission. Only a failure of the whole
        call raises, as ``DispatchTransportError``.
        """

    @abc.abstractmethod
    async def probe(self) -> None:
        """Raise if the delivery backend is not ready."""


def group_by_recipient(payloads: Iterable[ReminderPayload]) -> dict[str, list[ReminderPayload]]:
    groups: dict[str, list[ReminderPayload]] = {}
    for payload in payloads:
        groups.setdefault(payload.mail_address, []).append(payload)
    return groups
