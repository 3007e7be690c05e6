from __future__ import annotations

import abc
from collections.abc import Sequence

from whatsapp_reminder.schemas.reminder import ReminderEntry


class EntryStore(abc.ABC):
    """Durable collection of reminder entries.

    ``replace_all`` must be all-or-nothing: a failed write leaves the previous
    contents in place.
    """

    @abc.abstractmethod
    async def get_entries(self) -> list[ReminderEntry]:
        raise NotImplementedError

    @abc.abstractmethod
    async def replace_all(self, entries: Sequence[ReminderEntry]) -> None:
        raise NotImplementedError


class InMemoryEntryStore(EntryStore):
    def __init__(self, entries: Sequence[ReminderEntry] | None = None) -> None:
        self._entries = [entry.model_copy(deep=True) for entry in entries or []]
        self.writes = 0

    async def get_entries(self) -> list[ReminderEntry]:
        return [entry.model_copy(deep=True) for entry in self._entries]

    async def replace_all(self, entries: Sequence[ReminderEntry]) -> None:
        self._entries = [entry.model_copy(deep=True) for entry in entries]
        self.writes += 1
