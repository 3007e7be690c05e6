from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from whatsapp_reminder.schemas.reminder import ReminderEntry


def is_expired(entry: ReminderEntry, now: datetime, retention: timedelta) -> bool:
    """A processed entry expires once it is strictly older than the window."""
    if entry.processed_at is None:
        return False
    return now - entry.processed_at > retention


def filter_by_retention(entries: Iterable[ReminderEntry], now: datetime, retention: timedelta) -> list[ReminderEntry]:
    # Must run after marking so freshly processed entries are judged by their new timestamp.
    return [entry for entry in entries if not is_expired(entry, now, retention)]
