from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from whatsapp_reminder.schemas.reminder import ReminderEntry, ReminderPayload


NOW = datetime(2024, 7, 22, 12, 0, 0, tzinfo=timezone.utc)
BERLIN = ZoneInfo("Europe/Berlin")


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def berlin() -> ZoneInfo:
    return BERLIN


@pytest.fixture()
def make_entry():
    def _make_entry(
        due_in: timedelta,
        processed_ago: timedelta | None = None,
        message: str = "hallo",
        phone: str = "0123456789",
        mail: str = "test@mail.com",
    ) -> ReminderEntry:
        return ReminderEntry(
            payload=ReminderPayload(message_text=message, phone_number=phone, mail_address=mail),
            created_at=NOW - timedelta(hours=72),
            due_at=NOW + due_in,
            processed_at=NOW - processed_ago if processed_ago is not None else None,
        )

    return _make_entry
