from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator

from whatsapp_reminder.core.enums import EntryState


class ReminderPayload(BaseModel):
    """User-facing reminder content; two payloads are the same reminder iff all fields match."""

    model_config = ConfigDict(frozen=True)

    message_text: str = ""
    phone_number: str = ""
    mail_address: str = ""


class ReminderEntry(BaseModel):
    payload: ReminderPayload
    created_at: datetime
    due_at: datetime
    processed_at: datetime | None = None

    @field_validator("created_at", "due_at", "processed_at")
    @classmethod
    def require_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("timestamps must be timezone-aware")
        return value

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None


class ReminderEntryRead(BaseModel):
    message_text: str
    phone_number: str
    mail_address: str
    created_at: datetime
    due_at: datetime
    processed_at: datetime | None
    state: EntryState

    @classmethod
    def from_entry(cls, entry: ReminderEntry, state: EntryState) -> "ReminderEntryRead":
        return cls(
            message_text=entry.payload.message_text,
            phone_number=entry.payload.phone_number,
            mail_address=entry.payload.mail_address,
            created_at=entry.created_at,
            due_at=entry.due_at,
            processed_at=entry.processed_at,
            state=state,
        )
