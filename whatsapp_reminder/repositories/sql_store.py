from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from whatsapp_reminder.core.exceptions import StoreReadError, StoreWriteError
from whatsapp_reminder.db.base import Base
from whatsapp_reminder.db.session import create_sessionmaker
from whatsapp_reminder.models import ReminderEntryRow
from whatsapp_reminder.repositories.base import EntryStore
from whatsapp_reminder.schemas.reminder import ReminderEntry, ReminderPayload


def row_to_entry(row: ReminderEntryRow) -> ReminderEntry:
    return ReminderEntry(
        payload=ReminderPayload(
            message_text=row.message_text,
            phone_number=row.phone_number,
            mail_address=row.mail_address,
        ),
        created_at=row.created_at,
        due_at=row.due_at,
        processed_at=row.processed_at,
    )


def entry_to_row(entry: ReminderEntry) -> ReminderEntryRow:
    return ReminderEntryRow(
        message_text=entry.payload.message_text,
        phone_number=entry.payload.phone_number,
        mail_address=entry.payload.mail_address,
        created_at=entry.created_at,
        due_at=entry.due_at,
        processed_at=entry.processed_at,
    )


class SQLEntryStore(EntryStore):
    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session_maker: async_sessionmaker[AsyncSession] = create_sessionmaker(engine)

    async def ensure_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get_entries(self) -> list[ReminderEntry]:
        stmt = select(ReminderEntryRow).order_by(ReminderEntryRow.due_at.asc(), ReminderEntryRow.id.asc())
        try:
            async with self.session_maker() as session:
                result = await session.scalars(stmt)
                return [row_to_entry(row) for row in result.all()]
        except SQLAlchemyError as exc:
            raise StoreReadError(f"Could not read reminder entries: {exc}") from exc

    async def replace_all(self, entries: Sequence[ReminderEntry]) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await session.execute(delete(ReminderEntryRow))
                    session.add_all([entry_to_row(entry) for entry in entries])
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"Could not write reminder entries: {exc}") from exc
