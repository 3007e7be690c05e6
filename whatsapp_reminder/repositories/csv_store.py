from __future__ import annotations

import asyncio
import csv
import io
import logging
import os
import tempfile
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from whatsapp_reminder.core.exceptions import EntryParseError, StoreReadError, StoreWriteError
from whatsapp_reminder.repositories.base import EntryStore
from whatsapp_reminder.schemas.reminder import ReminderEntry, ReminderPayload

logger = logging.getLogger(__name__)

HEADER = ["Timestamp", "Message Text", "Send Date", "Send Time", "Phone Number", "Mail Address", "Process Time"]

TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
DATE_FORMAT = "%d/%m/%Y"
TIME_FORMAT = "%H:%M:%S"

(
    COL_TIMESTAMP,
    COL_MESSAGE,
    COL_SEND_DATE,
    COL_SEND_TIME,
    COL_PHONE,
    COL_MAIL,
    COL_PROCESS_TIME,
) = range(len(HEADER))


def _cell(row: list[str], index: int) -> str:
    return row[index] if index < len(row) else ""


def parse_timestamp(value: str, zone: ZoneInfo) -> datetime:
    try:
        return datetime.strptime(value.strip(), TIMESTAMP_FORMAT).replace(tzinfo=zone)
    except ValueError as exc:
        raise EntryParseError(f"could not parse time {value!r}") from exc


def parse_row(row: list[str], zone: ZoneInfo) -> ReminderEntry:
    created_at = parse_timestamp(_cell(row, COL_TIMESTAMP), zone)
    processed_raw = _cell(row, COL_PROCESS_TIME)
    processed_at = parse_timestamp(processed_raw, zone) if processed_raw.strip() else None
    due_at = parse_timestamp(f"{_cell(row, COL_SEND_DATE).strip()} {_cell(row, COL_SEND_TIME).strip()}", zone)
    return ReminderEntry(
        payload=ReminderPayload(
            message_text=_cell(row, COL_MESSAGE),
            phone_number=_cell(row, COL_PHONE),
            mail_address=_cell(row, COL_MAIL),
        ),
        created_at=created_at,
        due_at=due_at,
        processed_at=processed_at,
    )


def format_row(entry: ReminderEntry, zone: ZoneInfo) -> list[str]:
    created_at = entry.created_at.astimezone(zone)
    due_at = entry.due_at.astimezone(zone)
    processed = entry.processed_at.astimezone(zone).strftime(TIMESTAMP_FORMAT) if entry.processed_at else ""
    return [
        created_at.strftime(TIMESTAMP_FORMAT),
        entry.payload.message_text,
        due_at.strftime(DATE_FORMAT),
        due_at.strftime(TIME_FORMAT),
        entry.payload.phone_number,
        entry.payload.mail_address,
        processed,
    ]


def decode_entries(text: str, zone: ZoneInfo) -> list[ReminderEntry]:
    rows = list(csv.reader(io.StringIO(text)))
    entries: list[ReminderEntry] = []
    # first row is the header
    for line_number, row in enumerate(rows[1:], start=2):
        if not any(cell.strip() for cell in row):
            continue
        try:
            entries.append(parse_row(row, zone))
        except EntryParseError as exc:
            logger.warning("Skipping malformed row", extra={"line": line_number, "error": exc.message, "row": row})
    return entries


def encode_entries(entries: Sequence[ReminderEntry], zone: ZoneInfo) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADER)
    writer.writerows(format_row(entry, zone) for entry in entries)
    return buffer.getvalue()


class CSVEntryStore(EntryStore):
    """Entries kept in the reminder sheet's CSV export format."""

    def __init__(self, path: str | Path, zone: ZoneInfo) -> None:
        self.path = Path(path)
        self.zone = zone
        self._lock = asyncio.Lock()

    async def get_entries(self) -> list[ReminderEntry]:
        async with self._lock:
            try:
                text = await asyncio.to_thread(self._read_text)
            except OSError as exc:
                raise StoreReadError(f"Could not read {self.path}: {exc}") from exc
            return decode_entries(text, self.zone)

    async def replace_all(self, entries: Sequence[ReminderEntry]) -> None:
        text = encode_entries(entries, self.zone)
        async with self._lock:
            try:
                await asyncio.to_thread(self._write_text, text)
            except OSError as exc:
                raise StoreWriteError(f"Could not write {self.path}: {exc}") from exc

    def _read_text(self) -> str:
        if not self.path.exists():
            return ""
        return self.path.read_text(encoding="utf-8")

    def _write_text(self, text: str) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
