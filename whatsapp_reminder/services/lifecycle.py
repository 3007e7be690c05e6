from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from whatsapp_reminder.core.enums import EntryState
from whatsapp_reminder.core.exceptions import DispatchTransportError, RunCancelledError, StoreReadError, StoreWriteError
from whatsapp_reminder.repositories.base import EntryStore
from whatsapp_reminder.schemas.reminder import ReminderEntry, ReminderPayload
from whatsapp_reminder.services.notifier import Notifier
from whatsapp_reminder.services.retention import filter_by_retention, is_expired

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class RunPartition:
    processed: list[ReminderEntry] = field(default_factory=list)
    not_yet_due: list[ReminderEntry] = field(default_factory=list)
    eligible: list[ReminderEntry] = field(default_factory=list)


@dataclass(slots=True)
class RunReport:
    total: int = 0
    already_processed: int = 0
    not_yet_due: int = 0
    eligible: int = 0
    delivered: int = 0
    failed: int = 0
    unmatched: int = 0
    pruned: int = 0
    written: int = 0
    transport_failed: bool = False


def classify_entry(entry: ReminderEntry, now: datetime, retention: timedelta) -> EntryState:
    if entry.processed_at is not None:
        return EntryState.EXPIRED if is_expired(entry, now, retention) else EntryState.PROCESSED
    if entry.due_at > now:
        return EntryState.PENDING
    return EntryState.DUE


def is_eligible(entry: ReminderEntry, now: datetime) -> bool:
    return entry.processed_at is None and entry.due_at <= now


def partition_entries(entries: Iterable[ReminderEntry], now: datetime) -> RunPartition:
    partition = RunPartition()
    for entry in entries:
        if entry.processed_at is not None:
            partition.processed.append(entry)
        elif entry.due_at > now:
            partition.not_yet_due.append(entry)
        else:
            partition.eligible.append(entry)
    return partition


def mark_processed(
    entries: Sequence[ReminderEntry],
    delivered: Iterable[ReminderPayload],
    processed_at: datetime,
    now: datetime,
) -> list[ReminderPayload]:
    """Stamp the first unprocessed, due entry matching each delivered payload.

    Matching is by payload value. When several stored entries share one
    payload, each delivered copy marks one of them, in stored order; any
    copies the notifier collapsed stay unprocessed for the next run.
    Returns the delivered payloads that matched nothing.
    """
    unmatched: list[ReminderPayload] = []
    for payload in delivered:
        for entry in entries:
            if entry.payload == payload and is_eligible(entry, now):
                entry.processed_at = processed_at
                break
        else:
            unmatched.append(payload)
    return unmatched


def sort_by_due(entries: Iterable[ReminderEntry]) -> list[ReminderEntry]:
    return sorted(entries, key=lambda entry: entry.due_at)


class LifecycleEngine:
    """Single-pass reconciliation of the entry store.

    read -> classify -> dispatch eligible -> mark delivered -> retention ->
    sort -> replace. The store is written once, at the end, as a whole.
    """

    def __init__(
        self,
        store: EntryStore,
        notifier: Notifier,
        retention: timedelta,
        zone: ZoneInfo,
        clock: Clock = utc_now,
        dispatch_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.retention = retention
        self.zone = zone
        self.clock = clock
        self.dispatch_timeout = dispatch_timeout

    async def process(self, cancel_event: asyncio.Event | None = None) -> RunReport:
        cancel_event = cancel_event or asyncio.Event()
        if cancel_event.is_set():
            raise RunCancelledError("Run cancelled before start")

        try:
            snapshot = await self.store.get_entries()
        except StoreReadError:
            raise
        except Exception as exc:
            raise StoreReadError(f"Could not read reminder entries: {exc}") from exc

        # The run owns this copy until it is written back.
        entries = [entry.model_copy(deep=True) for entry in snapshot]
        now = self.clock()
        partition = partition_entries(entries, now)
        report = RunReport(
            total=len(entries),
            already_processed=len(partition.processed),
            not_yet_due=len(partition.not_yet_due),
            eligible=len(partition.eligible),
        )
        logger.info(
            "Entries classified",
            extra={
                "total": report.total,
                "eligible": report.eligible,
                "already_processed": report.already_processed,
                "not_yet_due": report.not_yet_due,
            },
        )

        if partition.eligible:
            if cancel_event.is_set():
                raise RunCancelledError("Run cancelled before dispatch")
            delivered = await self._dispatch([entry.payload for entry in partition.eligible], cancel_event, report)
            unmatched = mark_processed(entries, delivered, now.astimezone(self.zone), now)
            report.unmatched = len(unmatched)
            report.delivered = len(delivered) - len(unmatched)
            report.failed = report.eligible - report.delivered
            if unmatched:
                logger.warning("Delivered payloads matched no eligible entry", extra={"count": len(unmatched)})
            logger.info("Dispatch complete", extra={"delivered": report.delivered, "failed": report.failed})
        else:
            logger.info("No reminders due")
            if cancel_event.is_set():
                raise RunCancelledError("Run cancelled before write")

        kept = filter_by_retention(entries, now, self.retention)
        report.pruned = len(entries) - len(kept)
        ordered = sort_by_due(kept)

        try:
            await self.store.replace_all(ordered)
        except StoreWriteError:
            raise
        except Exception as exc:
            raise StoreWriteError(f"Could not write reminder entries: {exc}") from exc

        report.written = len(ordered)
        logger.info("Run finished", extra={"written": report.written, "pruned": report.pruned})
        return report

    async def _dispatch(
        self,
        payloads: list[ReminderPayload],
        cancel_event: asyncio.Event,
        report: RunReport,
    ) -> list[ReminderPayload]:
        dispatch_task = asyncio.ensure_future(self.notifier.dispatch(payloads))
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {dispatch_task, cancel_task},
                timeout=self.dispatch_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancel_task.cancel()

        if dispatch_task not in done:
            dispatch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await dispatch_task
            if cancel_task in done:
                raise RunCancelledError("Run cancelled during dispatch")
            logger.warning("Dispatch deadline elapsed", extra={"timeout_sec": self.dispatch_timeout})
            report.transport_failed = True
            return []

        try:
            return list(dispatch_task.result())
        except DispatchTransportError as exc:
            logger.warning("Dispatch transport failed", extra={"error": str(exc)})
            report.transport_failed = True
            return []
