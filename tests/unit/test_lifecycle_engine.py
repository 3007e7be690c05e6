from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from tests.conftest import BERLIN, NOW
from whatsapp_reminder.core.enums import EntryState
from whatsapp_reminder.core.exceptions import (
    DispatchTransportError,
    RunCancelledError,
    StoreReadError,
    StoreWriteError,
)
from whatsapp_reminder.repositories.base import InMemoryEntryStore
from whatsapp_reminder.services.lifecycle import (
    LifecycleEngine,
    classify_entry,
    mark_processed,
    partition_entries,
)
from whatsapp_reminder.services.notifier import Notifier

RETENTION = timedelta(hours=24)


class FakeNotifier(Notifier):
    def __init__(self, deliver=None, error: Exception | None = None) -> None:
        self.calls: list[list] = []
        self.deliver = deliver
        self.error = error

    async def dispatch(self, payloads):
        self.calls.append(list(payloads))
        if self.error is not None:
            raise self.error
        if self.deliver is None:
            return list(payloads)
        return self.deliver(payloads)

    async def probe(self) -> None:
        return None


class BlockingNotifier(Notifier):
    def __init__(self, on_start=None) -> None:
        self.on_start = on_start
        self.cancelled = False

    async def dispatch(self, payloads):
        if self.on_start is not None:
            self.on_start()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return list(payloads)

    async def probe(self) -> None:
        return None


class FailingStore(InMemoryEntryStore):
    def __init__(self, entries=None, fail_read: bool = False, fail_write: bool = False) -> None:
        super().__init__(entries)
        self.fail_read = fail_read
        self.fail_write = fail_write

    async def get_entries(self):
        if self.fail_read:
            raise OSError("sheet unavailable")
        return await super().get_entries()

    async def replace_all(self, entries):
        if self.fail_write:
            raise OSError("sheet is read-only")
        await super().replace_all(entries)


def _engine(store, notifier, retention=RETENTION, **kwargs) -> LifecycleEngine:
    return LifecycleEngine(store, notifier, retention, BERLIN, clock=lambda: NOW, **kwargs)


@pytest.mark.asyncio
async def test_due_entry_is_processed_and_kept(make_entry):
    entry = make_entry(due_in=-timedelta(hours=1))
    store = InMemoryEntryStore([entry])
    notifier = FakeNotifier()

    report = await _engine(store, notifier).process()

    stored = await store.get_entries()
    assert len(stored) == 1
    assert stored[0].processed_at == NOW
    assert stored[0].processed_at.tzinfo.key == "Europe/Berlin"
    assert stored[0].processed_at.hour == 14
    assert notifier.calls == [[entry.payload]]
    assert report.delivered == 1
    assert report.failed == 0


@pytest.mark.asyncio
async def test_future_entry_is_left_alone(make_entry):
    entry = make_entry(due_in=timedelta(hours=2))
    store = InMemoryEntryStore([entry])
    notifier = FakeNotifier()

    report = await _engine(store, notifier).process()

    assert notifier.calls == []
    assert await store.get_entries() == [entry]
    assert report.not_yet_due == 1
    assert store.writes == 1


@pytest.mark.asyncio
async def test_due_entry_processed_and_expired_entry_pruned(make_entry):
    due = make_entry(due_in=timedelta(0), message="call mum")
    old = make_entry(due_in=-timedelta(hours=40), processed_ago=timedelta(hours=30), message="call dad")
    store = InMemoryEntryStore([old, due])
    notifier = FakeNotifier()

    report = await _engine(store, notifier).process()

    stored = await store.get_entries()
    assert len(stored) == 1
    assert stored[0].payload == due.payload
    assert stored[0].processed_at is not None
    assert notifier.calls == [[due.payload]]
    assert report.pruned == 1


@pytest.mark.asyncio
async def test_transport_failure_still_prunes_sorts_and_writes(make_entry):
    later = make_entry(due_in=timedelta(hours=5), message="later")
    due = make_entry(due_in=-timedelta(minutes=5), message="due")
    expired = make_entry(due_in=-timedelta(hours=50), processed_ago=timedelta(hours=48), message="old")
    store = InMemoryEntryStore([later, expired, due])
    notifier = FakeNotifier(error=DispatchTransportError("connection refused"))

    report = await _engine(store, notifier).process()

    stored = await store.get_entries()
    assert [entry.payload.message_text for entry in stored] == ["due", "later"]
    assert all(entry.processed_at is None for entry in stored)
    assert report.transport_failed is True
    assert report.delivered == 0
    assert report.failed == 1
    assert store.writes == 1


@pytest.mark.asyncio
async def test_second_run_does_not_dispatch_again(make_entry):
    store = InMemoryEntryStore([make_entry(due_in=-timedelta(hours=1))])
    notifier = FakeNotifier()
    engine = _engine(store, notifier)

    await engine.process()
    second = await engine.process()

    assert len(notifier.calls) == 1
    assert second.eligible == 0
    assert second.already_processed == 1


@pytest.mark.asyncio
async def test_undelivered_entries_stay_eligible(make_entry):
    first = make_entry(due_in=-timedelta(hours=1), mail="a@mail.com")
    second = make_entry(due_in=-timedelta(hours=2), mail="b@mail.com")
    store = InMemoryEntryStore([first, second])
    notifier = FakeNotifier(deliver=lambda payloads: [p for p in payloads if p.mail_address == "a@mail.com"])

    report = await _engine(store, notifier).process()

    stored = {entry.payload.mail_address: entry for entry in await store.get_entries()}
    assert stored["a@mail.com"].processed_at == NOW
    assert stored["b@mail.com"].processed_at is None
    assert report.delivered == 1
    assert report.failed == 1


@pytest.mark.asyncio
async def test_output_is_sorted_by_due_time(make_entry):
    later = make_entry(due_in=timedelta(hours=2), message="later")
    earlier = make_entry(due_in=timedelta(hours=1), message="earlier")
    past = make_entry(due_in=-timedelta(hours=3), processed_ago=timedelta(hours=1), message="past")
    store = InMemoryEntryStore([later, past, earlier])

    await _engine(store, FakeNotifier()).process()

    stored = await store.get_entries()
    assert [entry.payload.message_text for entry in stored] == ["past", "earlier", "later"]
    assert all(a.due_at <= b.due_at for a, b in zip(stored, stored[1:]))


@pytest.mark.asyncio
async def test_processed_at_is_never_set_before_due(make_entry):
    entries = [
        make_entry(due_in=-timedelta(minutes=minutes), message=f"m{minutes}") for minutes in (0, 10, 600)
    ] + [make_entry(due_in=timedelta(minutes=1), message="future")]
    store = InMemoryEntryStore(entries)

    await _engine(store, FakeNotifier()).process()

    for entry in await store.get_entries():
        if entry.processed_at is not None:
            assert entry.processed_at >= entry.due_at
        else:
            assert entry.payload.message_text == "future"


@pytest.mark.asyncio
async def test_duplicate_payloads_collapsed_by_notifier_mark_only_first(make_entry):
    # Known ambiguity: entries are matched by payload value only, so a notifier
    # that deduplicates confirms one delivery for two stored rows.
    first = make_entry(due_in=-timedelta(hours=2))
    second = make_entry(due_in=-timedelta(hours=1))
    store = InMemoryEntryStore([first, second])
    notifier = FakeNotifier(deliver=lambda payloads: [payloads[0]])

    await _engine(store, notifier).process()

    stored = await store.get_entries()
    assert stored[0].processed_at == NOW
    assert stored[1].processed_at is None


@pytest.mark.asyncio
async def test_duplicate_payloads_each_confirmed_are_both_marked(make_entry):
    store = InMemoryEntryStore([make_entry(due_in=-timedelta(hours=2)), make_entry(due_in=-timedelta(hours=1))])

    await _engine(store, FakeNotifier()).process()

    assert all(entry.processed_at == NOW for entry in await store.get_entries())


@pytest.mark.asyncio
async def test_duplicate_payload_not_yet_due_is_not_marked(make_entry):
    future_twin = make_entry(due_in=timedelta(hours=3))
    due_twin = make_entry(due_in=-timedelta(hours=1))
    store = InMemoryEntryStore([future_twin, due_twin])

    await _engine(store, FakeNotifier()).process()

    stored = await store.get_entries()
    assert stored[0].due_at == due_twin.due_at
    assert stored[0].processed_at == NOW
    assert stored[1].processed_at is None


@pytest.mark.asyncio
async def test_read_failure_aborts_without_dispatch_or_write(make_entry):
    store = FailingStore([make_entry(due_in=-timedelta(hours=1))], fail_read=True)
    notifier = FakeNotifier()

    with pytest.raises(StoreReadError):
        await _engine(store, notifier).process()

    assert notifier.calls == []
    assert store.writes == 0


@pytest.mark.asyncio
async def test_write_failure_is_reported(make_entry):
    store = FailingStore([make_entry(due_in=-timedelta(hours=1))], fail_write=True)

    with pytest.raises(StoreWriteError):
        await _engine(store, FakeNotifier()).process()

    assert (await store.get_entries())[0].processed_at is None


@pytest.mark.asyncio
async def test_cancel_before_start_touches_nothing(make_entry):
    store = InMemoryEntryStore([make_entry(due_in=-timedelta(hours=1))])
    notifier = FakeNotifier()
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(RunCancelledError):
        await _engine(store, notifier).process(cancel_event)

    assert notifier.calls == []
    assert store.writes == 0


@pytest.mark.asyncio
async def test_cancel_during_dispatch_marks_nothing(make_entry):
    store = InMemoryEntryStore([make_entry(due_in=-timedelta(hours=1))])
    cancel_event = asyncio.Event()
    notifier = BlockingNotifier(on_start=cancel_event.set)

    with pytest.raises(RunCancelledError):
        await _engine(store, notifier).process(cancel_event)

    assert notifier.cancelled is True
    assert store.writes == 0
    assert (await store.get_entries())[0].processed_at is None


@pytest.mark.asyncio
async def test_dispatch_deadline_counts_as_no_deliveries(make_entry):
    store = InMemoryEntryStore([make_entry(due_in=-timedelta(hours=1))])
    notifier = BlockingNotifier()

    report = await _engine(store, notifier, dispatch_timeout=0.05).process()

    assert notifier.cancelled is True
    assert report.transport_failed is True
    assert store.writes == 1
    assert (await store.get_entries())[0].processed_at is None


@pytest.mark.asyncio
async def test_store_snapshot_is_not_mutated_in_place(make_entry):
    entry = make_entry(due_in=-timedelta(hours=1))
    snapshot = [entry]

    class SnapshotStore(InMemoryEntryStore):
        async def get_entries(self):
            return snapshot

    await _engine(SnapshotStore(), FakeNotifier()).process()

    assert entry.processed_at is None


def test_classify_entry_states(make_entry):
    assert classify_entry(make_entry(due_in=timedelta(hours=1)), NOW, RETENTION) == EntryState.PENDING
    assert classify_entry(make_entry(due_in=timedelta(0)), NOW, RETENTION) == EntryState.DUE
    assert (
        classify_entry(make_entry(due_in=-timedelta(hours=2), processed_ago=timedelta(hours=1)), NOW, RETENTION)
        == EntryState.PROCESSED
    )
    assert (
        classify_entry(make_entry(due_in=-timedelta(hours=30), processed_ago=timedelta(hours=25)), NOW, RETENTION)
        == EntryState.EXPIRED
    )


def test_partition_is_disjoint(make_entry):
    entries = [
        make_entry(due_in=timedelta(hours=1)),
        make_entry(due_in=-timedelta(hours=1)),
        make_entry(due_in=-timedelta(hours=1), processed_ago=timedelta(minutes=5)),
    ]

    partition = partition_entries(entries, NOW)

    assert partition.not_yet_due == [entries[0]]
    assert partition.eligible == [entries[1]]
    assert partition.processed == [entries[2]]


def test_mark_processed_reports_unknown_payloads(make_entry):
    entry = make_entry(due_in=-timedelta(hours=1))
    stranger = make_entry(due_in=-timedelta(hours=1), mail="other@mail.com").payload

    unmatched = mark_processed([entry], [stranger], NOW, NOW)

    assert unmatched == [stranger]
    assert entry.processed_at is None


@pytest.mark.asyncio
async def test_cancel_after_read_without_due_entries_writes_nothing(make_entry):
    cancel_event = asyncio.Event()

    class CancellingStore(InMemoryEntryStore):
        async def get_entries(self):
            cancel_event.set()
            return await super().get_entries()

    store = CancellingStore([make_entry(due_in=timedelta(hours=1))])
    notifier = FakeNotifier()

    with pytest.raises(RunCancelledError):
        await _engine(store, notifier).process(cancel_event)

    assert notifier.calls == []
    assert store.writes == 0
