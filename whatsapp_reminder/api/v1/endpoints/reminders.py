from __future__ import annotations

import asyncio
from dataclasses import asdict

from fastapi import APIRouter, Depends

from whatsapp_reminder.api.deps import get_lifecycle_engine, get_run_lock
from whatsapp_reminder.core.exceptions import ConflictError
from whatsapp_reminder.core.responses import success_response
from whatsapp_reminder.schemas.reminder import ReminderEntryRead
from whatsapp_reminder.services.lifecycle import LifecycleEngine, classify_entry, sort_by_due

router = APIRouter(tags=["Reminders"])


@router.get("/reminders")
async def list_reminders(engine: LifecycleEngine = Depends(get_lifecycle_engine)):
    entries = await engine.store.get_entries()
    now = engine.clock()
    data = [
        ReminderEntryRead.from_entry(entry, classify_entry(entry, now, engine.retention)).model_dump(mode="json")
        for entry in sort_by_due(entries)
    ]
    return success_response(data=data, count=len(data))


@router.post("/runs")
async def trigger_run(
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
    run_lock: asyncio.Lock = Depends(get_run_lock),
):
    if run_lock.locked():
        raise ConflictError("A reminder run is already in progress")
    async with run_lock:
        report = await engine.process()
    return success_response(data=asdict(report))
