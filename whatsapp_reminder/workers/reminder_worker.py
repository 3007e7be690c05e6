from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
import time
from collections.abc import Sequence

from whatsapp_reminder.core.config import Settings, get_settings
from whatsapp_reminder.core.durations import format_duration
from whatsapp_reminder.core.exceptions import AppError, RunCancelledError
from whatsapp_reminder.core.logging import configure_logging
from whatsapp_reminder.services.factory import build_engine, build_notifier, build_store, prepare_store
from whatsapp_reminder.services.lifecycle import LifecycleEngine, RunReport
from whatsapp_reminder.services.notifier import Notifier

logger = logging.getLogger(__name__)


async def validate_and_probe(settings: Settings, notifier: Notifier) -> None:
    settings.validate_for_run()
    logger.info("Checking mail service health", extra={"url": settings.mail_service_url})
    await notifier.probe()
    logger.info("Mail service is healthy")


async def run_engine(engine: LifecycleEngine, cancel_event: asyncio.Event) -> RunReport:
    start = time.monotonic()
    try:
        report = await engine.process(cancel_event)
    except RunCancelledError:
        logger.info("Reminder run cancelled", extra={"duration_sec": round(time.monotonic() - start, 3)})
        raise
    except AppError as exc:
        logger.error(
            "Reminder run failed",
            extra={"code": exc.code, "error": exc.message, "duration_sec": round(time.monotonic() - start, 3)},
        )
        raise
    logger.info("Reminder run completed", extra={"duration_sec": round(time.monotonic() - start, 3)})
    return report


async def run_once(settings: Settings, cancel_event: asyncio.Event | None = None) -> RunReport:
    cancel_event = cancel_event or asyncio.Event()
    store = build_store(settings)
    notifier = build_notifier(settings)
    await prepare_store(store)
    await validate_and_probe(settings, notifier)
    return await run_engine(build_engine(settings, store=store, notifier=notifier), cancel_event)


def install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, cancel_event.set)


async def worker_loop(settings: Settings | None = None, once: bool = False) -> int:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    cancel_event = asyncio.Event()
    install_signal_handlers(cancel_event)

    if once:
        try:
            await run_once(settings, cancel_event)
        except RunCancelledError:
            return 0
        except AppError as exc:
            logger.error("Reminder execution failed", extra={"code": exc.code, "error": exc.message})
            return 1
        return 0

    store = build_store(settings)
    notifier = build_notifier(settings)
    try:
        await prepare_store(store)
        await validate_and_probe(settings, notifier)
    except AppError as exc:
        logger.error("Validation or health check failed", extra={"code": exc.code, "error": exc.message})
        return 1

    engine = build_engine(settings, store=store, notifier=notifier)
    interval = settings.schedule_interval.total_seconds()
    logger.info(
        "Reminder worker started",
        extra={
            "interval": format_duration(settings.schedule_interval),
            "retention": format_duration(settings.retention_time),
            "time_location": settings.time_location,
        },
    )

    run_now = settings.run_on_startup
    while not cancel_event.is_set():
        if run_now:
            try:
                await run_engine(engine, cancel_event)
            except RunCancelledError:
                break
            except AppError:
                # the next tick reruns from the store's last good state
                pass
        run_now = True
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(cancel_event.wait(), timeout=interval)

    logger.info("Reminder worker stopped")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="whatsapp-reminder", description="Mail due WhatsApp reminders.")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    args = parser.parse_args(argv)
    return asyncio.run(worker_loop(once=args.once))


if __name__ == "__main__":
    sys.exit(main())
