from __future__ import annotations

from whatsapp_reminder.core.config import Settings
from whatsapp_reminder.core.enums import StoreBackend
from whatsapp_reminder.db.session import create_engine
from whatsapp_reminder.integrations.mail_client import MailClient
from whatsapp_reminder.repositories.base import EntryStore
from whatsapp_reminder.repositories.csv_store import CSVEntryStore
from whatsapp_reminder.repositories.sql_store import SQLEntryStore
from whatsapp_reminder.services.email_notifier import EmailNotifier
from whatsapp_reminder.services.lifecycle import LifecycleEngine
from whatsapp_reminder.services.notifier import Notifier


def build_store(settings: Settings) -> EntryStore:
    if settings.store_backend == StoreBackend.SQL:
        return SQLEntryStore(create_engine(settings.database_url))
    return CSVEntryStore(settings.csv_store_path, settings.zone)


def build_notifier(settings: Settings) -> EmailNotifier:
    client = MailClient(
        settings.mail_service_url,
        timeout=settings.mail_timeout_sec,
        health_timeout=settings.mail_health_timeout_sec,
    )
    return EmailNotifier(
        client,
        origin_address=settings.email_origin_address,
        origin_name=settings.email_origin_name,
        subject=settings.mail_subject,
    )


def build_engine(
    settings: Settings,
    store: EntryStore | None = None,
    notifier: Notifier | None = None,
) -> LifecycleEngine:
    return LifecycleEngine(
        store=store or build_store(settings),
        notifier=notifier or build_notifier(settings),
        retention=settings.retention_time,
        zone=settings.zone,
        dispatch_timeout=settings.dispatch_timeout_sec or None,
    )


async def prepare_store(store: EntryStore) -> None:
    if isinstance(store, SQLEntryStore):
        await store.ensure_schema()
