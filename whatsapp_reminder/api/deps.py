from __future__ import annotations

import asyncio
from functools import lru_cache

from whatsapp_reminder.core.config import get_settings
from whatsapp_reminder.services.factory import build_engine
from whatsapp_reminder.services.lifecycle import LifecycleEngine


@lru_cache(maxsize=1)
def get_lifecycle_engine() -> LifecycleEngine:
    return build_engine(get_settings())


@lru_cache(maxsize=1)
def get_run_lock() -> asyncio.Lock:
    return asyncio.Lock()
