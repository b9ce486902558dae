"""storage/ -- Credential Store package for KSMS.

open_storage() is the only constructor the application calls. It tries the
durable backend first and falls back to the in-process one when the database
cannot be reached, so the service always starts. Data written to the fallback
store is lost on restart; the warning in the log is the signal.

Layer rule: storage/ may import auth.models (pure dataclasses) and core/.
It does NOT import from api/ or clusters/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from core.config import Settings
from storage.base import Storage
from storage.database import DatabaseStorage
from storage.memory import MemoryStorage

logger = logging.getLogger("ksms.storage")

__all__ = ["DatabaseStorage", "MemoryStorage", "Storage", "open_storage"]


def open_storage(settings: Settings) -> Storage:
    """Return a DatabaseStorage, or a MemoryStorage if the database is unavailable."""
    try:
        store = DatabaseStorage(settings.resolved_database_url, connect_timeout=settings.db_connect_timeout)
    except SQLAlchemyError as exc:
        logger.warning("Failed to connect to database: %s. Falling back to memory storage.", exc)
        return MemoryStorage()
    logger.info("Connected to database storage (%s)", store.engine.url.render_as_string(hide_password=True))
    return store
