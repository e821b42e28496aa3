from src.config import settings
from src.stores.base import GarageStore
from src.stores.memory import InMemoryGarageStore
from src.stores.sql import SqlGarageStore


def build_store(database_url: str = settings.store.database_url) -> GarageStore:
    """In-memory store when no database URL is configured, SQL otherwise."""
    if not database_url:
        return InMemoryGarageStore(
            settings.store.booking_id_prefix, settings.store.task_id_prefix
        )
    return SqlGarageStore(
        database_url, settings.store.booking_id_prefix, settings.store.task_id_prefix
    )


__all__ = ["GarageStore", "InMemoryGarageStore", "SqlGarageStore", "build_store"]
