from donkee.config import Settings
from donkee.storage.db import PostgresStore
from donkee.storage.errors import DuplicatePostError, StorageError
from donkee.storage.memory_storage import InMemoryStore


def create_store(settings: Settings):
    """Build the configured store. The caller opens and closes it."""
    if settings.use_postgres:
        return PostgresStore.from_settings(settings)
    return InMemoryStore()


__all__ = ["create_store", "PostgresStore", "InMemoryStore", "DuplicatePostError", "StorageError"]
