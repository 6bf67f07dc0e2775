"""SQLite repository adapters.

This package contains repository adapters that persist the local Raindrop
cache and sync bookkeeping using SQLite/Peewee.
"""

from raindropbar.infrastructure.persistence.sqlite.repositories.library_repository import (
    SqliteLibraryRepositoryAdapter,
)
from raindropbar.infrastructure.persistence.sqlite.repositories.sync_state_repository import (
    SqliteSyncStateRepositoryAdapter,
)

__all__ = ["SqliteLibraryRepositoryAdapter", "SqliteSyncStateRepositoryAdapter"]
