"""Database session management.

Owns the SQLite connection and runs blocking Peewee work in worker threads
so the event loop never stalls on disk I/O. Writes are serialized with an
asyncio lock; each unit of work either commits as a whole or rolls back.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from raindropbar.db.models import ALL_MODELS, database_proxy

DB_OPERATION_TIMEOUT = 30.0
DB_MAX_RETRIES = 3

IN_MEMORY_PATH = ":memory:"


@dataclass
class DatabaseSessionManager:
    """Peewee-backed database session manager.

    Attributes:
        path: Path to the SQLite database file, or ":memory:" for in-memory
        operation_timeout: Default timeout for database operations in seconds
        max_retries: Maximum retries when SQLite reports the database as locked
    """

    path: str
    operation_timeout: float = field(default=DB_OPERATION_TIMEOUT)
    max_retries: int = field(default=DB_MAX_RETRIES)
    _logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _database: SqliteExtDatabase = field(init=False)
    _write_lock: asyncio.Lock = field(init=False)

    def __post_init__(self) -> None:
        self._in_memory = self.path == IN_MEMORY_PATH
        if not self._in_memory:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        # An in-memory database lives and dies with its connection, so worker
        # threads must share one connection instead of opening their own.
        self._database = SqliteExtDatabase(
            self.path,
            pragmas={"journal_mode": "wal", "synchronous": "normal"},
            check_same_thread=False,
            thread_safe=not self._in_memory,
        )
        database_proxy.initialize(self._database)
        if self._in_memory:
            self._database.connect(reuse_if_open=True)

        self._write_lock = asyncio.Lock()

    @property
    def database(self) -> SqliteExtDatabase:
        return self._database

    def connection_context(self) -> Any:
        if self._in_memory:
            return contextlib.nullcontext()
        return self._database.connection_context()

    def migrate(self) -> None:
        """Create tables if they do not exist yet."""
        with self.connection_context():
            self._database.create_tables(ALL_MODELS, safe=True)
        self._logger.info("db_migrated", extra={"path": self._mask_path(self.path)})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()

    async def execute(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_operation",
        read_only: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Run ``operation(*args, **kwargs)`` in a worker thread.

        Reads on a file database skip the write lock; SQLite WAL mode lets them
        run alongside the single writer.
        """

        def _op_wrapper() -> Any:
            with self.connection_context():
                return operation(*args, **kwargs)

        return await self._run(
            _op_wrapper,
            timeout=timeout,
            operation_name=operation_name,
            locked=not (read_only and not self._in_memory),
        )

    async def transaction(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_transaction",
        **kwargs: Any,
    ) -> Any:
        """Run ``operation`` atomically: commit when it returns, roll back when it raises."""

        def _tx_wrapper() -> Any:
            with self.connection_context(), self._database.atomic():
                return operation(*args, **kwargs)

        return await self._run(
            _tx_wrapper, timeout=timeout, operation_name=operation_name, locked=True
        )

    async def _run(
        self,
        wrapper: Any,
        *,
        timeout: float | None,
        operation_name: str,
        locked: bool,
    ) -> Any:
        if timeout is None:
            timeout = self.operation_timeout

        retries = 0
        while True:
            try:

                async def _run_once() -> Any:
                    if not locked:
                        return await asyncio.to_thread(wrapper)
                    async with self._write_lock:
                        return await asyncio.to_thread(wrapper)

                return await asyncio.wait_for(_run_once(), timeout=timeout)

            except TimeoutError:
                self._logger.exception(
                    "db_operation_timeout",
                    extra={"operation": operation_name, "timeout": timeout, "retries": retries},
                )
                raise

            except peewee.OperationalError as e:
                error_msg = str(e).lower()
                if ("locked" in error_msg or "busy" in error_msg) and retries < self.max_retries:
                    retries += 1
                    wait_time = 0.1 * (2**retries)
                    self._logger.warning(
                        "db_locked_retrying",
                        extra={
                            "operation": operation_name,
                            "retry": retries,
                            "max_retries": self.max_retries,
                            "wait_time": wait_time,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(wait_time)
                    continue

                self._logger.exception(
                    "db_operational_error",
                    extra={"operation": operation_name, "retries": retries, "error": str(e)},
                )
                raise

    @staticmethod
    def _mask_path(path: str) -> str:
        if path == IN_MEMORY_PATH:
            return path
        return f".../{Path(path).name}"
