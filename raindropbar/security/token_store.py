"""API token storage.

A token is addressed by a fixed service and account pair. The file store
keeps it in a per-user file readable only by its owner on this machine.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from raindropbar.core.logging_utils import redact_token

logger = logging.getLogger(__name__)

TOKEN_SERVICE = "io.raindrop.RainDropBar"
TOKEN_ACCOUNT = "api_token"

_DIR_MODE = 0o700
_FILE_MODE = 0o600


class TokenStore(Protocol):
    def get(self) -> str | None: ...

    def set(self, token: str) -> None: ...

    def clear(self) -> None: ...

    def has_token(self) -> bool: ...


def _normalize(token: str) -> str:
    value = token.strip()
    if not value:
        raise ValueError("API token must not be empty")
    return value


class FileTokenStore:
    """Token persisted at ``<token_dir>/<service>/<account>`` with mode 0600."""

    def __init__(
        self,
        token_dir: str | Path,
        *,
        service: str = TOKEN_SERVICE,
        account: str = TOKEN_ACCOUNT,
    ) -> None:
        self.service = service
        self.account = account
        self.path = Path(token_dir).expanduser() / service / account

    def get(self) -> str | None:
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return value or None

    def set(self, token: str) -> None:
        value = _normalize(token)
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=_DIR_MODE)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(value)
        # O_CREAT honours the umask and leaves an existing file's mode alone.
        os.chmod(self.path, _FILE_MODE)
        logger.info(
            "token_saved",
            extra={"service": self.service, "account": self.account, "token": redact_token(value)},
        )

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
        logger.info("token_cleared", extra={"service": self.service, "account": self.account})

    def has_token(self) -> bool:
        return self.get() is not None


class MemoryTokenStore:
    """Process-local token store for tests and embedding."""

    def __init__(self, token: str | None = None) -> None:
        self._token = _normalize(token) if token else None

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = _normalize(token)

    def clear(self) -> None:
        self._token = None

    def has_token(self) -> bool:
        return self._token is not None
