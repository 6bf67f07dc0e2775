"""Tests for API token storage."""

import os
import stat
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from raindropbar.security.token_store import (
    TOKEN_ACCOUNT,
    TOKEN_SERVICE,
    FileTokenStore,
    MemoryTokenStore,
)


class TestFileTokenStore(unittest.TestCase):
    def setUp(self):
        self._tmp = TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.store = FileTokenStore(self._tmp.name)

    def test_missing_token(self):
        assert self.store.get() is None
        assert not self.store.has_token()

    def test_set_get_clear(self):
        self.store.set("  abc-123-token \n")
        assert self.store.get() == "abc-123-token"
        assert self.store.has_token()

        self.store.clear()
        assert self.store.get() is None
        # Clearing twice is fine.
        self.store.clear()

    def test_file_is_owner_only(self):
        self.store.set("abc-123-token")
        expected = Path(self._tmp.name) / TOKEN_SERVICE / TOKEN_ACCOUNT
        assert self.store.path == expected
        assert stat.S_IMODE(os.stat(expected).st_mode) == 0o600

    def test_existing_file_mode_is_tightened(self):
        self.store.path.parent.mkdir(parents=True)
        self.store.path.write_text("old")
        os.chmod(self.store.path, 0o644)

        self.store.set("new-token")

        assert stat.S_IMODE(os.stat(self.store.path).st_mode) == 0o600
        assert self.store.get() == "new-token"

    def test_empty_token_is_rejected(self):
        with self.assertRaises(ValueError):
            self.store.set("   ")
        assert self.store.get() is None


class TestMemoryTokenStore(unittest.TestCase):
    def test_round_trip(self):
        store = MemoryTokenStore()
        assert not store.has_token()
        store.set("token")
        assert store.get() == "token"
        store.clear()
        assert store.get() is None

    def test_initial_token(self):
        assert MemoryTokenStore("seed").get() == "seed"
