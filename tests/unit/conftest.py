"""Unit-test conftest: DB isolation safety net.

Provides an ``autouse`` fixture that prevents any unit test from
accidentally opening a real database connection. This catches the
class of bugs where ``get_session()`` is called without the database
dependency being overridden first.

Tests that need a database live in ``tests/integration/`` (SQLite via
aiosqlite) and are unaffected.
"""

from __future__ import annotations

import pytest

import passgate.storage as _storage_mod


def _install_db_guard(monkeypatch: pytest.MonkeyPatch) -> None:
    """Install guard functions that prevent real DB access in unit tests."""

    def _guarded_get_engine(settings=None):
        raise RuntimeError(
            "Unit test attempted a real DB connection via get_engine(). "
            "Mock the database dependency or use tests/integration/ for DB tests."
        )

    def _guarded_get_session_factory(settings=None):
        raise RuntimeError(
            "Unit test attempted a real DB connection via get_session_factory(). "
            "Mock the database dependency or use tests/integration/ for DB tests."
        )

    monkeypatch.setattr(_storage_mod, "get_engine", _guarded_get_engine)
    monkeypatch.setattr(_storage_mod, "get_session_factory", _guarded_get_session_factory)


@pytest.fixture(autouse=True)
def _isolate_db(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset storage singletons and make any engine access raise."""
    monkeypatch.setattr(_storage_mod, "_engine", None)
    monkeypatch.setattr(_storage_mod, "_session_factory", None)
    _install_db_guard(monkeypatch)
