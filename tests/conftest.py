"""Pytest configuration for test isolation.

Three pieces of process-wide state would otherwise leak between tests:

- the shared SQLAlchemy engine in ``db.client`` (a second test using a new
  SQLite file would trip the "different database URL" guard);
- ``SUPER_BANK_*`` / ``DATABASE_URL`` variables from the developer's shell or
  a previous CLI invocation that loaded ``.env``;
- the one-shot ``configure_logging`` flag and the handler it attached.

An autouse fixture resets all three around every test.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure the workspace `packages/` and `libs/db/src` dirs are on sys.path so
# `super_bank` and `db` are importable without an editable install.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p for p in [str(_ROOT / "packages"), str(_ROOT / "libs/db/src"), str(_ROOT)] if p not in sys.path
]

import super_bank.logging_setup as logging_setup  # noqa: E402
from db.client import dispose_engine  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("SUPER_BANK_") or key == "DATABASE_URL":
            monkeypatch.delenv(key, raising=False)
    dispose_engine()
    yield
    dispose_engine()
    logging_setup._CONFIGURED = False
    pkg_logger = logging.getLogger("super_bank")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.propagate = True
    pkg_logger.setLevel(logging.NOTSET)
