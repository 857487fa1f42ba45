"""Test configuration shared by unit and integration tests."""

from __future__ import annotations

import os

# Settings are read at import time by beanstalker.main.
os.environ.setdefault("BEANSTALKER_ALLOWED_ORIGINS", "http://localhost:5173")
os.environ["BEANSTALKER_PUSH_NOTIFICATIONS_ENABLED"] = "false"
os.environ.pop("BEANSTALKER_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402

from beanstalker.main import app  # noqa: E402


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture(autouse=True)
def _clear_dependency_overrides():
  yield
  app.dependency_overrides.clear()
