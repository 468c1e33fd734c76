from __future__ import annotations

from pathlib import Path

import pytest

from factories import ManualTimers, RecordingNotifier, ScriptedGateway
from tradewatch.storage import DedupStore


@pytest.fixture
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "trades.db"


@pytest.fixture
def store(db_path: Path) -> DedupStore:
    return DedupStore(db_path)
