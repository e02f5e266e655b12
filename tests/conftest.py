from dataclasses import replace
from datetime import datetime, timezone

import pytest

from cadence.domain.models import CardPhase, CardState
from cadence.domain.settings import SchedulerSettings

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return SchedulerSettings()


@pytest.fixture
def make_card():
    """Factory for card states; defaults to a New card due at NOW."""

    def _make(card_id="c1", phase=CardPhase.NEW, **overrides) -> CardState:
        card = CardState(
            user_id="u1",
            project_id="p1",
            card_id=card_id,
            phase=phase,
            due=NOW,
            interval=1,
            ease=2.5,
            created_at=NOW,
        )
        return replace(card, **overrides)

    return _make


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("CADENCE_DB_PATH", "CADENCE_USER_ID", "CADENCE_PROJECT_ID", "CADENCE_TIMEZONE"):
        monkeypatch.delenv(var, raising=False)
    return home
