"""
Shared fixtures.

- test environment variables are set for every test (autouse)
- the project root is added to ``sys.path`` so ``import src.*`` resolves
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from src.config import clear_settings_cache  # noqa: E402
from src.gaps.models import CalendarEvent  # noqa: E402


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Minimal environment for every test, restored by ``monkeypatch``.

    No real credentials are used; the Google token is removed so no test
    reaches the network by accident.
    """

    env: dict[str, str] = {
        "LOG_FORMAT": "console",
        "HISTORY_FILE": str(tmp_path / "history.json"),
    }
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    monkeypatch.delenv("GOOGLE_CALENDAR_ACCESS_TOKEN", raising=False)

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def base_time() -> datetime:
    """A weekday morning inside active hours and outside quiet hours."""
    return datetime(2024, 3, 5, 10, 0)


@pytest.fixture
def make_event() -> Callable[..., CalendarEvent]:
    counter = iter(range(1, 10_000))

    def _make(
        start: datetime,
        minutes: float | None = 30,
        title: str = "Meeting",
        source_id: str = "work",
        **extra: object,
    ) -> CalendarEvent:
        end = start + timedelta(minutes=minutes) if minutes is not None else None
        return CalendarEvent(
            id=f"{source_id}-{next(counter)}",
            title=title,
            start_time=start,
            end_time=end,
            source_id=source_id,
            **extra,
        )

    return _make
