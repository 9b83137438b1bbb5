import os
import pathlib
import sys
from typing import Any, Callable, List

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import memokit`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from memokit.config import ConfigManager  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: tests that wait on real timers (skipped unless MEMOKIT_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('MEMOKIT_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set MEMOKIT_RUN_SLOW=1 to enable'))


class FakeClock:
    """Millisecond time source that only moves when told to."""

    def __init__(self, start: float = 1_600_000_000_000.0):
        self.now = start
        self.calls = 0

    def __call__(self) -> float:
        self.calls += 1
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers fire only from run_due(), against a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers: List[ManualTimer] = []

    def __call__(self, delay_seconds: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.clock.now + delay_seconds * 1000.0, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def run_due(self) -> int:
        fired = 0
        for timer in sorted(self.pending, key=lambda t: t.due):
            if timer.due <= self.clock.now and not timer.cancelled:
                timer.fired = True
                timer.callback()
                fired += 1
        return fired

    def advance(self, ms: float) -> int:
        self.clock.advance(ms)
        return self.run_due()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch: pytest.MonkeyPatch) -> Any:
    for name in list(os.environ):
        if name.startswith("MEMOKIT_") and name != "MEMOKIT_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)
    manager = ConfigManager()
    manager.reset()
    yield manager
    manager.reset()
