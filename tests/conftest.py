import sys
from pathlib import Path
import pytest

# Ensure project root is on sys.path so tests can import the `dailyword` package
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from dailyword import deps, stats as stats_module  # noqa: E402
from dailyword.clock import FixedClock  # noqa: E402
from dailyword.kvstore import MemoryKeyValueStore  # noqa: E402
from dailyword.users import GameContext  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state():
	# Clear module-level wiring between tests to avoid cross-test leakage
	deps.store = None
	deps.clock = None
	stats_module._COMPLETION_LOCKS.clear()
	yield
	deps.store = None
	deps.clock = None


@pytest.fixture
def store():
	return MemoryKeyValueStore()


@pytest.fixture
def clock():
	return FixedClock('2026-02-15T09:00:00')


@pytest.fixture
def ctx(clock):
	return GameContext(user='testuser', clock=clock)
