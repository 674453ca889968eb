import sys
from pathlib import Path

import pytest

# Ensure src is on path for direct imports during testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leasekeeper.simulation import ManualClock  # noqa: E402


@pytest.fixture
def clock():
    return ManualClock(start=1_000_000)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "ledger.db")
