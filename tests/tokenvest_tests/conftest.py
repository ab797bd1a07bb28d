import sys
from pathlib import Path

import pytest

# Make `tokenvest` and the shared test helpers importable without installing.
tests_dir = Path(__file__).resolve().parent
project_root = tests_dir.parents[1]
sys.path.insert(0, str(project_root / "src"))
sys.path.insert(0, str(tests_dir))

from vesting_helpers import ALICE, OWNER, SIX_MONTHS, T0, TWO_YEARS, Clock, make_ledger, make_token


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def token():
    return make_token()


@pytest.fixture
def ledger(token, clock):
    return make_ledger(token, clock)


@pytest.fixture
def grant(ledger):
    """One revocable 1,000,000 token grant to ALICE: 180 day cliff, two years."""
    ledger.create_schedule(
        OWNER,
        ALICE,
        start=T0,
        cliff=T0 + SIX_MONTHS,
        duration=TWO_YEARS,
        total=1_000_000,
    )
    return ledger
