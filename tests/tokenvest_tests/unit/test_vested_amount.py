"""
Vested-amount computation: cliff gating, linear accrual, slice quantization
and floor rounding at boundaries.
"""

import pytest

from tokenvest.core.vesting_exceptions import ScheduleRevoked

from vesting_helpers import ALICE, OWNER, SIX_MONTHS, T0, TWO_YEARS, ONE_YEAR


class TestTwoYearGrant:
    """1,000,000 tokens, 180 day cliff, two year duration."""

    def test_nothing_vested_at_start(self, grant):
        assert grant.vested_amount(ALICE, 0, current_time=T0) == 0

    def test_nothing_vested_just_before_cliff(self, grant):
        assert grant.vested_amount(ALICE, 0, current_time=T0 + SIX_MONTHS - 1) == 0

    def test_cliff_releases_accrual_since_start(self, grant):
        # 1_000_000 * 15_552_000 // 63_072_000
        assert grant.vested_amount(ALICE, 0, current_time=T0 + SIX_MONTHS) == 246_575

    def test_half_vested_after_one_year(self, grant):
        assert grant.vested_amount(ALICE, 0, current_time=T0 + ONE_YEAR) == 500_000

    def test_fully_vested_at_end(self, grant):
        assert grant.vested_amount(ALICE, 0, current_time=T0 + TWO_YEARS) == 1_000_000

    def test_fully_vested_long_after_end(self, grant):
        assert grant.vested_amount(ALICE, 0, current_time=T0 + 10 * TWO_YEARS) == 1_000_000

    def test_before_start_is_zero(self, grant):
        assert grant.vested_amount(ALICE, 0, current_time=T0 - 1) == 0

    def test_uses_time_provider_when_no_time_given(self, grant, clock):
        clock.now = T0 + ONE_YEAR
        assert grant.vested_amount(ALICE, 0) == 500_000
        assert grant.releasable_amount(ALICE, 0) == 500_000

    def test_query_does_not_mutate(self, grant):
        grant.vested_amount(ALICE, 0, current_time=T0 + ONE_YEAR)
        assert grant.get_schedule(ALICE, 0).released == 0
        assert grant.total_allocated == 1_000_000

    def test_released_amount_is_subtracted(self, grant):
        grant.release(ALICE, ALICE, 0, current_time=T0 + SIX_MONTHS)
        assert grant.vested_amount(ALICE, 0, current_time=T0 + SIX_MONTHS) == 0
        assert grant.vested_amount(ALICE, 0, current_time=T0 + ONE_YEAR) == 500_000 - 246_575
        assert grant.vested_amount(ALICE, 0, current_time=T0 + TWO_YEARS) == 1_000_000 - 246_575

    def test_revoked_schedule_cannot_be_queried(self, grant):
        grant.revoke(OWNER, ALICE, 0, current_time=T0 + ONE_YEAR)
        with pytest.raises(ScheduleRevoked):
            grant.vested_amount(ALICE, 0, current_time=T0 + TWO_YEARS)


def test_non_integer_time_is_rejected(grant, clock):
    with pytest.raises(ValueError):
        grant.vested_amount(ALICE, 0, current_time=T0 + 0.5)

    clock.now = "soon"
    with pytest.raises(ValueError):
        grant.vested_amount(ALICE, 0)


def test_floor_rounding_at_each_second(ledger):
    ledger.create_schedule(OWNER, ALICE, start=T0, cliff=T0, duration=3, total=10)
    observed = [ledger.vested_amount(ALICE, 0, current_time=T0 + s) for s in range(5)]
    assert observed == [0, 3, 6, 10, 10]


def test_large_amounts_keep_full_precision(ledger):
    ledger.policy.require_funding = False
    ledger.create_schedule(
        OWNER, ALICE, start=T0, cliff=T0, duration=TWO_YEARS, total=10**27
    )
    vested = ledger.vested_amount(ALICE, 0, current_time=T0 + 1)
    assert vested == 10**27 // TWO_YEARS


class TestSliceInterval:
    DAY = 86_400

    @pytest.fixture
    def daily(self, ledger):
        ledger.create_schedule(
            OWNER,
            ALICE,
            start=T0,
            cliff=T0,
            duration=TWO_YEARS,
            total=1_000_000,
            slice_interval=self.DAY,
        )
        return ledger

    def test_nothing_before_first_slice(self, daily):
        assert daily.vested_amount(ALICE, 0, current_time=T0 + self.DAY - 1) == 0

    def test_first_slice_boundary(self, daily):
        # 1_000_000 * 86_400 // 63_072_000
        assert daily.vested_amount(ALICE, 0, current_time=T0 + self.DAY) == 1_369

    def test_constant_within_a_slice(self, daily):
        first = daily.vested_amount(ALICE, 0, current_time=T0 + self.DAY)
        assert daily.vested_amount(ALICE, 0, current_time=T0 + 2 * self.DAY - 1) == first
        assert daily.vested_amount(ALICE, 0, current_time=T0 + 2 * self.DAY) > first

    def test_end_settles_in_full(self, daily):
        assert daily.vested_amount(ALICE, 0, current_time=T0 + TWO_YEARS) == 1_000_000

    def test_slice_longer_than_duration(self, ledger):
        ledger.create_schedule(
            OWNER, ALICE, start=T0, cliff=T0, duration=100, total=1_000, slice_interval=1_000
        )
        assert ledger.vested_amount(ALICE, 0, current_time=T0 + 99) == 0
        assert ledger.vested_amount(ALICE, 0, current_time=T0 + 100) == 1_000

    def test_quantization_is_relative_to_start(self, ledger):
        ledger.create_schedule(
            OWNER, ALICE, start=T0 + 7, cliff=T0 + 7, duration=100, total=100, slice_interval=10
        )
        assert ledger.vested_amount(ALICE, 0, current_time=T0 + 16) == 0
        assert ledger.vested_amount(ALICE, 0, current_time=T0 + 17) == 10
        assert ledger.vested_amount(ALICE, 0, current_time=T0 + 26) == 10


def test_cliff_after_end_releases_everything_at_cliff(ledger):
    ledger.create_schedule(OWNER, ALICE, start=T0, cliff=T0 + 200, duration=100, total=50)
    assert ledger.vested_amount(ALICE, 0, current_time=T0 + 150) == 0
    assert ledger.vested_amount(ALICE, 0, current_time=T0 + 200) == 50
