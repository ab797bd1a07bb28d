"""
Property-based tests for vesting schedule invariants.

For arbitrary grants and observation times these tests check that the
vested amount is monotone in time, gated by the cliff, complete at the end
of the window and never exceeds the unreleased remainder. Release and
revocation must keep the allocation counter equal to the sum of what the
schedules still owe.

Uses Hypothesis for property-based testing with random inputs.
"""

from hypothesis import assume, given, settings, strategies as st

from tokenvest.core.config import LedgerPolicy

from vesting_helpers import ALICE, OWNER, T0, make_ledger, make_token

durations = st.integers(min_value=1, max_value=10 * 365 * 24 * 3600)
totals = st.integers(min_value=1, max_value=10**30)
offsets = st.integers(min_value=0, max_value=20 * 365 * 24 * 3600)
slices = st.integers(min_value=1, max_value=30 * 24 * 3600)


def _unfunded_ledger():
    return make_ledger(make_token(funding=0), policy=LedgerPolicy(require_funding=False))


def _funded_ledger():
    return make_ledger()


class TestVestedAmountProperties:
    """Pure computation properties of vested_amount."""

    @given(
        duration=durations,
        total=totals,
        cliff_offset=offsets,
        slice_interval=slices,
        t1=offsets,
        t2=offsets,
    )
    @settings(max_examples=200, deadline=None)
    def test_monotone_in_time(self, duration, total, cliff_offset, slice_interval, t1, t2):
        ledger = _unfunded_ledger()
        ledger.create_schedule(
            OWNER,
            ALICE,
            start=T0,
            cliff=T0 + cliff_offset,
            duration=duration,
            total=total,
            slice_interval=slice_interval,
        )
        early, late = sorted((t1, t2))

        vested_early = ledger.vested_amount(ALICE, 0, current_time=T0 + early)
        vested_late = ledger.vested_amount(ALICE, 0, current_time=T0 + late)

        assert 0 <= vested_early <= vested_late <= total

    @given(duration=durations, total=totals, cliff_offset=offsets, before=st.integers(min_value=1, max_value=10**9))
    @settings(max_examples=100, deadline=None)
    def test_nothing_before_cliff(self, duration, total, cliff_offset, before):
        ledger = _unfunded_ledger()
        cliff = T0 + cliff_offset
        ledger.create_schedule(OWNER, ALICE, start=T0, cliff=cliff, duration=duration, total=total)

        assert ledger.vested_amount(ALICE, 0, current_time=cliff - before) == 0

    @given(
        duration=durations,
        total=totals,
        cliff_offset=offsets,
        slice_interval=slices,
        after=st.integers(min_value=0, max_value=10**9),
    )
    @settings(max_examples=100, deadline=None)
    def test_everything_after_end(self, duration, total, cliff_offset, slice_interval, after):
        ledger = _unfunded_ledger()
        ledger.create_schedule(
            OWNER,
            ALICE,
            start=T0,
            cliff=T0 + cliff_offset,
            duration=duration,
            total=total,
            slice_interval=slice_interval,
        )
        end = max(T0 + duration, T0 + cliff_offset)

        assert ledger.vested_amount(ALICE, 0, current_time=end + after) == total

    @given(duration=durations, total=totals, elapsed=offsets)
    @settings(max_examples=100, deadline=None)
    def test_linear_floor(self, duration, total, elapsed):
        assume(elapsed < duration)
        ledger = _unfunded_ledger()
        ledger.create_schedule(OWNER, ALICE, start=T0, cliff=T0, duration=duration, total=total)

        assert ledger.vested_amount(ALICE, 0, current_time=T0 + elapsed) == total * elapsed // duration


class TestLedgerAccountingProperties:
    """Balances and counters stay consistent across releases and revocation."""

    @given(
        total=st.integers(min_value=1, max_value=10_000_000),
        duration=st.integers(min_value=1, max_value=10_000),
        steps=st.lists(st.integers(min_value=0, max_value=2_000), min_size=1, max_size=8),
    )
    @settings(max_examples=100, deadline=None)
    def test_releases_never_exceed_total(self, total, duration, steps):
        ledger = _funded_ledger()
        ledger.create_schedule(OWNER, ALICE, start=T0, cliff=T0, duration=duration, total=total)

        now = T0
        paid = 0
        for step in steps:
            now += step
            if ledger.vested_amount(ALICE, 0, current_time=now) > 0:
                paid += ledger.release(ALICE, ALICE, 0, current_time=now)

            schedule = ledger.get_schedule(ALICE, 0)
            assert schedule.released == paid <= total
            assert ledger.total_allocated == total - paid
            assert ledger.token.balance_of(ALICE) == paid

        assert ledger.accounting_report()["consistent"] is True

    @given(
        total=st.integers(min_value=1, max_value=10_000_000),
        duration=st.integers(min_value=1, max_value=10_000),
        release_at=st.integers(min_value=0, max_value=12_000),
        revoke_after=st.integers(min_value=0, max_value=12_000),
    )
    @settings(max_examples=100, deadline=None)
    def test_revocation_settles_exactly(self, total, duration, release_at, revoke_after):
        ledger = _funded_ledger()
        ledger.create_schedule(OWNER, ALICE, start=T0, cliff=T0, duration=duration, total=total)
        custody_before = ledger.custody_balance()

        if ledger.vested_amount(ALICE, 0, current_time=T0 + release_at) > 0:
            ledger.release(ALICE, ALICE, 0, current_time=T0 + release_at)
        released_before = ledger.get_schedule(ALICE, 0).released

        released_now, refund = ledger.revoke(
            OWNER, ALICE, 0, current_time=T0 + release_at + revoke_after
        )

        assert released_now + refund == total - released_before
        assert ledger.total_allocated == 0
        assert ledger.custody_balance() == custody_before - total
        assert ledger.token.balance_of(ALICE) == released_before + released_now
        assert ledger.accounting_report()["consistent"] is True
