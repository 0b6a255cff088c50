from datetime import date, datetime, timezone

import pytest

from lfa_studio.gamification_ledger import GamificationLedger, LedgerState
from lfa_studio.streaks import calendar_days_between, next_streak


def test_add_points_accumulates_and_rejects_negatives(clock) -> None:
    ledger = GamificationLedger(clock=clock)
    assert ledger.add_points(100) == 100
    assert ledger.add_points(0) == 100
    assert ledger.total_points == 100
    with pytest.raises(ValueError):
        ledger.add_points(-1)


def test_award_badge_is_idempotent(clock) -> None:
    ledger = GamificationLedger(clock=clock)
    assert ledger.award_badge("first_steps") is True
    assert ledger.award_badge("FIRST_STEPS") is False
    assert [b.badge_id for b in ledger.state.earned_badges] == ["FIRST_STEPS"]
    assert ledger.total_points == 50
    assert ledger.has_badge("first_steps")


def test_award_unknown_badge_is_a_noop(clock) -> None:
    ledger = GamificationLedger(clock=clock)
    assert ledger.award_badge("NOT_A_BADGE") is False
    assert ledger.state.earned_badges == []
    assert ledger.total_points == 0


def test_badge_already_held_in_loaded_state_is_not_granted_again(clock) -> None:
    ledger = GamificationLedger(clock=clock)
    ledger.award_badge("PROBLEM_EXPLORER")
    reloaded = GamificationLedger(LedgerState(total_points=50, earned_badges=ledger.state.earned_badges), clock=clock)
    assert reloaded.award_badge("PROBLEM_EXPLORER") is False
    assert reloaded.total_points == 50
    assert reloaded.newly_awarded == []


def test_update_streak_same_day_counts_once(clock) -> None:
    ledger = GamificationLedger(clock=clock)
    ledger.update_streak()
    ledger.update_streak()
    assert ledger.streak_days == 1
    assert ledger.state.last_activity_date == date(2025, 3, 10)


def test_update_streak_next_day_increments(clock) -> None:
    ledger = GamificationLedger(LedgerState(streak_days=4, last_activity_date=date(2025, 3, 9)), clock=clock)
    ledger.update_streak()
    assert ledger.streak_days == 5


def test_update_streak_after_gap_resets(clock) -> None:
    ledger = GamificationLedger(LedgerState(streak_days=4, last_activity_date=date(2025, 3, 7)), clock=clock)
    ledger.update_streak()
    assert ledger.streak_days == 1


def test_update_streak_grants_bonus_on_table_lengths(clock) -> None:
    ledger = GamificationLedger(LedgerState(streak_days=6, last_activity_date=date(2025, 3, 9)), clock=clock)
    assert ledger.update_streak() == 75
    assert ledger.streak_days == 7
    assert ledger.total_points == 75
    clock.advance(days=1)
    assert ledger.update_streak() == 0
    assert ledger.total_points == 75


def test_calendar_days_ignore_time_of_day() -> None:
    late = datetime(2025, 3, 9, 23, 59, tzinfo=timezone.utc)
    early = datetime(2025, 3, 10, 0, 1, tzinfo=timezone.utc)
    assert calendar_days_between(late, early) == 1
    assert next_streak(3, late, early) == 4


def test_naive_datetimes_are_treated_as_utc() -> None:
    naive = datetime(2025, 3, 9, 12, 0)
    aware = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
    assert calendar_days_between(naive, aware) == 1


def test_next_streak_without_previous_activity_starts_at_one() -> None:
    assert next_streak(0, None, date(2025, 1, 1)) == 1
