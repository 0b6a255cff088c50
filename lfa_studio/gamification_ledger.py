# lfa_studio/gamification_ledger.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable

from lfa_studio.journey import BADGES, POINTS_CONFIG, Badge, PointsConfig
from lfa_studio.streaks import calendar_days_between, next_streak

logger = logging.getLogger("lfa_studio.gamification")


@dataclass(frozen=True)
class EarnedBadgeEntry:
    badge_id: str
    earned_at: datetime


@dataclass
class LedgerState:
    total_points: int = 0
    earned_badges: list[EarnedBadgeEntry] = field(default_factory=list)
    streak_days: int = 0
    last_activity_date: date | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GamificationLedger:
    """
    Points, badges and day streaks for one user.

    The ledger mutates its LedgerState in place; persistence is the caller's job
    (see ComponentStore.save_quest_completion).
    """

    def __init__(
        self,
        state: LedgerState | None = None,
        *,
        badges=None,
        points_config: PointsConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.state = state or LedgerState()
        self._badges = BADGES if badges is None else badges
        self._points_config = points_config or POINTS_CONFIG
        self._clock = clock
        # badges awarded during the lifetime of this ledger object
        self.newly_awarded: list[EarnedBadgeEntry] = []
        # what this ledger object added on top of the state it was loaded with
        self.points_added = 0
        self.streak_bonus_added = 0
        self.streak_counted_on: date | None = None

    @property
    def total_points(self) -> int:
        return self.state.total_points

    @property
    def streak_days(self) -> int:
        return self.state.streak_days

    @property
    def badge_bonus(self) -> int:
        return self._points_config.badge_earned

    def add_points(self, amount: int) -> int:
        if amount < 0:
            raise ValueError(f"add_points: amount must be non-negative, got {amount}")
        self.state.total_points += int(amount)
        self.points_added += int(amount)
        return self.state.total_points

    def has_badge(self, badge_id: str) -> bool:
        key = (badge_id or "").upper()
        return any(b.badge_id == key for b in self.state.earned_badges)

    def _lookup_badge(self, badge_id: str) -> Badge | None:
        return self._badges.get((badge_id or "").upper())

    def award_badge(self, badge_id: str) -> bool:
        """
        Returns True only when the badge is newly earned.
        Unknown ids and badges already held are no-ops.
        """
        badge = self._lookup_badge(badge_id)
        if badge is None:
            logger.warning("award_badge: unknown badge id %r", badge_id)
            return False
        if self.has_badge(badge.id):
            return False
        entry = EarnedBadgeEntry(badge_id=badge.id, earned_at=self._clock())
        self.state.earned_badges = [*self.state.earned_badges, entry]
        self.newly_awarded.append(entry)
        self.add_points(self._points_config.badge_earned)
        logger.info("Badge %s earned (+%d points)", badge.id, self._points_config.badge_earned)
        return True

    def update_streak(self) -> int:
        """
        Day-streak bookkeeping. Calling it several times on the same calendar day
        changes nothing after the first call. Returns bonus points granted.
        """
        today = self._clock().date()
        last = self.state.last_activity_date
        if last is not None and calendar_days_between(last, today) <= 0:
            return 0

        self.state.streak_days = next_streak(self.state.streak_days, last, today)
        self.state.last_activity_date = today
        self.streak_counted_on = today

        bonus = self._points_config.streak_bonus.get(self.state.streak_days, 0)
        self.streak_bonus_added = bonus
        if bonus:
            self.add_points(bonus)
            logger.info("Streak bonus for %d days: +%d points", self.state.streak_days, bonus)
        return bonus

    def reconcile(
        self,
        total_points: int,
        already_held=(),
        streak_days: int | None = None,
        last_activity_date: date | None = None,
    ) -> None:
        """
        Adopt what was actually persisted. `already_held` are badges another
        session stored first; a persisted streak means today was already counted
        elsewhere, so this ledger's streak bonus did not apply.
        """
        held = set(already_held)
        if held:
            self.newly_awarded = [e for e in self.newly_awarded if e.badge_id not in held]
        if streak_days is not None:
            self.state.streak_days = streak_days
            self.state.last_activity_date = last_activity_date
            self.streak_bonus_added = 0
        self.state.total_points = total_points
