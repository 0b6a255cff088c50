# lfa_studio/progress_tracker.py
"""
Quest-completion state machine.

A project's position is (current_level, current_quest) plus the set of completed
quest ids. The tracker never mutates its input: every transition returns a new
ProgressSnapshot, and precondition failures raise before anything is built.

Re-completing a quest that is already in completed_quests is idempotent: the
set is unchanged, no points are granted again and the pointer does not move.
Only the activity timestamp and streak are refreshed.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from lfa_studio.completion_calculator import percentage
from lfa_studio.exceptions import InvalidPositionError, OutOfOrderQuestError, UnknownQuestError
from lfa_studio.gamification_ledger import GamificationLedger
from lfa_studio.journey import DEFAULT_CATALOG, JourneyCatalog, Quest
from lfa_studio.streaks import as_utc, next_streak

logger = logging.getLogger("lfa_studio.progress")


@dataclass(frozen=True)
class ProgressSnapshot:
    current_level: int = 1
    current_quest: int = 1
    completed_quests: tuple[str, ...] = ()
    total_points_earned: int = 0
    streak_days: int = 0
    last_activity_at: datetime | None = None
    level_progress: dict[int, int] = field(default_factory=dict)

    def has_completed(self, quest_id: str) -> bool:
        return quest_id in self.completed_quests

    def to_dict(self) -> dict:
        return {
            "currentLevel": self.current_level,
            "currentQuest": self.current_quest,
            "completedQuests": list(self.completed_quests),
            "totalPointsEarned": self.total_points_earned,
            "streakDays": self.streak_days,
            "lastActivityAt": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "levelProgress": {str(k): v for k, v in sorted(self.level_progress.items())},
        }


@dataclass(frozen=True)
class QuestCompletion:
    progress: ProgressSnapshot
    quest: Quest
    points_awarded: int
    already_completed: bool
    level_completed: int | None = None
    journey_completed: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressTracker:
    def __init__(self, catalog: JourneyCatalog | None = None, clock: Callable[[], datetime] = _utcnow) -> None:
        self.catalog = catalog or DEFAULT_CATALOG
        self._clock = clock

    # -----------------------
    # Read helpers
    # -----------------------

    def new_progress(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            current_level=1,
            current_quest=1,
            completed_quests=(),
            total_points_earned=0,
            streak_days=0,
            last_activity_at=self._clock(),
            level_progress={lvl.level: 0 for lvl in self.catalog.levels},
        )

    def is_terminal(self, progress: ProgressSnapshot) -> bool:
        if progress.current_level != self.catalog.max_level:
            return False
        last_level = self.catalog.get_level(self.catalog.max_level)
        return all(progress.has_completed(q.id) for q in last_level.quests)

    def quest_at_pointer(self, progress: ProgressSnapshot) -> Quest | None:
        """The quest the UI should offer next, or None once the journey is finished."""
        if self.is_terminal(progress):
            return None
        return self.catalog.quest_at(progress.current_level, progress.current_quest)

    def compute_level_progress(self, completed: tuple[str, ...]) -> dict[int, int]:
        done = set(completed)
        return {
            lvl.level: percentage(sum(1 for q in lvl.quests if q.id in done), len(lvl.quests))
            for lvl in self.catalog.levels
        }

    def journey_percentage(self, progress: ProgressSnapshot) -> int:
        known = {q.id for lvl in self.catalog.levels for q in lvl.quests}
        done = sum(1 for qid in set(progress.completed_quests) if qid in known)
        return percentage(done, self.catalog.total_quests())

    def quest_status(self, progress: ProgressSnapshot, level_id: int, quest_id: str) -> str:
        """completed | current | locked, as drawn on the journey map."""
        if progress.has_completed(quest_id):
            return "completed"
        if level_id < progress.current_level:
            return "completed"
        if level_id == progress.current_level:
            quest = self.catalog.find_quest(level_id, quest_id)
            if quest is not None and quest.quest_number == progress.current_quest:
                return "current"
        return "locked"

    # -----------------------
    # Transitions
    # -----------------------

    def _missing_before(self, progress: ProgressSnapshot, level_id: int, quest_number: int) -> list[str]:
        """Quests of `level_id` numbered below `quest_number` that are not completed."""
        level = self.catalog.get_level(level_id)
        return [
            q.id for q in level.quests
            if q.quest_number < quest_number and not progress.has_completed(q.id)
        ]

    def _touch(self, progress: ProgressSnapshot, now: datetime) -> tuple[int, datetime]:
        if progress.last_activity_at is None:
            streak = max(progress.streak_days, 1)
        else:
            streak = next_streak(progress.streak_days, as_utc(progress.last_activity_at), now)
        return streak, now

    def complete_quest(
        self,
        progress: ProgressSnapshot,
        level_id: int,
        quest_id: str,
        ledger: GamificationLedger | None = None,
    ) -> QuestCompletion:
        level = self.catalog.get_level(level_id)
        quest = level.find_quest(quest_id) if level is not None else None
        if quest is None:
            raise UnknownQuestError(level_id, quest_id)
        if level_id != progress.current_level:
            raise OutOfOrderQuestError(level_id, quest_id, progress.current_level, progress.current_quest)

        already_completed = progress.has_completed(quest_id)
        if not already_completed and quest.quest_number != progress.current_quest:
            raise OutOfOrderQuestError(level_id, quest_id, progress.current_level, progress.current_quest)
        # completed_quests must cover every quest behind the pointer, or a level
        # roll-over would leave holes below current_level
        if not already_completed and self._missing_before(progress, level_id, quest.quest_number):
            raise OutOfOrderQuestError(level_id, quest_id, progress.current_level, progress.current_quest)

        now = as_utc(self._clock())
        streak, last_activity = self._touch(progress, now)

        if already_completed:
            logger.info("Quest %s already completed; refreshing activity only", quest_id)
            return QuestCompletion(
                progress=dataclasses.replace(progress, streak_days=streak, last_activity_at=last_activity),
                quest=quest,
                points_awarded=0,
                already_completed=True,
            )

        completed = progress.completed_quests + (quest_id,)
        points = quest.points_reward
        if ledger is not None:
            ledger.add_points(points)

        next_level = progress.current_level
        next_quest = progress.current_quest
        level_completed = None
        journey_completed = False
        if not level.is_last_quest(quest):
            # quest_number is 1-based, so (0-based ordinal) + 2 == quest_number + 1
            next_quest = quest.quest_number + 1
        else:
            level_completed = level_id
            if level_id < self.catalog.max_level:
                next_level = level_id + 1
                next_quest = 1
            else:
                journey_completed = True

        updated = dataclasses.replace(
            progress,
            current_level=next_level,
            current_quest=next_quest,
            completed_quests=completed,
            total_points_earned=progress.total_points_earned + points,
            streak_days=streak,
            last_activity_at=last_activity,
            level_progress=self.compute_level_progress(completed),
        )
        logger.info(
            "Quest %s completed (+%d points), pointer now level %d quest %d",
            quest_id, points, next_level, next_quest,
        )
        return QuestCompletion(
            progress=updated,
            quest=quest,
            points_awarded=points,
            already_completed=False,
            level_completed=level_completed,
            journey_completed=journey_completed,
        )

    def override_position(self, progress: ProgressSnapshot, level_id: int | None = None, quest_number: int | None = None) -> ProgressSnapshot:
        """
        Manual pointer move. The level may only stay or go up, and only to a level
        whose predecessors are fully completed. Inside the target level the
        pointer may go back freely but never ahead of an uncompleted quest.
        """
        new_level = progress.current_level if level_id is None else level_id
        level = self.catalog.get_level(new_level)
        if level is None:
            raise InvalidPositionError(f"Level {new_level} does not exist")
        if new_level < progress.current_level:
            raise InvalidPositionError(
                f"Cannot move back from level {progress.current_level} to level {new_level}"
            )
        missing = [q.id for q in self.catalog.quests_below(new_level) if not progress.has_completed(q.id)]
        if missing:
            raise InvalidPositionError(f"Cannot enter level {new_level}: quests {missing} are not completed")

        if quest_number is None:
            new_quest = progress.current_quest if new_level == progress.current_level else 1
        else:
            new_quest = quest_number
        if new_quest < 1 or new_quest > len(level.quests):
            raise InvalidPositionError(f"Quest {new_quest} does not exist in level {new_level}")
        skipped = self._missing_before(progress, new_level, new_quest)
        if skipped:
            raise InvalidPositionError(
                f"Cannot move to quest {new_quest} of level {new_level}: quests {skipped} are not completed"
            )

        now = as_utc(self._clock())
        streak, last_activity = self._touch(progress, now)
        return dataclasses.replace(
            progress,
            current_level=new_level,
            current_quest=new_quest,
            streak_days=streak,
            last_activity_at=last_activity,
        )
