# lfa_studio/studio_service.py
"""
Orchestration of the studio use cases: projects, quest completion with its
gamification side effects, component edits and design validation.

Every collaborator is injected; the service holds no per-project state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from lfa_studio.component_store import ComponentSnapshot, ComponentStore, ProjectPage, ProjectSnapshot, VersionEntry
from lfa_studio.exceptions import PreconditionError
from lfa_studio.gamification_ledger import GamificationLedger
from lfa_studio.journey import DEFAULT_CATALOG, POINTS_CONFIG, JourneyCatalog, PointsConfig, Quest
from lfa_studio.lfa_types import ProjectStatus, ProjectTheme
from lfa_studio.progress_tracker import ProgressSnapshot, ProgressTracker
from lfa_studio.project_extraction import build_assessment_input
from lfa_studio.validation_aggregator import ValidationAggregator, parse_validation_type

logger = logging.getLogger("lfa_studio.service")

FIRST_QUEST_BADGE = "FIRST_STEPS"
STREAK_BADGE = "STREAK_WEEK"
DEGRADED_WARNING = "AI review is temporarily degraded. Some checks fell back to default results."
MIN_TITLE_LENGTH = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_enum(enum_cls, value, what: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise PreconditionError(f"Unknown {what} {value!r}")


def quest_to_dict(quest: Quest | None) -> dict | None:
    if quest is None:
        return None
    return {
        "id": quest.id,
        "levelId": quest.level_id,
        "questNumber": quest.quest_number,
        "title": quest.title,
        "description": quest.description,
        "componentType": quest.component_type.value,
        "pointsReward": quest.points_reward,
        "estimatedMinutes": quest.estimated_minutes,
        "icon": quest.icon,
        "instructions": list(quest.instructions),
    }


@dataclass(frozen=True)
class QuestOutcome:
    progress: ProgressSnapshot
    quest: Quest
    points_awarded: int
    already_completed: bool
    level_completed: int | None = None
    journey_completed: bool = False
    badges_earned: list[str] = field(default_factory=list)
    streak_bonus: int = 0
    user_points: int | None = None
    next_quest: Quest | None = None

    def to_dict(self) -> dict:
        return {
            "progress": self.progress.to_dict(),
            "questId": self.quest.id,
            "pointsAwarded": self.points_awarded,
            "alreadyCompleted": self.already_completed,
            "levelCompleted": self.level_completed,
            "journeyCompleted": self.journey_completed,
            "badgesEarned": list(self.badges_earned),
            "streakBonus": self.streak_bonus,
            "userPoints": self.user_points,
            "nextQuest": quest_to_dict(self.next_quest),
        }


class StudioService:
    def __init__(
        self,
        store: ComponentStore,
        aggregator: ValidationAggregator | None = None,
        *,
        catalog: JourneyCatalog | None = None,
        tracker: ProgressTracker | None = None,
        points_config: PointsConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.catalog = catalog or DEFAULT_CATALOG
        self.tracker = tracker or ProgressTracker(self.catalog, clock=clock)
        self.points_config = points_config or POINTS_CONFIG
        self._clock = clock

    # -----------------------
    # Projects
    # -----------------------

    def _clean_title(self, title: str | None) -> str:
        cleaned = (title or "").strip()
        if len(cleaned) < MIN_TITLE_LENGTH:
            raise PreconditionError(f"Title must be at least {MIN_TITLE_LENGTH} characters")
        return cleaned

    def create_project(
        self,
        title: str,
        theme: str | ProjectTheme,
        geography: dict | None = None,
        user_id: str | None = None,
        impact: str | None = None,
    ) -> ProjectSnapshot:
        return self.store.create_project(
            title=self._clean_title(title),
            theme=_parse_enum(ProjectTheme, theme, "project theme"),
            geography=geography,
            created_by_id=user_id,
            impact=impact,
        )

    def update_project(
        self,
        project_id: str,
        title: str | None = None,
        theme: str | ProjectTheme | None = None,
        status: str | ProjectStatus | None = None,
        geography: dict | None = None,
        impact: str | None = None,
    ) -> ProjectSnapshot:
        if geography is not None and not isinstance(geography, dict):
            raise PreconditionError("Geography must be an object")
        return self.store.update_project(
            project_id,
            title=self._clean_title(title) if title is not None else None,
            theme=_parse_enum(ProjectTheme, theme, "project theme") if theme is not None else None,
            status=_parse_enum(ProjectStatus, status, "project status") if status is not None else None,
            geography=geography,
            impact=impact,
        )

    def delete_project(self, project_id: str) -> None:
        self.store.delete_project(project_id)

    def get_project(self, project_id: str) -> dict:
        """Project header, its components and its progress in one payload."""
        project = self.store.get_project(project_id)
        components = self.store.get_components(project_id)
        progress = self.store.get_progress(project_id)
        return {
            **project.to_dict(),
            "components": [c.to_dict() for c in components],
            "progress": progress.to_dict(),
        }

    def list_projects(self, **filters: Any) -> ProjectPage:
        return self.store.list_projects(**filters)

    # -----------------------
    # Progress
    # -----------------------

    def get_progress(self, project_id: str) -> ProgressSnapshot:
        return self.store.get_progress(project_id)

    def _ledger_for(self, user_id: str | None) -> GamificationLedger | None:
        if not user_id:
            return None
        return GamificationLedger(
            self.store.load_ledger(user_id),
            badges=self.catalog.badges,
            points_config=self.points_config,
            clock=self._clock,
        )

    def complete_quest(self, project_id: str, level_id: int, quest_id: str, user_id: str | None = None) -> QuestOutcome:
        """
        Mark a quest complete and persist the new progress together with the
        caller's ledger (points, level/first-quest/streak badges, day streak).
        """
        progress = self.store.get_progress(project_id)
        ledger = self._ledger_for(user_id)
        completion = self.tracker.complete_quest(progress, level_id, quest_id, ledger=ledger)

        if ledger is not None:
            if not completion.already_completed:
                ledger.award_badge(FIRST_QUEST_BADGE)
                if completion.level_completed is not None:
                    ledger.award_badge(self.catalog.get_level(completion.level_completed).badge.id)
            ledger.update_streak()
            week = self.catalog.get_badge(STREAK_BADGE)
            if week is not None and ledger.streak_days >= week.threshold:
                ledger.award_badge(STREAK_BADGE)

        saved = self.store.save_quest_completion(
            project_id, completion.progress, user_id=user_id, ledger=ledger, points_awarded=completion.points_awarded
        )
        # the save may have dropped a streak bonus another request already took
        streak_bonus = ledger.streak_bonus_added if ledger is not None else 0
        badges = [b.badge_id for b in ledger.newly_awarded] if ledger is not None else []
        if completion.journey_completed:
            logger.info("Project %s finished the journey", project_id)
        return QuestOutcome(
            progress=saved,
            quest=completion.quest,
            points_awarded=completion.points_awarded,
            already_completed=completion.already_completed,
            level_completed=completion.level_completed,
            journey_completed=completion.journey_completed,
            badges_earned=badges,
            streak_bonus=streak_bonus,
            user_points=ledger.total_points if ledger is not None else None,
            next_quest=self.tracker.quest_at_pointer(saved),
        )

    def override_position(
        self, project_id: str, level_id: int | None = None, quest_number: int | None = None
    ) -> ProgressSnapshot:
        progress = self.store.get_progress(project_id)
        updated = self.tracker.override_position(progress, level_id=level_id, quest_number=quest_number)
        logger.info(
            "Project %s pointer moved to level %d quest %d", project_id, updated.current_level, updated.current_quest
        )
        return self.store.save_progress(project_id, updated)

    def get_journey_map(self, project_id: str) -> dict:
        progress = self.store.get_progress(project_id)
        levels = []
        for lvl in self.catalog.levels:
            pct = progress.level_progress.get(lvl.level, 0)
            if pct == 100:
                level_status = "completed"
            elif lvl.level == progress.current_level:
                level_status = "current"
            elif lvl.level < progress.current_level:
                level_status = "completed"
            else:
                level_status = "locked"
            levels.append({
                "level": lvl.level,
                "name": lvl.name,
                "description": lvl.description,
                "icon": lvl.icon,
                "badge": {"id": lvl.badge.id, "name": lvl.badge.name, "icon": lvl.badge.icon},
                "progress": pct,
                "status": level_status,
                "quests": [
                    {**quest_to_dict(q), "status": self.tracker.quest_status(progress, lvl.level, q.id)}
                    for q in lvl.quests
                ],
            })
        return {
            "projectId": project_id,
            "currentLevel": progress.current_level,
            "currentQuest": progress.current_quest,
            "journeyPercentage": self.tracker.journey_percentage(progress),
            "isComplete": self.tracker.is_terminal(progress),
            "nextQuest": quest_to_dict(self.tracker.quest_at_pointer(progress)),
            "levels": levels,
        }

    # -----------------------
    # Components
    # -----------------------

    def get_components(self, project_id: str) -> list[ComponentSnapshot]:
        return self.store.get_components(project_id)

    def update_component(
        self,
        project_id: str,
        component_id: str,
        content: Any,
        is_complete: bool | None = None,
        user_id: str | None = None,
        change_summary: str | None = None,
    ) -> dict:
        component, history_written = self.store.update_component(
            project_id, component_id, content, is_complete=is_complete, editor_id=user_id,
            change_summary=change_summary,
        )
        project = self.store.get_project(project_id)
        return {
            "component": component.to_dict(),
            "historyWritten": history_written,
            "completionPercentage": project.completion_percentage,
            "status": project.status,
        }

    def get_version_history(self, project_id: str, component_id: str | None = None) -> list[VersionEntry]:
        return self.store.get_version_history(project_id, component_id)

    # -----------------------
    # Validation
    # -----------------------

    async def validate_project(self, project_id: str, validation_type: str = "full") -> dict:
        if self.aggregator is None:
            raise RuntimeError("StudioService was built without a ValidationAggregator")
        vtype = parse_validation_type(validation_type)
        # store reads are blocking; keep them off the event loop
        project = await asyncio.to_thread(self.store.get_project, project_id)
        components = await asyncio.to_thread(self.store.get_components, project_id)
        assessment_input = build_assessment_input(project, components)
        result = await self.aggregator.run_single(vtype, assessment_input)
        degraded = bool(result.get("degradedChecks"))
        if degraded:
            logger.warning("Validation of project %s degraded: %s", project_id, result["degradedChecks"])
        return {
            "validationType": vtype.value,
            "result": result,
            "degraded": degraded,
            "warning": DEGRADED_WARNING if degraded else None,
            "timestamp": self._clock().isoformat(),
        }
