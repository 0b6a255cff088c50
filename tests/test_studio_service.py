import asyncio
import time

import pytest

from lfa_studio.exceptions import InvalidValidationTypeError, NotFoundError, OutOfOrderQuestError, PreconditionError
from lfa_studio.studio_service import DEGRADED_WARNING, StudioService
from lfa_studio.validation_aggregator import ValidationAggregator

LEVEL_ONE_TO_THREE = [
    (1, "vision"), (1, "geography"), (1, "context"),
    (2, "stakeholder-map"), (2, "power-analysis"), (2, "engagement"),
    (3, "goal"),
]


@pytest.fixture
def service(store, clock, make_assessor) -> StudioService:
    return StudioService(store, ValidationAggregator(make_assessor(), clock=clock), clock=clock)


@pytest.fixture
def project(service):
    return service.create_project("Reading for All", "FLN", {"state": "Bihar"}, user_id="u1")


def test_create_project_checks_title_and_theme(service) -> None:
    with pytest.raises(PreconditionError):
        service.create_project("   ", "FLN")
    with pytest.raises(PreconditionError):
        service.create_project(" ab ", "FLN")
    with pytest.raises(PreconditionError):
        service.create_project("Numeracy", "ASTRONOMY")

    created = service.create_project("  Numeracy  ", "CUSTOM")
    assert created.title == "Numeracy"
    assert created.theme == "CUSTOM"


def test_update_project_validates_fields(service, project) -> None:
    with pytest.raises(PreconditionError):
        service.update_project(project.id, title="ab")
    with pytest.raises(PreconditionError):
        service.update_project(project.id, status="ARCHIVED")
    with pytest.raises(PreconditionError):
        service.update_project(project.id, theme="ASTRONOMY")
    with pytest.raises(PreconditionError):
        service.update_project(project.id, geography="Bihar")

    updated = service.update_project(
        project.id, title=" Reading Together ", status="REVIEW", geography={"state": "Bihar", "districts": ["Gaya"]}
    )
    assert updated.title == "Reading Together"
    assert updated.status == "REVIEW"
    assert updated.geography == {"state": "Bihar", "districts": ["Gaya"]}


def test_delete_project(service, project) -> None:
    service.complete_quest(project.id, 1, "vision", user_id="u1")
    service.delete_project(project.id)
    with pytest.raises(NotFoundError):
        service.get_project(project.id)
    # the user's ledger outlives the project
    assert service.store.load_ledger("u1").total_points == 150


def test_get_project_bundles_components_and_progress(service, project) -> None:
    data = service.get_project(project.id)
    assert data["title"] == "Reading for All"
    assert len(data["components"]) == 6
    assert data["progress"]["currentLevel"] == 1


def test_first_quest_awards_points_and_first_steps(service, project) -> None:
    outcome = service.complete_quest(project.id, 1, "vision", user_id="u1")

    assert outcome.points_awarded == 100
    assert outcome.badges_earned == ["FIRST_STEPS"]
    # quest points plus the badge bonus
    assert outcome.user_points == 150
    assert outcome.next_quest.id == "geography"
    assert outcome.to_dict()["nextQuest"]["questNumber"] == 2


def test_finishing_a_level_awards_its_badge(service, project) -> None:
    for level_id, quest_id in LEVEL_ONE_TO_THREE[:2]:
        service.complete_quest(project.id, level_id, quest_id, user_id="u1")

    outcome = service.complete_quest(project.id, 1, "context", user_id="u1")

    assert outcome.level_completed == 1
    assert outcome.badges_earned == ["PROBLEM_EXPLORER"]
    assert outcome.user_points == 100 + 50 + 50 + 100 + 50
    assert (outcome.progress.current_level, outcome.progress.current_quest) == (2, 1)


def test_out_of_order_completion_changes_nothing(service, project) -> None:
    with pytest.raises(OutOfOrderQuestError):
        service.complete_quest(project.id, 1, "context", user_id="u1")
    progress = service.get_progress(project.id)
    assert progress.completed_quests == ()
    assert service.store.load_ledger("u1").total_points == 0


def test_repeat_completion_awards_nothing(service, project) -> None:
    service.complete_quest(project.id, 1, "vision", user_id="u1")
    again = service.complete_quest(project.id, 1, "vision", user_id="u1")
    assert again.already_completed
    assert again.points_awarded == 0
    assert again.badges_earned == []
    assert again.user_points == 150


def test_anonymous_completion_moves_the_pointer_only(service, project) -> None:
    outcome = service.complete_quest(project.id, 1, "vision")
    assert outcome.user_points is None
    assert outcome.badges_earned == []
    assert service.get_progress(project.id).current_quest == 2


def test_week_of_daily_work_earns_streak_badge(service, project, clock) -> None:
    outcomes = []
    for level_id, quest_id in LEVEL_ONE_TO_THREE:
        outcomes.append(service.complete_quest(project.id, level_id, quest_id, user_id="u1"))
        clock.advance(days=1)

    assert outcomes[2].streak_bonus == 25
    assert outcomes[-1].streak_bonus == 75
    assert "STREAK_WEEK" in outcomes[-1].badges_earned
    assert service.store.load_ledger("u1").streak_days == 7


def test_override_position_is_persisted(service, project) -> None:
    for level_id, quest_id in LEVEL_ONE_TO_THREE[:2]:
        service.complete_quest(project.id, level_id, quest_id, user_id="u1")
    moved = service.override_position(project.id, quest_number=1)
    assert (moved.current_level, moved.current_quest) == (1, 1)
    assert service.get_progress(project.id).current_quest == 1


def test_override_position_cannot_skip_open_quests(service, project) -> None:
    with pytest.raises(PreconditionError):
        service.override_position(project.id, quest_number=3)
    assert service.get_progress(project.id).current_quest == 1


def test_journey_map(service, project) -> None:
    service.complete_quest(project.id, 1, "vision", user_id="u1")
    journey = service.get_journey_map(project.id)

    assert journey["journeyPercentage"] == 7
    assert journey["isComplete"] is False
    assert journey["nextQuest"]["id"] == "geography"
    first, second = journey["levels"][:2]
    assert first["status"] == "current"
    assert first["progress"] == 33
    assert [q["status"] for q in first["quests"]] == ["completed", "current", "locked"]
    assert second["status"] == "locked"


def test_update_component_reports_completion(service, project) -> None:
    component = service.get_components(project.id)[0]
    result = service.update_component(project.id, component.id, {"description": "Low FLN"}, is_complete=True,
                                      user_id="u1", change_summary="first draft")
    assert result["historyWritten"] is True
    assert result["completionPercentage"] == 17
    assert result["status"] == "IN_PROGRESS"
    history = service.get_version_history(project.id, component.id)
    assert history[0].change_summary == "first draft"


def test_validate_project_runs_the_checks(service, project) -> None:
    toc = next(c for c in service.get_components(project.id) if c.component_type == "THEORY_OF_CHANGE")
    service.update_component(project.id, toc.id, {"outcomes": ["Children read fluently"]})

    result = asyncio.run(service.validate_project(project.id))

    assert result["validationType"] == "full"
    assert result["degraded"] is False
    assert result["result"]["avgSmartScore"] == 75
    assert result["result"]["qualityAssessment"]["readiness"] == "review-ready"


def test_validate_project_rejects_bad_type_before_loading(service) -> None:
    with pytest.raises(InvalidValidationTypeError):
        asyncio.run(service.validate_project("no-such-project", "everything"))
    with pytest.raises(NotFoundError):
        asyncio.run(service.validate_project("no-such-project", "logic"))


class SlowReadStore:
    """Store wrapper whose component reads hold their thread for `delay` seconds."""

    def __init__(self, inner, delay: float) -> None:
        self._inner = inner
        self._delay = delay

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def get_components(self, project_id):
        time.sleep(self._delay)
        return self._inner.get_components(project_id)


def test_validate_project_keeps_the_event_loop_free(store, clock, make_assessor, project) -> None:
    slow = StudioService(SlowReadStore(store, 0.3), ValidationAggregator(make_assessor(), clock=clock), clock=clock)

    async def run():
        ticks = 0

        async def heartbeat():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.02)
                ticks += 1

        beat = asyncio.create_task(heartbeat())
        try:
            result = await slow.validate_project(project.id, "quality")
        finally:
            beat.cancel()
        return result, ticks

    result, ticks = asyncio.run(run())
    assert result["result"]["overallScore"] == 72
    # a blocking read would freeze the heartbeat for the whole delay
    assert ticks >= 5


def test_degraded_validation_carries_a_warning(store, clock, make_assessor, project) -> None:
    failing = StudioService(
        store, ValidationAggregator(make_assessor(quality=RuntimeError("vertex down")), clock=clock), clock=clock
    )
    result = asyncio.run(failing.validate_project(project.id, "quality"))
    assert result["degraded"] is True
    assert result["warning"] == DEGRADED_WARNING
    assert result["result"]["degradedChecks"] == ["quality_assessment"]


def test_clean_validation_has_no_warning(service, project) -> None:
    result = asyncio.run(service.validate_project(project.id, "logic"))
    assert result["degraded"] is False
    assert result["warning"] is None
