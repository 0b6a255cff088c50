import pytest

from lfa_studio.completion_calculator import completion_percentage, percentage, round_half_up, status_for_percentage
from lfa_studio.lfa_types import ProjectStatus


@pytest.mark.parametrize(
    ("k", "expected"),
    [(0, 0), (1, 17), (2, 33), (3, 50), (4, 67), (5, 83), (6, 100)],
)
def test_six_components_with_k_complete(k: int, expected: int) -> None:
    components = [{"isComplete": i < k} for i in range(6)]
    assert completion_percentage(components) == expected


def test_no_components_is_zero() -> None:
    assert completion_percentage([]) == 0
    assert percentage(3, 0) == 0


def test_accepts_objects_and_snake_case_dicts() -> None:
    class Row:
        def __init__(self, done: bool) -> None:
            self.is_complete = done

    assert completion_percentage([Row(True), Row(False)]) == 50
    assert completion_percentage([{"is_complete": True}, {"is_complete": True}]) == 100


def test_half_is_rounded_up() -> None:
    assert round_half_up(12.5) == 13
    assert round_half_up(0.5) == 1
    assert round_half_up(16.49) == 16
    assert percentage(1, 8) == 13


def test_status_is_complete_only_at_100() -> None:
    for pct in range(0, 101):
        expected = ProjectStatus.COMPLETE if pct == 100 else ProjectStatus.IN_PROGRESS
        assert status_for_percentage(pct) is expected


def test_half_done_project_is_in_progress() -> None:
    components = [{"isComplete": flag} for flag in (True, True, True, False, False, False)]
    pct = completion_percentage(components)
    assert pct == 50
    assert status_for_percentage(pct) is ProjectStatus.IN_PROGRESS
