# lfa_studio/completion_calculator.py

import math
from typing import Iterable

from lfa_studio.lfa_types import ProjectStatus


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; 12.5 must become 13 here.
    return int(math.floor(value + 0.5))


def percentage(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * done / total)


def _is_complete(component) -> bool:
    if isinstance(component, dict):
        return bool(component.get("is_complete", component.get("isComplete", False)))
    return bool(getattr(component, "is_complete", False))


def completion_percentage(components: Iterable) -> int:
    """
    Share of components flagged complete, 0..100.
    Accepts ORM rows, snapshots or plain dicts carrying an is_complete flag.
    """
    items = list(components)
    done = sum(1 for c in items if _is_complete(c))
    return percentage(done, len(items))


def status_for_percentage(pct: int) -> ProjectStatus:
    return ProjectStatus.COMPLETE if pct == 100 else ProjectStatus.IN_PROGRESS
