import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lfa_studio.component_store import ComponentStore  # noqa: E402
from lfa_studio.entities import Base  # noqa: E402


class FixedClock:
    """Callable clock that only moves when a test tells it to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class FakeAssessor:
    """Assessor double: canned answers per check, or an exception to raise."""

    def __init__(self, logic=None, smart=None, suggestions=None, quality=None) -> None:
        self.logic = logic if logic is not None else {"isValid": True, "score": 80, "issues": [], "strengths": ["clear"]}
        self.smart = smart if smart is not None else {}
        self.suggestions = suggestions if suggestions is not None else {
            "suggestions": [], "relevantPatterns": ["TaRL"], "warnings": []
        }
        self.quality = quality if quality is not None else {"overallScore": 72, "readiness": "review-ready"}
        self.calls: list[str] = []

    @staticmethod
    def _answer(value, *args):
        if isinstance(value, Exception):
            raise value
        if callable(value):
            return value(*args)
        return value

    async def assess_logic_chain(self, activities, outputs, outcomes, impact):
        self.calls.append("logic")
        return self._answer(self.logic, activities, outputs, outcomes, impact)

    async def assess_smart(self, statement, context):
        self.calls.append("smart")
        if isinstance(self.smart, dict) and statement in self.smart:
            return self._answer(self.smart[statement], statement)
        return self._answer(_smart_answer(75), statement)

    async def suggest_context(self, theme, problem, geography, stakeholders):
        self.calls.append("suggestions")
        return self._answer(self.suggestions, theme, problem, geography, stakeholders)

    async def assess_quality(self, project):
        self.calls.append("quality")
        return self._answer(self.quality, project)


def _smart_answer(score: float) -> dict:
    dim = {"score": score, "feedback": "ok"}
    return {
        "score": score,
        "dimensions": {
            "specific": dim, "measurable": dim, "achievable": dim, "relevant": dim, "timeBound": dim,
        },
        "improvedVersion": "better",
        "confidence": 60,
    }


@pytest.fixture
def smart_answer():
    return _smart_answer


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def store(session_factory, clock) -> ComponentStore:
    return ComponentStore(session_factory, clock=clock)


@pytest.fixture
def make_assessor():
    return FakeAssessor
