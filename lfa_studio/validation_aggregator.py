# lfa_studio/validation_aggregator.py
"""
Runs the four design checks concurrently and merges them into one
ComprehensiveValidation.

A check that raises, or whose response does not fit its result model, is
replaced by that check's fallback and named in `degraded_checks`. Nothing an
assessor does is ever raised to the caller.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Protocol, TypeVar

from pydantic import BaseModel

from lfa_studio.exceptions import InvalidValidationTypeError
from lfa_studio.lfa_types import ValidationType
from lfa_studio.validation_models import (
    ComprehensiveValidation,
    ContextSuggestion,
    LogicChainResult,
    ProjectAssessmentInput,
    QualityAssessment,
    SmartResult,
    recommendation_for_score,
)

logger = logging.getLogger("lfa_studio.validation")

M = TypeVar("M", bound=BaseModel)

CHECK_LOGIC = "logic_chain"
CHECK_SMART = "smart_validation"
CHECK_SUGGESTIONS = "contextual_advice"
CHECK_QUALITY = "quality_assessment"


class Assessor(Protocol):
    async def assess_logic_chain(
        self, activities: list[str], outputs: list[str], outcomes: list[str], impact: str
    ) -> Mapping[str, Any]: ...

    async def assess_smart(self, statement: str, context: Mapping[str, str]) -> Mapping[str, Any]: ...

    async def suggest_context(
        self, theme: str, problem: str, geography: str, stakeholders: list[str]
    ) -> Mapping[str, Any]: ...

    async def assess_quality(self, project: ProjectAssessmentInput) -> Mapping[str, Any]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def average_smart_score(results: list[SmartResult]) -> float:
    if not results:
        return 0
    return sum(r.score for r in results) / len(results)


def parse_validation_type(validation_type) -> ValidationType:
    try:
        return ValidationType(validation_type)
    except ValueError:
        raise InvalidValidationTypeError(validation_type)


class ValidationAggregator:
    def __init__(self, assessor: Assessor, clock: Callable[[], datetime] = _utcnow) -> None:
        self.assessor = assessor
        self._clock = clock

    async def _guarded(
        self,
        check: str,
        call: Callable[[], Awaitable[Mapping[str, Any]]],
        model: type[M],
        fallback: Callable[[], M],
        degraded: list[str],
        **extra: Any,
    ) -> M:
        try:
            raw = await call()
            if not isinstance(raw, Mapping):
                raise ValueError(f"{check} returned {type(raw).__name__}, expected an object")
            return model.model_validate({**raw, **extra})
        except Exception as e:
            # ValidationError included: a malformed answer counts as a failed check
            logger.warning("[VALIDATION] %s check fell back to default: %s", check, e)
            if check not in degraded:
                degraded.append(check)
            return fallback()

    # -----------------------
    # Individual checks
    # -----------------------

    async def _logic_chain(self, project: ProjectAssessmentInput, degraded: list[str]) -> LogicChainResult:
        return await self._guarded(
            CHECK_LOGIC,
            lambda: self.assessor.assess_logic_chain(
                project.activities, project.outputs, project.outcomes, project.impact
            ),
            LogicChainResult,
            LogicChainResult.fallback,
            degraded,
        )

    async def _smart(self, project: ProjectAssessmentInput, degraded: list[str]) -> list[SmartResult]:
        context = {"theme": project.theme, "geography": project.geography, "timeline": project.timeline}

        def one(statement: str) -> Awaitable[SmartResult]:
            return self._guarded(
                CHECK_SMART,
                lambda: self.assessor.assess_smart(statement, context),
                SmartResult,
                lambda: SmartResult.fallback(statement),
                degraded,
                statement=statement,
            )

        return list(await asyncio.gather(*(one(s) for s in project.outcomes)))

    async def _suggestions(self, project: ProjectAssessmentInput, degraded: list[str]) -> ContextSuggestion:
        stakeholders = [
            str(s.get("type") or s.get("name") or "") for s in project.stakeholders if isinstance(s, Mapping)
        ]
        return await self._guarded(
            CHECK_SUGGESTIONS,
            lambda: self.assessor.suggest_context(project.theme, project.problem, project.geography, stakeholders),
            ContextSuggestion,
            ContextSuggestion.fallback,
            degraded,
        )

    async def _quality(self, project: ProjectAssessmentInput, degraded: list[str]) -> QualityAssessment:
        return await self._guarded(
            CHECK_QUALITY,
            lambda: self.assessor.assess_quality(project),
            QualityAssessment,
            QualityAssessment.fallback,
            degraded,
        )

    # -----------------------
    # Entry points
    # -----------------------

    async def run_comprehensive(self, project: ProjectAssessmentInput) -> ComprehensiveValidation:
        logger.info("[VALIDATION] Starting validation for project %s", project.id)
        degraded: list[str] = []
        logic_chain, smart, suggestions, quality = await asyncio.gather(
            self._logic_chain(project, degraded),
            self._smart(project, degraded),
            self._suggestions(project, degraded),
            self._quality(project, degraded),
        )
        result = ComprehensiveValidation(
            timestamp=self._clock(),
            logic_chain=logic_chain,
            smart_validation=smart,
            contextual_advice=suggestions,
            quality_assessment=quality,
            overall_recommendation=recommendation_for_score(quality.overall_score),
            avg_smart_score=average_smart_score(smart),
            degraded_checks=sorted(degraded),
        )
        logger.info(
            "[VALIDATION] Project %s: quality %.0f, avg SMART %.1f, degraded=%s",
            project.id, quality.overall_score, result.avg_smart_score, result.degraded_checks or "none",
        )
        return result

    async def run_single(self, validation_type: str | ValidationType, project: ProjectAssessmentInput) -> dict:
        """
        Run one check (or all of them for "full") and return its wire shape.
        The result always carries `degradedChecks` so callers can show the soft warning.
        """
        vtype = parse_validation_type(validation_type)

        if vtype is ValidationType.FULL:
            return (await self.run_comprehensive(project)).to_wire()

        degraded: list[str] = []
        if vtype is ValidationType.LOGIC:
            payload = (await self._logic_chain(project, degraded)).to_wire()
        elif vtype is ValidationType.SMART:
            results = await self._smart(project, degraded)
            payload = {
                "results": [r.to_wire() for r in results],
                "avgSmartScore": average_smart_score(results),
            }
        elif vtype is ValidationType.SUGGESTIONS:
            payload = (await self._suggestions(project, degraded)).to_wire()
        else:
            payload = (await self._quality(project, degraded)).to_wire()
        return {**payload, "degradedChecks": degraded}
