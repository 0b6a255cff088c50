import asyncio

import pytest

from lfa_studio.exceptions import InvalidValidationTypeError
from lfa_studio.llm_client import MaxRetryErrorsException
from lfa_studio.validation_aggregator import ValidationAggregator, average_smart_score
from lfa_studio.validation_models import (
    RECOMMENDATIONS,
    ProjectAssessmentInput,
    SmartResult,
    readiness_for_score,
    recommendation_for_score,
)


def _input(outcomes=("Children read with comprehension", "Teachers run remedial groups")) -> ProjectAssessmentInput:
    return ProjectAssessmentInput(
        id="p1",
        theme="FLN",
        problem="Grade 3 children cannot read grade 1 text",
        activities=["Teacher training"],
        outputs=["200 teachers trained"],
        outcomes=list(outcomes),
        impact="Improved student learning outcomes",
        stakeholders=[{"name": "Teachers", "type": "teacher"}],
        geography='{"state": "Bihar"}',
    )


def test_quality_failure_falls_back_to_draft(clock, make_assessor) -> None:
    assessor = make_assessor(quality=MaxRetryErrorsException("All 3 retry attempts failed."))
    result = asyncio.run(ValidationAggregator(assessor, clock=clock).run_comprehensive(_input()))

    assert result.quality_assessment.overall_score == 0
    assert result.quality_assessment.readiness == "draft"
    assert result.quality_assessment.critical_gaps == ["Assessment failed. Please review manually."]
    assert result.overall_recommendation == RECOMMENDATIONS["draft"]
    # the other checks still came back
    assert result.logic_chain.is_valid is True
    assert result.degraded_checks == ["quality_assessment"]


def test_average_smart_score(clock, make_assessor, smart_answer) -> None:
    assessor = make_assessor(smart={"a": smart_answer(80), "b": smart_answer(60)})
    result = asyncio.run(ValidationAggregator(assessor, clock=clock).run_comprehensive(_input(outcomes=["a", "b"])))
    assert result.avg_smart_score == 70
    assert [r.statement for r in result.smart_validation] == ["a", "b"]


def test_no_outcomes_means_zero_smart_score(clock, make_assessor) -> None:
    assessor = make_assessor()
    result = asyncio.run(ValidationAggregator(assessor, clock=clock).run_comprehensive(_input(outcomes=[])))
    assert result.smart_validation == []
    assert result.avg_smart_score == 0
    assert "smart" not in assessor.calls
    assert average_smart_score([]) == 0


def test_one_failing_outcome_does_not_sink_the_others(clock, make_assessor, smart_answer) -> None:
    assessor = make_assessor(smart={"good": smart_answer(90), "bad": RuntimeError("boom")})
    result = asyncio.run(
        ValidationAggregator(assessor, clock=clock).run_comprehensive(_input(outcomes=["good", "bad"]))
    )
    good, bad = result.smart_validation
    assert good.score == 90
    assert bad.score == 0
    assert bad.improved_version == "bad"
    assert bad.dimensions.time_bound.feedback == "Validation failed"
    assert result.avg_smart_score == 45
    assert result.degraded_checks == ["smart_validation"]


def test_malformed_answers_fall_back(clock, make_assessor) -> None:
    assessor = make_assessor(
        logic={"isValid": "maybe", "score": 400},
        suggestions=["not", "an", "object"],
    )
    result = asyncio.run(ValidationAggregator(assessor, clock=clock).run_comprehensive(_input()))
    assert result.logic_chain.is_valid is False
    assert result.logic_chain.issues[0].message == "AI validation failed. Please review manually."
    assert result.contextual_advice.warnings == ["AI suggestions unavailable. Please proceed manually."]
    assert result.degraded_checks == ["contextual_advice", "logic_chain"]


def test_all_checks_failing_still_returns_a_result(clock, make_assessor) -> None:
    err = RuntimeError("vertex down")
    assessor = make_assessor(logic=err, smart={"x": err}, suggestions=err, quality=err)
    result = asyncio.run(ValidationAggregator(assessor, clock=clock).run_comprehensive(_input(outcomes=["x"])))
    assert result.is_degraded
    assert len(result.degraded_checks) == 4
    assert result.timestamp == clock.now


def test_wire_shape_is_camel_case(clock, make_assessor) -> None:
    result = asyncio.run(ValidationAggregator(make_assessor(), clock=clock).run_comprehensive(_input()))
    wire = result.to_wire()
    assert set(wire) >= {
        "timestamp", "logicChain", "smartValidation", "contextualAdvice",
        "qualityAssessment", "overallRecommendation", "avgSmartScore", "degradedChecks",
    }
    assert "timeBound" in wire["smartValidation"][0]["dimensions"]
    assert wire["overallRecommendation"] == RECOMMENDATIONS["review-ready"]


@pytest.mark.parametrize(
    ("score", "tier"),
    [(100, "funder-ready"), (85, "funder-ready"), (84.9, "review-ready"), (70, "review-ready"),
     (69, "needs-work"), (50, "needs-work"), (49, "draft"), (0, "draft")],
)
def test_recommendation_thresholds(score: float, tier: str) -> None:
    assert readiness_for_score(score) == tier
    assert recommendation_for_score(score) == RECOMMENDATIONS[tier]


def test_smart_score_defaults_to_dimension_mean(smart_answer) -> None:
    raw = smart_answer(0)
    raw.pop("score")
    raw["dimensions"]["specific"] = {"score": 100, "feedback": ""}
    assert SmartResult.model_validate(raw).score == 20


def test_run_single_runs_only_the_selected_check(clock, make_assessor) -> None:
    assessor = make_assessor()
    aggregator = ValidationAggregator(assessor, clock=clock)
    payload = asyncio.run(aggregator.run_single("logic", _input()))
    assert assessor.calls == ["logic"]
    assert payload["score"] == 80
    assert payload["degradedChecks"] == []

    payload = asyncio.run(aggregator.run_single("smart", _input(outcomes=["a"])))
    assert payload["avgSmartScore"] == 75
    assert len(payload["results"]) == 1


def test_run_single_rejects_unknown_type(clock, make_assessor) -> None:
    aggregator = ValidationAggregator(make_assessor(), clock=clock)
    with pytest.raises(InvalidValidationTypeError):
        asyncio.run(aggregator.run_single("vibes", _input()))


class AllChecksInFlight:
    """Assessor wrapper that holds every answer until all four checks have started."""

    CHECKS = {"logic", "smart", "suggestions", "quality"}

    def __init__(self, inner) -> None:
        self.inner = inner
        self.started: set[str] = set()
        self.all_started = asyncio.Event()

    async def _gate(self, check: str) -> None:
        self.started.add(check)
        if self.started >= self.CHECKS:
            self.all_started.set()
        await self.all_started.wait()

    async def assess_logic_chain(self, *args):
        await self._gate("logic")
        return await self.inner.assess_logic_chain(*args)

    async def assess_smart(self, *args):
        await self._gate("smart")
        return await self.inner.assess_smart(*args)

    async def suggest_context(self, *args):
        await self._gate("suggestions")
        return await self.inner.suggest_context(*args)

    async def assess_quality(self, *args):
        await self._gate("quality")
        return await self.inner.assess_quality(*args)


def test_the_four_checks_run_concurrently(clock, make_assessor) -> None:
    async def run():
        gated = AllChecksInFlight(make_assessor())
        # run one check after another and the first gate never opens
        result = await asyncio.wait_for(ValidationAggregator(gated, clock=clock).run_comprehensive(_input()), timeout=2)
        return gated, result

    gated, result = asyncio.run(run())
    assert gated.started == AllChecksInFlight.CHECKS
    assert result.degraded_checks == []
    assert result.quality_assessment.overall_score == 72
