# lfa_studio/validation_models.py
"""
Result shapes of the four design checks and of the merged validation.

Field names are snake_case in Python and camelCase on the wire. Each check
result has a `fallback()` constructor holding the values shown to the user when
that check could not be performed.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Score = float


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# -----------------------
# Logic chain
# -----------------------

class LogicChainIssue(_WireModel):
    severity: Literal["critical", "high", "medium", "low"]
    component: str = ""
    message: str
    suggestion: str = ""


class LogicChainResult(_WireModel):
    is_valid: bool
    score: Score = Field(ge=0, le=100)
    issues: list[LogicChainIssue] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)

    @classmethod
    def fallback(cls) -> "LogicChainResult":
        return cls(
            is_valid=False,
            score=0,
            issues=[
                LogicChainIssue(
                    severity="critical",
                    component="activity-output",
                    message="AI validation failed. Please review manually.",
                    suggestion="Check API configuration or try again.",
                )
            ],
            strengths=[],
        )


# -----------------------
# SMART
# -----------------------

SMART_DIMENSIONS = ("specific", "measurable", "achievable", "relevant", "time_bound")


class SmartDimension(_WireModel):
    score: Score = Field(ge=0, le=100)
    feedback: str = ""


class SmartDimensions(_WireModel):
    specific: SmartDimension
    measurable: SmartDimension
    achievable: SmartDimension
    relevant: SmartDimension
    time_bound: SmartDimension

    def mean_score(self) -> float:
        return sum(getattr(self, name).score for name in SMART_DIMENSIONS) / len(SMART_DIMENSIONS)


class SmartResult(_WireModel):
    statement: str = ""
    score: Score = Field(ge=0, le=100)
    dimensions: SmartDimensions
    improved_version: str = ""
    confidence: Score = Field(default=0, ge=0, le=100)

    @model_validator(mode="before")
    @classmethod
    def _score_from_dimensions(cls, data: Any) -> Any:
        # some models leave out the overall score; it is the dimension average
        if isinstance(data, dict) and data.get("score") is None and isinstance(data.get("dimensions"), dict):
            try:
                dims = SmartDimensions.model_validate(data["dimensions"])
            except ValueError:
                return data
            data = {**data, "score": dims.mean_score()}
        return data

    @classmethod
    def fallback(cls, statement: str) -> "SmartResult":
        failed = SmartDimension(score=0, feedback="Validation failed")
        return cls(
            statement=statement,
            score=0,
            dimensions=SmartDimensions(
                specific=failed,
                measurable=failed,
                achievable=failed,
                relevant=failed,
                time_bound=failed,
            ),
            improved_version=statement,
            confidence=0,
        )


# -----------------------
# Contextual suggestions
# -----------------------

class Suggestion(_WireModel):
    category: str
    title: str
    description: str = ""
    rationale: str = ""
    examples: list[str] = Field(default_factory=list)


class ContextSuggestion(_WireModel):
    suggestions: list[Suggestion] = Field(default_factory=list)
    relevant_patterns: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def fallback(cls) -> "ContextSuggestion":
        return cls(
            suggestions=[],
            relevant_patterns=[],
            warnings=["AI suggestions unavailable. Please proceed manually."],
        )


# -----------------------
# Quality
# -----------------------

Readiness = Literal["draft", "needs-work", "review-ready", "funder-ready"]


class QualityDimensionScores(_WireModel):
    problem_clarity: Score = Field(default=0, ge=0, le=100)
    logic_coherence: Score = Field(default=0, ge=0, le=100)
    stakeholder_coverage: Score = Field(default=0, ge=0, le=100)
    measurement_quality: Score = Field(default=0, ge=0, le=100)
    feasibility: Score = Field(default=0, ge=0, le=100)


class QualityAssessment(_WireModel):
    overall_score: Score = Field(ge=0, le=100)
    readiness: Readiness
    dimension_scores: QualityDimensionScores = Field(default_factory=QualityDimensionScores)
    top_strengths: list[str] = Field(default_factory=list)
    critical_gaps: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    estimated_review_time: str = ""

    @classmethod
    def fallback(cls) -> "QualityAssessment":
        return cls(
            overall_score=0,
            readiness="draft",
            dimension_scores=QualityDimensionScores(),
            top_strengths=[],
            critical_gaps=["Assessment failed. Please review manually."],
            next_steps=["Retry validation or proceed with manual review."],
            estimated_review_time="Unknown",
        )


# -----------------------
# Merged result
# -----------------------

RECOMMENDATIONS: dict[str, str] = {
    "funder-ready": "Funder-Ready: This design is strong and ready for submission.",
    "review-ready": "Review-Ready: Good foundation, but address critical gaps before submitting.",
    "needs-work": "Needs Work: Core elements are present but require significant refinement.",
    "draft": "Draft Stage: Continue working through the journey to strengthen the design.",
}


def readiness_for_score(score: float) -> str:
    if score >= 85:
        return "funder-ready"
    if score >= 70:
        return "review-ready"
    if score >= 50:
        return "needs-work"
    return "draft"


def recommendation_for_score(score: float) -> str:
    return RECOMMENDATIONS[readiness_for_score(score)]


class ComprehensiveValidation(_WireModel):
    timestamp: datetime
    logic_chain: LogicChainResult
    smart_validation: list[SmartResult]
    contextual_advice: ContextSuggestion
    quality_assessment: QualityAssessment
    overall_recommendation: str
    avg_smart_score: float = 0
    # names of checks that fell back to their local default
    degraded_checks: list[str] = Field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_checks)


class ProjectAssessmentInput(_WireModel):
    """Everything the four checks read, extracted from a project's components."""

    id: str
    theme: str
    problem: str = ""
    activities: list[str] = Field(default_factory=list)
    outputs: list[str] = Field(default_factory=list)
    outcomes: list[str] = Field(default_factory=list)
    impact: str = ""
    stakeholders: list[dict[str, Any]] = Field(default_factory=list)
    indicators: list[dict[str, Any]] = Field(default_factory=list)
    geography: str = ""
    timeline: str = "12 months"
