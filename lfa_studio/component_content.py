# lfa_studio/component_content.py
"""
Per-component-type content schemas.

Content is free-form JSON coming from the quest forms, but every component type
has a handful of fields the validation pipeline reads. Those fields are typed
here so malformed content is rejected at the store boundary instead of deep in
the aggregator. Unknown keys are kept as-is.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from lfa_studio.exceptions import InvalidComponentContentError
from lfa_studio.lfa_types import ComponentType


class _Content(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)


class GeographyContent(_Content):
    state: str = ""
    districts: list[str] = Field(default_factory=list)
    blocks: list[str] = Field(default_factory=list)


class ProblemDefinitionContent(_Content):
    description: str = ""
    root_causes: list[str] = Field(default_factory=list)
    evidence: str = ""
    geography: GeographyContent | None = None


class ImpactVisionContent(_Content):
    vision: str = ""
    impact: str = ""
    goal: str = ""


class OutcomeItem(_Content):
    description: str
    stakeholder: str = ""


class OutputItem(_Content):
    description: str


class TheoryOfChangeContent(_Content):
    outcomes: list[OutcomeItem | str] = Field(default_factory=list)
    outputs: list[OutputItem | str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)


class StakeholderItem(_Content):
    name: str = ""
    type: str = ""
    level: str = ""
    role: str = ""
    current_practice: str = ""
    desired_practice: str = ""


class StakeholderFrameworkContent(_Content):
    stakeholders: list[StakeholderItem] = Field(default_factory=list)


class ActivityItem(_Content):
    description: str
    output: str = ""


class ImplementationDesignContent(_Content):
    activities: list[ActivityItem | str] = Field(default_factory=list)
    timeline: str = ""
    risks: list[str] = Field(default_factory=list)


class IndicatorItem(_Content):
    name: str
    indicator_type: str = ""
    measurement_method: str = ""
    frequency: str = ""
    baseline_value: str = ""
    target_value: str = ""


class MonitoringEvaluationContent(_Content):
    indicators: list[IndicatorItem] = Field(default_factory=list)
    means_of_verification: list[str] = Field(default_factory=list)


CONTENT_SCHEMAS: dict[ComponentType, type[_Content]] = {
    ComponentType.PROBLEM_DEFINITION: ProblemDefinitionContent,
    ComponentType.IMPACT_VISION: ImpactVisionContent,
    ComponentType.THEORY_OF_CHANGE: TheoryOfChangeContent,
    ComponentType.STAKEHOLDER_FRAMEWORK: StakeholderFrameworkContent,
    ComponentType.IMPLEMENTATION_DESIGN: ImplementationDesignContent,
    ComponentType.MONITORING_EVALUATION: MonitoringEvaluationContent,
}


def parse_component_content(component_type, content: Any) -> _Content:
    """Validate raw content for its component type; raises InvalidComponentContentError."""
    try:
        ctype = ComponentType(component_type)
    except ValueError:
        raise InvalidComponentContentError(str(component_type), [f"unknown component type {component_type!r}"])
    if content is None:
        content = {}
    if not isinstance(content, dict):
        raise InvalidComponentContentError(ctype.value, ["content must be a JSON object"])
    try:
        return CONTENT_SCHEMAS[ctype].model_validate(content)
    except ValidationError as e:
        details = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise InvalidComponentContentError(ctype.value, details) from e


def validate_component_content(component_type, content: Any) -> dict:
    """Validate and hand back the content exactly as submitted (keys untouched)."""
    parse_component_content(component_type, content)
    return dict(content or {})
