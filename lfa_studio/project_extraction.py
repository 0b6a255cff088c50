# lfa_studio/project_extraction.py
"""Flatten a project and its six components into the input of the design checks."""

import json
import logging
from typing import Iterable

from lfa_studio.component_content import (
    ImpactVisionContent,
    ImplementationDesignContent,
    MonitoringEvaluationContent,
    ProblemDefinitionContent,
    StakeholderFrameworkContent,
    TheoryOfChangeContent,
    parse_component_content,
)
from lfa_studio.exceptions import InvalidComponentContentError
from lfa_studio.lfa_types import ComponentType
from lfa_studio.validation_models import ProjectAssessmentInput

logger = logging.getLogger("lfa_studio.validation")

DEFAULT_IMPACT = "Improved student learning outcomes"
DEFAULT_TIMELINE = "12 months"


def _text(item) -> str:
    if isinstance(item, str):
        return item.strip()
    return (getattr(item, "description", "") or "").strip()


def _parsed(components: Iterable, component_type: ComponentType, schema):
    for c in components:
        if getattr(c.component_type, "value", c.component_type) != component_type.value:
            continue
        try:
            return parse_component_content(component_type, c.content)
        except InvalidComponentContentError as e:
            # stored before the schema tightened; validate what we can
            logger.warning("Skipping unreadable %s content: %s", component_type.value, e.details)
            break
    return schema()


def build_assessment_input(project, components) -> ProjectAssessmentInput:
    """
    `project` is a ProjectSnapshot (or anything with id/theme/geography/impact),
    `components` its component snapshots.
    """
    components = list(components)
    problem: ProblemDefinitionContent = _parsed(components, ComponentType.PROBLEM_DEFINITION, ProblemDefinitionContent)
    vision: ImpactVisionContent = _parsed(components, ComponentType.IMPACT_VISION, ImpactVisionContent)
    toc: TheoryOfChangeContent = _parsed(components, ComponentType.THEORY_OF_CHANGE, TheoryOfChangeContent)
    stakeholders: StakeholderFrameworkContent = _parsed(
        components, ComponentType.STAKEHOLDER_FRAMEWORK, StakeholderFrameworkContent
    )
    design: ImplementationDesignContent = _parsed(
        components, ComponentType.IMPLEMENTATION_DESIGN, ImplementationDesignContent
    )
    monitoring: MonitoringEvaluationContent = _parsed(
        components, ComponentType.MONITORING_EVALUATION, MonitoringEvaluationContent
    )

    activities = [t for t in (_text(a) for a in design.activities) if t]
    outputs = [t for t in (_text(o) for o in toc.outputs) if t]
    if not outputs:
        outputs = [a.output.strip() for a in design.activities if not isinstance(a, str) and a.output.strip()]

    impact = vision.impact.strip() or (getattr(project, "impact", None) or "").strip() or DEFAULT_IMPACT
    geography = getattr(project, "geography", None) or {}

    return ProjectAssessmentInput(
        id=str(project.id),
        theme=str(getattr(project.theme, "value", project.theme)),
        problem=problem.description.strip(),
        activities=activities,
        outputs=outputs,
        outcomes=[t for t in (_text(o) for o in toc.outcomes) if t],
        impact=impact,
        stakeholders=[s.model_dump(by_alias=True) for s in stakeholders.stakeholders],
        indicators=[i.model_dump(by_alias=True) for i in monitoring.indicators],
        geography=json.dumps(geography, sort_keys=True),
        timeline=design.timeline.strip() or DEFAULT_TIMELINE,
    )
