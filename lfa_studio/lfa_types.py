# lfa_studio/lfa_types.py

from enum import Enum


class ComponentType(str, Enum):
    PROBLEM_DEFINITION = "PROBLEM_DEFINITION"
    IMPACT_VISION = "IMPACT_VISION"
    THEORY_OF_CHANGE = "THEORY_OF_CHANGE"
    STAKEHOLDER_FRAMEWORK = "STAKEHOLDER_FRAMEWORK"
    IMPLEMENTATION_DESIGN = "IMPLEMENTATION_DESIGN"
    MONITORING_EVALUATION = "MONITORING_EVALUATION"


# Created for every project, in this order.
COMPONENT_TYPES: tuple[ComponentType, ...] = tuple(ComponentType)


class ProjectStatus(str, Enum):
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    COMPLETE = "COMPLETE"


class ProjectTheme(str, Enum):
    FLN = "FLN"
    CAREER_READINESS = "CAREER_READINESS"
    SCHOOL_LEADERSHIP = "SCHOOL_LEADERSHIP"
    CUSTOM = "CUSTOM"


class ValidationType(str, Enum):
    FULL = "full"
    LOGIC = "logic"
    SMART = "smart"
    SUGGESTIONS = "suggestions"
    QUALITY = "quality"
