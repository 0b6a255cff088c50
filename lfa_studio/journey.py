# lfa_studio/journey.py
"""
Journey Catalog: the fixed five-level quest map every project walks through.

Built once at import time and never mutated, so any number of concurrent
callers may read it without locking.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from lfa_studio.lfa_types import ComponentType

MAX_LEVEL = 5


@dataclass(frozen=True)
class Badge:
    id: str
    name: str
    description: str
    icon: str
    criteria_type: str = "completion"
    threshold: int = 1


@dataclass(frozen=True)
class Quest:
    id: str
    level_id: int
    quest_number: int
    title: str
    description: str
    component_type: ComponentType
    points_reward: int
    estimated_minutes: int
    icon: str = ""
    instructions: tuple[str, ...] = ()


@dataclass(frozen=True)
class JourneyLevel:
    level: int
    name: str
    description: str
    icon: str
    badge: Badge
    quests: tuple[Quest, ...]

    def quest_ids(self) -> list[str]:
        return [q.id for q in self.quests]

    def find_quest(self, quest_id: str) -> Quest | None:
        for q in self.quests:
            if q.id == quest_id:
                return q
        return None

    def is_last_quest(self, quest: Quest) -> bool:
        return bool(self.quests) and self.quests[-1].id == quest.id


@dataclass(frozen=True)
class PointsConfig:
    badge_earned: int
    # streak length (days) -> bonus points granted when that length is reached
    streak_bonus: Mapping[int, int] = field(default_factory=dict)


class JourneyCatalog:
    """Read-only lookups over an ordered tuple of levels."""

    def __init__(self, levels, badges: Mapping[str, Badge] | None = None) -> None:
        levels = tuple(sorted(levels, key=lambda lvl: lvl.level))
        if not levels:
            raise ValueError("JourneyCatalog needs at least one level")
        expected = list(range(1, len(levels) + 1))
        if [lvl.level for lvl in levels] != expected:
            raise ValueError(f"Journey levels must be numbered {expected}")
        for lvl in levels:
            if [q.quest_number for q in lvl.quests] != list(range(1, len(lvl.quests) + 1)):
                raise ValueError(f"Quests in level {lvl.level} must be numbered from 1 in order")
            if len(set(lvl.quest_ids())) != len(lvl.quests):
                raise ValueError(f"Duplicate quest id in level {lvl.level}")
        self._levels = levels
        self._by_level = {lvl.level: lvl for lvl in levels}
        if badges is None:
            badges = {lvl.badge.id: lvl.badge for lvl in levels}
        self._badges = MappingProxyType(dict(badges))

    @property
    def levels(self) -> tuple[JourneyLevel, ...]:
        return self._levels

    @property
    def max_level(self) -> int:
        return self._levels[-1].level

    @property
    def badges(self) -> Mapping[str, Badge]:
        return self._badges

    def get_level(self, level_id: int) -> JourneyLevel | None:
        return self._by_level.get(level_id)

    def find_quest(self, level_id: int, quest_id: str) -> Quest | None:
        lvl = self.get_level(level_id)
        if lvl is None:
            return None
        return lvl.find_quest(quest_id)

    def quest_at(self, level_id: int, quest_number: int) -> Quest | None:
        lvl = self.get_level(level_id)
        if lvl is None or quest_number < 1 or quest_number > len(lvl.quests):
            return None
        return lvl.quests[quest_number - 1]

    def quests_below(self, level_id: int) -> list[Quest]:
        return [q for lvl in self._levels if lvl.level < level_id for q in lvl.quests]

    def total_quests(self) -> int:
        return sum(len(lvl.quests) for lvl in self._levels)

    def get_badge(self, badge_id: str) -> Badge | None:
        if not badge_id:
            return None
        return self._badges.get(badge_id.upper())


def _quest(level_id, number, quest_id, title, description, component_type, points, minutes, icon, *instructions):
    return Quest(
        id=quest_id,
        level_id=level_id,
        quest_number=number,
        title=title,
        description=description,
        component_type=component_type,
        points_reward=points,
        estimated_minutes=minutes,
        icon=icon,
        instructions=tuple(instructions),
    )


JOURNEY_LEVELS: tuple[JourneyLevel, ...] = (
    JourneyLevel(
        level=1,
        name="Understand the Problem",
        description="Set the vision and ground it in the geography and context you work in.",
        icon="🧭",
        badge=Badge(
            id="PROBLEM_EXPLORER",
            name="Problem Explorer",
            description="Defined the vision, geography and context of the program.",
            icon="🔍",
            threshold=1,
        ),
        quests=(
            _quest(1, 1, "vision", "Program Vision", "Describe the change you want to see.",
                   ComponentType.IMPACT_VISION, 100, 15, "🌅",
                   "Write one sentence describing the world after your program succeeds."),
            _quest(1, 2, "geography", "Geography", "Where will the program run?",
                   ComponentType.PROBLEM_DEFINITION, 50, 10, "🗺️",
                   "Pick the state, districts and blocks you will cover."),
            _quest(1, 3, "context", "Problem Context", "State the problem and its root causes.",
                   ComponentType.PROBLEM_DEFINITION, 100, 20, "📚",
                   "Describe the problem with evidence.", "List the root causes you have observed."),
        ),
    ),
    JourneyLevel(
        level=2,
        name="Map the Stakeholders",
        description="Identify who needs to change and how you will work with them.",
        icon="👥",
        badge=Badge(
            id="STAKEHOLDER_MAPPER",
            name="Stakeholder Mapper",
            description="Mapped stakeholders, their influence and engagement.",
            icon="🤝",
            threshold=2,
        ),
        quests=(
            _quest(2, 1, "stakeholder-map", "Stakeholder Map", "List the actors across the system.",
                   ComponentType.STAKEHOLDER_FRAMEWORK, 100, 20, "🧩"),
            _quest(2, 2, "power-analysis", "Power Analysis", "Who has influence and interest?",
                   ComponentType.STAKEHOLDER_FRAMEWORK, 75, 15, "⚖️"),
            _quest(2, 3, "engagement", "Engagement Plan", "How will you engage each stakeholder?",
                   ComponentType.STAKEHOLDER_FRAMEWORK, 75, 15, "📣"),
        ),
    ),
    JourneyLevel(
        level=3,
        name="Build the Theory of Change",
        description="Connect the goal to outcomes and outputs.",
        icon="🌱",
        badge=Badge(
            id="CHANGE_ARCHITECT",
            name="Change Architect",
            description="Built a complete theory of change.",
            icon="🏗️",
            threshold=3,
        ),
        quests=(
            _quest(3, 1, "goal", "Program Goal", "State the long-term impact.",
                   ComponentType.IMPACT_VISION, 75, 10, "🎯"),
            _quest(3, 2, "outcomes", "Outcomes", "What changes for each stakeholder?",
                   ComponentType.THEORY_OF_CHANGE, 150, 25, "📈"),
            _quest(3, 3, "outputs", "Outputs", "What will the program deliver?",
                   ComponentType.THEORY_OF_CHANGE, 100, 20, "📦"),
        ),
    ),
    JourneyLevel(
        level=4,
        name="Plan Implementation & Measurement",
        description="Design the activities and how you will measure progress.",
        icon="🛠️",
        badge=Badge(
            id="IMPLEMENTATION_PLANNER",
            name="Implementation Planner",
            description="Planned activities, indicators and means of verification.",
            icon="📐",
            threshold=4,
        ),
        quests=(
            _quest(4, 1, "activities", "Activities", "What will you do to deliver the outputs?",
                   ComponentType.IMPLEMENTATION_DESIGN, 100, 25, "🏃"),
            _quest(4, 2, "indicators", "Indicators", "Define lead and lag indicators.",
                   ComponentType.MONITORING_EVALUATION, 150, 25, "📊"),
            _quest(4, 3, "mov", "Means of Verification", "How will each indicator be verified?",
                   ComponentType.MONITORING_EVALUATION, 100, 15, "🔎"),
        ),
    ),
    JourneyLevel(
        level=5,
        name="Review & Launch",
        description="Stress-test the design and get it ready for funders.",
        icon="🚀",
        badge=Badge(
            id="DESIGN_CHAMPION",
            name="Design Champion",
            description="Completed the full program design journey.",
            icon="🏆",
            threshold=5,
        ),
        quests=(
            _quest(5, 1, "risks", "Risks & Assumptions", "What could go wrong?",
                   ComponentType.IMPLEMENTATION_DESIGN, 100, 15, "⚠️"),
            _quest(5, 2, "review", "Design Review", "Review the full logframe.",
                   ComponentType.MONITORING_EVALUATION, 150, 20, "✅"),
            _quest(5, 3, "export", "Export", "Export the design document.",
                   ComponentType.MONITORING_EVALUATION, 50, 5, "📄"),
        ),
    ),
)

# Badges not tied to a level completion.
EXTRA_BADGES: tuple[Badge, ...] = (
    Badge(
        id="FIRST_STEPS",
        name="First Steps",
        description="Completed the first quest.",
        icon="👣",
        threshold=1,
    ),
    Badge(
        id="STREAK_WEEK",
        name="Week Streak",
        description="Worked on a design seven days in a row.",
        icon="🔥",
        criteria_type="speed",
        threshold=7,
    ),
)

BADGES: Mapping[str, Badge] = MappingProxyType(
    {b.id: b for b in [lvl.badge for lvl in JOURNEY_LEVELS] + list(EXTRA_BADGES)}
)

POINTS_CONFIG = PointsConfig(
    badge_earned=50,
    streak_bonus=MappingProxyType({3: 25, 7: 75, 14: 150, 30: 500}),
)

DEFAULT_CATALOG = JourneyCatalog(JOURNEY_LEVELS, badges=BADGES)
