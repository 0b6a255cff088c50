import pytest

from lfa_studio.journey import BADGES, DEFAULT_CATALOG, MAX_LEVEL, POINTS_CONFIG, Badge, JourneyCatalog, JourneyLevel, Quest
from lfa_studio.lfa_types import ComponentType


def _level(level: int, *quest_ids: str) -> JourneyLevel:
    return JourneyLevel(
        level=level,
        name=f"L{level}",
        description="",
        icon="",
        badge=Badge(id=f"BADGE_{level}", name=f"Badge {level}", description="", icon=""),
        quests=tuple(
            Quest(
                id=qid,
                level_id=level,
                quest_number=n,
                title=qid,
                description="",
                component_type=ComponentType.PROBLEM_DEFINITION,
                points_reward=10,
                estimated_minutes=5,
            )
            for n, qid in enumerate(quest_ids, start=1)
        ),
    )


def test_default_catalog_has_five_levels_of_three_quests() -> None:
    assert DEFAULT_CATALOG.max_level == MAX_LEVEL == 5
    assert [lvl.level for lvl in DEFAULT_CATALOG.levels] == [1, 2, 3, 4, 5]
    assert all(len(lvl.quests) == 3 for lvl in DEFAULT_CATALOG.levels)
    assert DEFAULT_CATALOG.total_quests() == 15
    assert DEFAULT_CATALOG.get_level(1).quest_ids() == ["vision", "geography", "context"]
    assert DEFAULT_CATALOG.get_level(5).quest_ids() == ["risks", "review", "export"]


def test_quest_ids_are_unique_across_the_journey() -> None:
    ids = [q.id for lvl in DEFAULT_CATALOG.levels for q in lvl.quests]
    assert len(ids) == len(set(ids))


def test_lookups() -> None:
    quest = DEFAULT_CATALOG.find_quest(3, "outcomes")
    assert quest is not None
    assert quest.quest_number == 2
    assert quest.points_reward == 150
    assert DEFAULT_CATALOG.find_quest(1, "outcomes") is None
    assert DEFAULT_CATALOG.find_quest(9, "vision") is None
    assert DEFAULT_CATALOG.quest_at(2, 1).id == "stakeholder-map"
    assert DEFAULT_CATALOG.quest_at(2, 4) is None
    assert [q.id for q in DEFAULT_CATALOG.quests_below(2)] == ["vision", "geography", "context"]


def test_badges_are_case_insensitive_and_include_level_badges() -> None:
    assert DEFAULT_CATALOG.get_badge("problem_explorer") is BADGES["PROBLEM_EXPLORER"]
    assert DEFAULT_CATALOG.get_badge("FIRST_STEPS").name == "First Steps"
    assert DEFAULT_CATALOG.get_badge("nope") is None
    for lvl in DEFAULT_CATALOG.levels:
        assert lvl.badge.id in BADGES


def test_points_config() -> None:
    assert POINTS_CONFIG.badge_earned == 50
    assert POINTS_CONFIG.streak_bonus[7] == 75
    with pytest.raises(TypeError):
        POINTS_CONFIG.streak_bonus[7] = 1  # type: ignore[index]


def test_catalog_rejects_gaps_in_level_numbers() -> None:
    with pytest.raises(ValueError):
        JourneyCatalog([_level(1, "a"), _level(3, "b")])


def test_catalog_rejects_duplicate_quest_ids_in_a_level() -> None:
    with pytest.raises(ValueError):
        JourneyCatalog([_level(1, "a", "a")])


def test_custom_catalog_derives_badges_from_levels() -> None:
    catalog = JourneyCatalog([_level(2, "c"), _level(1, "a", "b")])
    assert [lvl.level for lvl in catalog.levels] == [1, 2]
    assert catalog.max_level == 2
    assert set(catalog.badges) == {"BADGE_1", "BADGE_2"}
