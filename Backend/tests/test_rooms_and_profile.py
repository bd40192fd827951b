"""
Room graph integrity and profile normalization.
"""

from services.adventure_service import progression
from services.adventure_service.profile import (
    INITIAL_STATS, META_KEY, normalize_profile, stored_version, with_wrong_ids,
)
from services.adventure_service.quiz_content import SUBJECTS
from services.adventure_service.rooms import ROOMS, START_ROOM, resolve_room, validate_graph


# ============================================================================
# Rooms
# ============================================================================

def test_room_graph_is_valid():
    assert validate_graph() == []


def test_every_exit_resolves_and_battle_rooms_have_subjects():
    for room in ROOMS.values():
        for exit_key in room.exits:
            assert exit_key in ROOMS
        if room.type == "battle":
            assert room.subject in SUBJECTS


def test_unknown_room_resolves_to_start():
    assert resolve_room("moon").key == START_ROOM


def test_room_dict_lists_exit_names():
    room = ROOMS["start"].to_dict()
    assert {"key": "forest", "name": "數字森林"} in room["exits"]

# ============================================================================
# Profile
# ============================================================================

def test_initial_stats_are_already_normal():
    assert normalize_profile(INITIAL_STATS) == INITIAL_STATS


def test_missing_fields_are_backfilled_without_losing_existing_ones():
    stored = {"gold": 350, "hp": 40, "inventory": ["egg_hat"], "pet": "chick"}
    profile = normalize_profile(stored)
    assert profile["gold"] == 350
    assert profile["hp"] == 40
    assert profile["inventory"] == ["egg_hat"]
    assert profile["pet"] == "chick"
    assert profile["familyRewards"] == []
    assert profile["role"] == "student"
    assert profile["currentRoom"] == "start"


def test_malformed_sequences_become_lists():
    profile = normalize_profile({"inventory": "sword", "familyRewards": {"a": 1}})
    assert profile["inventory"] == []
    assert profile["familyRewards"] == []


def test_rewards_without_ids_are_dropped():
    profile = normalize_profile({"familyRewards": [{"name": "no id", "cost": 5}, {"id": "r1", "name": "冰淇淋", "cost": "30"}]})
    assert profile["familyRewards"] == [{"id": "r1", "name": "冰淇淋", "cost": 30}]


def test_wrong_questions_are_deduplicated():
    profile = normalize_profile({"wrongQuestions": {"math": {"一上": ["a", "b", "a"], "一下": "oops"}}})
    assert profile["wrongQuestions"] == {"math": {"一上": ["a", "b"]}}


def test_hp_is_clamped_and_bad_room_and_role_repaired():
    profile = normalize_profile({"hp": 250, "maxHp": 120, "currentRoom": "moon", "role": "admin"})
    assert profile["hp"] == 120
    assert profile["currentRoom"] == "start"
    assert profile["role"] == "student"
    assert normalize_profile({"hp": -5})["hp"] == 0


def test_sync_metadata_is_not_part_of_the_profile():
    stored = dict(INITIAL_STATS, **{META_KEY: {"version": 4}})
    assert META_KEY not in normalize_profile(stored)
    assert stored_version(stored) == 4
    assert stored_version(INITIAL_STATS) == 0


def test_with_wrong_ids_copies():
    profile = normalize_profile({})
    wrong = with_wrong_ids(profile, "math", "一上", ["x", "x", "y"])
    assert wrong == {"math": {"一上": ["x", "y"]}}
    assert profile["wrongQuestions"] == {}

# ============================================================================
# Progression
# ============================================================================

def test_level_curve():
    assert progression.calculate_level(0) == 1
    assert progression.calculate_level(200) == 10
    assert progression.calculate_level(10 ** 9) == progression.MAX_LEVEL


def test_title_progress():
    title = progression.calculate_title(150)
    assert title["name"] == "蛋寶寶"
    assert title["next"] == "小蛋仔"
    assert title["exp_needed"] == 50
