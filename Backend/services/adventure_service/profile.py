# services/adventure_service/profile.py
"""
Player profile shape and normalization of stored documents.

Stored documents may come from older app versions (missing fields) or be
hand-edited (wrong types). normalize_profile() always returns a complete,
well-typed profile without discarding fields that are already valid.
"""

from __future__ import annotations
import copy
from typing import Any, Dict, List, Mapping, Optional

from .rooms import ROOMS, START_ROOM

INITIAL_STATS: Dict[str, Any] = {
    "hp": 100, "maxHp": 100, "gold": 100, "exp": 0, "lv": 1,
    "inventory": [], "currentRoom": START_ROOM, "wrongQuestions": {},
    "role": "student", "parentEmail": "", "familyRewards": [],
}

ROLES = ("student", "parent")

# Sync bookkeeping stored next to the profile fields, never part of the profile
META_KEY = "_meta"


def default_profile() -> Dict[str, Any]:
    return copy.deepcopy(INITIAL_STATS)


def _int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _unique(ids) -> List[str]:
    out: List[str] = []
    for qid in ids:
        if isinstance(qid, str) and qid not in out:
            out.append(qid)
    return out


def normalize_wrong_questions(raw: Any) -> Dict[str, Dict[str, List[str]]]:
    """subject -> grade -> duplicate-free list of question ids."""
    if not isinstance(raw, Mapping):
        return {}
    out: Dict[str, Dict[str, List[str]]] = {}
    for subject, grades in raw.items():
        if not isinstance(grades, Mapping):
            continue
        out[subject] = {
            grade: _unique(ids)
            for grade, ids in grades.items()
            if isinstance(ids, (list, tuple, set))
        }
    return out


def normalize_rewards(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    rewards = []
    for r in raw:
        if not isinstance(r, Mapping) or not r.get("id"):
            continue
        rewards.append({
            "id": str(r["id"]),
            "name": str(r.get("name", "")),
            "cost": max(0, _int(r.get("cost"), 0)),
        })
    return rewards


def normalize_profile(stored: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge stored fields over the defaults and repair malformed values."""
    data = {k: v for k, v in (stored or {}).items() if k != META_KEY}
    profile = default_profile()
    profile.update(data)

    profile["maxHp"] = max(1, _int(profile["maxHp"], INITIAL_STATS["maxHp"]))
    profile["hp"] = min(max(0, _int(profile["hp"], profile["maxHp"])), profile["maxHp"])
    profile["gold"] = max(0, _int(profile["gold"], INITIAL_STATS["gold"]))
    profile["exp"] = max(0, _int(profile["exp"], INITIAL_STATS["exp"]))
    profile["lv"] = max(1, _int(profile["lv"], INITIAL_STATS["lv"]))

    if not isinstance(profile["inventory"], list):
        profile["inventory"] = []
    profile["familyRewards"] = normalize_rewards(profile["familyRewards"])
    profile["wrongQuestions"] = normalize_wrong_questions(profile["wrongQuestions"])

    if profile["currentRoom"] not in ROOMS:
        profile["currentRoom"] = START_ROOM
    if profile["role"] not in ROLES:
        profile["role"] = "student"
    if not isinstance(profile["parentEmail"], str):
        profile["parentEmail"] = ""
    return profile


def stored_version(stored: Optional[Mapping[str, Any]]) -> int:
    meta = (stored or {}).get(META_KEY) or {}
    return _int(meta.get("version") if isinstance(meta, Mapping) else None, 0)


def wrong_ids(profile: Mapping[str, Any], subject: str, grade: str) -> List[str]:
    return list(profile.get("wrongQuestions", {}).get(subject, {}).get(grade, []))


def with_wrong_ids(profile: Mapping[str, Any], subject: str, grade: str, ids: List[str]) -> Dict[str, Dict[str, List[str]]]:
    """A copy of wrongQuestions with the subject/grade entry replaced."""
    wrong = copy.deepcopy(profile.get("wrongQuestions", {}))
    wrong.setdefault(subject, {})[grade] = _unique(ids)
    return wrong
