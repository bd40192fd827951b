# services/adventure_service/presenter.py
"""
View models for the browser client. Each response names exactly one screen:

    config_missing | auth | loading | explore | quiz | summary | parent_settings

Parent settings is picked by role, on top of the explore state; quiz and
summary always win so a running challenge is never hidden.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from . import progression
from .controller import QUIZ, SUMMARY
from .quiz_content import SUBJECTS, catalog
from .rooms import resolve_room


def render_config_missing(missing: List[str]) -> Dict[str, Any]:
    return {
        "screen": "config_missing",
        "title": "Firebase 未設定",
        "message": "請檢查您的 .env 檔案並確認雲端服務的設定。",
        "missing": list(missing),
    }


def render_auth(error: Optional[str] = None) -> Dict[str, Any]:
    return {"screen": "auth", "title": "蛋仔大冒險", "error": error or ""}


def _player(profile: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "hp": profile["hp"],
        "maxHp": profile["maxHp"],
        "gold": profile["gold"],
        "inventory": profile["inventory"],
        "role": profile["role"],
        "progress": progression.summarize(profile["exp"], profile["lv"]),
    }


def _room(profile: Dict[str, Any]) -> Dict[str, Any]:
    room = resolve_room(profile["currentRoom"]).to_dict()
    if room["subject"]:
        room["subject_name"] = SUBJECTS[room["subject"]]
    return room


def render(view: Dict[str, Any]) -> Dict[str, Any]:
    """Screen for a GameController.snapshot()."""
    base = {
        "saving": view["saving"],
        "notifications": view["notifications"],
    }
    profile = view["profile"]
    if view["loading"] or profile is None:
        return {"screen": "loading", **base}

    base["player"] = _player(profile)
    state = view["state"]
    session = view["session"]

    if state == QUIZ and session:
        return {
            "screen": "quiz",
            **base,
            "question": session["question"],
            "index": session["index"],
            "total": session["total"],
            "seconds_left": session["seconds_left"],
            "correct": session["results"]["correct"],
        }

    if state == SUMMARY and session:
        return {"screen": "summary", **base, "results": session["results"]}

    if profile["role"] == "parent":
        return {
            "screen": "parent_settings",
            **base,
            "parentEmail": profile["parentEmail"],
            "familyRewards": profile["familyRewards"],
            "wrongQuestions": {
                subject: {grade: len(ids) for grade, ids in grades.items() if ids}
                for subject, grades in profile["wrongQuestions"].items()
            },
        }

    return {
        "screen": "explore",
        **base,
        "room": _room(profile),
        "familyRewards": profile["familyRewards"],
        "catalog": catalog(),
    }
