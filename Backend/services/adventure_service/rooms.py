# services/adventure_service/rooms.py
"""
Static map of the village. Read-only; the controller only looks rooms up.

Room types:
- safe     resting place, hp can be restored here
- battle   quiz challenges for the room's subject
- shop     gold shop
- family   parent-defined rewards can be redeemed here
- fishing  relaxing corner
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .quiz_content import SUBJECTS

START_ROOM = "start"
ROOM_TYPES = ("safe", "battle", "shop", "family", "fishing")


@dataclass(frozen=True)
class Room:
    key: str
    name: str
    type: str
    exits: Tuple[str, ...]
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "name": self.name,
            "type": self.type,
            "subject": self.subject,
            "exits": [{"key": k, "name": ROOMS[k].name} for k in self.exits],
        }


ROOMS: Dict[str, Room] = {
    "start": Room("start", "蛋仔村廣場", "safe", ("forest", "market", "home", "lake")),
    "forest": Room("forest", "數字森林", "battle", ("start", "cave"), subject="math"),
    "cave": Room("cave", "字母洞窟", "battle", ("forest", "tower"), subject="english"),
    "tower": Room("tower", "算術高塔", "battle", ("cave",), subject="math"),
    "market": Room("market", "金幣市集", "shop", ("start",)),
    "home": Room("home", "溫暖的家", "family", ("start",)),
    "lake": Room("lake", "釣魚湖", "fishing", ("start",)),
}


def resolve_room(key: str) -> Room:
    """The room for `key`, or the start room when the key is unknown."""
    return ROOMS.get(key) or ROOMS[START_ROOM]


def validate_graph() -> List[str]:
    """
    Check the map for broken exits, unknown room types and battle rooms
    without a quiz subject. Returns the list of problems (empty when valid).
    """
    problems = []
    if START_ROOM not in ROOMS:
        problems.append(f"start room '{START_ROOM}' is missing")
    for key, room in ROOMS.items():
        if room.key != key:
            problems.append(f"room '{key}' is registered under the wrong key")
        if room.type not in ROOM_TYPES:
            problems.append(f"room '{key}' has unknown type '{room.type}'")
        for exit_key in room.exits:
            if exit_key not in ROOMS:
                problems.append(f"room '{key}' exits to unknown room '{exit_key}'")
        if room.type == "battle" and room.subject not in SUBJECTS:
            problems.append(f"battle room '{key}' has unknown subject '{room.subject}'")
    return problems
