"""
Player class taxonomy.

Exports carry the class either as a numeric id or as a display name. Both are
reduced to ``(class_id, class_name)`` by ``parse_class_value``. ``MAIN_ATTRIBUTE``
names the base attribute each class scales with; the default derived-stats
function uses it to pick the "main" stat.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from scanvault.ingestion.fields import canon


class Attribute(str, Enum):
    """Base attributes, keyed by their short labels."""

    STRENGTH = "str"
    DEXTERITY = "dex"
    INTELLIGENCE = "int"
    CONSTITUTION = "con"
    LUCK = "lck"


PLAYER_CLASS_NAMES: dict[int, str] = {
    1: "Warrior",
    2: "Mage",
    3: "Scout",
    4: "Assassin",
    5: "Battle Mage",
    6: "Berserker",
    7: "Demon Hunter",
    8: "Bard",
}

MAIN_ATTRIBUTE: dict[int, Attribute] = {
    1: Attribute.STRENGTH,
    2: Attribute.INTELLIGENCE,
    3: Attribute.DEXTERITY,
    4: Attribute.DEXTERITY,
    5: Attribute.STRENGTH,
    6: Attribute.STRENGTH,
    7: Attribute.DEXTERITY,
    8: Attribute.INTELLIGENCE,
}


def class_id_from_name(name: str) -> Optional[int]:
    """Return the class id whose display name matches ``name`` canonically."""
    wanted = canon(name)
    for class_id, label in PLAYER_CLASS_NAMES.items():
        if canon(label) == wanted:
            return class_id
    return None


def parse_class_value(value: Any) -> tuple[Optional[int], Optional[str]]:
    """Resolve a class cell into ``(class_id, class_name)``.

    Integer cells map through ``PLAYER_CLASS_NAMES`` (unknown ids keep their
    digits as the name). Text cells keep the text as the name and look the id
    up by canonical name.
    """
    raw = "" if value is None else str(value).strip()
    if not raw:
        return None, None
    try:
        class_id = int(raw)
    except ValueError:
        return class_id_from_name(raw), raw
    return class_id, PLAYER_CLASS_NAMES.get(class_id, str(class_id))


def class_group(class_name: Optional[str]) -> str:
    """Leaderboard group code for a class name (``"Battle Mage"`` → ``"BATTLEMAGE"``)."""
    if not class_name:
        return "ALL"
    class_id = class_id_from_name(class_name)
    if class_id is None:
        return "ALL"
    return canon(PLAYER_CLASS_NAMES[class_id]).upper()
