"""
deck_elites/evolution/cards.py

Card catalog and deck files.

The catalog is the search space: every deck the search builds is drawn from
the cards a hero class may play. Cards are immutable so decks can share them
freely between individuals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class HeroClass(Enum):
    """Playable hero classes. NEUTRAL doubles as the unknown-class sentinel."""
    DRUID = "druid"
    HUNTER = "hunter"
    MAGE = "mage"
    PALADIN = "paladin"
    PRIEST = "priest"
    ROGUE = "rogue"
    SHAMAN = "shaman"
    WARLOCK = "warlock"
    WARRIOR = "warrior"
    NEUTRAL = "neutral"

    @classmethod
    def from_name(cls, name: str) -> "HeroClass":
        """
        Look up a hero class by name, ignoring case and whitespace.

        Unknown names are logged and mapped to NEUTRAL.
        """
        key = name.strip().lower()
        for hero_class in cls:
            if hero_class.value == key:
                return hero_class

        logger.error(f"Card class {name!r} is not a valid hero class")
        return cls.NEUTRAL


DUST_BY_RARITY = {
    "free": 0,
    "common": 40,
    "rare": 100,
    "epic": 400,
    "legendary": 1600,
}


@dataclass(frozen=True)
class Card:
    """A single collectible card."""
    name: str
    cost: int
    card_type: str = "minion"  # "minion", "spell" or "weapon"
    rarity: str = "common"
    card_class: HeroClass = HeroClass.NEUTRAL
    card_set: str = "core"

    @property
    def dust(self) -> int:
        return DUST_BY_RARITY.get(self.rarity, 0)

    @property
    def max_copies(self) -> int:
        """Copies of this card allowed in one deck."""
        return 1 if self.rarity == "legendary" else 2

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Card":
        return cls(
            name=data["name"],
            cost=int(data.get("cost", 0)),
            card_type=data.get("type", "minion"),
            rarity=data.get("rarity", "common"),
            card_class=HeroClass.from_name(data.get("class", "neutral")),
            card_set=data.get("set", "core"),
        )


def load_card_pool(
    path: str | Path,
    hero_class: HeroClass,
    card_sets: list[str] | None = None,
) -> list[Card]:
    """
    Load the cards a hero class may put in its deck.

    Args:
        path: YAML catalog with a top-level ``cards`` list
        hero_class: Class building the deck (its own cards plus neutrals)
        card_sets: Set names to draw from (default: every set)

    Returns:
        Cards in catalog order
    """
    with open(path) as f:
        catalog = yaml.safe_load(f) or {}

    wanted_sets = {s.lower() for s in card_sets} if card_sets else None
    pool = []
    for entry in catalog.get("cards", []):
        card = Card.from_dict(entry)
        if card.card_class not in (hero_class, HeroClass.NEUTRAL):
            continue
        if wanted_sets is not None and card.card_set.lower() not in wanted_sets:
            continue
        pool.append(card)

    logger.info(f"Loaded {len(pool)} cards for {hero_class.value} from {path}")
    return pool


def read_deck_file(path: str | Path) -> tuple[HeroClass, list[str]]:
    """
    Read a deck in the plain-text deck format.

    Line one holds the hero class name, line two the ``*``-joined card names.
    """
    lines = Path(path).read_text(encoding="utf-8").splitlines()
    hero_class = HeroClass.from_name(lines[0])
    names = [name for name in lines[1].split("*") if name]
    return hero_class, names


def write_deck_file(path: str | Path, hero_class: HeroClass, names: list[str]) -> None:
    """Write a deck in the plain-text deck format."""
    text = f"{hero_class.value}\n{'*'.join(names)}\n"
    Path(path).write_text(text, encoding="utf-8")
