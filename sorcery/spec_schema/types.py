"""
Shared vocabulary for card definitions.

Enumerations used by restrictions, effects, costs and the engine state:
- Card types, colors, keywords and counter kinds
- Locations (the zones a card can be in)

Every definition node is immutable. Deep copies of a node return the
node itself, so cloning a game state never duplicates card definitions.
"""

from __future__ import annotations
from enum import Enum


class DefinitionNode:
    """Base for immutable definition nodes (restrictions, effects, costs)."""

    __slots__ = ()

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


class CardType(Enum):
    """Card types."""
    ARTIFACT = "artifact"
    BATTLE = "battle"
    CREATURE = "creature"
    ENCHANTMENT = "enchantment"
    INSTANT = "instant"
    LAND = "land"
    PLANESWALKER = "planeswalker"
    SORCERY = "sorcery"


PERMANENT_TYPES = frozenset({
    CardType.ARTIFACT,
    CardType.BATTLE,
    CardType.CREATURE,
    CardType.ENCHANTMENT,
    CardType.LAND,
    CardType.PLANESWALKER,
})


class Supertype(Enum):
    """Card supertypes."""
    BASIC = "basic"
    LEGENDARY = "legendary"
    SNOW = "snow"


class Color(Enum):
    """The five colors."""
    WHITE = "white"
    BLUE = "blue"
    BLACK = "black"
    RED = "red"
    GREEN = "green"


class Keyword(Enum):
    """Keyword abilities the engine understands."""
    DEFENDER = "defender"
    FLASH = "flash"
    FLYING = "flying"
    HASTE = "haste"
    HEXPROOF = "hexproof"
    INDESTRUCTIBLE = "indestructible"
    REACH = "reach"
    SHROUD = "shroud"
    VIGILANCE = "vigilance"
    PROTECTION_FROM_WHITE = "protection from white"
    PROTECTION_FROM_BLUE = "protection from blue"
    PROTECTION_FROM_BLACK = "protection from black"
    PROTECTION_FROM_RED = "protection from red"
    PROTECTION_FROM_GREEN = "protection from green"


PROTECTION_KEYWORDS = {
    Keyword.PROTECTION_FROM_WHITE: Color.WHITE,
    Keyword.PROTECTION_FROM_BLUE: Color.BLUE,
    Keyword.PROTECTION_FROM_BLACK: Color.BLACK,
    Keyword.PROTECTION_FROM_RED: Color.RED,
    Keyword.PROTECTION_FROM_GREEN: Color.GREEN,
}


class CounterKind(Enum):
    """Named counters that can be placed on permanents."""
    PLUS_ONE = "+1/+1"
    MINUS_ONE = "-1/-1"
    CHARGE = "charge"
    LORE = "lore"
    OIL = "oil"
    SHIELD = "shield"


class Location(Enum):
    """Zones a card can occupy."""
    LIBRARY = "library"
    HAND = "hand"
    GRAVEYARD = "graveyard"
    EXILE = "exile"
    BATTLEFIELD = "battlefield"
    STACK = "stack"


# Zones whose order matters to the rules
ORDERED_LOCATIONS = frozenset({Location.LIBRARY, Location.STACK})
