"""
Sample Card Catalogue - card documents for demos and tests.

Cards are written as plain documents and go through the same loader and
validator as user-supplied definitions. The set covers:
- Basic lands and mana creatures (mana abilities, mana of any color)
- Combat creatures (flying, vigilance, hexproof, reach)
- Removal and burn (targeted destroy, damage to any target, X spells)
- Counterspells (targeting spells on the stack, or unless a cost is paid)
- Library manipulation (scry, looking at the top cards, searching, discover)
- Discard, token copies and cycling
- Auras and equipment (attachment, attached modifiers)
- Anthems (static continuous modifiers)
- Replacement effects (draws, tokens, enter-with-counters)
- Triggers (enters, dies, upkeep, cast)
- A transforming artifact whose enter trigger destroys all creatures except
  the ones each player chooses
"""

from __future__ import annotations
from functools import lru_cache

from ..spec_schema.card_definition import CardDefinition
from ..spec_schema.loader import load_cards

ANY_TARGET = {
    "restrictions": [{"type": "OfType", "types": ["creature"]}],
    "players": True,
    "prompt": "Choose any target",
}

TARGET_CREATURE = {
    "restrictions": [{"type": "OfType", "types": ["creature"]}],
    "prompt": "Choose target creature",
}


def _basic_land(name: str, symbol: str) -> dict:
    return {
        "name": name,
        "type_line": f"Basic Land - {name}",
        "activated_abilities": [{
            "cost": {"additional": [{"type": "TapSelf"}]},
            "effects": [{"type": "GainMana", "mana": symbol}],
            "oracle_text": f"{{T}}: Add {symbol}.",
        }],
    }


CARD_DOCUMENTS: list[dict] = [
    _basic_land("Plains", "{W}"),
    _basic_land("Island", "{U}"),
    _basic_land("Swamp", "{B}"),
    _basic_land("Mountain", "{R}"),
    _basic_land("Forest", "{G}"),

    # -------------------------------------------------------------------------
    # Creatures
    # -------------------------------------------------------------------------
    {
        "name": "Llanowar Elves",
        "type_line": "Creature - Elf Druid",
        "cost": "{G}",
        "colors": ["green"],
        "power": 1,
        "toughness": 1,
        "activated_abilities": [{
            "cost": {"additional": [{"type": "TapSelf"}]},
            "effects": [{"type": "GainMana", "mana": "{G}"}],
            "oracle_text": "{T}: Add {G}.",
        }],
    },
    {
        "name": "Birds of Paradise",
        "type_line": "Creature - Bird",
        "cost": "{G}",
        "colors": ["green"],
        "power": 0,
        "toughness": 1,
        "keywords": ["flying"],
        "activated_abilities": [{
            "cost": {"additional": [{"type": "TapSelf"}]},
            "effects": [{"type": "GainManaOfChoice", "colors": ["W", "U", "B", "R", "G"]}],
            "oracle_text": "{T}: Add one mana of any color.",
        }],
    },
    {
        "name": "Grizzly Bears",
        "type_line": "Creature - Bear",
        "cost": "{1}{G}",
        "colors": ["green"],
        "power": 2,
        "toughness": 2,
    },
    {
        "name": "Gladecover Scout",
        "type_line": "Creature - Elf Scout",
        "cost": "{G}",
        "colors": ["green"],
        "power": 1,
        "toughness": 1,
        "keywords": ["hexproof"],
    },
    {
        "name": "Giant Spider",
        "type_line": "Creature - Spider",
        "cost": "{3}{G}",
        "colors": ["green"],
        "power": 2,
        "toughness": 4,
        "keywords": ["reach"],
    },
    {
        "name": "Storm Crow",
        "type_line": "Creature - Bird",
        "cost": "{1}{U}",
        "colors": ["blue"],
        "power": 1,
        "toughness": 2,
        "keywords": ["flying"],
    },
    {
        "name": "Serra Angel",
        "type_line": "Creature - Angel",
        "cost": "{3}{W}{W}",
        "colors": ["white"],
        "power": 4,
        "toughness": 4,
        "keywords": ["flying", "vigilance"],
    },
    {
        "name": "Elvish Visionary",
        "type_line": "Creature - Elf Shaman",
        "cost": "{1}{G}",
        "colors": ["green"],
        "power": 1,
        "toughness": 1,
        "oracle_text": "When Elvish Visionary enters the battlefield, draw a card.",
        "triggered_abilities": [{
            "trigger": {"event": "enters_battlefield", "restrictions": [{"type": "IsSelf"}]},
            "effects": [{"type": "ControllerDrawsCards", "count": 1}],
        }],
    },
    {
        "name": "Geological Appraiser",
        "type_line": "Creature - Human Artificer",
        "cost": "{2}{R}{R}",
        "colors": ["red"],
        "power": 3,
        "toughness": 2,
        "oracle_text": "When Geological Appraiser enters the battlefield, if you cast it, discover 3.",
        "triggered_abilities": [{
            "trigger": {
                "event": "enters_battlefield",
                "restrictions": [{"type": "IsSelf"}, {"type": "SourceWasCast"}],
            },
            "effects": [{"type": "Discover", "value": 3}],
        }],
    },
    {
        "name": "Doomed Traveler",
        "type_line": "Creature - Human Soldier",
        "cost": "{W}",
        "colors": ["white"],
        "power": 1,
        "toughness": 1,
        "oracle_text": "When Doomed Traveler dies, create a 1/1 white Spirit creature token with flying.",
        "triggered_abilities": [{
            "trigger": {
                "event": "put_into_graveyard",
                "restrictions": [{"type": "IsSelf"}],
            },
            "effects": [{
                "type": "CreateToken",
                "token": {
                    "name": "Spirit",
                    "type_line": "Creature - Spirit",
                    "colors": ["white"],
                    "power": 1,
                    "toughness": 1,
                    "keywords": ["flying"],
                },
            }],
        }],
    },
    {
        "name": "Spike Hatchling",
        "type_line": "Creature - Spike",
        "cost": "{1}{G}",
        "colors": ["green"],
        "power": 0,
        "toughness": 0,
        "oracle_text": "Spike Hatchling enters the battlefield with two +1/+1 counters on it.",
        "replacement_abilities": [{
            "replacing": "enter_battlefield",
            "modification": {"type": "EntersWithCounters", "counter": "+1/+1", "count": 2},
            "restrictions": [{"type": "IsSelf"}],
        }],
    },
    {
        "name": "Ink-Drinker Scribe",
        "type_line": "Creature - Zombie Wizard",
        "cost": "{1}{B}",
        "colors": ["black"],
        "power": 2,
        "toughness": 1,
        "oracle_text": "If you would draw a card while you have no cards in hand, draw an additional card.",
        "replacement_abilities": [{
            "replacing": "draw",
            "modification": {"type": "AdditionalDraws", "count": 1},
            "restrictions": [
                {"type": "Controller", "relation": "self"},
                {"type": "ControllerHandEmpty"},
            ],
        }],
    },
    {
        "name": "Elesh Norn, Grand Cenobite",
        "type_line": "Legendary Creature - Phyrexian Praetor",
        "cost": "{5}{W}{W}",
        "colors": ["white"],
        "power": 4,
        "toughness": 7,
        "keywords": ["vigilance"],
        "oracle_text": (
            "Other creatures you control get +2/+2. Creatures your opponents control get -2/-2."
        ),
        "static_abilities": [
            {
                "type": "ContinuousModifier",
                "modifications": [{"type": "AddPowerToughness", "power": 2, "toughness": 2}],
                "restrictions": [
                    {"type": "OfType", "types": ["creature"]},
                    {"type": "Controller", "relation": "self"},
                    {"type": "NotSelf"},
                ],
            },
            {
                "type": "ContinuousModifier",
                "modifications": [{"type": "AddPowerToughness", "power": -2, "toughness": -2}],
                "restrictions": [
                    {"type": "OfType", "types": ["creature"]},
                    {"type": "Controller", "relation": "opponent"},
                ],
            },
        ],
    },

    # -------------------------------------------------------------------------
    # Instants and sorceries
    # -------------------------------------------------------------------------
    {
        "name": "Giant Growth",
        "type_line": "Instant",
        "cost": "{G}",
        "colors": ["green"],
        "oracle_text": "Target creature gets +3/+3 until end of turn.",
        "targets": TARGET_CREATURE,
        "effects": [{
            "type": "ModifySelected",
            "modifications": [{"type": "AddPowerToughness", "power": 3, "toughness": 3}],
            "duration": "until_end_of_turn",
        }],
    },
    {
        "name": "Battle Fervor",
        "type_line": "Instant",
        "cost": "{1}{R}",
        "colors": ["red"],
        "oracle_text": "Target creature gets +2/+2 until end of turn.",
        "targets": TARGET_CREATURE,
        "effects": [{
            "type": "ModifySelected",
            "modifications": [{"type": "AddPowerToughness", "power": 2, "toughness": 2}],
            "duration": "until_end_of_turn",
        }],
    },
    {
        "name": "Shock",
        "type_line": "Instant",
        "cost": "{R}",
        "colors": ["red"],
        "oracle_text": "Shock deals 2 damage to any target.",
        "targets": ANY_TARGET,
        "effects": [{"type": "DealDamage", "amount": 2}],
    },
    {
        "name": "Blaze",
        "type_line": "Sorcery",
        "cost": "{X}{R}",
        "colors": ["red"],
        "oracle_text": "Blaze deals X damage to any target.",
        "targets": ANY_TARGET,
        "effects": [{"type": "DealDamage", "amount": "x"}],
    },
    {
        "name": "Murder",
        "type_line": "Instant",
        "cost": "{1}{B}{B}",
        "colors": ["black"],
        "oracle_text": "Destroy target creature.",
        "targets": TARGET_CREATURE,
        "effects": [{"type": "Destroy"}],
    },
    {
        "name": "Dusk Affliction",
        "type_line": "Instant",
        "cost": "{2}{B}",
        "colors": ["black"],
        "oracle_text": "Put two -1/-1 counters on target creature.",
        "targets": TARGET_CREATURE,
        "effects": [{"type": "AddCounters", "counter": "-1/-1", "count": 2}],
    },
    {
        "name": "Counterspell",
        "type_line": "Instant",
        "cost": "{U}{U}",
        "colors": ["blue"],
        "oracle_text": "Counter target spell.",
        "targets": {
            "restrictions": [{"type": "InLocation", "locations": ["stack"]}],
            "cards": False,
            "spells": True,
            "prompt": "Choose target spell",
        },
        "effects": [{"type": "CounterSpell"}],
    },
    {
        "name": "Divination",
        "type_line": "Sorcery",
        "cost": "{2}{U}",
        "colors": ["blue"],
        "oracle_text": "Draw two cards.",
        "effects": [{"type": "ControllerDrawsCards", "count": 2}],
    },
    {
        "name": "Raise the Alarm",
        "type_line": "Instant",
        "cost": "{1}{W}",
        "colors": ["white"],
        "oracle_text": "Create two 1/1 white Soldier creature tokens.",
        "effects": [{
            "type": "CreateToken",
            "count": 2,
            "token": {
                "name": "Soldier",
                "type_line": "Creature - Soldier",
                "colors": ["white"],
                "power": 1,
                "toughness": 1,
            },
        }],
    },
    {
        "name": "Abzan Blessing",
        "type_line": "Instant",
        "cost": "{1}{W}",
        "colors": ["white"],
        "oracle_text": "Choose one - You gain 4 life; or draw a card.",
        "effects": [{
            "type": "Modal",
            "modes": [
                [{"type": "ControllerGainsLife", "amount": 4}],
                [{"type": "ControllerDrawsCards", "count": 1}],
            ],
        }],
    },
    {
        "name": "Mind Rot",
        "type_line": "Sorcery",
        "cost": "{2}{B}",
        "colors": ["black"],
        "oracle_text": "Target player discards two cards.",
        "targets": {"cards": False, "players": True, "prompt": "Choose target player"},
        "effects": [{"type": "Discard", "count": 2}],
    },
    {
        "name": "Mana Leak",
        "type_line": "Instant",
        "cost": "{1}{U}",
        "colors": ["blue"],
        "oracle_text": "Counter target spell unless its controller pays {3}.",
        "targets": {
            "restrictions": [{"type": "InLocation", "locations": ["stack"]}],
            "cards": False,
            "spells": True,
            "prompt": "Choose target spell",
        },
        "effects": [{"type": "CounterSpellUnlessPay", "generic": 3}],
    },
    {
        "name": "Opt",
        "type_line": "Instant",
        "cost": "{U}",
        "colors": ["blue"],
        "oracle_text": "Scry 1. Draw a card.",
        "effects": [
            {"type": "Scry", "count": 1},
            {"type": "ControllerDrawsCards", "count": 1},
        ],
    },
    {
        "name": "Grisly Salvage",
        "type_line": "Instant",
        "cost": "{B}{G}",
        "colors": ["black", "green"],
        "oracle_text": "Reveal the top five cards of your library. You may put a creature or land card "
                       "from among them into your hand. Put the rest into your graveyard.",
        "effects": [{
            "type": "ExamineTopCards",
            "count": 5,
            "take": 1,
            "destination": "hand",
            "rest": "graveyard",
            "restrictions": [{"type": "OfType", "types": ["creature", "land"]}],
        }],
    },
    {
        "name": "Rampant Growth",
        "type_line": "Sorcery",
        "cost": "{1}{G}",
        "colors": ["green"],
        "oracle_text": "Search your library for a basic land card, put that card onto the battlefield "
                       "tapped, then shuffle.",
        "effects": [{
            "type": "TutorLibrary",
            "destination": "battlefield",
            "tapped": True,
            "restrictions": [{
                "type": "OfType",
                "types": ["land"],
                "subtypes": ["plains", "island", "swamp", "mountain", "forest"],
            }],
        }],
    },
    {
        "name": "Cackling Counterpart",
        "type_line": "Instant",
        "cost": "{1}{U}{U}",
        "colors": ["blue"],
        "oracle_text": "Create a token that's a copy of target creature you control.",
        "targets": {
            "restrictions": [
                {"type": "OfType", "types": ["creature"]},
                {"type": "Controller", "relation": "self"},
            ],
            "prompt": "Choose target creature you control",
        },
        "effects": [{"type": "CreateTokenCopy"}],
    },
    {
        "name": "Renewed Faith",
        "type_line": "Instant",
        "cost": "{2}{W}",
        "colors": ["white"],
        "oracle_text": "You gain 6 life. Cycling {1}{W}.",
        "effects": [{"type": "ControllerGainsLife", "amount": 6}],
        "activated_abilities": [{
            "cost": {"mana": "{1}{W}", "additional": [{"type": "DiscardSelf"}]},
            "effects": [{"type": "Cycling"}],
            "oracle_text": "Cycling {1}{W}",
        }],
    },

    # -------------------------------------------------------------------------
    # Enchantments and artifacts
    # -------------------------------------------------------------------------
    {
        "name": "Phyrexian Arena",
        "type_line": "Enchantment",
        "cost": "{1}{B}{B}",
        "colors": ["black"],
        "oracle_text": "At the beginning of your upkeep, you draw a card and you lose 1 life.",
        "triggered_abilities": [{
            "trigger": {"event": "upkeep", "restrictions": [{"type": "Controller", "relation": "self"}]},
            "effects": [
                {"type": "ControllerDrawsCards", "count": 1},
                {"type": "ControllerLosesLife", "amount": 1},
            ],
        }],
    },
    {
        "name": "Parallel Lives",
        "type_line": "Enchantment",
        "cost": "{3}{G}",
        "colors": ["green"],
        "oracle_text": "If an effect would create one or more tokens under your control, it creates twice that many.",
        "replacement_abilities": [{
            "replacing": "create_token",
            "modification": {"type": "MultiplyTokens", "factor": 2},
            "restrictions": [{"type": "Controller", "relation": "self"}],
        }],
    },
    {
        "name": "Eaten by Piranhas",
        "type_line": "Enchantment - Aura",
        "cost": "{1}{U}",
        "colors": ["blue"],
        "keywords": ["flash"],
        "oracle_text": "Enchant creature. Enchanted creature is a black Skeleton with base power and toughness 1/1.",
        "targets": TARGET_CREATURE,
        "effects": [{"type": "Attach"}],
        "static_abilities": [{
            "type": "AttachedModifier",
            "modifications": [
                {"type": "SetBasePowerToughness", "power": 1, "toughness": 1},
                {"type": "AddTypes", "subtypes": ["skeleton"]},
            ],
        }],
    },
    {
        "name": "Plus Two Mace",
        "type_line": "Artifact - Equipment",
        "cost": "{1}{W}",
        "oracle_text": "Equipped creature gets +2/+2. Equip {3}",
        "static_abilities": [{
            "type": "AttachedModifier",
            "modifications": [{"type": "AddPowerToughness", "power": 2, "toughness": 2}],
        }],
        "activated_abilities": [{
            "cost": "{3}",
            "targets": {
                "restrictions": [
                    {"type": "OfType", "types": ["creature"]},
                    {"type": "Controller", "relation": "self"},
                ],
                "prompt": "Choose a creature to equip",
            },
            "effects": [{"type": "Attach"}],
            "sorcery_speed": True,
            "oracle_text": "Equip {3}",
        }],
    },
    {
        "name": "Emerald Medallion",
        "type_line": "Artifact",
        "cost": "{2}",
        "oracle_text": "Green spells you cast cost {1} less to cast.",
        "static_abilities": [{
            "type": "CostReduction",
            "generic": 1,
            "restrictions": [{"type": "OfColor", "colors": ["green"]}],
        }],
    },
    {
        "name": "Deadapult",
        "type_line": "Enchantment",
        "cost": "{2}{R}",
        "colors": ["red"],
        "oracle_text": "{R}, Sacrifice a creature: Deadapult deals 2 damage to any target.",
        "activated_abilities": [{
            "cost": {
                "mana": "{R}",
                "additional": [{
                    "type": "SacrificePermanents",
                    "restrictions": [{"type": "OfType", "types": ["creature"]}],
                }],
            },
            "targets": ANY_TARGET,
            "effects": [{"type": "DealDamage", "amount": 2}],
        }],
    },
    {
        "name": "Unstable Glyphbridge",
        "type_line": "Artifact",
        "cost": "{3}{W}{W}",
        "colors": ["white"],
        "oracle_text": (
            "When Unstable Glyphbridge enters the battlefield, if you cast it, for each player, "
            "choose a creature with power 2 or less that player controls. Then destroy all "
            "creatures except creatures chosen this way. {3}{W}: Transform Unstable Glyphbridge. "
            "Activate only as a sorcery."
        ),
        "triggered_abilities": [{
            "trigger": {"event": "enters_battlefield", "restrictions": [{"type": "IsSelf"}]},
            "effects": [{
                "type": "IfThenElse",
                "condition": [{"type": "SourceWasCast"}],
                "then": [{
                    "type": "ForEachPlayerChooseThen",
                    "restrictions": [
                        {"type": "OfType", "types": ["creature"]},
                        {"type": "Power", "op": "<=", "value": 2},
                    ],
                    "prompt": "Choose a creature with power 2 or less to keep",
                    "effects": [{
                        "type": "DestroyEach",
                        "restrictions": [
                            {"type": "OfType", "types": ["creature"]},
                            {"type": "NotChosen"},
                        ],
                    }],
                }],
            }],
        }],
        "activated_abilities": [{
            "cost": "{3}{W}",
            "effects": [{"type": "SelectSelf"}, {"type": "Transform"}],
            "sorcery_speed": True,
            "oracle_text": "{3}{W}: Transform Unstable Glyphbridge. Activate only as a sorcery.",
        }],
        "back_face": {
            "name": "Sandswirl Wanderglyph",
            "type_line": "Artifact Creature - Golem",
            "colors": ["white"],
            "power": 5,
            "toughness": 3,
            "keywords": ["flying"],
        },
    },
]


# Deck lists used by the demo and by session defaults: (card name, copies)
DECK_LISTS: dict[str, list[tuple[str, int]]] = {
    "green": [
        ("Forest", 17),
        ("Llanowar Elves", 4),
        ("Grizzly Bears", 4),
        ("Elvish Visionary", 4),
        ("Giant Growth", 4),
        ("Spike Hatchling", 3),
        ("Giant Spider", 2),
        ("Gladecover Scout", 2),
    ],
    "red": [
        ("Mountain", 12),
        ("Forest", 6),
        ("Llanowar Elves", 4),
        ("Grizzly Bears", 6),
        ("Shock", 4),
        ("Battle Fervor", 4),
        ("Blaze", 2),
        ("Deadapult", 2),
    ],
}


@lru_cache(maxsize=1)
def load_catalog() -> dict[str, CardDefinition]:
    """
    Load the sample catalogue, keyed by card name.

    Raises:
        ValueError: If a built-in card fails validation
    """
    result = load_cards(CARD_DOCUMENTS)
    if not result.ok:
        raise ValueError(f"Built-in catalogue is invalid: {[str(e) for e in result.rejected]}")
    return result.cards


def get_card(name: str) -> CardDefinition:
    """Look up a catalogue card by name."""
    catalog = load_catalog()
    if name not in catalog:
        raise KeyError(f"Unknown card: {name}")
    return catalog[name]


def build_deck(deck: str | list[tuple[str, int]]) -> list[CardDefinition]:
    """Expand a deck list (or the name of a built-in one) into card definitions."""
    entries = DECK_LISTS[deck] if isinstance(deck, str) else deck
    cards = []
    for name, copies in entries:
        cards.extend([get_card(name)] * copies)
    return cards
