"""
Card Loader - turns parsed card documents into CardDefinitions.

Documents are plain dicts/lists (already parsed from JSON, YAML or Python
literals). Every node is a dict with a "type" key naming its variant:

    {
        "name": "Doom Blade",
        "type_line": "Instant",
        "cost": "{1}{B}",
        "targets": {"restrictions": [{"type": "OfType", "types": ["creature"]}]},
        "effects": [{"type": "Destroy"}],
    }

Every failure raises CardDefinitionError naming the card and the path of the
offending node (e.g. "triggered_abilities[0].effects[1].condition[0]").
"""

from __future__ import annotations
from dataclasses import MISSING, fields
from typing import Any, Callable
import logging

from . import card_definition as cd
from . import costs as cst
from . import effect_dsl as fx
from . import restrictions as rs
from .types import CardType, Color, CounterKind, Keyword, Location
from .validation import CardDefinitionError, validate_card

logger = logging.getLogger(__name__)


def _registry(*families: tuple[type, ...]) -> dict[str, type]:
    return {cls.__name__: cls for family in families for cls in family}


RESTRICTIONS = _registry(rs.RESTRICTION_TYPES)
EFFECTS = _registry(fx.EFFECT_TYPES)
MODIFICATIONS = _registry(fx.MODIFICATION_TYPES)
ADDITIONAL_COSTS = _registry(cst.ADDITIONAL_COST_TYPES)
STATIC_ABILITIES = _registry(cd.STATIC_ABILITY_TYPES)
EVENT_MODIFICATIONS = _registry(cd.EVENT_MODIFICATION_TYPES)


class _CardParser:
    """Parses one card document, tracking the node path for error messages."""

    def __init__(self, card_name: str):
        self.card_name = card_name

    def fail(self, path: str, reason: str) -> CardDefinitionError:
        return CardDefinitionError(self.card_name, path, reason)

    # -------------------------------------------------------------------------
    # Scalars
    # -------------------------------------------------------------------------

    def enum(self, enum_cls, value: Any, path: str):
        try:
            return enum_cls(value.lower() if isinstance(value, str) and enum_cls is not cst.ManaColor else value)
        except (ValueError, AttributeError):
            allowed = ", ".join(str(m.value) for m in enum_cls)
            raise self.fail(path, f"unknown {enum_cls.__name__} {value!r} (expected one of: {allowed})")

    def enum_set(self, enum_cls, value: Any, path: str) -> frozenset:
        items = self.as_list(value, path)
        return frozenset(self.enum(enum_cls, item, f"{path}[{i}]") for i, item in enumerate(items))

    def strings(self, value: Any, path: str) -> frozenset[str]:
        items = self.as_list(value, path)
        for i, item in enumerate(items):
            if not isinstance(item, str):
                raise self.fail(f"{path}[{i}]", "expected a string")
        return frozenset(item.lower() for item in items)

    def integer(self, value: Any, path: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise self.fail(path, f"expected an integer, got {value!r}")
        return value

    def amount(self, value: Any, path: str) -> int | rs.DynamicValue:
        if isinstance(value, str) and value.lower() == "x":
            return rs.DynamicValue.X
        return self.integer(value, path)

    def boolean(self, value: Any, path: str) -> bool:
        if not isinstance(value, bool):
            raise self.fail(path, f"expected true or false, got {value!r}")
        return value

    def text(self, value: Any, path: str) -> str:
        if not isinstance(value, str):
            raise self.fail(path, f"expected a string, got {value!r}")
        return value

    def as_list(self, value: Any, path: str) -> list:
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, (str, int)):
            return [value]
        raise self.fail(path, f"expected a list, got {type(value).__name__}")

    def mana_cost(self, value: Any, path: str) -> tuple[cst.ManaSymbol, ...]:
        try:
            return cst.parse_mana_cost(self.text(value, path))
        except ValueError as e:
            raise self.fail(path, str(e))

    def mana_colors(self, value: Any, path: str) -> tuple[cst.ManaColor, ...]:
        if isinstance(value, str) and "{" in value:
            symbols = self.mana_cost(value, path)
            if any(s.color is None for s in symbols):
                raise self.fail(path, "mana produced must be colored or {C}")
            return tuple(s.color for s in symbols)
        items = self.as_list(value, path)
        return tuple(self.enum(cst.ManaColor, str(item).upper(), f"{path}[{i}]") for i, item in enumerate(items))

    def comparison(self, node: dict, path: str) -> rs.Comparison:
        source = node.get("comparison", node)
        if not isinstance(source, dict) or "op" not in source or "value" not in source:
            raise self.fail(path, "comparison needs 'op' and 'value'")
        return rs.Comparison(
            op=self.enum(rs.ComparisonOp, source["op"], f"{path}.op"),
            value=self.amount(source["value"], f"{path}.value"),
        )

    def target_count(self, value: Any, path: str) -> fx.TargetCount:
        if isinstance(value, str) and value.lower() == "x":
            return fx.TargetCount.x()
        if isinstance(value, dict):
            unknown = set(value) - {"min", "max", "up_to"}
            if unknown:
                raise self.fail(path, f"unknown count field(s): {', '.join(sorted(unknown))}")
            if "up_to" in value:
                return fx.TargetCount.up_to(self.integer(value["up_to"], f"{path}.up_to"))
            minimum = self.integer(value.get("min", 1), f"{path}.min")
            maximum = self.integer(value.get("max", minimum), f"{path}.max")
            return fx.TargetCount(minimum=minimum, maximum=maximum)
        return fx.TargetCount.exactly(self.integer(value, path))

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def node(self, registry: dict[str, type], family: str, value: Any, path: str):
        """Build one tagged dataclass node."""
        if not isinstance(value, dict):
            raise self.fail(path, f"expected a {family} object, got {type(value).__name__}")
        tag = value.get("type")
        if tag not in registry:
            raise self.fail(path, f"unknown {family} type {tag!r}")
        cls = registry[tag]
        declared = {f.name: f for f in fields(cls)}
        flattened = {"op", "value"} if "comparison" in declared else set()
        unknown = set(value) - set(declared) - {"type"} - flattened
        if unknown:
            raise self.fail(path, f"unknown field(s) for {tag}: {', '.join(sorted(unknown))}")

        kwargs = {}
        for name, f in declared.items():
            field_path = f"{path}.{name}"
            if name == "comparison":
                kwargs[name] = self.comparison(value, field_path)
                continue
            if name not in value:
                if f.default is MISSING and f.default_factory is MISSING:
                    raise self.fail(path, f"{tag} requires field {name!r}")
                continue
            kwargs[name] = self.convert(cls, name, value[name], field_path)
        return cls(**kwargs)

    def convert(self, cls: type, name: str, value: Any, path: str) -> Any:
        special = _SPECIAL_FIELDS.get((cls, name))
        converter = special or _FIELD_CONVERTERS.get(name)
        if converter is None:
            raise self.fail(path, f"unsupported field {name!r}")
        return converter(self, value, path)

    def restrictions(self, value: Any, path: str) -> tuple[rs.Restriction, ...]:
        items = self.as_list(value, path) if value is not None else []
        return tuple(self.node(RESTRICTIONS, "restriction", item, f"{path}[{i}]") for i, item in enumerate(items))

    def effects(self, value: Any, path: str) -> tuple[fx.Effect, ...]:
        items = self.as_list(value, path) if value is not None else []
        return tuple(self.node(EFFECTS, "effect", item, f"{path}[{i}]") for i, item in enumerate(items))

    def modes(self, value: Any, path: str) -> tuple[tuple[fx.Effect, ...], ...]:
        items = self.as_list(value, path)
        return tuple(self.effects(mode, f"{path}[{i}]") for i, mode in enumerate(items))

    def modifications(self, value: Any, path: str) -> tuple[fx.Modification, ...]:
        items = self.as_list(value, path)
        return tuple(self.node(MODIFICATIONS, "modification", item, f"{path}[{i}]") for i, item in enumerate(items))

    def target_spec(self, value: Any, path: str) -> fx.TargetSpec:
        if not isinstance(value, dict):
            raise self.fail(path, "expected a target object")
        unknown = set(value) - {"restrictions", "count", "cards", "players", "spells", "prompt"}
        if unknown:
            raise self.fail(path, f"unknown target field(s): {', '.join(sorted(unknown))}")
        return fx.TargetSpec(
            restrictions=self.restrictions(value.get("restrictions", []), f"{path}.restrictions"),
            count=self.target_count(value.get("count", 1), f"{path}.count"),
            cards=self.boolean(value.get("cards", True), f"{path}.cards"),
            players=self.boolean(value.get("players", False), f"{path}.players"),
            spells=self.boolean(value.get("spells", False), f"{path}.spells"),
            prompt=self.text(value.get("prompt", ""), f"{path}.prompt"),
        )

    def cost(self, value: Any, path: str) -> cst.Cost:
        if isinstance(value, str):
            return cst.Cost(mana=self.mana_cost(value, path))
        if not isinstance(value, dict):
            raise self.fail(path, "expected a cost string or object")
        unknown = set(value) - {"mana", "additional"}
        if unknown:
            raise self.fail(path, f"unknown cost field(s): {', '.join(sorted(unknown))}")
        additional = self.as_list(value.get("additional", []), f"{path}.additional")
        return cst.Cost(
            mana=self.mana_cost(value.get("mana", ""), f"{path}.mana"),
            additional=tuple(
                self.node(ADDITIONAL_COSTS, "cost", item, f"{path}.additional[{i}]")
                for i, item in enumerate(additional)
            ),
        )

    # -------------------------------------------------------------------------
    # Abilities
    # -------------------------------------------------------------------------

    def activated(self, value: Any, path: str) -> cd.ActivatedAbility:
        self.expect_keys(value, path, {"cost", "effects", "targets", "sorcery_speed", "once_per_turn", "oracle_text"})
        if "cost" not in value:
            raise self.fail(path, "activated ability requires a cost")
        return cd.ActivatedAbility(
            cost=self.cost(value["cost"], f"{path}.cost"),
            effects=self.effects(value.get("effects", []), f"{path}.effects"),
            targets=self.optional_targets(value, path),
            sorcery_speed=self.boolean(value.get("sorcery_speed", False), f"{path}.sorcery_speed"),
            once_per_turn=self.boolean(value.get("once_per_turn", False), f"{path}.once_per_turn"),
            oracle_text=self.text(value.get("oracle_text", ""), f"{path}.oracle_text"),
        )

    def triggered(self, value: Any, path: str) -> cd.TriggeredAbility:
        self.expect_keys(value, path, {"trigger", "effects", "targets", "oracle_text"})
        trigger = value.get("trigger")
        if not isinstance(trigger, dict) or "event" not in trigger:
            raise self.fail(f"{path}.trigger", "trigger requires an 'event'")
        self.expect_keys(trigger, f"{path}.trigger", {"event", "restrictions", "location"})
        return cd.TriggeredAbility(
            trigger=cd.Trigger(
                event=self.enum(cd.TriggerEvent, trigger["event"], f"{path}.trigger.event"),
                restrictions=self.restrictions(trigger.get("restrictions", []), f"{path}.trigger.restrictions"),
                location=self.enum(
                    cd.TriggerLocation, trigger.get("location", "battlefield"), f"{path}.trigger.location"
                ),
            ),
            effects=self.effects(value.get("effects", []), f"{path}.effects"),
            targets=self.optional_targets(value, path),
            oracle_text=self.text(value.get("oracle_text", ""), f"{path}.oracle_text"),
        )

    def replacement(self, value: Any, path: str) -> cd.ReplacementAbility:
        self.expect_keys(value, path, {"replacing", "modification", "restrictions", "oracle_text"})
        for key in ("replacing", "modification"):
            if key not in value:
                raise self.fail(path, f"replacement ability requires {key!r}")
        return cd.ReplacementAbility(
            replacing=self.enum(cd.ReplacementEvent, value["replacing"], f"{path}.replacing"),
            modification=self.node(
                EVENT_MODIFICATIONS, "event modification", value["modification"], f"{path}.modification"
            ),
            restrictions=self.restrictions(value.get("restrictions", []), f"{path}.restrictions"),
            oracle_text=self.text(value.get("oracle_text", ""), f"{path}.oracle_text"),
        )

    def optional_targets(self, value: dict, path: str) -> fx.TargetSpec | None:
        if value.get("targets") is None:
            return None
        return self.target_spec(value["targets"], f"{path}.targets")

    def expect_keys(self, value: Any, path: str, allowed: set[str]) -> None:
        if not isinstance(value, dict):
            raise self.fail(path, f"expected an object, got {type(value).__name__}")
        unknown = set(value) - allowed
        if unknown:
            raise self.fail(path, f"unknown field(s): {', '.join(sorted(unknown))}")

    # -------------------------------------------------------------------------
    # Card
    # -------------------------------------------------------------------------

    def card(self, document: dict, path: str = "", token: bool = False) -> cd.CardDefinition:
        prefix = f"{path}." if path else ""
        self.expect_keys(document, path or "<card>", _CARD_KEYS)
        name = document.get("name")
        if not isinstance(name, str) or not name.strip():
            raise self.fail(f"{prefix}name", "card requires a non-empty name")
        if "type_line" not in document:
            raise self.fail(f"{prefix}type_line", "card requires a type_line")
        try:
            type_line = cd.TypeLine.parse(self.text(document["type_line"], f"{prefix}type_line"))
        except ValueError as e:
            raise self.fail(f"{prefix}type_line", str(e))

        def listed(key: str, build: Callable[[Any, str], Any]) -> tuple:
            items = self.as_list(document.get(key, []), f"{prefix}{key}")
            return tuple(build(item, f"{prefix}{key}[{i}]") for i, item in enumerate(items))

        back_face = None
        if document.get("back_face") is not None:
            back_face = self.card(document["back_face"], f"{prefix}back_face", token=token)

        return cd.CardDefinition(
            name=name,
            type_line=type_line,
            cost=self.cost(document.get("cost", ""), f"{prefix}cost"),
            colors=self.enum_set(Color, document.get("colors", []), f"{prefix}colors"),
            power=self.optional_int(document, "power", prefix),
            toughness=self.optional_int(document, "toughness", prefix),
            keywords=self.enum_set(Keyword, document.get("keywords", []), f"{prefix}keywords"),
            oracle_text=self.text(document.get("oracle_text", ""), f"{prefix}oracle_text"),
            targets=(
                self.target_spec(document["targets"], f"{prefix}targets")
                if document.get("targets") is not None else None
            ),
            effects=self.effects(document.get("effects", []), f"{prefix}effects"),
            static_abilities=listed(
                "static_abilities", lambda v, p: self.node(STATIC_ABILITIES, "static ability", v, p)
            ),
            activated_abilities=listed("activated_abilities", self.activated),
            triggered_abilities=listed("triggered_abilities", self.triggered),
            replacement_abilities=listed("replacement_abilities", self.replacement),
            back_face=back_face,
            token=token or bool(document.get("token", False)),
        )

    def optional_int(self, document: dict, key: str, prefix: str) -> int | None:
        if document.get(key) is None:
            return None
        return self.integer(document[key], f"{prefix}{key}")


_CARD_KEYS = {
    "name", "type_line", "cost", "colors", "power", "toughness", "keywords",
    "oracle_text", "targets", "effects", "static_abilities", "activated_abilities",
    "triggered_abilities", "replacement_abilities", "back_face", "token",
}


_FIELD_CONVERTERS: dict[str, Callable[[_CardParser, Any, str], Any]] = {
    "restrictions": _CardParser.restrictions,
    "condition": _CardParser.restrictions,
    "effects": _CardParser.effects,
    "then": _CardParser.effects,
    "otherwise": _CardParser.effects,
    "modes": _CardParser.modes,
    "modifications": _CardParser.modifications,
    "spec": _CardParser.target_spec,
    "cost": _CardParser.cost,
    "types": lambda p, v, path: p.enum_set(CardType, v, path),
    "subtypes": _CardParser.strings,
    "colors": lambda p, v, path: p.enum_set(Color, v, path),
    "keywords": lambda p, v, path: p.enum_set(Keyword, v, path),
    "locations": lambda p, v, path: p.enum_set(Location, v, path),
    "relation": lambda p, v, path: p.enum(rs.ControllerRelation, v, path),
    "counter": lambda p, v, path: p.enum(CounterKind, v, path),
    "duration": lambda p, v, path: p.enum(fx.Duration, v, path),
    "event": lambda p, v, path: p.enum(fx.WasEvent, v, path),
    "amount": _CardParser.amount,
    "count": _CardParser.amount,
    "power": _CardParser.integer,
    "toughness": _CardParser.integer,
    "factor": _CardParser.integer,
    "generic": _CardParser.integer,
    "take": _CardParser.integer,
    "value": _CardParser.integer,
    "top": _CardParser.boolean,
    "tapped": _CardParser.boolean,
    "graveyard": _CardParser.boolean,
    "destination": lambda p, v, path: p.enum(Location, v, path),
    "rest": lambda p, v, path: p.enum(Location, v, path),
    "prompt": _CardParser.text,
    "source": _CardParser.text,
    "mana": _CardParser.mana_colors,
    "token": lambda p, v, path: p.card(v, path, token=True),
}


_SPECIAL_FIELDS: dict[tuple[type, str], Callable[[_CardParser, Any, str], Any]] = {
    (fx.SelectNonTargeting, "count"): _CardParser.target_count,
    (fx.GainManaOfChoice, "colors"): _CardParser.mana_colors,
    (fx.Discard, "count"): _CardParser.integer,
    (fx.Mill, "count"): _CardParser.integer,
    (fx.Scry, "count"): _CardParser.integer,
    (fx.ExamineTopCards, "count"): _CardParser.integer,
    (fx.TutorLibrary, "count"): _CardParser.integer,
    (fx.RemoveCounters, "count"): _CardParser.integer,
    (rs.EnteredBattlefieldThisTurn, "count"): _CardParser.integer,
    (rs.LifeGainedThisTurn, "count"): _CardParser.integer,
    (rs.Descend, "count"): _CardParser.integer,
    (cst.SacrificePermanents, "count"): _CardParser.integer,
    (cst.ExileCards, "count"): _CardParser.integer,
    (cst.DiscardCards, "count"): _CardParser.integer,
    (cst.TapPermanents, "count"): _CardParser.integer,
    (cst.RemoveCounters, "count"): _CardParser.integer,
    (cst.PayLife, "amount"): _CardParser.integer,
    (cd.EntersWithCounters, "count"): _CardParser.integer,
    (cd.AdditionalDraws, "count"): _CardParser.integer,
}


# =============================================================================
# Public API
# =============================================================================

def parse_card(document: dict) -> cd.CardDefinition:
    """
    Parse and validate one card document.

    Raises:
        CardDefinitionError: If the document is malformed or fails validation
    """
    name = document.get("name", "<unnamed>") if isinstance(document, dict) else "<unnamed>"
    parser = _CardParser(name if isinstance(name, str) else "<unnamed>")
    card = parser.card(document)
    result = validate_card(card)
    if not result.valid:
        raise result.errors[0]
    for warning in result.warnings:
        logger.info("Card %s: %s", card.name, warning)
    return card


class CardLoadResult:
    """Cards that loaded plus a structured error for every rejected card."""

    def __init__(self):
        self.cards: dict[str, cd.CardDefinition] = {}
        self.rejected: list[CardDefinitionError] = []

    @property
    def ok(self) -> bool:
        return not self.rejected

    def __repr__(self) -> str:
        return f"CardLoadResult(cards={len(self.cards)}, rejected={len(self.rejected)})"


def load_cards(documents: list[dict]) -> CardLoadResult:
    """
    Load a batch of card documents.

    Broken cards are excluded and reported; the rest still load.
    """
    result = CardLoadResult()
    for index, document in enumerate(documents):
        try:
            card = parse_card(document)
        except CardDefinitionError as e:
            logger.warning("Rejected card definition #%d: %s", index, e)
            result.rejected.append(e)
            continue
        if card.name in result.cards:
            error = CardDefinitionError(card.name, "name", "duplicate card name")
            logger.warning("Rejected card definition #%d: %s", index, error)
            result.rejected.append(error)
            continue
        result.cards[card.name] = card
    return result
