"""
Cost DSL - mana costs and additional costs.

Mana costs are written in the usual brace notation and parsed into a tuple
of symbols:

    parse_mana_cost("{3}{W}{W}")  ->  (GENERIC, GENERIC, GENERIC, WHITE, WHITE)

Additional costs are closed variants paid after mana, in declared order.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import re

from .restrictions import Restriction
from .types import CounterKind, DefinitionNode


class ManaColor(Enum):
    """Kinds of mana that can sit in a mana pool."""
    WHITE = "W"
    BLUE = "U"
    BLACK = "B"
    RED = "R"
    GREEN = "G"
    COLORLESS = "C"


class ManaSymbol(Enum):
    """Symbols that can appear in a mana cost."""
    WHITE = "W"
    BLUE = "U"
    BLACK = "B"
    RED = "R"
    GREEN = "G"
    COLORLESS = "C"
    GENERIC = "1"
    X = "X"

    @property
    def color(self) -> ManaColor | None:
        """The mana color this symbol demands, None for generic and X."""
        try:
            return ManaColor(self.value)
        except ValueError:
            return None


_SYMBOL_PATTERN = re.compile(r"\{([^}]+)\}")


def parse_mana_cost(text: str) -> tuple[ManaSymbol, ...]:
    """
    Parse brace notation into mana symbols.

    Raises:
        ValueError: If the text contains an unknown symbol or stray characters
    """
    text = text.strip()
    if not text:
        return ()
    if _SYMBOL_PATTERN.sub("", text).strip():
        raise ValueError(f"Malformed mana cost: {text!r}")

    symbols: list[ManaSymbol] = []
    for raw in _SYMBOL_PATTERN.findall(text):
        raw = raw.strip().upper()
        if raw.isdigit():
            symbols.extend([ManaSymbol.GENERIC] * int(raw))
            continue
        try:
            symbol = ManaSymbol(raw)
        except ValueError:
            raise ValueError(f"Unknown mana symbol {{{raw}}} in {text!r}")
        if symbol == ManaSymbol.GENERIC:
            raise ValueError(f"Unknown mana symbol {{{raw}}} in {text!r}")
        symbols.append(symbol)
    return tuple(symbols)


def format_mana_cost(symbols: tuple[ManaSymbol, ...]) -> str:
    """Render symbols back to brace notation."""
    generic = sum(1 for s in symbols if s == ManaSymbol.GENERIC)
    parts = [f"{{{s.value}}}" for s in symbols if s == ManaSymbol.X]
    if generic:
        parts.append(f"{{{generic}}}")
    parts.extend(f"{{{s.value}}}" for s in symbols if s not in (ManaSymbol.GENERIC, ManaSymbol.X))
    return "".join(parts)


class AdditionalCost(DefinitionNode):
    """Base for non-mana costs."""

    __slots__ = ()


@dataclass(frozen=True)
class TapSelf(AdditionalCost):
    pass


@dataclass(frozen=True)
class SacrificeSelf(AdditionalCost):
    pass


@dataclass(frozen=True)
class DiscardSelf(AdditionalCost):
    pass


@dataclass(frozen=True)
class ExileSelf(AdditionalCost):
    pass


@dataclass(frozen=True)
class PayLife(AdditionalCost):
    amount: int


@dataclass(frozen=True)
class SacrificePermanents(AdditionalCost):
    """Sacrifice `count` permanents the payer controls matching restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: int = 1


@dataclass(frozen=True)
class ExileCards(AdditionalCost):
    """Exile `count` cards the payer owns matching restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: int = 1


@dataclass(frozen=True)
class DiscardCards(AdditionalCost):
    """Discard `count` cards from the payer's hand matching restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: int = 1


@dataclass(frozen=True)
class TapPermanents(AdditionalCost):
    """Tap `count` untapped permanents the payer controls matching restrictions."""
    restrictions: tuple[Restriction, ...] = field(default_factory=tuple)
    count: int = 1


@dataclass(frozen=True)
class RemoveCounters(AdditionalCost):
    """Remove counters from the source."""
    counter: CounterKind
    count: int = 1


ADDITIONAL_COST_TYPES: tuple[type[AdditionalCost], ...] = (
    TapSelf,
    SacrificeSelf,
    DiscardSelf,
    ExileSelf,
    PayLife,
    SacrificePermanents,
    ExileCards,
    DiscardCards,
    TapPermanents,
    RemoveCounters,
)


@dataclass(frozen=True)
class Cost(DefinitionNode):
    """A complete cost: mana symbols plus additional costs."""
    mana: tuple[ManaSymbol, ...] = ()
    additional: tuple[AdditionalCost, ...] = ()

    @classmethod
    def of(cls, mana: str = "", *additional: AdditionalCost) -> "Cost":
        return cls(mana=parse_mana_cost(mana), additional=tuple(additional))

    @property
    def mana_value(self) -> int:
        return sum(1 for s in self.mana if s != ManaSymbol.X)

    @property
    def has_x(self) -> bool:
        return ManaSymbol.X in self.mana

    def __str__(self) -> str:
        return format_mana_cost(self.mana)
