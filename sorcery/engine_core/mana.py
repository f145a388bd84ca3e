"""
Mana pool with source tracking.

Each unit of mana remembers what produced it (the producing card's id and a
source tag, normally the producing card's name) so a resolving spell can ask
which sources paid for it.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from ..spec_schema.costs import ManaColor, ManaSymbol


@dataclass
class ManaUnit:
    color: ManaColor
    source_id: int | None = None
    source_tag: str = ""


@dataclass
class ManaPool:
    units: list[ManaUnit] = field(default_factory=list)

    def add(self, color: ManaColor, count: int = 1, source_id: int | None = None, source_tag: str = "") -> None:
        for _ in range(count):
            self.units.append(ManaUnit(color, source_id, source_tag))

    def count(self, color: ManaColor | None = None) -> int:
        if color is None:
            return len(self.units)
        return sum(1 for u in self.units if u.color == color)

    def drain(self) -> int:
        """Empty the pool, returning how much mana was lost."""
        lost = len(self.units)
        self.units.clear()
        return lost

    def plan(self, symbols: tuple[ManaSymbol, ...], x_value: int = 0) -> list[int] | None:
        """
        Pick pool indices that pay for the symbols, or None if the pool can't.

        Colored and colorless symbols are matched first; generic and X are
        paid from whatever remains, colorless before colored.
        """
        available = list(range(len(self.units)))
        chosen: list[int] = []

        for symbol in symbols:
            color = symbol.color
            if color is None:
                continue
            match = next((i for i in available if self.units[i].color == color), None)
            if match is None:
                return None
            available.remove(match)
            chosen.append(match)

        generic = sum(1 for s in symbols if s == ManaSymbol.GENERIC)
        generic += x_value * sum(1 for s in symbols if s == ManaSymbol.X)
        if generic > len(available):
            return None
        available.sort(key=lambda i: (self.units[i].color != ManaColor.COLORLESS, i))
        chosen.extend(available[:generic])
        return chosen

    def spend(self, indices: list[int]) -> list[ManaUnit]:
        """Remove the units at the given indices and return them."""
        spent = [self.units[i] for i in indices]
        for i in sorted(indices, reverse=True):
            del self.units[i]
        return spent

    def summary(self) -> dict[str, int]:
        result: dict[str, int] = {}
        for unit in self.units:
            result[unit.color.value] = result.get(unit.color.value, 0) + 1
        return result


def reduce_generic(symbols: tuple[ManaSymbol, ...], reduction: int) -> tuple[ManaSymbol, ...]:
    """Remove up to `reduction` generic symbols from a cost."""
    if reduction <= 0:
        return symbols
    result = list(symbols)
    for _ in range(reduction):
        if ManaSymbol.GENERIC not in result:
            break
        result.remove(ManaSymbol.GENERIC)
    return tuple(result)
