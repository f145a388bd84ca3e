"""
Cost Payment Subsystem.

try_pay is all-or-nothing: a payment plan is built without touching the
state (mana picked from the pool, cards picked for sacrifice/exile/discard/
tap costs), and only a complete plan is applied. An Unpayable result means
nothing changed.

Mana is paid first, then additional costs in declared order. The Paid
result records how much mana each source tag contributed.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
import logging

from ..spec_schema import costs as cst
from ..spec_schema.card_definition import CostReduction
from ..spec_schema.restrictions import LOCATION_CLAUSES
from ..spec_schema.types import Keyword, Location
from . import mutations
from .layers import compute_characteristics
from .log import EventKind, MoveReason
from .mana import reduce_generic
from .restrictions import EvaluationContext, RestrictionEvaluator

if TYPE_CHECKING:
    from .state import CardInstance, GameState

logger = logging.getLogger(__name__)


@dataclass
class Paid:
    """A completed payment."""
    mana_spent: dict[str, int] = field(default_factory=dict)
    x_value: int = 0
    cards_used: dict[int, list[int]] = field(default_factory=dict)


@dataclass
class Unpayable:
    """Why a cost could not be paid; the state is untouched."""
    reason: str


@dataclass
class CostChoice:
    """An additional cost with more candidates than it needs."""
    index: int
    cost: cst.AdditionalCost
    candidates: list[int]
    count: int


@dataclass
class _Plan:
    mana_indices: list[int]
    picks: dict[int, list[int]]


def summoning_sick(state: GameState, card: CardInstance) -> bool:
    """Creature that came under its controller's control this turn and lacks haste."""
    chars = compute_characteristics(state, card)
    if not chars.is_creature or Keyword.HASTE in chars.keywords:
        return False
    return card.entered_turn == state.turn_number


class CostPayment:
    """Checks and pays costs."""

    def __init__(self, evaluator: RestrictionEvaluator | None = None):
        self.evaluator = evaluator or RestrictionEvaluator()

    # =========================================================================
    # Queries
    # =========================================================================

    def effective_mana(
        self,
        state: GameState,
        cost: cst.Cost,
        payer: str,
        spell: CardInstance | None = None,
    ) -> tuple[cst.ManaSymbol, ...]:
        """Mana symbols after cost reductions from permanents the payer controls."""
        if spell is None:
            return cost.mana
        reduction = 0
        for permanent in state.battlefield(payer):
            for ability in permanent.face.static_abilities:
                if not isinstance(ability, CostReduction):
                    continue
                ctx = EvaluationContext(state=state, source_id=permanent.instance_id, controller=payer)
                if self.evaluator.matches(spell.instance_id, ability.restrictions, ctx):
                    reduction += ability.generic
        return reduce_generic(cost.mana, reduction)

    def candidates(
        self,
        state: GameState,
        additional: cst.AdditionalCost,
        payer: str,
        source_id: int | None,
    ) -> list[int] | None:
        """Cards that could pay a choosing cost, or None for costs without a choice."""
        ctx = EvaluationContext(state=state, source_id=source_id, controller=payer)

        def filtered(cards: list[CardInstance], restrictions) -> list[int]:
            return [c.instance_id for c in cards if self.evaluator.matches(c.instance_id, restrictions, ctx)]

        if isinstance(additional, cst.SacrificePermanents):
            return filtered(state.battlefield(payer), additional.restrictions)
        if isinstance(additional, cst.TapPermanents):
            untapped = [c for c in state.battlefield(payer) if not c.tapped]
            return filtered(untapped, additional.restrictions)
        if isinstance(additional, cst.DiscardCards):
            return filtered(state.cards_in(Location.HAND, payer), additional.restrictions)
        if isinstance(additional, cst.ExileCards):
            if any(isinstance(c, LOCATION_CLAUSES) for c in additional.restrictions):
                pool = [
                    card
                    for location in (Location.BATTLEFIELD, Location.GRAVEYARD, Location.HAND)
                    for card in state.cards_in(location, payer)
                    if card.owner == payer
                ]
            else:
                pool = state.cards_in(Location.GRAVEYARD, payer)
            return filtered(pool, additional.restrictions)
        return None

    def required_choices(
        self,
        state: GameState,
        cost: cst.Cost,
        payer: str,
        source_id: int | None,
    ) -> list[CostChoice]:
        """Choosing costs whose candidates outnumber what they need."""
        taps_self = any(isinstance(a, cst.TapSelf) for a in cost.additional)
        choices = []
        for index, additional in enumerate(cost.additional):
            candidates = self.candidates(state, additional, payer, source_id)
            if candidates is not None and taps_self and isinstance(additional, cst.TapPermanents):
                candidates = [c for c in candidates if c != source_id]
            if candidates is not None and len(candidates) > additional.count:
                choices.append(CostChoice(index, additional, candidates, additional.count))
        return choices

    def can_pay(
        self,
        state: GameState,
        cost: cst.Cost,
        payer: str,
        source_id: int | None = None,
        x_value: int = 0,
        spell: CardInstance | None = None,
    ) -> bool:
        return isinstance(self._plan(state, cost, payer, source_id, x_value, spell, {}), _Plan)

    # =========================================================================
    # Payment
    # =========================================================================

    def try_pay(
        self,
        state: GameState,
        cost: cst.Cost,
        payer: str,
        source_id: int | None = None,
        x_value: int = 0,
        spell: CardInstance | None = None,
        choices: dict[int, list[int]] | None = None,
    ) -> Paid | Unpayable:
        """
        Pay every part of the cost or nothing.

        Args:
            choices: Cards chosen for choosing costs, by index into
                cost.additional. Costs without a supplied choice take the
                first eligible cards.
        """
        plan = self._plan(state, cost, payer, source_id, x_value, spell, choices or {})
        if isinstance(plan, Unpayable):
            logger.info("Cost unpayable for %s: %s", payer, plan.reason)
            return plan
        return self._apply(state, cost, payer, source_id, x_value, plan)

    def _plan(
        self,
        state: GameState,
        cost: cst.Cost,
        payer: str,
        source_id: int | None,
        x_value: int,
        spell: CardInstance | None,
        choices: dict[int, list[int]],
    ) -> _Plan | Unpayable:
        player = state.get_player(payer)
        source = state.get_card(source_id) if source_id is not None else None

        symbols = self.effective_mana(state, cost, payer, spell)
        mana_indices = player.mana_pool.plan(symbols, x_value)
        if mana_indices is None:
            return Unpayable(f"not enough mana for {cst.format_mana_cost(symbols)}")

        used: set[int] = set()
        tapping: set[int] = set()
        picks: dict[int, list[int]] = {}
        life_paid = 0
        counters_removed: Counter = Counter()

        for index, additional in enumerate(cost.additional):
            if isinstance(additional, cst.TapSelf):
                if source is None or not source.on_battlefield or source.tapped:
                    return Unpayable("source must be an untapped permanent")
                if summoning_sick(state, source):
                    return Unpayable(f"{source} has summoning sickness")
                if source.instance_id in tapping:
                    return Unpayable("source already tapped by another cost")
                tapping.add(source.instance_id)
                continue
            if isinstance(additional, cst.SacrificeSelf):
                if source is None or not source.on_battlefield or source.controller != payer:
                    return Unpayable("source must be a permanent you control")
                if source.instance_id in used:
                    return Unpayable("source already used by another cost")
                used.add(source.instance_id)
                continue
            if isinstance(additional, (cst.DiscardSelf, cst.ExileSelf)):
                if source is None or source.instance_id in used:
                    return Unpayable("source is not available")
                if isinstance(additional, cst.DiscardSelf) and source.zone != Location.HAND:
                    return Unpayable("source must be in your hand")
                if source.zone == Location.STACK:
                    return Unpayable("source is on the stack")
                used.add(source.instance_id)
                continue
            if isinstance(additional, cst.PayLife):
                life_paid += additional.amount
                if player.life < life_paid:
                    return Unpayable(f"not enough life to pay {additional.amount}")
                continue
            if isinstance(additional, cst.RemoveCounters):
                counters_removed[additional.counter] += additional.count
                if source is None or source.counter_count(additional.counter) < counters_removed[additional.counter]:
                    return Unpayable(f"not enough {additional.counter.value} counters")
                continue

            candidates = self.candidates(state, additional, payer, source_id)
            tapping_cost = isinstance(additional, cst.TapPermanents)
            available = [c for c in candidates if c not in used and not (tapping_cost and c in tapping)]
            if index in choices:
                chosen = list(choices[index])
                if len(chosen) != additional.count or len(set(chosen)) != len(chosen):
                    return Unpayable(f"choose exactly {additional.count} card(s) for {type(additional).__name__}")
                if any(c not in available for c in chosen):
                    return Unpayable(f"invalid card chosen for {type(additional).__name__}")
            else:
                if len(available) < additional.count:
                    return Unpayable(f"not enough cards for {type(additional).__name__}")
                chosen = available[:additional.count]
            used.update(chosen)
            if tapping_cost:
                tapping.update(chosen)
            picks[index] = chosen

        return _Plan(mana_indices=mana_indices, picks=picks)

    def _apply(
        self,
        state: GameState,
        cost: cst.Cost,
        payer: str,
        source_id: int | None,
        x_value: int,
        plan: _Plan,
    ) -> Paid:
        player = state.get_player(payer)
        source = state.get_card(source_id) if source_id is not None else None

        spent = player.mana_pool.spend(plan.mana_indices)
        mana_spent: dict[str, int] = {}
        for unit in spent:
            tag = unit.source_tag or "pool"
            mana_spent[tag] = mana_spent.get(tag, 0) + 1
        if spent:
            mutations.record(state, EventKind.MANA_SPENT, player_id=payer, source_id=source_id,
                             amount=len(spent), detail={"sources": dict(mana_spent)})

        for index, additional in enumerate(cost.additional):
            if isinstance(additional, cst.TapSelf):
                mutations.tap(state, source, source_id)
            elif isinstance(additional, cst.SacrificeSelf):
                mutations.move_card(state, source, Location.GRAVEYARD, MoveReason.SACRIFICED, source_id)
            elif isinstance(additional, cst.DiscardSelf):
                mutations.discard(state, source, source_id)
            elif isinstance(additional, cst.ExileSelf):
                mutations.move_card(state, source, Location.EXILE, MoveReason.EXILED, source_id)
            elif isinstance(additional, cst.PayLife):
                mutations.lose_life(state, payer, additional.amount, source_id)
            elif isinstance(additional, cst.RemoveCounters):
                mutations.remove_counters(state, source, additional.counter, additional.count, source_id)
            else:
                for card_id in plan.picks[index]:
                    self._pay_with_card(state, additional, state.get_card(card_id), source_id)

        return Paid(mana_spent=mana_spent, x_value=x_value, cards_used=plan.picks)

    @staticmethod
    def _pay_with_card(state: GameState, additional: cst.AdditionalCost, card: CardInstance, source_id) -> None:
        if isinstance(additional, cst.SacrificePermanents):
            mutations.move_card(state, card, Location.GRAVEYARD, MoveReason.SACRIFICED, source_id)
        elif isinstance(additional, cst.TapPermanents):
            mutations.tap(state, card, source_id)
        elif isinstance(additional, cst.DiscardCards):
            mutations.discard(state, card, source_id)
        elif isinstance(additional, cst.ExileCards):
            mutations.move_card(state, card, Location.EXILE, MoveReason.EXILED, source_id)
