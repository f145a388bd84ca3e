"""
Result Log - the ordered record of every mutation.

Every leaf mutation appends exactly one entry. The log is the only channel
the trigger scheduler reads, and "if-was" effects and session restrictions
(chosen, just cast, just discarded) look back over it.

A resolution session is the slice of entries after the log id recorded
when the resolution began.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import logging

from ..spec_schema.types import Location

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Kinds of log entries."""
    NEW_TURN = "new_turn"
    STEP_BEGAN = "step_began"
    CARD_MOVED = "card_moved"
    CAST = "cast"
    ACTIVATED = "activated"
    TRIGGERED = "triggered"
    RESOLVED = "resolved"
    FIZZLED = "fizzled"
    COUNTERED = "countered"
    TAPPED = "tapped"
    UNTAPPED = "untapped"
    DAMAGE_DEALT = "damage_dealt"
    LIFE_GAINED = "life_gained"
    LIFE_LOST = "life_lost"
    COUNTERS_ADDED = "counters_added"
    COUNTERS_REMOVED = "counters_removed"
    TOKEN_CREATED = "token_created"
    TOKEN_CEASED = "token_ceased"
    MODIFIER_ADDED = "modifier_added"
    MODIFIER_EXPIRED = "modifier_expired"
    MANA_ADDED = "mana_added"
    MANA_SPENT = "mana_spent"
    MANA_EMPTIED = "mana_emptied"
    CARD_CHOSEN = "card_chosen"
    MODE_CHOSEN = "mode_chosen"
    ATTACKED = "attacked"
    BLOCKED = "blocked"
    TRANSFORMED = "transformed"
    ATTACHED = "attached"
    UNATTACHED = "unattached"
    REPLACED = "replaced"
    PLAYER_LOST = "player_lost"
    LIBRARY_SHUFFLED = "library_shuffled"


class MoveReason(Enum):
    """Why a card changed zones."""
    CAST = "cast"
    RESOLVED = "resolved"
    PLAYED = "played"
    DESTROYED = "destroyed"
    SACRIFICED = "sacrificed"
    EXILED = "exiled"
    DISCARDED = "discarded"
    DRAWN = "drawn"
    MILLED = "milled"
    RETURNED = "returned"
    COUNTERED = "countered"
    FIZZLED = "fizzled"
    STATE_BASED = "state_based"
    PUT = "put"


@dataclass
class LogEntry:
    """One mutation."""
    log_id: int
    kind: EventKind
    turn: int = 0
    card_id: int | None = None
    player_id: str | None = None
    source_id: int | None = None
    from_zone: Location | None = None
    to_zone: Location | None = None
    reason: MoveReason | None = None
    amount: int = 0
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_id": self.log_id,
            "kind": self.kind.value,
            "turn": self.turn,
            "card_id": self.card_id,
            "player_id": self.player_id,
            "source_id": self.source_id,
            "from_zone": self.from_zone.value if self.from_zone else None,
            "to_zone": self.to_zone.value if self.to_zone else None,
            "reason": self.reason.value if self.reason else None,
            "amount": self.amount,
            "detail": dict(self.detail),
        }

    def __str__(self) -> str:
        parts = [f"#{self.log_id}", self.kind.value]
        if self.card_id is not None:
            parts.append(f"card={self.card_id}")
        if self.player_id is not None:
            parts.append(f"player={self.player_id}")
        if self.from_zone or self.to_zone:
            parts.append(
                f"{self.from_zone.value if self.from_zone else '-'}->{self.to_zone.value if self.to_zone else '-'}"
            )
        if self.reason:
            parts.append(self.reason.value)
        if self.amount:
            parts.append(f"amount={self.amount}")
        if self.detail:
            parts.append(str(self.detail))
        return " ".join(parts)


@dataclass
class ResultLog:
    entries: list[LogEntry] = field(default_factory=list)
    next_id: int = 1

    @property
    def last_id(self) -> int:
        """Id of the newest entry (0 when empty)."""
        return self.next_id - 1

    def append(self, kind: EventKind, turn: int = 0, **fields_) -> LogEntry:
        entry = LogEntry(log_id=self.next_id, kind=kind, turn=turn, **fields_)
        self.next_id += 1
        self.entries.append(entry)
        logger.debug("log %s", entry)
        return entry

    def since(self, log_id: int) -> list[LogEntry]:
        """Entries appended after the given log id."""
        # ids are dense and start at 1, so the slice index is the id
        return self.entries[log_id:] if log_id >= 0 else list(self.entries)

    def get(self, log_id: int) -> LogEntry | None:
        if 1 <= log_id <= len(self.entries):
            return self.entries[log_id - 1]
        return None

    def of_kind(self, kind: EventKind, since: int = 0) -> list[LogEntry]:
        return [e for e in self.since(since) if e.kind == kind]

    def __len__(self) -> int:
        return len(self.entries)
