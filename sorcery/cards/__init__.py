"""Built-in sample card catalogue."""

from .catalog import CARD_DOCUMENTS, DECK_LISTS, build_deck, get_card, load_catalog

__all__ = [
    "CARD_DOCUMENTS",
    "DECK_LISTS",
    "build_deck",
    "get_card",
    "load_catalog",
]
