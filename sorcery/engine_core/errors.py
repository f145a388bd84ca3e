"""Errors raised while applying actions."""

from __future__ import annotations


INVALID_ACTION = "INVALID_ACTION"
NOT_YOUR_PRIORITY = "NOT_YOUR_PRIORITY"
ILLEGAL_TIMING = "ILLEGAL_TIMING"
UNPAYABLE = "UNPAYABLE"
NO_LEGAL_TARGETS = "NO_LEGAL_TARGETS"
INVALID_CHOICE = "INVALID_CHOICE"
NO_CHOICE_PENDING = "NO_CHOICE_PENDING"
CHOICE_PENDING = "CHOICE_PENDING"
CARD_NOT_FOUND = "CARD_NOT_FOUND"
GAME_OVER = "GAME_OVER"


class ResolutionError(Exception):
    """
    An action could not be applied.

    The reducer discards the working copy of the state when this is raised,
    so the caller's state is never partially updated.
    """

    def __init__(self, message: str, code: str = INVALID_ACTION):
        self.code = code
        super().__init__(message)
