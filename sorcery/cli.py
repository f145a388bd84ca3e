"""
Sorcery CLI - Command-line interface for the engine.

Usage:
    sorcery validate <cards.json>   Validate card definition documents
    sorcery cards                   List the built-in catalogue
    sorcery demo                    Play a scripted two-player opening
    sorcery serve                   Run the HTTP API with uvicorn
"""

import argparse
import json
import logging
import os
import sys

from .engine_core.action import ActionType


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sorcery - Card Game Rules Engine",
        prog="sorcery",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("SORCERY_LOG_LEVEL", "WARNING"),
        help="Logging level (default: $SORCERY_LOG_LEVEL or WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate card definitions")
    validate_parser.add_argument("cards_file", help="Path to a JSON list of card documents")

    # Catalogue
    subparsers.add_parser("cards", help="List the built-in card catalogue")

    # Demo
    demo_parser = subparsers.add_parser("demo", help="Play a scripted two-player opening")
    demo_parser.add_argument("--seed", type=int, default=7, help="Shuffle seed")
    demo_parser.add_argument("--turns", type=int, default=4, help="Number of turns to play")
    demo_parser.add_argument("--decks", nargs=2, default=["green", "red"], metavar="DECK",
                             help="Catalogue deck for each player")

    # Serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=os.getenv("SORCERY_HOST", "127.0.0.1"))
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("SORCERY_PORT", "8000")))

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "validate":
        return cmd_validate(args)
    elif args.command == "cards":
        return cmd_cards(args)
    elif args.command == "demo":
        return cmd_demo(args)
    elif args.command == "serve":
        return cmd_serve(args)
    else:
        parser.print_help()
        return 1


def cmd_validate(args):
    """Validate card definitions from a JSON file."""
    from .spec_schema import load_cards

    try:
        with open(args.cards_file, "r", encoding="utf-8") as f:
            documents = json.load(f)
    except FileNotFoundError:
        print(f"Error: File not found: {args.cards_file}")
        return 1
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    if isinstance(documents, dict):
        documents = [documents]
    if not isinstance(documents, list):
        print("Error: Expected a card document or a list of them")
        return 1

    result = load_cards(documents)
    print(f"Loaded: {len(result.cards)} card(s)")
    for name in result.cards:
        print(f"  + {name}")

    if result.rejected:
        print(f"\nRejected: {len(result.rejected)} card(s)")
        for error in result.rejected:
            print(f"  - {error.card_name} at {error.path or '<root>'}: {error.reason}")
        return 1
    return 0


def cmd_cards(args):
    """List the built-in catalogue."""
    from .cards import DECK_LISTS, load_catalog

    for card in load_catalog().values():
        stats = f" {card.power}/{card.toughness}" if card.power is not None else ""
        cost = f" {card.cost}" if str(card.cost) else ""
        print(f"{card.name}{cost} - {card.type_line}{stats}")

    print("\nDecks:")
    for name, entries in DECK_LISTS.items():
        print(f"  {name}: {sum(count for _, count in entries)} cards")
    return 0


def cmd_demo(args):
    """Play a scripted opening: lands first, then creatures, attacking when possible."""
    from .session import SessionManager

    manager = SessionManager()
    decks = {"p1": args.decks[0], "p2": args.decks[1]}
    try:
        session = manager.create_session(decks=decks, random_seed=args.seed)
    except KeyError as e:
        print(f"Error: Unknown deck or card: {e.args[0]}")
        return 1

    print(f"Game {session.session_id} (seed {args.seed}): p1 plays {decks['p1']}, p2 plays {decks['p2']}")
    printed = 0
    for _ in range(2000):
        state = session.game_state
        if state.is_over or state.turn_number > args.turns:
            break
        action = _pick_demo_action(manager.legal_actions(session.session_id))
        result = manager.apply(session.session_id, action)
        if not result.success:
            print(f"Error: {action.describe()} rejected: {result.error}")
            return 1
        for entry in session.game_state.log.entries[printed:]:
            print(f"  {entry}")
        printed = len(session.game_state.log.entries)

    state = session.game_state
    print("\nLife totals:")
    for player in state.players:
        print(f"  {player.name}: {player.life}")
    if state.winner:
        print(f"Winner: {state.winner}")
    return 0


# Preference order for the demo's scripted player
_DEMO_PREFERENCE = (
    ActionType.CHOOSE,
    ActionType.PLAY_LAND,
    ActionType.CAST_SPELL,
    ActionType.DECLARE_BLOCKERS,
    ActionType.DECLARE_ATTACKERS,
    ActionType.PASS_PRIORITY,
)


def _pick_demo_action(actions):
    for action_type in _DEMO_PREFERENCE:
        candidates = [a for a in actions if a.action_type == action_type]
        if not candidates:
            continue
        if action_type == ActionType.DECLARE_ATTACKERS:
            # Attack with everything that can
            return max(candidates, key=lambda a: len(a.payload.attackers or {}))
        return candidates[0]
    return actions[0]


def cmd_serve(args):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("sorcery.api.app:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
