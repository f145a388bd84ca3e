"""
Tests for the command-line interface.

Tests:
- validate reports loaded and rejected cards
- cards lists the catalogue
- demo plays a few turns without a rejected action
"""

import json

from ..cli import main


class TestCLI:
    """Tests for sorcery CLI commands."""

    def test_validate_ok(self, tmp_path, capsys):
        """A valid file exits 0."""
        path = tmp_path / "cards.json"
        path.write_text(json.dumps([{"name": "Lone Wall", "type_line": "Creature - Wall",
                                     "cost": "{1}", "power": 0, "toughness": 4}]))

        assert main(["validate", str(path)]) == 0
        assert "+ Lone Wall" in capsys.readouterr().out

    def test_validate_rejects(self, tmp_path, capsys):
        """Broken cards are listed with their path and exit 1."""
        path = tmp_path / "cards.json"
        path.write_text(json.dumps({"name": "Blob", "type_line": "Creature - Ooze"}))

        assert main(["validate", str(path)]) == 1
        assert "Blob at power" in capsys.readouterr().out

    def test_validate_missing_file(self, tmp_path, capsys):
        """A missing file is an error."""
        assert main(["validate", str(tmp_path / "nope.json")]) == 1
        assert "File not found" in capsys.readouterr().out

    def test_cards(self, capsys):
        """The catalogue and decks are printed."""
        assert main(["cards"]) == 0
        out = capsys.readouterr().out
        assert "Grizzly Bears {1}{G} - Creature - Bear 2/2" in out
        assert "green: 40 cards" in out

    def test_demo(self, capsys):
        """The scripted demo finishes its turns."""
        assert main(["demo", "--seed", "7", "--turns", "3"]) == 0
        assert "Life totals:" in capsys.readouterr().out

    def test_demo_unknown_deck(self, capsys):
        """Unknown decks are reported."""
        assert main(["demo", "--decks", "green", "plaid"]) == 1
