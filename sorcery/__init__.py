"""
Sorcery - Rules-Resolution Engine for a Collectible Card Game

A deterministic engine that turns declarative card definitions into play.
Given card definitions and a game state the engine provides:
- Legal action generation
- Cost payment with atomic rollback
- Stack-based effect resolution with resumable player decisions
- Triggered and replacement effect scheduling
- Turn and step progression
"""

__version__ = "0.1.0"
