"""Compatibility module: the engine lives in `engine.py`.

Historical imports of `musicdecrypt.main` keep working.
"""

from .engine import cli, main, musicdecrypt

__all__ = ["musicdecrypt", "cli", "main"]
