"""
anonchat.engine.names — Anonymous Display Names
================================================

Pure generator for the per-slot pseudonyms shown before a reveal, e.g.
``NeugierigeEule_412``.  Names are labels, not keys: collisions across
chats are harmless.
"""

from __future__ import annotations

import random

__all__ = ["ADJECTIVES", "NOUNS", "MAX_NAME_NUMBER", "generate_anonymous_name"]

ADJECTIVES: tuple[str, ...] = (
    "Freche",
    "Neugierige",
    "Vertrauensvolle",
    "Offene",
    "Ehrliche",
    "Warmherzige",
    "Verspielte",
    "Tiefgründige",
)

NOUNS: tuple[str, ...] = (
    "Ente",
    "Eule",
    "Biene",
    "Ameise",
    "Spinne",
    "Schmetterling",
    "Libelle",
    "Hummer",
)

MAX_NAME_NUMBER = 999


def generate_anonymous_name(rng: random.Random | None = None) -> str:
    """Return ``{Adjective}{Noun}_{Number}`` with a number in [1, 999].

    Pass *rng* for deterministic output in tests.
    """
    rng = rng or random
    adjective = rng.choice(ADJECTIVES)
    noun = rng.choice(NOUNS)
    number = rng.randint(1, MAX_NAME_NUMBER)
    return f"{adjective}{noun}_{number}"
