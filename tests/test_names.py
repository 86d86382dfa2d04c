"""
tests/test_names.py — Anonymous name generator
===============================================
"""

from __future__ import annotations

import random
import re

from anonchat.engine.names import ADJECTIVES, MAX_NAME_NUMBER, NOUNS, generate_anonymous_name

NAME_RE = re.compile(r"^(?P<prefix>[^\W\d_]+)_(?P<number>\d+)$")


def test_name_shape():
    rng = random.Random(1)
    for _ in range(200):
        name = generate_anonymous_name(rng)
        match = NAME_RE.match(name)
        assert match, name
        assert 1 <= int(match["number"]) <= MAX_NAME_NUMBER
        prefix = match["prefix"]
        assert any(prefix == a + n for a in ADJECTIVES for n in NOUNS)


def test_seeded_rng_is_deterministic():
    a = [generate_anonymous_name(random.Random(7)) for _ in range(3)]
    b = [generate_anonymous_name(random.Random(7)) for _ in range(3)]
    assert a == b


def test_default_rng_works():
    assert NAME_RE.match(generate_anonymous_name())
