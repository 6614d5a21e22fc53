"""Conversion of snake_case identifiers to CamelCase."""

from __future__ import annotations

import string

_ALLOWED = frozenset(string.ascii_letters + string.digits)


def camelize(name: str) -> str:
    """Drop underscores and upper-case the first letter and letters after them.

    Only ASCII letters, digits and underscores are accepted.
    """
    out = []
    underscore_seen = False
    for i, ch in enumerate(name):
        if ch not in _ALLOWED and ch != "_":
            raise ValueError(f"not allowed name {name}")
        if ch == "_":
            underscore_seen = True
            continue
        if (i == 0 or underscore_seen) and ch.islower():
            ch = ch.upper()
            underscore_seen = False
        out.append(ch)
    return "".join(out)