"""Result scanning into dataclasses, CQL schema migrations and naming helpers."""

__version__ = "0.1.0"