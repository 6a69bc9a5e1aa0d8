"""Naming helpers shared by declarations and the schema assembler.

External (GraphQL) names default to the Python member name. With
``auto_camel_case`` the assembler camel-cases member-derived names, and argument
decorators map a camelCase argument name back to the snake_case parameter it binds.
"""
from __future__ import annotations

import re

__all__ = ["camel_to_snake", "snake_to_camel", "external_name"]


def camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase identifier to snake_case. Idempotent for snake_case."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return s2.lower()


def snake_to_camel(name: str, upper_first: bool = False) -> str:
    """Convert snake_case identifier to lowerCamelCase (or UpperCamelCase).

    Leading underscores are preserved, names without underscores are returned as-is
    (apart from the first letter when ``upper_first``).
    """
    stripped = name.lstrip('_')
    prefix = name[:len(name) - len(stripped)]
    if '_' not in stripped:
        if upper_first and stripped:
            return prefix + stripped[0].upper() + stripped[1:]
        return name
    parts = [p for p in stripped.split('_') if p]
    first = parts[0].capitalize() if upper_first else parts[0][0].lower() + parts[0][1:]
    return prefix + first + ''.join(p[0].upper() + p[1:] for p in parts[1:])


def external_name(member: str, explicit: str | None, auto_camel_case: bool) -> str:
    """Schema name of a member: the explicit name wins, otherwise the (optionally camel-cased) member."""
    if explicit:
        return explicit
    return snake_to_camel(member) if auto_camel_case else member
