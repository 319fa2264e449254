"""Lox runtime values: nil is None, booleans are bool, numbers are float,
strings are str; heap objects are instances of the object classes."""

from __future__ import annotations

from typing import Any


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(number: float) -> str:
    """Format a number the way ``%g`` does."""
    return "%g" % number


def format_value(value: Any) -> str:
    """Return the text the interpreter prints for a value."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return format_number(value)
    return str(value)


def values_equal(a: Any, b: Any) -> bool:
    """Lox equality: numbers and strings by value, everything else by identity."""
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def is_falsey(value: Any) -> bool:
    """Only nil and false are falsey."""
    return value is None or value is False