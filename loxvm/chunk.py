"""Bytecode chunks and the instruction set."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

UINT8_COUNT = 256


class OpCode(enum.IntEnum):
    """Bytecode instructions."""

    CONSTANT = 0
    ADD = enum.auto()
    SUBTRACT = enum.auto()
    MULTIPLY = enum.auto()
    DIVIDE = enum.auto()
    NOT = enum.auto()
    NIL = enum.auto()
    TRUE = enum.auto()
    FALSE = enum.auto()
    POP = enum.auto()
    GET_LOCAL = enum.auto()
    SET_LOCAL = enum.auto()
    GET_GLOBAL = enum.auto()
    DEFINE_GLOBAL = enum.auto()
    SET_GLOBAL = enum.auto()
    GET_UPVALUE = enum.auto()
    SET_UPVALUE = enum.auto()
    GET_PROPERTY = enum.auto()
    SET_PROPERTY = enum.auto()
    GET_SUPER = enum.auto()
    EQUAL = enum.auto()
    GREATER = enum.auto()
    LESS = enum.auto()
    NEGATE = enum.auto()
    PRINT = enum.auto()
    JUMP = enum.auto()
    JUMP_IF_FALSE = enum.auto()
    LOOP = enum.auto()
    CALL = enum.auto()
    INVOKE = enum.auto()
    SUPER_INVOKE = enum.auto()
    CLOSURE = enum.auto()
    CLOSE_UPVALUE = enum.auto()
    RETURN = enum.auto()
    CLASS = enum.auto()
    INHERIT = enum.auto()
    METHOD = enum.auto()


@dataclass
class Chunk:
    """A sequence of bytecode with per-byte line numbers and a constant pool."""

    code: bytearray = field(default_factory=bytearray)
    lines: list[int] = field(default_factory=list)
    constants: list[Any] = field(default_factory=list)

    def write(self, byte: int, line: int) -> None:
        """Append one byte of code, recorded as coming from ``line``."""
        self.code.append(int(byte))
        self.lines.append(line)

    def add_constant(self, value: Any) -> int:
        """Add a value to the constant pool and return its index."""
        self.constants.append(value)
        return len(self.constants) - 1

    def __len__(self) -> int:
        return len(self.code)