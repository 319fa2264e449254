"""Per-function code generation state: locals, scopes, upvalues and emission."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional

from .chunk import UINT8_COUNT, Chunk, OpCode
from .objects import LoxFunction

_UINT8_MAX = UINT8_COUNT - 1
_UINT16_MAX = 0xFFFF


class EmitError(Exception):
    """A compile error detected while generating code for a function."""


class FunctionType(enum.Enum):
    """The kind of function being compiled."""

    FUNCTION = enum.auto()
    INITIALIZER = enum.auto()
    METHOD = enum.auto()
    SCRIPT = enum.auto()


@dataclass
class Local:
    """A local variable slot; a depth of -1 means declared but not yet initialized."""

    name: str
    depth: int
    is_captured: bool = False


@dataclass(frozen=True)
class UpvalueRef:
    """How a closure finds a captured variable: an enclosing local or upvalue index."""

    index: int
    is_local: bool


class FunctionCompiler:
    """Holds the code generation state of one function under compilation."""

    def __init__(
        self,
        enclosing: Optional[FunctionCompiler],
        kind: FunctionType,
        name: Optional[str],
    ) -> None:
        self.enclosing = enclosing
        self.kind = kind
        self.function = LoxFunction(name=None if kind is FunctionType.SCRIPT else name)
        self.scope_depth = 0
        self.upvalues: list[UpvalueRef] = []
        # Slot zero holds the receiver for methods and the callee otherwise.
        slot_zero = "" if kind is FunctionType.FUNCTION else "this"
        self.locals: list[Local] = [Local(slot_zero, 0)]

    @property
    def chunk(self) -> Chunk:
        return self.function.chunk

    # Emission -----------------------------------------------------------

    def emit_byte(self, byte: int, line: int) -> None:
        """Append one byte to the function's chunk."""
        self.chunk.write(byte, line)

    def emit_bytes(self, line: int, *args: int) -> None:
        """Append several bytes, all attributed to ``line``."""
        for byte in args:
            self.chunk.write(byte, line)

    def emit_loop(self, loop_start: int, line: int) -> None:
        """Emit a backward jump to ``loop_start``."""
        self.emit_byte(OpCode.LOOP, line)
        offset = len(self.chunk) - loop_start + 2
        if offset > _UINT16_MAX:
            raise EmitError("Loop body too large.")
        self.emit_bytes(line, (offset >> 8) & 0xFF, offset & 0xFF)

    def emit_jump(self, instruction: int, line: int) -> int:
        """Emit a jump with a placeholder operand; return the operand's offset."""
        self.emit_bytes(line, instruction, 0xFF, 0xFF)
        return len(self.chunk) - 2

    def patch_jump(self, offset: int) -> None:
        """Point the jump whose operand sits at ``offset`` to the current end of code."""
        jump = len(self.chunk) - offset - 2
        if jump > _UINT16_MAX:
            raise EmitError("Too much code to jump over")
        self.chunk.code[offset] = (jump >> 8) & 0xFF
        self.chunk.code[offset + 1] = jump & 0xFF

    def emit_return(self, line: int) -> None:
        """Emit the implicit return: ``this`` from initializers, nil otherwise."""
        if self.kind is FunctionType.INITIALIZER:
            self.emit_bytes(line, OpCode.GET_LOCAL, 0)
        else:
            self.emit_byte(OpCode.NIL, line)
        self.emit_byte(OpCode.RETURN, line)

    def make_constant(self, value: Any) -> int:
        """Add ``value`` to the constant pool and return its one-byte index."""
        index = self.chunk.add_constant(value)
        if index > _UINT8_MAX:
            raise EmitError("too many constants in on chunk")
        return index

    # Scopes and variables -----------------------------------------------

    def begin_scope(self) -> None:
        self.scope_depth += 1

    def end_scope(self, line: int) -> None:
        """Leave a block, popping or closing the locals it declared."""
        self.scope_depth -= 1
        while self.locals and self.locals[-1].depth > self.scope_depth:
            local = self.locals.pop()
            self.emit_byte(
                OpCode.CLOSE_UPVALUE if local.is_captured else OpCode.POP, line
            )

    def add_local(self, name: str) -> None:
        """Add an uninitialized local variable in the current scope."""
        if len(self.locals) == _UINT8_MAX:
            raise EmitError("Too many local variables in function.")
        self.locals.append(Local(name, -1))

    def declare_local(self, name: str) -> None:
        """Declare ``name`` as a local unless at global scope."""
        if self.scope_depth == 0:
            return
        duplicate = False
        for local in reversed(self.locals):
            if local.depth != -1 and local.depth < self.scope_depth:
                break
            if local.name == name:
                duplicate = True
        self.add_local(name)
        if duplicate:
            raise EmitError("Already a variable with this name in this scope.")

    def mark_initialized(self) -> None:
        """Mark the most recent local as usable."""
        if self.scope_depth == 0:
            return
        self.locals[-1].depth = self.scope_depth

    def resolve_local(self, name: str) -> Optional[int]:
        """Return the slot of the innermost local called ``name``, or None."""
        for slot in range(len(self.locals) - 1, -1, -1):
            local = self.locals[slot]
            if local.name == name:
                if local.depth == -1:
                    raise EmitError(
                        "Can't read local variable in its own initializer."
                    )
                return slot
        return None

    def resolve_upvalue(self, name: str) -> Optional[int]:
        """Return the upvalue index capturing ``name`` from enclosing functions, or None."""
        if self.enclosing is None:
            return None
        local = self.enclosing.resolve_local(name)
        if local is not None:
            self.enclosing.locals[local].is_captured = True
            return self._add_upvalue(local, True)
        upvalue = self.enclosing.resolve_upvalue(name)
        if upvalue is not None:
            return self._add_upvalue(upvalue, False)
        return None

    def _add_upvalue(self, index: int, is_local: bool) -> int:
        ref = UpvalueRef(index, is_local)
        try:
            return self.upvalues.index(ref)
        except ValueError:
            pass
        if len(self.upvalues) == UINT8_COUNT:
            raise EmitError("Too many closure variables in function")
        self.upvalues.append(ref)
        self.function.upvalue_count = len(self.upvalues)
        return len(self.upvalues) - 1

    def finish(self, line: int) -> LoxFunction:
        """Emit the implicit return and hand back the compiled function."""
        self.emit_return(line)
        return self.function