"""Heap objects of the Lox runtime: functions, closures, classes and friends.

Strings are plain Python ``str`` values and hash tables are ``dict``s, so
neither needs a class of its own here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, MutableSequence, Optional

from .chunk import Chunk

NativeFn = Callable[[list], Any]


@dataclass(eq=False)
class LoxFunction:
    """A compiled function: its bytecode, arity and captured-variable count."""

    name: Optional[str] = None
    arity: int = 0
    upvalue_count: int = 0
    chunk: Chunk = field(default_factory=Chunk)

    def __str__(self) -> str:
        if self.name is None:
            return "<script>"
        return f"<fn {self.name}>"


@dataclass(eq=False)
class LoxNative:
    """A function implemented by the host; called with the list of arguments."""

    function: NativeFn
    name: str = ""

    def __str__(self) -> str:
        return "<native fn>"


class Upvalue:
    """A captured variable.

    While open it refers to a slot of the VM's value stack; once closed it
    holds its own copy of the value.
    """

    def __init__(self, stack: MutableSequence[Any], slot: int) -> None:
        self._stack: Optional[MutableSequence[Any]] = stack
        self.slot = slot
        self.closed: Any = None

    @property
    def is_open(self) -> bool:
        return self._stack is not None

    def get(self) -> Any:
        """Return the current value of the captured variable."""
        if self._stack is not None:
            return self._stack[self.slot]
        return self.closed

    def set(self, value: Any) -> None:
        """Assign to the captured variable."""
        if self._stack is not None:
            self._stack[self.slot] = value
        else:
            self.closed = value

    def close(self) -> None:
        """Copy the value off the stack so it outlives the stack slot."""
        if self._stack is None:
            return
        self.closed = self._stack[self.slot]
        self._stack = None

    def __str__(self) -> str:
        return "upvalue"


@dataclass(eq=False)
class LoxClosure:
    """A function paired with the variables it captured."""

    function: LoxFunction
    upvalues: list = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.upvalues:
            self.upvalues = [None] * self.function.upvalue_count

    @property
    def upvalue_count(self) -> int:
        return len(self.upvalues)

    def __str__(self) -> str:
        return str(self.function)


@dataclass(eq=False)
class LoxClass:
    """A class: a name and a table of methods."""

    name: str
    methods: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class LoxInstance:
    """An instance of a class with its own field table."""

    klass: LoxClass
    fields: dict = field(default_factory=dict)

    def __str__(self) -> str:
        # Instances print their class name followed by the native-function text.
        return f"{self.klass.name} instance<native fn>"


@dataclass(eq=False)
class LoxBoundMethod:
    """A method closure bound to the receiver it was looked up on."""

    receiver: Any
    method: LoxClosure

    def __str__(self) -> str:
        return str(self.method.function)