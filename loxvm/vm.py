"""The bytecode virtual machine that runs compiled Lox programs."""

from __future__ import annotations

import enum
import math
import sys
import time
from dataclasses import dataclass
from typing import Any, Optional, TextIO

from .chunk import UINT8_COUNT, Chunk, OpCode
from .compiler import CompileError, compile_source
from .objects import (
    LoxBoundMethod,
    LoxClass,
    LoxClosure,
    LoxFunction,
    LoxInstance,
    LoxNative,
    Upvalue,
)
from .value import format_value, is_falsey, values_equal

FRAMES_MAX = 64
STACK_MAX = FRAMES_MAX * UINT8_COUNT

_INIT = "init"


class InterpretResult(enum.Enum):
    """Outcome of running a piece of source."""

    OK = 0
    COMPILE_ERROR = 1
    RUNTIME_ERROR = 2


class LoxRuntimeError(Exception):
    """An error raised while executing bytecode."""


@dataclass(eq=False)
class _CallFrame:
    closure: LoxClosure
    slots: int
    ip: int = 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _divide(a: float, b: float) -> float:
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _clock_native(args: list) -> float:
    return time.process_time()


class VM:
    """Executes Lox source; globals persist between calls to ``interpret``."""

    def __init__(
        self, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None
    ) -> None:
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr
        self.globals: dict[str, Any] = {}
        self._stack: list[Any] = []
        self._frames: list[_CallFrame] = []
        self._open_upvalues: dict[int, Upvalue] = {}
        self._define_native("clock", _clock_native)

    # Public entry ---------------------------------------------------------

    def interpret(self, source: str) -> InterpretResult:
        """Compile and run ``source``, reporting errors on ``stderr``."""
        try:
            function = compile_source(source)
        except CompileError as exc:
            for message in exc.errors:
                self.stderr.write(message + "\n")
            return InterpretResult.COMPILE_ERROR

        self._stack.append(function)
        closure = LoxClosure(function)
        self._stack.pop()
        self._stack.append(closure)
        try:
            self._call(closure, 0)
            self._run()
        except LoxRuntimeError as exc:
            self._report(str(exc))
            return InterpretResult.RUNTIME_ERROR
        return InterpretResult.OK

    # Setup and error reporting --------------------------------------------

    def _define_native(self, name: str, function: Any) -> None:
        self.globals[name] = LoxNative(function, name)

    def _reset_stack(self) -> None:
        # A fresh list leaves any stale open upvalues pointing at the old one.
        self._stack = []
        self._frames = []
        self._open_upvalues = {}

    def _report(self, message: str) -> None:
        self.stderr.write(message + "\n")
        for frame in reversed(self._frames):
            function = frame.closure.function
            line = function.chunk.lines[frame.ip - 1]
            where = "script" if function.name is None else function.name
            self.stderr.write(f"[line {line}] in {where}\n")
        self._reset_stack()

    # Calls ----------------------------------------------------------------

    def _call(self, closure: LoxClosure, arg_count: int) -> None:
        arity = closure.function.arity
        if arg_count != arity:
            raise LoxRuntimeError(
                f"Expected {arity} arguments but got {arg_count}."
            )
        if len(self._frames) == FRAMES_MAX:
            raise LoxRuntimeError("Stack overflow.")
        self._frames.append(
            _CallFrame(closure, len(self._stack) - arg_count - 1)
        )

    def _call_value(self, callee: Any, arg_count: int) -> None:
        stack = self._stack
        if isinstance(callee, LoxBoundMethod):
            stack[-arg_count - 1] = callee.receiver
            self._call(callee.method, arg_count)
        elif isinstance(callee, LoxClass):
            stack[-arg_count - 1] = LoxInstance(callee)
            initializer = callee.methods.get(_INIT)
            if initializer is not None:
                self._call(initializer, arg_count)
            elif arg_count != 0:
                raise LoxRuntimeError(
                    f"Expected 0 arguments but got {arg_count}."
                )
        elif isinstance(callee, LoxClosure):
            self._call(callee, arg_count)
        elif isinstance(callee, LoxNative):
            first_arg = len(stack) - arg_count
            result = callee.function(stack[first_arg:])
            del stack[first_arg - 1:]
            stack.append(result)
        else:
            raise LoxRuntimeError("Can only call functions and classes.")

    def _invoke_from_class(self, klass: LoxClass, name: str, arg_count: int) -> None:
        method = klass.methods.get(name)
        if method is None:
            raise LoxRuntimeError(f"Undefined property '{name}'.")
        self._call(method, arg_count)

    def _invoke(self, name: str, arg_count: int) -> None:
        receiver = self._stack[-1 - arg_count]
        if not isinstance(receiver, LoxInstance):
            raise LoxRuntimeError("Only instances have methods.")
        if name in receiver.fields:
            value = receiver.fields[name]
            self._stack[-arg_count - 1] = value
            self._call_value(value, arg_count)
            return
        self._invoke_from_class(receiver.klass, name, arg_count)

    def _bind_method(self, klass: LoxClass, name: str) -> None:
        method = klass.methods.get(name)
        if method is None:
            raise LoxRuntimeError(f"Undefined property '{name}'.")
        bound = LoxBoundMethod(self._stack[-1], method)
        self._stack[-1] = bound

    # Upvalues -------------------------------------------------------------

    def _capture_upvalue(self, slot: int) -> Upvalue:
        upvalue = self._open_upvalues.get(slot)
        if upvalue is None:
            upvalue = Upvalue(self._stack, slot)
            self._open_upvalues[slot] = upvalue
        return upvalue

    def _close_upvalues(self, last: int) -> None:
        for slot in [s for s in self._open_upvalues if s >= last]:
            self._open_upvalues.pop(slot).close()

    # Execution ------------------------------------------------------------

    def _frame_state(self) -> tuple[_CallFrame, bytearray, list, int, int]:
        frame = self._frames[-1]
        chunk: Chunk = frame.closure.function.chunk
        return frame, chunk.code, chunk.constants, frame.slots, frame.ip

    def _binary_numbers(self) -> tuple[float, float]:
        stack = self._stack
        if not _is_number(stack[-1]) or not _is_number(stack[-2]):
            raise LoxRuntimeError("Operands must be numbers.")
        b = stack.pop()
        a = stack.pop()
        return a, b

    def _run(self) -> None:
        stack = self._stack
        frame, code, constants, base, ip = self._frame_state()
        try:
            while True:
                op = code[ip]
                ip += 1
                if op == OpCode.CONSTANT:
                    stack.append(constants[code[ip]])
                    ip += 1
                elif op == OpCode.NIL:
                    stack.append(None)
                elif op == OpCode.TRUE:
                    stack.append(True)
                elif op == OpCode.FALSE:
                    stack.append(False)
                elif op == OpCode.POP:
                    stack.pop()
                elif op == OpCode.GET_LOCAL:
                    stack.append(stack[base + code[ip]])
                    ip += 1
                elif op == OpCode.SET_LOCAL:
                    stack[base + code[ip]] = stack[-1]
                    ip += 1
                elif op == OpCode.GET_GLOBAL:
                    name = constants[code[ip]]
                    ip += 1
                    if name not in self.globals:
                        raise LoxRuntimeError(f"Undefined variable '{name}'.")
                    stack.append(self.globals[name])
                elif op == OpCode.DEFINE_GLOBAL:
                    name = constants[code[ip]]
                    ip += 1
                    self.globals[name] = stack.pop()
                elif op == OpCode.SET_GLOBAL:
                    name = constants[code[ip]]
                    ip += 1
                    if name not in self.globals:
                        raise LoxRuntimeError(f"Undefined variable '{name}'.")
                    self.globals[name] = stack[-1]
                elif op == OpCode.GET_UPVALUE:
                    stack.append(frame.closure.upvalues[code[ip]].get())
                    ip += 1
                elif op == OpCode.SET_UPVALUE:
                    frame.closure.upvalues[code[ip]].set(stack[-1])
                    ip += 1
                elif op == OpCode.GET_PROPERTY:
                    instance = stack[-1]
                    if not isinstance(instance, LoxInstance):
                        raise LoxRuntimeError("Only instances have properties.")
                    name = constants[code[ip]]
                    ip += 1
                    if name in instance.fields:
                        stack[-1] = instance.fields[name]
                    else:
                        self._bind_method(instance.klass, name)
                elif op == OpCode.SET_PROPERTY:
                    instance = stack[-2]
                    if not isinstance(instance, LoxInstance):
                        raise LoxRuntimeError("Only instances have fields.")
                    instance.fields[constants[code[ip]]] = stack[-1]
                    ip += 1
                    # The instance stays on the stack beneath the assigned value.
                elif op == OpCode.GET_SUPER:
                    name = constants[code[ip]]
                    ip += 1
                    superclass = stack.pop()
                    self._bind_method(superclass, name)
                elif op == OpCode.EQUAL:
                    b = stack.pop()
                    a = stack.pop()
                    stack.append(values_equal(a, b))
                elif op == OpCode.GREATER:
                    a, b = self._binary_numbers()
                    stack.append(a > b)
                elif op == OpCode.LESS:
                    a, b = self._binary_numbers()
                    stack.append(a < b)
                elif op == OpCode.ADD:
                    b, a = stack[-1], stack[-2]
                    if isinstance(a, str) and isinstance(b, str):
                        del stack[-2:]
                        stack.append(a + b)
                    elif _is_number(a) and _is_number(b):
                        del stack[-2:]
                        stack.append(float(a + b))
                    else:
                        raise LoxRuntimeError(
                            "Operand must be two numbers or two strings."
                        )
                elif op == OpCode.SUBTRACT:
                    a, b = self._binary_numbers()
                    stack.append(float(a - b))
                elif op == OpCode.MULTIPLY:
                    a, b = self._binary_numbers()
                    stack.append(float(a * b))
                elif op == OpCode.DIVIDE:
                    a, b = self._binary_numbers()
                    stack.append(_divide(a, b))
                elif op == OpCode.NOT:
                    stack.append(is_falsey(stack.pop()))
                elif op == OpCode.NEGATE:
                    if not _is_number(stack[-1]):
                        raise LoxRuntimeError("Operand must be a number.")
                    stack.append(-stack.pop())
                elif op == OpCode.PRINT:
                    self.stdout.write(format_value(stack.pop()) + "\n")
                elif op == OpCode.JUMP:
                    offset = (code[ip] << 8) | code[ip + 1]
                    ip += 2 + offset
                elif op == OpCode.JUMP_IF_FALSE:
                    offset = (code[ip] << 8) | code[ip + 1]
                    ip += 2
                    if is_falsey(stack[-1]):
                        ip += offset
                elif op == OpCode.LOOP:
                    offset = (code[ip] << 8) | code[ip + 1]
                    ip += 2 - offset
                elif op == OpCode.CALL:
                    arg_count = code[ip]
                    ip += 1
                    frame.ip = ip
                    self._call_value(stack[-1 - arg_count], arg_count)
                    frame, code, constants, base, ip = self._frame_state()
                elif op == OpCode.INVOKE:
                    name = constants[code[ip]]
                    arg_count = code[ip + 1]
                    ip += 2
                    frame.ip = ip
                    self._invoke(name, arg_count)
                    frame, code, constants, base, ip = self._frame_state()
                elif op == OpCode.SUPER_INVOKE:
                    name = constants[code[ip]]
                    arg_count = code[ip + 1]
                    ip += 2
                    frame.ip = ip
                    superclass = stack.pop()
                    self._invoke_from_class(superclass, name, arg_count)
                    frame, code, constants, base, ip = self._frame_state()
                elif op == OpCode.CLOSURE:
                    function: LoxFunction = constants[code[ip]]
                    ip += 1
                    closure = LoxClosure(function)
                    stack.append(closure)
                    for i in range(closure.upvalue_count):
                        is_local, index = code[ip], code[ip + 1]
                        ip += 2
                        if is_local:
                            closure.upvalues[i] = self._capture_upvalue(base + index)
                        else:
                            closure.upvalues[i] = frame.closure.upvalues[index]
                elif op == OpCode.CLOSE_UPVALUE:
                    self._close_upvalues(len(stack) - 1)
                    stack.pop()
                elif op == OpCode.RETURN:
                    result = stack.pop()
                    self._close_upvalues(base)
                    self._frames.pop()
                    if not self._frames:
                        stack.pop()
                        return
                    del stack[base:]
                    stack.append(result)
                    frame, code, constants, base, ip = self._frame_state()
                elif op == OpCode.CLASS:
                    stack.append(LoxClass(constants[code[ip]]))
                    ip += 1
                elif op == OpCode.INHERIT:
                    superclass = stack[-2]
                    if not isinstance(superclass, LoxClass):
                        raise LoxRuntimeError("Superclass must be a class.")
                    subclass: LoxClass = stack[-1]
                    subclass.methods.update(superclass.methods)
                    stack.pop()
                elif op == OpCode.METHOD:
                    name = constants[code[ip]]
                    ip += 1
                    klass: LoxClass = stack[-2]
                    klass.methods[name] = stack.pop()
        except LoxRuntimeError:
            frame.ip = ip
            raise