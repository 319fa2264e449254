"""Human-readable listings of bytecode chunks."""

from __future__ import annotations

from .chunk import Chunk, OpCode
from .value import format_value

_SIMPLE = {
    OpCode.NIL, OpCode.TRUE, OpCode.FALSE, OpCode.POP, OpCode.EQUAL,
    OpCode.GREATER, OpCode.LESS, OpCode.ADD, OpCode.SUBTRACT,
    OpCode.MULTIPLY, OpCode.DIVIDE, OpCode.NOT, OpCode.NEGATE,
    OpCode.PRINT, OpCode.CLOSE_UPVALUE, OpCode.RETURN, OpCode.INHERIT,
}
_CONSTANT = {
    OpCode.CONSTANT, OpCode.GET_GLOBAL, OpCode.DEFINE_GLOBAL,
    OpCode.SET_GLOBAL, OpCode.GET_PROPERTY, OpCode.SET_PROPERTY,
    OpCode.GET_SUPER, OpCode.CLASS, OpCode.METHOD,
}
_BYTE = {
    OpCode.GET_LOCAL, OpCode.SET_LOCAL, OpCode.GET_UPVALUE,
    OpCode.SET_UPVALUE, OpCode.CALL,
}
_JUMP_SIGN = {OpCode.JUMP: -1, OpCode.JUMP_IF_FALSE: 1, OpCode.LOOP: -1}
_INVOKE = {OpCode.INVOKE, OpCode.SUPER_INVOKE}


def disassemble_chunk(chunk: Chunk, name: str) -> str:
    """Return a listing of every instruction in ``chunk`` under a header."""
    lines = [f"== {name} =="]
    offset = 0
    while offset < len(chunk.code):
        text, offset = disassemble_instruction(chunk, offset)
        lines.append(text)
    return "\n".join(lines) + "\n"


def disassemble_instruction(chunk: Chunk, offset: int) -> tuple[str, int]:
    """Describe the instruction at ``offset``; return the text and the next offset."""
    if offset > 0 and chunk.lines[offset] == chunk.lines[offset - 1]:
        prefix = "%04d    | " % offset
    else:
        prefix = "%04d %4d " % (offset, chunk.lines[offset])

    byte = chunk.code[offset]
    try:
        op = OpCode(byte)
    except ValueError:
        return prefix + f"Unknown opcode {byte}", offset + 1
    name = "OP_" + op.name
    code = chunk.code

    if op in _SIMPLE:
        return prefix + name, offset + 1
    if op in _CONSTANT:
        constant = code[offset + 1]
        value = format_value(chunk.constants[constant])
        return prefix + "%-16s %4d '%s'" % (name, constant, value), offset + 2
    if op in _BYTE:
        return prefix + "%-16s %04d" % (name, code[offset + 1]), offset + 2
    if op in _JUMP_SIGN:
        jump = (code[offset + 1] << 8) | code[offset + 2]
        target = offset + 3 + _JUMP_SIGN[op] * jump
        return prefix + "%-16s %04d -> %d" % (name, offset, target), offset + 3
    if op in _INVOKE:
        constant, arg_count = code[offset + 1], code[offset + 2]
        value = format_value(chunk.constants[constant])
        text = "%-16s (%d args) %4d '%s" % (name, arg_count, constant, value)
        return prefix + text, offset + 3

    # OP_CLOSURE: a constant operand followed by one pair per upvalue.
    offset += 1
    constant = code[offset]
    offset += 1
    function = chunk.constants[constant]
    out = [prefix + "%-16s %d %s" % (name, constant, format_value(function))]
    for _ in range(function.upvalue_count):
        is_local, index = code[offset], code[offset + 1]
        out.append(
            "%04d      |                     %s %d"
            % (offset, "local" if is_local else "upvalue", index)
        )
        offset += 2
    return "\n".join(out), offset