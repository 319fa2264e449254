import pytest

from loxvm.chunk import OpCode
from loxvm.emitter import (
    EmitError,
    FunctionCompiler,
    FunctionType,
    Local,
    UpvalueRef,
)


def script():
    return FunctionCompiler(None, FunctionType.SCRIPT, None)


def test_script_has_no_name_and_empty_slot_zero_is_this():
    fc = script()
    assert fc.function.name is None
    assert fc.locals == [Local("this", 0)]


def test_function_slot_zero_is_blank_and_named():
    fc = FunctionCompiler(None, FunctionType.FUNCTION, "f")
    assert fc.function.name == "f"
    assert fc.locals[0].name == ""


def test_method_slot_zero_is_this():
    fc = FunctionCompiler(None, FunctionType.METHOD, "m")
    assert fc.locals[0].name == "this"


def test_emit_bytes_records_lines():
    fc = script()
    fc.emit_bytes(7, OpCode.NIL, OpCode.POP)
    assert list(fc.chunk.code) == [OpCode.NIL, OpCode.POP]
    assert fc.chunk.lines == [7, 7]


def test_finish_for_function_returns_nil():
    fc = FunctionCompiler(None, FunctionType.FUNCTION, "f")
    fn = fc.finish(1)
    assert fn is fc.function
    assert list(fn.chunk.code) == [OpCode.NIL, OpCode.RETURN]


def test_finish_for_initializer_returns_this():
    fc = FunctionCompiler(None, FunctionType.INITIALIZER, "init")
    fn = fc.finish(1)
    assert list(fn.chunk.code) == [OpCode.GET_LOCAL, 0, OpCode.RETURN]


def test_emit_jump_placeholder_and_patch():
    fc = script()
    operand = fc.emit_jump(OpCode.JUMP, 1)
    assert list(fc.chunk.code) == [OpCode.JUMP, 0xFF, 0xFF]
    assert operand == 1
    fc.emit_bytes(1, OpCode.NIL, OpCode.POP)
    fc.patch_jump(operand)
    distance = (fc.chunk.code[operand] << 8) | fc.chunk.code[operand + 1]
    # The jump lands exactly at the end of the code.
    assert operand + 2 + distance == len(fc.chunk)


def test_patch_jump_too_far():
    fc = script()
    operand = fc.emit_jump(OpCode.JUMP, 1)
    for _ in range(0x10000):
        fc.emit_byte(OpCode.NIL, 1)
    with pytest.raises(EmitError, match="Too much code to jump over"):
        fc.patch_jump(operand)


def test_emit_loop_jumps_back_to_start():
    fc = script()
    fc.emit_byte(OpCode.NIL, 1)
    start = len(fc.chunk)
    fc.emit_bytes(1, OpCode.TRUE, OpCode.POP)
    fc.emit_loop(start, 1)
    end = len(fc.chunk)
    assert fc.chunk.code[end - 3] == OpCode.LOOP
    back = (fc.chunk.code[end - 2] << 8) | fc.chunk.code[end - 1]
    assert end - back == start


def test_emit_loop_too_large():
    fc = script()
    for _ in range(0x10000):
        fc.emit_byte(OpCode.NIL, 1)
    with pytest.raises(EmitError, match="Loop body too large."):
        fc.emit_loop(0, 1)


def test_make_constant_returns_index_and_limit():
    fc = script()
    indexes = [fc.make_constant(float(i)) for i in range(256)]
    assert indexes == list(range(256))
    with pytest.raises(EmitError, match="too many constants"):
        fc.make_constant(1.5)


def test_locals_resolve_after_initialization():
    fc = script()
    fc.begin_scope()
    fc.declare_local("a")
    fc.mark_initialized()
    fc.declare_local("b")
    fc.mark_initialized()
    assert fc.resolve_local("a") == 1
    assert fc.resolve_local("b") == 2
    assert fc.resolve_local("missing") is None


def test_declare_at_global_scope_adds_nothing():
    fc = script()
    fc.declare_local("g")
    assert len(fc.locals) == 1


def test_reading_local_in_own_initializer():
    fc = script()
    fc.begin_scope()
    fc.declare_local("a")
    with pytest.raises(EmitError, match="own initializer"):
        fc.resolve_local("a")


def test_duplicate_local_in_same_scope():
    fc = script()
    fc.begin_scope()
    fc.declare_local("a")
    fc.mark_initialized()
    with pytest.raises(EmitError, match="Already a variable with this name"):
        fc.declare_local("a")


def test_shadowing_in_inner_scope_is_allowed():
    fc = script()
    fc.begin_scope()
    fc.declare_local("a")
    fc.mark_initialized()
    fc.begin_scope()
    fc.declare_local("a")
    fc.mark_initialized()
    assert fc.resolve_local("a") == 2


def test_too_many_locals():
    fc = script()
    fc.begin_scope()
    for i in range(254):
        fc.add_local(f"v{i}")
    with pytest.raises(EmitError, match="Too many local variables"):
        fc.add_local("overflow")


def test_end_scope_pops_and_closes():
    fc = script()
    fc.begin_scope()
    fc.declare_local("a")
    fc.mark_initialized()
    fc.declare_local("b")
    fc.mark_initialized()
    fc.locals[1].is_captured = True
    fc.end_scope(3)
    assert list(fc.chunk.code) == [OpCode.POP, OpCode.CLOSE_UPVALUE]
    assert len(fc.locals) == 1
    assert fc.scope_depth == 0


def test_resolve_upvalue_captures_enclosing_local():
    outer = script()
    outer.begin_scope()
    outer.declare_local("x")
    outer.mark_initialized()
    inner = FunctionCompiler(outer, FunctionType.FUNCTION, "f")
    index = inner.resolve_upvalue("x")
    assert index == 0
    assert inner.upvalues == [UpvalueRef(1, True)]
    assert outer.locals[1].is_captured
    assert inner.function.upvalue_count == 1
    # Resolving again reuses the same upvalue.
    assert inner.resolve_upvalue("x") == 0
    assert len(inner.upvalues) == 1


def test_resolve_upvalue_through_two_levels():
    outer = script()
    outer.begin_scope()
    outer.declare_local("x")
    outer.mark_initialized()
    middle = FunctionCompiler(outer, FunctionType.FUNCTION, "m")
    inner = FunctionCompiler(middle, FunctionType.FUNCTION, "i")
    assert inner.resolve_upvalue("x") == 0
    assert inner.upvalues == [UpvalueRef(0, False)]
    assert middle.upvalues == [UpvalueRef(1, True)]


def test_resolve_upvalue_unknown_is_none():
    outer = script()
    inner = FunctionCompiler(outer, FunctionType.FUNCTION, "f")
    assert inner.resolve_upvalue("nowhere") is None
    assert script().resolve_upvalue("x") is None


def test_too_many_upvalues():
    outer = FunctionCompiler(None, FunctionType.FUNCTION, "o")
    inner = FunctionCompiler(outer, FunctionType.FUNCTION, "i")
    inner.upvalues = [UpvalueRef(i, False) for i in range(256)]
    outer.begin_scope()
    outer.declare_local("x")
    outer.mark_initialized()
    with pytest.raises(EmitError, match="Too many closure variables"):
        inner.resolve_upvalue("x")