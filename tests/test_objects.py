import pytest

from loxvm.chunk import Chunk
from loxvm.objects import (
    LoxBoundMethod,
    LoxClass,
    LoxClosure,
    LoxFunction,
    LoxInstance,
    LoxNative,
    Upvalue,
)
from loxvm.value import format_value, values_equal


def test_script_function_prints_as_script():
    assert str(LoxFunction()) == "<script>"


def test_named_function_prints_with_name():
    assert str(LoxFunction(name="add")) == "<fn add>"


def test_function_defaults():
    fn = LoxFunction()
    assert fn.arity == 0
    assert fn.upvalue_count == 0
    assert isinstance(fn.chunk, Chunk) and len(fn.chunk) == 0


def test_functions_have_separate_chunks():
    a, b = LoxFunction(), LoxFunction()
    a.chunk.write(1, 1)
    assert len(b.chunk) == 0


def test_native_prints_and_calls():
    native = LoxNative(lambda args: sum(args), "sum")
    assert str(native) == "<native fn>"
    assert native.function([1.0, 2.0]) == 3.0


def test_closure_allocates_upvalue_slots():
    fn = LoxFunction(name="f", upvalue_count=3)
    closure = LoxClosure(fn)
    assert closure.upvalue_count == 3
    assert closure.upvalues == [None, None, None]
    assert str(closure) == str(fn)


def test_open_upvalue_reads_and_writes_stack():
    stack = [10.0, 20.0, 30.0]
    up = Upvalue(stack, 1)
    assert up.is_open
    assert up.get() == 20.0
    up.set(99.0)
    assert stack[1] == 99.0


def test_closed_upvalue_keeps_value_after_stack_changes():
    stack = [1.0, 2.0]
    up = Upvalue(stack, 0)
    up.close()
    assert not up.is_open
    stack[0] = 42.0
    assert up.get() == 1.0
    up.set(7.0)
    assert up.get() == 7.0
    assert stack[0] == 42.0


def test_closing_twice_keeps_value():
    stack = ["a"]
    up = Upvalue(stack, 0)
    up.close()
    up.close()
    assert up.get() == "a"


def test_class_and_instance_printing():
    klass = LoxClass("Point")
    assert str(klass) == "Point"
    inst = LoxInstance(klass)
    assert str(inst).startswith("Point instance")
    assert inst.fields == {}


def test_instances_have_separate_fields():
    klass = LoxClass("A")
    a, b = LoxInstance(klass), LoxInstance(klass)
    a.fields["x"] = 1.0
    assert "x" not in b.fields


def test_bound_method_prints_as_method_function():
    fn = LoxFunction(name="speak")
    bound = LoxBoundMethod(LoxInstance(LoxClass("Dog")), LoxClosure(fn))
    assert str(bound) == "<fn speak>"


def test_objects_compare_by_identity():
    a, b = LoxClass("X"), LoxClass("X")
    assert values_equal(a, a)
    assert not values_equal(a, b)


@pytest.mark.parametrize(
    "obj, text",
    [(LoxClass("Cake"), "Cake"), (LoxFunction(name="go"), "<fn go>")],
)
def test_format_value_uses_object_text(obj, text):
    assert format_value(obj) == text