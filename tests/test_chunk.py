import pytest

from loxvm.chunk import UINT8_COUNT, Chunk, OpCode


def test_write_records_code_and_lines():
    chunk = Chunk()
    chunk.write(OpCode.NIL, 1)
    chunk.write(OpCode.RETURN, 2)
    assert list(chunk.code) == [OpCode.NIL, OpCode.RETURN]
    assert chunk.lines == [1, 2]
    assert len(chunk) == 2


def test_code_and_lines_stay_aligned():
    chunk = Chunk()
    for i in range(50):
        chunk.write(i % UINT8_COUNT, i)
    assert len(chunk.code) == len(chunk.lines) == len(chunk)
    assert chunk.lines == list(range(50))


def test_add_constant_returns_sequential_indices():
    chunk = Chunk()
    indices = [chunk.add_constant(v) for v in (1.0, "two", None)]
    assert indices == [0, 1, 2]
    assert chunk.constants[indices[1]] == "two"


def test_add_constant_keeps_duplicates():
    chunk = Chunk()
    first = chunk.add_constant(5.0)
    second = chunk.add_constant(5.0)
    assert first != second
    assert chunk.constants == [5.0, 5.0]


@pytest.mark.parametrize("bad", [-1, UINT8_COUNT])
def test_write_rejects_out_of_range_byte(bad):
    chunk = Chunk()
    with pytest.raises(ValueError):
        chunk.write(bad, 1)
    assert len(chunk) == 0


def test_opcodes_fit_in_a_byte_and_are_dense():
    values = [op.value for op in OpCode]
    assert values == list(range(len(values)))
    assert max(values) < UINT8_COUNT
    chunk = Chunk()
    for op in OpCode:
        chunk.write(op, 1)
    assert [OpCode(b) for b in chunk.code] == list(OpCode)


def test_fresh_chunks_do_not_share_state():
    a = Chunk()
    b = Chunk()
    a.write(OpCode.POP, 1)
    a.add_constant(1.0)
    assert len(b) == 0
    assert b.constants == []