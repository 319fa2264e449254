# loxvm

A single-pass bytecode compiler and stack-based virtual machine for Lox. Lox is
a small, dynamically typed scripting language. It has closures, classes and
single inheritance.

## Installing

```
pip install .
```

## Running programs

To run a script file:

```
loxvm program.lox
```

To start an interactive prompt, run `loxvm` with no arguments. Each line you
type is compiled and executed on its own. Global variables persist from one
line to the next. Lines longer than 1023 characters are read in pieces. End
the session with end-of-file (Ctrl-D).

The exit status tells you how the run went:

| Status | Meaning                              |
|-------:|--------------------------------------|
| 0      | success                              |
| 64     | more than one argument was given     |
| 65     | the program failed to compile        |
| 70     | a runtime error occurred             |
| 74     | the script file could not be read    |

Errors go to standard error:

- Compile errors have the form `[line N] Error at 'token': message`. The
  compiler reports every error it finds and recovers at statement boundaries.
- Runtime errors print the message, then a `[line N] in name` trace for each
  active call.

## The language

```
class Greeter {
  init(name) { this.name = name; }
  greet() { print "Hello, " + this.name; }
}

class Loud < Greeter {
  greet() { super.greet(); print "!"; }
}

fun counter() {
  var n = 0;
  fun next() { n = n + 1; return n; }
  return next;
}

var c = counter();
c();
print c();          // 2
Loud("Lox").greet();
print clock() >= 0; // true
```

Values are:

- `nil` and booleans
- numbers, which are double-precision floats printed the way `%g` prints them
- strings, which `+` concatenates
- functions
- classes and their instances

Only `nil` and `false` are falsey. Numbers compare equal by value, and so do
strings. All other values compare equal only when they are the same object.
Dividing by zero gives an infinity, or NaN for `0 / 0`.

The built-in `clock()` returns the processor time in seconds.

Limits:

- at most 64 nested calls
- at most 255 arguments or parameters per call or function
- at most 256 constants per function

## Using it from Python

```python
import io
from loxvm.vm import VM, InterpretResult

out = io.StringIO()
vm = VM(stdout=out, stderr=io.StringIO())
result = vm.interpret('print 1 + 2;')
assert result is InterpretResult.OK
assert out.getvalue() == "3\n"
```

`VM.interpret` returns one of these results:

- `InterpretResult.OK`
- `InterpretResult.COMPILE_ERROR`
- `InterpretResult.RUNTIME_ERROR`

Its `globals` dictionary keeps its contents across calls.

The lower layers can also be used on their own:

- `loxvm.scanner.tokenize(source)` returns the list of `Token`s, ending with
  EOF.
- `loxvm.compiler.compile_source(source)` returns a `LoxFunction` whose
  `chunk` holds the bytecode. On errors it raises `CompileError`, whose
  `errors` attribute lists the messages.
- `loxvm.debug.disassemble_chunk(chunk, name)` returns a readable listing of a
  chunk as a string.
- `loxvm.debug.disassemble_instruction(chunk, offset)` returns the text for a
  single instruction together with the next offset.

## Running the tests

```
pip install ".[test]"
pytest
```