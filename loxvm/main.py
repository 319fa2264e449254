"""Command-line entry: run a script file or an interactive prompt."""

from __future__ import annotations

import sys
from typing import Optional, Sequence, TextIO

from .vm import VM, InterpretResult

_LINE_MAX = 1023


def repl(vm: VM, stdin: TextIO) -> None:
    """Read and run one line at a time until end of input."""
    while True:
        vm.stdout.write("> ")
        vm.stdout.flush()
        line = stdin.readline(_LINE_MAX)
        if not line:
            vm.stdout.write("\n")
            break
        vm.interpret(line)


def run_file(vm: VM, path: str) -> int:
    """Run the script at ``path`` and return the process exit status."""
    try:
        handle = open(path, "rb")
    except OSError:
        vm.stderr.write(f'Could not open file "{path}".\n')
        return 74
    with handle:
        try:
            data = handle.read()
        except OSError:
            vm.stderr.write(f'Could not read file "{path}".\n')
            return 74
    source = data.split(b"\0", 1)[0].decode("utf-8", errors="replace")

    result = vm.interpret(source)
    if result is InterpretResult.COMPILE_ERROR:
        return 65
    if result is InterpretResult.RUNTIME_ERROR:
        return 70
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the interpreter; return the exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    vm = VM()
    if not args:
        repl(vm, sys.stdin)
        return 0
    if len(args) == 1:
        return run_file(vm, args[0])
    sys.stderr.write("Usage: loxvm [path]\n")
    return 64


if __name__ == "__main__":
    raise SystemExit(main())