"""Single-pass compiler from Lox source text to bytecode functions."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .chunk import OpCode
from .emitter import EmitError, FunctionCompiler, FunctionType
from .objects import LoxFunction
from .scanner import Scanner, Token, TokenType


class CompileError(Exception):
    """Raised when the source has one or more compile errors."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("\n".join(self.errors))


class Precedence(enum.IntEnum):
    """Binding strength of operators, lowest first."""

    NONE = 0
    ASSIGNMENT = enum.auto()  # =
    OR = enum.auto()  # or
    AND = enum.auto()  # and
    EQUALITY = enum.auto()  # == !=
    COMPARISON = enum.auto()  # < > <= >=
    TERM = enum.auto()  # + -
    FACTOR = enum.auto()  # * /
    UNARY = enum.auto()  # ! -
    CALL = enum.auto()  # . ()
    PRIMARY = enum.auto()


ParseFn = Callable[[bool], None]


@dataclass
class _ParseRule:
    prefix: Optional[ParseFn]
    infix: Optional[ParseFn]
    precedence: Precedence


@dataclass
class _ClassState:
    has_superclass: bool = False


_NO_RULE = _ParseRule(None, None, Precedence.NONE)

_SYNC_TOKENS = frozenset({
    TokenType.CLASS, TokenType.FUN, TokenType.VAR, TokenType.FOR,
    TokenType.IF, TokenType.WHILE, TokenType.PRINT, TokenType.RETURN,
})

_BINARY_OPS = {
    TokenType.BANG_EQUAL: (OpCode.EQUAL, OpCode.NOT),
    TokenType.EQUAL_EQUAL: (OpCode.EQUAL,),
    TokenType.GREATER: (OpCode.GREATER,),
    TokenType.GREATER_EQUAL: (OpCode.LESS, OpCode.NOT),
    TokenType.LESS: (OpCode.LESS,),
    TokenType.LESS_EQUAL: (OpCode.GREATER, OpCode.NOT),
    TokenType.PLUS: (OpCode.ADD,),
    TokenType.MINUS: (OpCode.SUBTRACT,),
    TokenType.STAR: (OpCode.MULTIPLY,),
    TokenType.SLASH: (OpCode.DIVIDE,),
}

_LITERALS = {
    TokenType.FALSE: OpCode.FALSE,
    TokenType.NIL: OpCode.NIL,
    TokenType.TRUE: OpCode.TRUE,
}


class Parser:
    """Parses one source text and compiles it into a top-level function."""

    def __init__(self, source: str) -> None:
        self._scanner = Scanner(source)
        self.current = Token(TokenType.EOF, "", 1)
        self.previous = self.current
        self.had_error = False
        self.panic_mode = False
        self.errors: list[str] = []
        self.compiler = FunctionCompiler(None, FunctionType.SCRIPT, None)
        self._classes: list[_ClassState] = []

        P, T = Precedence, TokenType
        self._rules: dict[TokenType, _ParseRule] = {
            T.LEFT_PAREN: _ParseRule(self._grouping, self._call, P.CALL),
            T.DOT: _ParseRule(None, self._dot, P.CALL),
            T.MINUS: _ParseRule(self._unary, self._binary, P.TERM),
            T.PLUS: _ParseRule(None, self._binary, P.TERM),
            T.SLASH: _ParseRule(None, self._binary, P.FACTOR),
            T.STAR: _ParseRule(None, self._binary, P.FACTOR),
            T.BANG: _ParseRule(self._unary, None, P.NONE),
            T.BANG_EQUAL: _ParseRule(None, self._binary, P.EQUALITY),
            T.EQUAL_EQUAL: _ParseRule(None, self._binary, P.COMPARISON),
            T.GREATER: _ParseRule(None, self._binary, P.COMPARISON),
            T.GREATER_EQUAL: _ParseRule(None, self._binary, P.COMPARISON),
            T.LESS: _ParseRule(None, self._binary, P.COMPARISON),
            T.LESS_EQUAL: _ParseRule(None, self._binary, P.COMPARISON),
            T.IDENTIFIER: _ParseRule(self._variable, None, P.NONE),
            T.STRING: _ParseRule(self._string, None, P.NONE),
            T.NUMBER: _ParseRule(self._number, None, P.NONE),
            T.AND: _ParseRule(None, self._and, P.AND),
            T.FALSE: _ParseRule(self._literal, None, P.NONE),
            T.NIL: _ParseRule(self._literal, None, P.NONE),
            T.OR: _ParseRule(None, self._or, P.OR),
            T.SUPER: _ParseRule(self._super, None, P.NONE),
            T.THIS: _ParseRule(self._this, None, P.NONE),
            T.TRUE: _ParseRule(self._literal, None, P.NONE),
        }

    # Public entry ---------------------------------------------------------

    def compile(self) -> LoxFunction:
        """Compile the whole source; raise CompileError if anything was wrong."""
        self._advance()
        while not self._match(TokenType.EOF):
            self._declaration()
        function = self._end_compiler()
        if self.had_error:
            raise CompileError(self.errors)
        return function

    # Error reporting ------------------------------------------------------

    def _error_at(self, token: Token, message: str) -> None:
        if self.panic_mode:
            return
        self.panic_mode = True
        text = f"[line {token.line}] Error "
        if token.type is TokenType.EOF:
            text += " at end"
        elif token.type is not TokenType.ERROR:
            text += f"at '{token.lexeme}'"
        self.errors.append(f"{text}: {message}")
        self.had_error = True

    def _error(self, message: str) -> None:
        self._error_at(self.previous, message)

    def _error_at_current(self, message: str) -> None:
        self._error_at(self.current, message)

    def _attempt(self, action: Callable[..., Any], *args: Any, default: Any = None) -> Any:
        try:
            return action(*args)
        except EmitError as exc:
            self._error(str(exc))
            return default

    # Token stream ---------------------------------------------------------

    def _advance(self) -> None:
        self.previous = self.current
        while True:
            self.current = self._scanner.scan_token()
            if self.current.type is not TokenType.ERROR:
                break
            self._error_at_current(self.current.lexeme)

    def _consume(self, kind: TokenType, message: str) -> None:
        if self.current.type is kind:
            self._advance()
            return
        self._error_at_current(message)

    def _check(self, kind: TokenType) -> bool:
        return self.current.type is kind

    def _match(self, kind: TokenType) -> bool:
        if not self._check(kind):
            return False
        self._advance()
        return True

    # Emission helpers -----------------------------------------------------

    def _emit(self, *codes: int) -> None:
        self.compiler.emit_bytes(self.previous.line, *codes)

    def _emit_jump(self, instruction: int) -> int:
        return self.compiler.emit_jump(instruction, self.previous.line)

    def _patch_jump(self, offset: int) -> None:
        self._attempt(self.compiler.patch_jump, offset)

    def _emit_loop(self, loop_start: int) -> None:
        self._attempt(self.compiler.emit_loop, loop_start, self.previous.line)

    def _make_constant(self, value: Any) -> int:
        return self._attempt(self.compiler.make_constant, value, default=0)

    def _identifier_constant(self, name: str) -> int:
        return self._make_constant(name)

    def _end_compiler(self) -> LoxFunction:
        function = self.compiler.finish(self.previous.line)
        self.compiler = self.compiler.enclosing
        return function

    def _end_scope(self) -> None:
        self.compiler.end_scope(self.previous.line)

    # Variables ------------------------------------------------------------

    def _declare_variable(self) -> None:
        self._attempt(self.compiler.declare_local, self.previous.lexeme)

    def _parse_variable(self, message: str) -> int:
        self._consume(TokenType.IDENTIFIER, message)
        self._declare_variable()
        if self.compiler.scope_depth > 0:
            return 0
        return self._identifier_constant(self.previous.lexeme)

    def _define_variable(self, global_index: int) -> None:
        if self.compiler.scope_depth > 0:
            self.compiler.mark_initialized()
            return
        self._emit(OpCode.DEFINE_GLOBAL, global_index)

    def _named_variable(self, name: str, can_assign: bool) -> None:
        try:
            arg = self.compiler.resolve_local(name)
        except EmitError as exc:
            self._error(str(exc))
            arg = 0
        if arg is not None:
            get_op, set_op = OpCode.GET_LOCAL, OpCode.SET_LOCAL
        else:
            try:
                arg = self.compiler.resolve_upvalue(name)
            except EmitError as exc:
                self._error(str(exc))
                arg = 0
            if arg is not None:
                get_op, set_op = OpCode.GET_UPVALUE, OpCode.SET_UPVALUE
            else:
                arg = self._identifier_constant(name)
                get_op, set_op = OpCode.GET_GLOBAL, OpCode.SET_GLOBAL

        if can_assign and self._match(TokenType.EQUAL):
            self._expression()
            self._emit(set_op, arg & 0xFF)
        else:
            self._emit(get_op, arg & 0xFF)

    def _argument_list(self) -> int:
        arg_count = 0
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                self._expression()
                if arg_count == 255:
                    self._error("Can't have more than 255 arguments.")
                arg_count += 1
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after arguments.")
        return arg_count & 0xFF

    # Expression rules -----------------------------------------------------

    def _rule(self, kind: TokenType) -> _ParseRule:
        return self._rules.get(kind, _NO_RULE)

    def _parse_precedence(self, precedence: Precedence) -> None:
        self._advance()
        prefix = self._rule(self.previous.type).prefix
        if prefix is None:
            self._error("Expect expression")
            return

        can_assign = precedence <= Precedence.ASSIGNMENT
        prefix(can_assign)

        while precedence <= self._rule(self.current.type).precedence:
            self._advance()
            infix = self._rule(self.previous.type).infix
            infix(can_assign)

        if can_assign and self._match(TokenType.EQUAL):
            self._error("Invalid assignment target.")

    def _expression(self) -> None:
        self._parse_precedence(Precedence.ASSIGNMENT)

    def _and(self, can_assign: bool) -> None:
        end_jump = self._emit_jump(OpCode.JUMP_IF_FALSE)
        self._emit(OpCode.POP)
        self._parse_precedence(Precedence.AND)
        self._patch_jump(end_jump)

    def _or(self, can_assign: bool) -> None:
        else_jump = self._emit_jump(OpCode.JUMP_IF_FALSE)
        end_jump = self._emit_jump(OpCode.JUMP)
        self._patch_jump(else_jump)
        self._emit(OpCode.POP)
        self._parse_precedence(Precedence.OR)
        self._patch_jump(end_jump)

    def _binary(self, can_assign: bool) -> None:
        operator = self.previous.type
        rule = self._rule(operator)
        self._parse_precedence(Precedence(rule.precedence + 1))
        codes = _BINARY_OPS.get(operator)
        if codes:
            self._emit(*codes)

    def _call(self, can_assign: bool) -> None:
        arg_count = self._argument_list()
        self._emit(OpCode.CALL, arg_count)

    def _dot(self, can_assign: bool) -> None:
        self._consume(TokenType.IDENTIFIER, "Expect property name after '.'")
        name = self._identifier_constant(self.previous.lexeme)
        if can_assign and self._match(TokenType.EQUAL):
            self._expression()
            self._emit(OpCode.SET_PROPERTY, name)
        elif self._match(TokenType.LEFT_PAREN):
            arg_count = self._argument_list()
            self._emit(OpCode.INVOKE, name, arg_count)
        else:
            self._emit(OpCode.GET_PROPERTY, name)

    def _literal(self, can_assign: bool) -> None:
        code = _LITERALS.get(self.previous.type)
        if code is not None:
            self._emit(code)

    def _grouping(self, can_assign: bool) -> None:
        self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after expression")

    def _number(self, can_assign: bool) -> None:
        self._emit(OpCode.CONSTANT, self._make_constant(float(self.previous.lexeme)))

    def _string(self, can_assign: bool) -> None:
        self._emit(OpCode.CONSTANT, self._make_constant(self.previous.lexeme[1:-1]))

    def _variable(self, can_assign: bool) -> None:
        self._named_variable(self.previous.lexeme, can_assign)

    def _super(self, can_assign: bool) -> None:
        if not self._classes:
            self._error("Can't use 'super' outside of a class.")
        elif not self._classes[-1].has_superclass:
            self._error("Can't use 'super' in a class with superclass.")
        self._consume(TokenType.DOT, "Expect '.' after 'super'.")
        self._consume(TokenType.IDENTIFIER, "Expect superclass method name.")
        name = self._identifier_constant(self.previous.lexeme)

        self._named_variable("this", False)
        if self._match(TokenType.LEFT_PAREN):
            arg_count = self._argument_list()
            self._named_variable("super", False)
            self._emit(OpCode.SUPER_INVOKE, name, arg_count)
        else:
            self._named_variable("super", False)
            self._emit(OpCode.GET_SUPER, name)

    def _this(self, can_assign: bool) -> None:
        if not self._classes:
            self._error("Can't use 'this' outside of a class.")
            return
        self._variable(False)

    def _unary(self, can_assign: bool) -> None:
        operator = self.previous.type
        self._parse_precedence(Precedence.UNARY)
        if operator is TokenType.BANG:
            self._emit(OpCode.NOT)
        elif operator is TokenType.MINUS:
            self._emit(OpCode.NEGATE)

    # Declarations and statements ------------------------------------------

    def _block(self) -> None:
        while not self._check(TokenType.RIGHT_BRACE) and not self._check(TokenType.EOF):
            self._declaration()
        self._consume(TokenType.RIGHT_BRACE, "Expect '}' after block.")

    def _function(self, kind: FunctionType) -> None:
        compiler = FunctionCompiler(self.compiler, kind, self.previous.lexeme)
        self.compiler = compiler
        compiler.begin_scope()

        self._consume(TokenType.LEFT_PAREN, "Expect '(' after function name.")
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                compiler.function.arity += 1
                if compiler.function.arity > 255:
                    self._error_at_current("Can't have more than 255 parameters.")
                constant = self._parse_variable("Expect parameter name.")
                self._define_variable(constant)
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after function name.")
        self._consume(TokenType.LEFT_BRACE, "Expect '{' before function body.")
        self._block()

        function = self._end_compiler()
        self._emit(OpCode.CLOSURE, self._make_constant(function))
        for ref in compiler.upvalues:
            self._emit(1 if ref.is_local else 0, ref.index & 0xFF)

    def _method(self) -> None:
        self._consume(TokenType.IDENTIFIER, "Expect method name.")
        constant = self._identifier_constant(self.previous.lexeme)
        kind = FunctionType.METHOD
        if self.previous.lexeme == "init":
            kind = FunctionType.INITIALIZER
        self._function(kind)
        self._emit(OpCode.METHOD, constant)

    def _class_declaration(self) -> None:
        self._consume(TokenType.IDENTIFIER, "Expect class name.")
        class_name = self.previous.lexeme
        name_constant = self._identifier_constant(class_name)
        self._declare_variable()

        self._emit(OpCode.CLASS, name_constant)
        self._define_variable(name_constant)

        state = _ClassState()
        self._classes.append(state)

        if self._match(TokenType.LESS):
            self._consume(TokenType.IDENTIFIER, "Expect superclass name.")
            self._variable(False)
            if class_name == self.previous.lexeme:
                self._error("A class can't inherit from itself.")

            self.compiler.begin_scope()
            self._attempt(self.compiler.add_local, "super")
            self._define_variable(0)

            self._named_variable(class_name, False)
            self._emit(OpCode.INHERIT)
            state.has_superclass = True

        self._named_variable(class_name, False)
        self._consume(TokenType.LEFT_BRACE, "Expect '{' before class body.")
        while not self._check(TokenType.RIGHT_BRACE) and not self._check(TokenType.EOF):
            self._method()
        self._consume(TokenType.RIGHT_BRACE, "Expect '}' after class body.")
        self._emit(OpCode.POP)

        if state.has_superclass:
            self._end_scope()
        self._classes.pop()

    def _fun_declaration(self) -> None:
        global_index = self._parse_variable("Expect function name.")
        self.compiler.mark_initialized()
        self._function(FunctionType.FUNCTION)
        self._define_variable(global_index)

    def _var_declaration(self) -> None:
        global_index = self._parse_variable("Expect variable name.")
        if self._match(TokenType.EQUAL):
            self._expression()
        else:
            self._emit(OpCode.NIL)
        self._consume(TokenType.SEMICOLON, "Expect ';' variable declaration")
        self._define_variable(global_index)

    def _expression_statement(self) -> None:
        self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after expression")
        self._emit(OpCode.POP)

    def _for_statement(self) -> None:
        self.compiler.begin_scope()
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'for'.")
        if self._match(TokenType.SEMICOLON):
            pass
        elif self._match(TokenType.VAR):
            self._var_declaration()
        else:
            self._expression_statement()

        loop_start = len(self.compiler.chunk)
        exit_jump = None
        if not self._match(TokenType.SEMICOLON):
            self._expression()
            self._consume(TokenType.SEMICOLON, "Expect ';' after loop condition.")
            exit_jump = self._emit_jump(OpCode.JUMP_IF_FALSE)
            self._emit(OpCode.POP)

        if not self._match(TokenType.RIGHT_PAREN):
            body_jump = self._emit_jump(OpCode.JUMP)
            increment_start = len(self.compiler.chunk)
            self._expression()
            self._emit(OpCode.POP)
            self._consume(TokenType.RIGHT_PAREN, "Expect ')' after for clauses")
            self._emit_loop(loop_start)
            loop_start = increment_start
            self._patch_jump(body_jump)

        self._statement()
        self._emit_loop(loop_start)

        if exit_jump is not None:
            self._patch_jump(exit_jump)
            self._emit(OpCode.POP)
        self._end_scope()

    def _if_statement(self) -> None:
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'if'.")
        self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after condition.")

        then_jump = self._emit_jump(OpCode.JUMP_IF_FALSE)
        self._emit(OpCode.POP)
        self._statement()

        else_jump = self._emit_jump(OpCode.JUMP)
        self._patch_jump(then_jump)
        self._emit(OpCode.POP)

        if self._match(TokenType.ELSE):
            self._statement()
        self._patch_jump(else_jump)

    def _print_statement(self) -> None:
        self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after value.")
        self._emit(OpCode.PRINT)

    def _return_statement(self) -> None:
        if self.compiler.kind is FunctionType.SCRIPT:
            self._error("Can't have return from top-level code.")
        if self._match(TokenType.SEMICOLON):
            self.compiler.emit_return(self.previous.line)
        else:
            if self.compiler.kind is FunctionType.INITIALIZER:
                self._error("Can't return a value from an initializer")
            self._expression()
            self._consume(TokenType.SEMICOLON, "Expect ';' after return value.")
            self._emit(OpCode.RETURN)

    def _while_statement(self) -> None:
        loop_start = len(self.compiler.chunk)
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'while'.")
        self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after condition.")

        exit_jump = self._emit_jump(OpCode.JUMP_IF_FALSE)
        self._emit(OpCode.POP)
        self._statement()
        self._emit_loop(loop_start)

        self._patch_jump(exit_jump)
        self._emit(OpCode.POP)

    def _synchronize(self) -> None:
        self.panic_mode = False
        while self.current.type is not TokenType.EOF:
            if self.previous.type is TokenType.SEMICOLON:
                return
            if self.current.type in _SYNC_TOKENS:
                return
            self._advance()

    def _declaration(self) -> None:
        if self._match(TokenType.CLASS):
            self._class_declaration()
        elif self._match(TokenType.FUN):
            self._fun_declaration()
        elif self._match(TokenType.VAR):
            self._var_declaration()
        else:
            self._statement()

        if self.panic_mode:
            self._synchronize()

    def _statement(self) -> None:
        if self._match(TokenType.PRINT):
            self._print_statement()
        elif self._match(TokenType.FOR):
            self._for_statement()
        elif self._match(TokenType.IF):
            self._if_statement()
        elif self._match(TokenType.RETURN):
            self._return_statement()
        elif self._match(TokenType.WHILE):
            self._while_statement()
        elif self._match(TokenType.LEFT_BRACE):
            self.compiler.begin_scope()
            self._block()
            self._end_scope()
        else:
            self._expression_statement()


def compile_source(source: str) -> LoxFunction:
    """Compile ``source`` into its top-level script function."""
    return Parser(source).compile()