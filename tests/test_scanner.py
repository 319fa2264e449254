import pytest

from loxvm.scanner import Scanner, Token, TokenType, tokenize


def types(source):
    return [t.type for t in tokenize(source)]


def test_simple_declaration():
    tokens = tokenize("var x = 1;")
    assert [t.type for t in tokens] == [
        TokenType.VAR,
        TokenType.IDENTIFIER,
        TokenType.EQUAL,
        TokenType.NUMBER,
        TokenType.SEMICOLON,
        TokenType.EOF,
    ]
    assert [t.lexeme for t in tokens[:-1]] == ["var", "x", "=", "1", ";"]
    assert tokens[-1].lexeme == ""


@pytest.mark.parametrize(
    "word",
    ["and", "class", "else", "false", "for", "fun", "if", "nil", "or",
     "print", "return", "super", "this", "true", "var", "while"],
)
def test_keywords(word):
    first = tokenize(word)[0]
    assert first.type is TokenType[word.upper()]
    assert first.lexeme == word


@pytest.mark.parametrize("word", ["andy", "fo", "f", "thistle", "t", "_var", "classy2"])
def test_near_keywords_are_identifiers(word):
    first = tokenize(word)[0]
    assert first.type is TokenType.IDENTIFIER
    assert first.lexeme == word


@pytest.mark.parametrize(
    "text,kind",
    [
        ("!=", TokenType.BANG_EQUAL),
        ("!", TokenType.BANG),
        ("==", TokenType.EQUAL_EQUAL),
        ("=", TokenType.EQUAL),
        ("<=", TokenType.LESS_EQUAL),
        ("<", TokenType.LESS),
        (">=", TokenType.GREATER_EQUAL),
        (">", TokenType.GREATER),
    ],
)
def test_one_or_two_char_operators(text, kind):
    assert types(text) == [kind, TokenType.EOF]


def test_single_char_tokens():
    assert types("(){},.-+;/*") == [
        TokenType.LEFT_PAREN, TokenType.RIGHT_PAREN,
        TokenType.LEFT_BRACE, TokenType.RIGHT_BRACE,
        TokenType.COMMA, TokenType.DOT, TokenType.MINUS, TokenType.PLUS,
        TokenType.SEMICOLON, TokenType.SLASH, TokenType.STAR, TokenType.EOF,
    ]


def test_comment_skipped_and_lines_counted():
    source = "// a comment\n\nprint"
    tokens = tokenize(source)
    assert tokens[0].type is TokenType.PRINT
    assert tokens[0].line == source.count("\n") + 1


def test_first_line_is_one():
    assert tokenize("x")[0].line == 1


def test_string_token_keeps_quotes():
    first = tokenize('"hello world"')[0]
    assert first.type is TokenType.STRING
    assert first.lexeme == '"hello world"'


def test_multiline_string_advances_line():
    tokens = tokenize('"a\nb" x')
    assert tokens[0].type is TokenType.STRING
    assert tokens[1].line == tokens[0].line


def test_unterminated_string():
    tokens = tokenize('"abc')
    assert tokens[0] == Token(TokenType.ERROR, "Unterminated string", 1)
    assert tokens[1].type is TokenType.EOF


def test_unexpected_character_then_continues():
    tokens = tokenize("@ x")
    assert tokens[0].type is TokenType.ERROR
    assert tokens[0].lexeme == "Unexpected character."
    assert tokens[1].type is TokenType.IDENTIFIER


def test_numbers():
    tokens = tokenize("12.5 7")
    assert [(t.type, t.lexeme) for t in tokens[:2]] == [
        (TokenType.NUMBER, "12.5"),
        (TokenType.NUMBER, "7"),
    ]


def test_trailing_dot_is_separate():
    tokens = tokenize("12.")
    assert [(t.type, t.lexeme) for t in tokens] == [
        (TokenType.NUMBER, "12"),
        (TokenType.DOT, "."),
        (TokenType.EOF, ""),
    ]


def test_scan_token_repeats_eof():
    scanner = Scanner("")
    assert scanner.scan_token().type is TokenType.EOF
    assert scanner.scan_token().type is TokenType.EOF


def test_iteration_stops_after_eof():
    tokens = list(Scanner("a b"))
    assert tokens[-1].type is TokenType.EOF
    assert sum(t.type is TokenType.EOF for t in tokens) == 1


def test_lone_slash_is_division():
    assert types("a / b") == [
        TokenType.IDENTIFIER, TokenType.SLASH, TokenType.IDENTIFIER, TokenType.EOF,
    ]