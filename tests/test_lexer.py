import pytest

from lexer import Lexer, OBPILexError, tokenize


def _kinds(source):
    return [(tok.type, tok.value) for tok in tokenize(source)]


def test_declaration_tokens_end_with_eof():
    assert _kinds('let x = "hi";') == [
        ("LET", "let"),
        ("IDENT", "x"),
        ("EQUALS", "="),
        ("STRING", "hi"),
        ("SEMICOLON", ";"),
        ("EOF", "EOF"),
    ]


def test_keywords_and_identifiers():
    kinds = [tok.type for tok in tokenize("let func if else while return import true false null lettuce _x9")]
    assert kinds == [
        "LET", "FUNC", "IF", "ELSE", "WHILE", "RETURN", "IMPORT",
        "TRUE", "FALSE", "NULL", "IDENT", "IDENT", "EOF",
    ]


def test_comparison_operators_keep_full_text():
    values = [tok.value for tok in tokenize("a == b != c < d <= e > f >= g") if tok.type == "COMPARISON"]
    assert values == ["==", "!=", "<", "<=", ">", ">="]


def test_binary_operators_and_punctuation():
    assert _kinds("(1+2)*3-4/5,{}") == [
        ("LPAREN", "("),
        ("NUMBER", "1"),
        ("BINARY_OP", "+"),
        ("NUMBER", "2"),
        ("RPAREN", ")"),
        ("BINARY_OP", "*"),
        ("NUMBER", "3"),
        ("BINARY_OP", "-"),
        ("NUMBER", "4"),
        ("BINARY_OP", "/"),
        ("NUMBER", "5"),
        ("COMMA", ","),
        ("LBRACE", "{"),
        ("RBRACE", "}"),
        ("EOF", "EOF"),
    ]


def test_line_comment_is_skipped():
    tokens = tokenize("let a = 1; // trailing / comment\nlet b = 2;")
    assert [tok.value for tok in tokens if tok.type == "IDENT"] == ["a", "b"]
    assert tokens[-2].line == 2


def test_number_with_fraction():
    assert _kinds("3.25")[0] == ("NUMBER", "3.25")


def test_trailing_dot_is_not_part_of_number():
    with pytest.raises(OBPILexError, match=r"Unexpected character '\.'"):
        tokenize("7.")
    with pytest.raises(OBPILexError):
        Lexer("12.x", "<test>").tokenize()


def test_string_has_no_escape_processing():
    assert _kinds(r'"a\n"')[0] == ("STRING", r"a\n")


def test_unterminated_string_fails():
    with pytest.raises(OBPILexError, match="Unterminated string"):
        tokenize('print("oops);')


def test_lone_bang_is_a_lex_error():
    with pytest.raises(OBPILexError, match="'!'"):
        tokenize("!x")


def test_unknown_character_reports_position():
    with pytest.raises(OBPILexError, match=r"<test>:2:3"):
        Lexer("a\n  @", "<test>").tokenize()


def test_tokenizing_twice_is_deterministic():
    source = "func main() { print(1 + 2); }"
    assert tokenize(source) == tokenize(source)
