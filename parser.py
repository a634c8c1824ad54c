from __future__ import annotations
from typing import List, Union

from lexer import OBPIParseError, Token
from nodes import (
    BinaryExpression,
    BlockStatement,
    CallExpression,
    Expression,
    ExpressionStatement,
    FunctionDeclaration,
    Identifier,
    IfStatement,
    ImportStatement,
    Literal,
    Program,
    ReturnStatement,
    Statement,
    VariableDeclaration,
    WhileStatement,
)


def _number_value(text: str) -> Union[int, float]:
    if "." in text:
        return float(text)
    try:
        return int(text)
    except ValueError:
        # Digit runs past the int conversion limit degrade to float (inf).
        return float(text)


class Parser:
    def __init__(self, tokens: List[Token], filename: str = "<string>") -> None:
        if not tokens or tokens[-1].type != "EOF":
            raise OBPIParseError("Token stream must end with EOF", expected="EOF", found="end of input")
        self.tokens = tokens
        self.filename = filename
        self.index = 0

    def parse(self) -> Program:
        statements: List[Statement] = []
        while not self._at_end():
            statements.append(self._parse_statement())
        return Program(statements=statements)

    def _parse_statement(self) -> Statement:
        token_type = self._peek().type
        if token_type == "LET":
            return self._parse_variable_declaration()
        if token_type == "FUNC":
            return self._parse_function()
        if token_type == "IF":
            return self._parse_if()
        if token_type == "WHILE":
            return self._parse_while()
        if token_type == "RETURN":
            return self._parse_return()
        if token_type == "IMPORT":
            return self._parse_import()
        if token_type == "LBRACE":
            return self._parse_block()
        expr = self._parse_expression()
        self._expect("SEMICOLON", "Expected ';' after expression")
        return ExpressionStatement(expression=expr)

    def _parse_variable_declaration(self) -> VariableDeclaration:
        self._advance()  # 'let'
        name = self._expect("IDENT", "Expected variable name")
        self._expect("EQUALS", "Expected '=' after variable name")
        initializer = self._parse_expression()
        self._expect("SEMICOLON", "Expected ';' after variable declaration")
        return VariableDeclaration(name=name.value, initializer=initializer)

    def _parse_function(self) -> FunctionDeclaration:
        self._advance()  # 'func'
        name = self._expect("IDENT", "Expected function name")
        self._expect("LPAREN", "Expected '(' after function name")
        params: List[str] = []
        if self._peek().type != "RPAREN":
            while True:
                param = self._expect("IDENT", "Expected parameter name")
                params.append(param.value)
                if not self._match("COMMA"):
                    break
        self._expect("RPAREN", "Expected ')' after parameters")
        body = self._parse_block()
        return FunctionDeclaration(name=name.value, params=params, body=body)

    def _parse_if(self) -> IfStatement:
        self._advance()  # 'if'
        self._expect("LPAREN", "Expected '(' after 'if'")
        test = self._parse_expression()
        self._expect("RPAREN", "Expected ')' after if condition")
        consequent = self._parse_block()
        # No 'else if' form: the alternate must be a block.
        alternate = self._parse_block() if self._match("ELSE") else None
        return IfStatement(test=test, consequent=consequent, alternate=alternate)

    def _parse_while(self) -> WhileStatement:
        self._advance()  # 'while'
        self._expect("LPAREN", "Expected '(' after 'while'")
        test = self._parse_expression()
        self._expect("RPAREN", "Expected ')' after while condition")
        body = self._parse_block()
        return WhileStatement(test=test, body=body)

    def _parse_return(self) -> ReturnStatement:
        self._advance()  # 'return'
        argument = None
        if self._peek().type != "SEMICOLON":
            argument = self._parse_expression()
        self._expect("SEMICOLON", "Expected ';' after return value")
        return ReturnStatement(argument=argument)

    def _parse_import(self) -> ImportStatement:
        self._advance()  # 'import'
        path = self._expect("STRING", "Expected import path string")
        self._expect("SEMICOLON", "Expected ';' after import statement")
        return ImportStatement(path=path.value)

    def _parse_block(self) -> BlockStatement:
        self._expect("LBRACE", "Expected '{' to start a block")
        statements: List[Statement] = []
        while self._peek().type != "RBRACE" and not self._at_end():
            statements.append(self._parse_statement())
        self._expect("RBRACE", "Expected '}' to end a block")
        return BlockStatement(statements=statements)

    # Expressions, lowest precedence first.

    def _parse_expression(self) -> Expression:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        left = self._parse_comparison()
        if self._peek().type == "EQUALS":
            token = self._advance()
            if not isinstance(left, Identifier):
                raise OBPIParseError(
                    f"Invalid left-hand side in assignment at {self._position(token)}",
                    expected="IDENT",
                    found=type(left).__name__,
                )
            value = self._parse_assignment()
            return BinaryExpression(left=left, operator="=", right=value)
        return left

    def _parse_comparison(self) -> Expression:
        left = self._parse_additive()
        while self._peek().type == "COMPARISON":
            operator = self._advance().value
            right = self._parse_additive()
            left = BinaryExpression(left=left, operator=operator, right=right)
        return left

    def _parse_additive(self) -> Expression:
        left = self._parse_multiplicative()
        while self._peek_operator("+", "-"):
            operator = self._advance().value
            right = self._parse_multiplicative()
            left = BinaryExpression(left=left, operator=operator, right=right)
        return left

    def _parse_multiplicative(self) -> Expression:
        left = self._parse_call()
        while self._peek_operator("*", "/"):
            operator = self._advance().value
            right = self._parse_call()
            left = BinaryExpression(left=left, operator=operator, right=right)
        return left

    def _parse_call(self) -> Expression:
        start = self._peek()
        expr = self._parse_primary()
        if self._peek().type != "LPAREN":
            return expr
        # Only a bare identifier can be called; '(f)()' reaches here as a grouped expression.
        if not isinstance(expr, Identifier) or start.type != "IDENT":
            raise OBPIParseError(
                f"Expected identifier before call expression at {self._position(self._peek())}",
                expected="IDENT",
                found=start.type,
            )
        self._advance()  # '('
        args: List[Expression] = []
        if self._peek().type != "RPAREN":
            while True:
                args.append(self._parse_expression())
                if not self._match("COMMA"):
                    break
        self._expect("RPAREN", "Expected ')' after arguments")
        return CallExpression(callee=expr, args=args)

    def _parse_primary(self) -> Expression:
        token = self._peek()
        if token.type == "IDENT":
            self._advance()
            return Identifier(name=token.value)
        if token.type == "NUMBER":
            self._advance()
            return Literal(value=_number_value(token.value), literal_type="Number")
        if token.type == "STRING":
            self._advance()
            return Literal(value=token.value, literal_type="String")
        if token.type in ("TRUE", "FALSE"):
            self._advance()
            return Literal(value=token.type == "TRUE", literal_type="Boolean")
        if token.type == "NULL":
            self._advance()
            return Literal(value=None, literal_type="Null")
        if token.type == "LPAREN":
            self._advance()
            expr = self._parse_expression()
            self._expect("RPAREN", "Expected ')' after expression")
            return expr
        raise OBPIParseError(
            f"Unexpected token {token.type} ({token.value!r}) in expression at {self._position(token)}",
            expected="expression",
            found=token.type,
        )

    # Token helpers

    def _expect(self, token_type: str, message: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise OBPIParseError(
                f"{message}. Found {token.type} instead of {token_type} at {self._position(token)}",
                expected=token_type,
                found=token.type,
            )
        return self._advance()

    def _match(self, token_type: str) -> bool:
        if self._peek().type == token_type:
            self._advance()
            return True
        return False

    def _peek_operator(self, *operators: str) -> bool:
        token = self._peek()
        return token.type == "BINARY_OP" and token.value in operators

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.type != "EOF":
            self.index += 1
        return token

    def _at_end(self) -> bool:
        return self._peek().type == "EOF"

    def _position(self, token: Token) -> str:
        return f"{self.filename}:{token.line}:{token.column}"


def parse(tokens: List[Token], filename: str = "<string>") -> Program:
    return Parser(tokens, filename).parse()
