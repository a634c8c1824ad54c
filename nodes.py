"""AST node set and its JSON-compatible dictionary form.

The dictionary form is what the compiler serializes into artifacts, so every
node knows how to render itself (``to_dict``) and ``node_from_dict`` rebuilds
the tree. Keys follow the layout ``{"type": "<NodeKind>", ...}``.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


class Node:
    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


class Statement(Node):
    pass


class Expression(Node):
    pass


@dataclass
class Program(Node):
    statements: List[Statement] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "Program", "body": [stmt.to_dict() for stmt in self.statements]}


@dataclass
class Identifier(Expression):
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "Identifier", "name": self.name}


# Serialized node names; numbers are "NumericLiteral" in artifacts.
LITERAL_NODE_TYPES = {
    "String": "StringLiteral",
    "Number": "NumericLiteral",
    "Boolean": "BooleanLiteral",
    "Null": "NullLiteral",
}
LITERAL_KINDS = {node_type: kind for kind, node_type in LITERAL_NODE_TYPES.items()}


@dataclass
class Literal(Expression):
    value: Union[str, int, float, bool, None]
    literal_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": LITERAL_NODE_TYPES[self.literal_type], "value": self.value}


@dataclass
class BinaryExpression(Expression):
    left: Expression
    operator: str
    right: Expression

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "BinaryExpression",
            "left": self.left.to_dict(),
            "operator": self.operator,
            "right": self.right.to_dict(),
        }


@dataclass
class CallExpression(Expression):
    callee: Identifier
    args: List[Expression]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "CallExpression",
            "callee": self.callee.to_dict(),
            "args": [arg.to_dict() for arg in self.args],
        }


@dataclass
class ExpressionStatement(Statement):
    expression: Expression

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "ExpressionStatement", "expression": self.expression.to_dict()}


@dataclass
class VariableDeclaration(Statement):
    name: str
    initializer: Expression

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "VariableDeclaration",
            "identifier": Identifier(self.name).to_dict(),
            "value": self.initializer.to_dict(),
        }


@dataclass
class BlockStatement(Statement):
    statements: List[Statement]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "BlockStatement", "body": [stmt.to_dict() for stmt in self.statements]}


@dataclass
class IfStatement(Statement):
    test: Expression
    consequent: BlockStatement
    alternate: Optional[BlockStatement] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": "IfStatement",
            "test": self.test.to_dict(),
            "consequent": self.consequent.to_dict(),
        }
        # An absent else branch is omitted rather than written as null.
        if self.alternate is not None:
            data["alternate"] = self.alternate.to_dict()
        return data


@dataclass
class WhileStatement(Statement):
    test: Expression
    body: BlockStatement

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "WhileStatement", "test": self.test.to_dict(), "body": self.body.to_dict()}


@dataclass
class FunctionDeclaration(Statement):
    name: str
    params: List[str]
    body: BlockStatement

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "FunctionDeclaration",
            "name": Identifier(self.name).to_dict(),
            "params": [Identifier(param).to_dict() for param in self.params],
            "body": self.body.to_dict(),
        }


@dataclass
class ReturnStatement(Statement):
    argument: Optional[Expression] = None

    def to_dict(self) -> Dict[str, Any]:
        argument = self.argument.to_dict() if self.argument is not None else None
        return {"type": "ReturnStatement", "argument": argument}


@dataclass
class ImportStatement(Statement):
    path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "ImportStatement", "path": Literal(self.path, "String").to_dict()}


class NodeFormatError(ValueError):
    """Raised when a dictionary does not describe a valid node."""


def _require(data: Dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise NodeFormatError(f"{data.get('type', '<untyped>')} node is missing '{key}'")


def _identifier_name(data: Any) -> str:
    node = node_from_dict(data)
    if not isinstance(node, Identifier):
        raise NodeFormatError(f"Expected Identifier but found {type(node).__name__}")
    return node.name


def _block(data: Any) -> BlockStatement:
    node = node_from_dict(data)
    if not isinstance(node, BlockStatement):
        raise NodeFormatError(f"Expected BlockStatement but found {type(node).__name__}")
    return node


def node_from_dict(data: Any) -> Node:
    if not isinstance(data, dict):
        raise NodeFormatError(f"Expected a node object but found {type(data).__name__}")
    kind = data.get("type")
    if kind == "Program":
        return Program(statements=[node_from_dict(item) for item in _require(data, "body")])
    if kind == "Identifier":
        return Identifier(name=_require(data, "name"))
    if isinstance(kind, str) and kind in LITERAL_KINDS:
        return Literal(value=data.get("value"), literal_type=LITERAL_KINDS[kind])
    if kind == "BinaryExpression":
        return BinaryExpression(
            left=node_from_dict(_require(data, "left")),
            operator=_require(data, "operator"),
            right=node_from_dict(_require(data, "right")),
        )
    if kind == "CallExpression":
        callee = node_from_dict(_require(data, "callee"))
        if not isinstance(callee, Identifier):
            raise NodeFormatError("CallExpression callee must be an Identifier")
        return CallExpression(callee=callee, args=[node_from_dict(arg) for arg in _require(data, "args")])
    if kind == "ExpressionStatement":
        return ExpressionStatement(expression=node_from_dict(_require(data, "expression")))
    if kind == "VariableDeclaration":
        return VariableDeclaration(
            name=_identifier_name(_require(data, "identifier")),
            initializer=node_from_dict(_require(data, "value")),
        )
    if kind == "BlockStatement":
        return BlockStatement(statements=[node_from_dict(item) for item in _require(data, "body")])
    if kind == "IfStatement":
        alternate = data.get("alternate")
        return IfStatement(
            test=node_from_dict(_require(data, "test")),
            consequent=_block(_require(data, "consequent")),
            alternate=_block(alternate) if alternate is not None else None,
        )
    if kind == "WhileStatement":
        return WhileStatement(test=node_from_dict(_require(data, "test")), body=_block(_require(data, "body")))
    if kind == "FunctionDeclaration":
        return FunctionDeclaration(
            name=_identifier_name(_require(data, "name")),
            params=[_identifier_name(param) for param in _require(data, "params")],
            body=_block(_require(data, "body")),
        )
    if kind == "ReturnStatement":
        argument = data.get("argument")
        return ReturnStatement(argument=node_from_dict(argument) if argument is not None else None)
    if kind == "ImportStatement":
        path = node_from_dict(_require(data, "path"))
        if not isinstance(path, Literal) or path.literal_type != "String":
            raise NodeFormatError("ImportStatement path must be a StringLiteral")
        return ImportStatement(path=str(path.value))
    raise NodeFormatError(f"Unknown node type {kind!r}")
