from __future__ import annotations
import json
import math
import sys
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from environment import DuplicateDeclarationError, Environment, OBPIRuntimeError, UndeclaredVariableError
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

__all__ = [
    "BuiltinFunction",
    "Completion",
    "DuplicateDeclarationError",
    "Function",
    "Interpreter",
    "OBPIRuntimeError",
    "TracebackFormatter",
    "UndeclaredVariableError",
    "format_value",
    "interpret",
]

MAIN_MISSING_MESSAGE = "main function not found or is not a function"

# Language calls have no depth limit of their own; these bound the host side.
RECURSION_LIMIT = 200_000
EVAL_STACK_SIZE = 512 * 1024 * 1024

ARITHMETIC_OPERATORS = ("+", "-", "*", "/")
COMPARISON_OPERATORS = ("==", "!=", "<", ">", "<=", ">=")


@dataclass(frozen=True)
class Completion:
    """Outcome of evaluating a statement.

    ``is_return`` marks a pending ``return``: blocks and loops hand such a
    completion upward untouched and only a function call unwraps it.
    """

    value: Any = None
    is_return: bool = False


NORMAL = Completion()


@dataclass(eq=False)
class Function:
    name: str
    params: List[str]
    body: BlockStatement
    closure: Environment

    def __repr__(self) -> str:
        return f"<func {self.name}({', '.join(self.params)})>"


BuiltinImpl = Callable[["Interpreter", List[Any]], Any]


@dataclass(eq=False)
class BuiltinFunction:
    name: str
    impl: BuiltinImpl

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"


@dataclass
class Frame:
    name: str
    env: Environment
    frame_id: str


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    frame_id: Optional[str]
    rule: str
    detail: Optional[Dict[str, Any]]
    env_snapshot: Optional[Dict[str, str]]


class StateLogger:
    """Counts steps and remembers the latest entry of every live frame.

    Entries of frames that returned are dropped, so a long run holds only
    what a traceback of the current call stack can show.
    """

    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.last_entry: Optional[StateEntry] = None
        self.next_state_index = 0
        self.frame_last_entry: Dict[str, StateEntry] = {}

    def record(
        self,
        *,
        frame: Optional[Frame],
        rule: str,
        detail: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            frame_id=frame.frame_id if frame else None,
            rule=rule,
            detail=detail,
            env_snapshot=env_snapshot,
        )
        self.last_entry = entry
        if frame:
            self.frame_last_entry[frame.frame_id] = entry
        self.next_state_index += 1
        return entry

    def last_entry_for_frame(self, frame_id: str) -> Optional[StateEntry]:
        return self.frame_last_entry.get(frame_id)

    def forget_frame(self, frame_id: str) -> None:
        self.frame_last_entry.pop(frame_id, None)


def _is_number(value: Any) -> bool:
    # bool is an int subclass in Python but not a number in the language.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_number(value: Union[int, float]) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def format_value(value: Any) -> str:
    """Textual form used by ``print`` and by string concatenation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return _format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Function):
        return json.dumps(
            {"type": "user-defined-function", "name": value.name, "params": list(value.params)},
            separators=(",", ":"),
        )
    if isinstance(value, BuiltinFunction):
        return json.dumps({"type": "builtin-function", "name": value.name}, separators=(",", ":"))
    return str(value)


class Builtins:
    def __init__(self) -> None:
        self.table: Dict[str, BuiltinFunction] = {}
        self._register_custom("print", self._print)

    def _register_custom(self, name: str, impl: BuiltinImpl) -> None:
        self.table[name] = BuiltinFunction(name=name, impl=impl)

    def install(self, env: Environment) -> None:
        for name, builtin in self.table.items():
            env.declare(name, builtin)

    def invoke(self, interpreter: "Interpreter", builtin: BuiltinFunction, args: List[Any]) -> Any:
        return builtin.impl(interpreter, args)

    def _print(self, interpreter: "Interpreter", args: List[Any]) -> None:
        text = " ".join(format_value(arg) for arg in args)
        interpreter.output_sink(text)
        return None


class Interpreter:
    def __init__(
        self,
        *,
        verbose: bool = False,
        output_sink: Optional[Callable[[str], None]] = None,
        filename: str = "<string>",
    ) -> None:
        self.verbose = verbose
        self.filename = filename
        self.output_sink = output_sink or (lambda text: print(text))
        self.builtins = Builtins()
        self.global_env = Environment()
        self.builtins.install(self.global_env)
        self.logger = StateLogger(verbose=verbose)
        self.call_stack: List[Frame] = []
        self.frame_counter = 0

    def interpret(self, program: Program) -> Any:
        """Run ``program`` on a worker thread with a deep stack.

        Every language call costs several Python frames, so evaluation gets
        its own large thread stack and a raised recursion limit; both are
        restored once the run finishes.
        """
        outcome: Dict[str, Any] = {}

        def target() -> None:
            try:
                outcome["result"] = self._run(program)
            except BaseException as exc:
                outcome["error"] = exc

        previous_limit = sys.getrecursionlimit()
        sys.setrecursionlimit(max(previous_limit, RECURSION_LIMIT))
        try:
            previous_stack = threading.stack_size(EVAL_STACK_SIZE)
            try:
                worker = threading.Thread(target=target, name="obpi-eval")
                worker.start()
            finally:
                threading.stack_size(previous_stack)
            worker.join()
        finally:
            sys.setrecursionlimit(previous_limit)
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("result")

    def _run(self, program: Program) -> Any:
        global_frame = self._new_frame("<top-level>", self.global_env)
        self.call_stack.append(global_frame)
        try:
            # Hoist every top-level function so main and its helpers can
            # refer to each other regardless of declaration order.
            for statement in program.statements:
                if isinstance(statement, FunctionDeclaration):
                    self._execute_statement(statement, self.global_env)
            main = self.global_env.values.get("main")
            if not isinstance(main, Function):
                raise OBPIRuntimeError(MAIN_MISSING_MESSAGE, rule="MAIN")
            self._log_step(rule="CALL", call=("main", []))
            result = self._call_function(main, [])
        except OBPIRuntimeError as error:
            if self.logger.last_entry is not None:
                error.step_index = self.logger.last_entry.step_index
            raise
        except Exception as exc:
            # Surface Python-level failures (recursion depth, overflow) as
            # runtime errors so callers only handle one error family.
            wrapped = OBPIRuntimeError(f"Internal interpreter error: {exc}", rule="internal")
            if self.logger.last_entry is not None:
                wrapped.step_index = self.logger.last_entry.step_index
            raise wrapped from exc
        self.call_stack.pop()
        return result

    def _execute_block(self, statements: List[Statement], env: Environment) -> Completion:
        scope = Environment(parent=env)
        execute_stmt = self._execute_statement
        result = NORMAL
        for statement in statements:
            result = execute_stmt(statement, scope)
            if result.is_return:
                return result
        return result

    def _execute_statement(self, statement: Statement, env: Environment) -> Completion:
        self._log_step(rule=statement.__class__.__name__, env=env)
        if isinstance(statement, ExpressionStatement):
            self._evaluate_expression(statement.expression, env)
            return NORMAL
        if isinstance(statement, VariableDeclaration):
            value = self._evaluate_expression(statement.initializer, env)
            env.declare(statement.name, value)
            return Completion(value)
        if isinstance(statement, BlockStatement):
            return self._execute_block(statement.statements, env)
        if isinstance(statement, IfStatement):
            if self._evaluate_expression(statement.test, env):
                return self._execute_block(statement.consequent.statements, env)
            if statement.alternate is not None:
                return self._execute_block(statement.alternate.statements, env)
            return NORMAL
        if isinstance(statement, WhileStatement):
            return self._execute_while(statement, env)
        if isinstance(statement, FunctionDeclaration):
            function = Function(
                name=statement.name,
                params=list(statement.params),
                body=statement.body,
                closure=env,
            )
            env.declare(statement.name, function)
            return Completion(function)
        if isinstance(statement, ReturnStatement):
            value = None
            if statement.argument is not None:
                value = self._evaluate_expression(statement.argument, env)
            return Completion(value, is_return=True)
        if isinstance(statement, ImportStatement):
            raise OBPIRuntimeError(
                f'Unlinked import of "{statement.path}"; link the program with the compiler first',
                rule="IMPORT",
            )
        raise OBPIRuntimeError(f"Unhandled AST node type: {statement.__class__.__name__}")

    def _execute_while(self, statement: WhileStatement, env: Environment) -> Completion:
        eval_expr = self._evaluate_expression
        result = NORMAL
        while eval_expr(statement.test, env):
            result = self._execute_block(statement.body.statements, env)
            if result.is_return:
                return result
        return result

    def _evaluate_expression(self, expression: Expression, env: Environment) -> Any:
        if isinstance(expression, Literal):
            return expression.value
        if isinstance(expression, Identifier):
            return env.lookup(expression.name)
        if isinstance(expression, BinaryExpression):
            return self._evaluate_binary(expression, env)
        if isinstance(expression, CallExpression):
            return self._evaluate_call(expression, env)
        raise OBPIRuntimeError(f"Unhandled AST node type: {expression.__class__.__name__}")

    def _evaluate_binary(self, expression: BinaryExpression, env: Environment) -> Any:
        operator = expression.operator
        if operator == "=":
            target = expression.left
            if not isinstance(target, Identifier):
                raise OBPIRuntimeError("Invalid assignment target", rule="ASSIGN")
            value = self._evaluate_expression(expression.right, env)
            return env.assign(target.name, value)

        left = self._evaluate_expression(expression.left, env)
        right = self._evaluate_expression(expression.right, env)

        if operator in ARITHMETIC_OPERATORS:
            if not (_is_number(left) and _is_number(right)):
                if operator == "+":
                    return format_value(left) + format_value(right)
                raise OBPIRuntimeError(
                    f"Operands must be numbers for arithmetic operations (got {format_value(left)} {operator} {format_value(right)})",
                    rule=operator,
                )
            if operator == "+":
                return left + right
            if operator == "-":
                return left - right
            if operator == "*":
                return left * right
            if right == 0:
                raise OBPIRuntimeError("Division by zero", rule="/")
            return left / right

        if operator == "==":
            return _strict_equals(left, right)
        if operator == "!=":
            return not _strict_equals(left, right)
        if operator in COMPARISON_OPERATORS:
            comparable = (_is_number(left) and _is_number(right)) or (
                isinstance(left, str) and isinstance(right, str)
            )
            if not comparable:
                raise OBPIRuntimeError(
                    f"Cannot compare {format_value(left)} {operator} {format_value(right)}",
                    rule=operator,
                )
            if operator == "<":
                return left < right
            if operator == ">":
                return left > right
            if operator == "<=":
                return left <= right
            return left >= right
        raise OBPIRuntimeError(f"Unhandled binary operator: {operator}", rule=operator)

    def _evaluate_call(self, expression: CallExpression, env: Environment) -> Any:
        name = expression.callee.name
        callee = env.lookup(name)
        eval_expr = self._evaluate_expression
        args = [eval_expr(arg, env) for arg in expression.args]
        if isinstance(callee, BuiltinFunction):
            self._log_step(rule=name, env=env, call=(name, args))
            return self.builtins.invoke(self, callee, args)
        if isinstance(callee, Function):
            self._log_step(rule="CALL", env=env, call=(name, args))
            return self._call_function(callee, args)
        raise OBPIRuntimeError(f'"{name}" is not a function.', rule="CALL")

    def _call_function(self, function: Function, args: List[Any]) -> Any:
        env = Environment(parent=function.closure)
        for index, param in enumerate(function.params):
            # Missing trailing arguments are null; extra arguments are ignored.
            env.declare(param, args[index] if index < len(args) else None)
        frame = self._new_frame(function.name, env)
        self.call_stack.append(frame)
        result = self._execute_block(function.body.statements, env)
        self.call_stack.pop()
        self.logger.forget_frame(frame.frame_id)
        if result.is_return:
            return result.value
        return None

    def _new_frame(self, name: str, env: Environment) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, env=env, frame_id=frame_id)

    def _log_step(
        self,
        *,
        rule: str,
        env: Optional[Environment] = None,
        call: Optional[Tuple[str, List[Any]]] = None,
    ) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        detail = None
        env_snapshot = None
        if self.verbose:
            scope = env if env is not None else (frame.env if frame else None)
            if scope is not None:
                env_snapshot = scope.snapshot()
            if call is not None:
                name, args = call
                detail = {"function": name, "args": [format_value(arg) for arg in args]}
        self.logger.record(frame=frame, rule=rule, detail=detail, env_snapshot=env_snapshot)


def _strict_equals(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    if isinstance(left, (Function, BuiltinFunction)):
        return left is right
    return left == right


def interpret(
    program: Program,
    output_sink: Callable[[str], None],
    *,
    verbose: bool = False,
) -> Any:
    return Interpreter(verbose=verbose, output_sink=output_sink).interpret(program)


@dataclass
class TracebackFrame:
    name: str
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.last_entry_for_frame(frame.frame_id)
            frames.append(TracebackFrame(name=frame.name, state_entry=entry))
        return frames

    def format_text(self, error: OBPIRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames():
            lines.append(f"  File \"{self.interpreter.filename}\", in {frame.name}")
            if frame.state_entry:
                lines.append(f"    Last step: {frame.state_entry.rule}")
                lines.append(
                    f"    State log index: {frame.state_entry.step_index}  State id: {frame.state_entry.state_id}"
                )
                if verbose and frame.state_entry.env_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.state_entry.env_snapshot.items())
                    lines.append(f"    Env snapshot: {snapshot}")
        rule = error.rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: OBPIRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames()):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                entry["rule"] = frame.state_entry.rule
                if frame.state_entry.detail is not None:
                    entry["detail"] = frame.state_entry.detail
                if frame.state_entry.env_snapshot is not None:
                    entry["env_snapshot"] = frame.state_entry.env_snapshot
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)
