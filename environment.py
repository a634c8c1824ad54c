from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from lexer import OBPIError


class OBPIRuntimeError(OBPIError):
    """Raised for runtime faults."""

    def __init__(self, message: str, *, rule: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.rule = rule
        self.step_index: Optional[int] = None


class DuplicateDeclarationError(OBPIRuntimeError):
    pass


class UndeclaredVariableError(OBPIRuntimeError):
    pass


@dataclass(eq=False)
class Environment:
    parent: Optional["Environment"] = None
    values: Dict[str, Any] = field(default_factory=dict)

    def _find_env(self, name: str) -> Optional["Environment"]:
        env: Optional[Environment] = self
        while env is not None:
            if name in env.values:
                return env
            env = env.parent
        return None

    def declare(self, name: str, value: Any) -> Any:
        if name in self.values:
            raise DuplicateDeclarationError(
                f'Variable "{name}" has already been declared in this scope.',
                rule="DECLARE",
            )
        self.values[name] = value
        return value

    def assign(self, name: str, value: Any) -> Any:
        env = self._find_env(name)
        if env is None:
            raise UndeclaredVariableError(
                f'Cannot assign to undeclared variable "{name}".',
                rule="ASSIGN",
            )
        env.values[name] = value
        return value

    def lookup(self, name: str) -> Any:
        env = self._find_env(name)
        if env is None:
            raise UndeclaredVariableError(
                f'Cannot access undeclared variable "{name}".',
                rule="IDENT",
            )
        return env.values[name]

    def __repr__(self) -> str:
        depth = 0
        env = self.parent
        while env is not None:
            depth += 1
            env = env.parent
        return f"<Environment depth={depth} names={sorted(self.values)}>"

    def has(self, name: str) -> bool:
        return self._find_env(name) is not None

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Any) -> str:
            rendered = repr(val)
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return rendered

        return {k: _render(v) for k, v in self.values.items()}
