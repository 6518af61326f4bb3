"""
Path-addressed validation rules for state trees.

A rule is a callable bound to a dot-delimited path. It receives the value at
that path (None when the path does not resolve) and returns True to accept,
False to reject with a generic message, or a string to reject with that
message.
"""

from collections import OrderedDict
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Union

from pydantic import BaseModel, Field

from stateline.logging import get_component_logger
from .diff import PATH_SEPARATOR

log = get_component_logger("system")

RuleFn = Callable[[Any], Union[bool, str]]

DEFAULT_MESSAGE = "Validation failed"


class RuleViolation(BaseModel):
    """A single failed rule."""

    path: str = Field(description="Path the rule is bound to")
    message: str = Field(description="Why the value was rejected")


class ValidationResult(BaseModel):
    """Outcome of validating a state tree against all rules."""

    valid: bool = Field(description="Whether every rule accepted its value")
    errors: List[RuleViolation] = Field(
        default_factory=list, description="Failed rules, in rule registration order"
    )

    def summary(self) -> str:
        """Generate human-readable summary."""
        status = "PASS" if self.valid else "FAIL"
        lines = [f"State validation: {status}"]
        for error in self.errors:
            lines.append(f"  - {error.path}: {error.message}")
        return "\n".join(lines)


def get_value_by_path(state: Any, path: str) -> Any:
    """
    Resolve a dot-delimited path inside a nested mapping.

    Returns:
        The value at ``path``, or None if any segment is missing
    """
    current = state
    for part in path.split(PATH_SEPARATOR):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


class StateValidator:
    """
    Registry of validation rules keyed by path.

    Example:
        >>> validator = StateValidator()
        >>> validator.add_rule("count", lambda v: v >= 0 or "count must be >= 0")
        >>> validator.validate({"count": -1}).valid
        False
    """

    def __init__(self) -> None:
        self._rules: "OrderedDict[str, RuleFn]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._rules)

    def add_rule(self, path: str, validator: RuleFn) -> None:
        """Register ``validator`` for ``path``, replacing any existing rule."""
        self._rules[path] = validator

    def remove_rule(self, path: str) -> bool:
        """
        Remove the rule for ``path``.

        Returns:
            True if a rule was removed
        """
        return self._rules.pop(path, None) is not None

    def validate(self, state: Any) -> ValidationResult:
        """
        Run every rule against ``state``.

        A rule that raises is reported as a failure carrying the exception
        message; the remaining rules still run.
        """
        errors: List[RuleViolation] = []

        for path, rule in self._rules.items():
            value = get_value_by_path(state, path)
            try:
                outcome = rule(value)
            except Exception as e:
                log.warning(f"Validation rule for '{path}' raised {type(e).__name__}: {e}")
                outcome = str(e) or DEFAULT_MESSAGE

            if outcome is True:
                continue
            message = outcome if isinstance(outcome, str) else DEFAULT_MESSAGE
            errors.append(RuleViolation(path=path, message=message))

        return ValidationResult(valid=not errors, errors=errors)

    def rules(self) -> Dict[str, RuleFn]:
        """Registered rules by path."""
        return dict(self._rules)
