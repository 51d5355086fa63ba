"""
Operator definition and registry.
"""

from typing import Any, Callable, Dict, List, Iterable, Optional, Union

from shared.logging import get_logger
from shared.errors import RuleDefinitionError, UnknownOperatorError, ValidationError


OperatorCallback = Callable[[Any, Any], bool]
FactValueValidator = Callable[[Any], bool]


class Operator:
    """Named comparison between a fact value and a condition value."""

    def __init__(self, name: str, evaluate: OperatorCallback, validator: Optional[FactValueValidator] = None):
        if not name:
            raise RuleDefinitionError("Missing operator name")
        if not callable(evaluate):
            raise RuleDefinitionError(f"Operator '{name}' requires a callable", {"operator": name})
        self.name = name
        self._callback = evaluate
        self._validator = validator
        self.logger = get_logger("rules_engine.operators")

    def validate(self, fact_value: Any) -> None:
        """Raise ValidationError when the fact value is not acceptable to this operator."""
        if self._validator is not None and not self._validator(fact_value):
            raise ValidationError(
                f"Fact value rejected by operator '{self.name}'",
                {"operator": self.name, "fact_value_type": type(fact_value).__name__}
            )

    def evaluate(self, fact_value: Any, value: Any) -> bool:
        """Compare the fact value with the condition value.

        A fact value failing the validator yields False without invoking the
        comparison.
        """
        try:
            self.validate(fact_value)
        except ValidationError as e:
            self.logger.debug("Operator validation failed", operator=self.name, error=e.message)
            return False
        return bool(self._callback(fact_value, value))

    def __repr__(self) -> str:
        return f"Operator({self.name!r})"


class OperatorRegistry:
    """Operators by name, one registry per Engine."""

    def __init__(self, operators: Optional[Iterable[Operator]] = None):
        self._operators: Dict[str, Operator] = {}
        for operator in operators or ():
            self.add(operator)

    def add(
        self,
        operator_or_name: Union[Operator, str],
        evaluate: Optional[OperatorCallback] = None,
        validator: Optional[FactValueValidator] = None
    ) -> Operator:
        """Register an operator, replacing any existing one with the same name."""
        if isinstance(operator_or_name, Operator):
            operator = operator_or_name
        else:
            operator = Operator(operator_or_name, evaluate, validator)
        self._operators[operator.name] = operator
        return operator

    def remove(self, operator_or_name: Union[Operator, str]) -> bool:
        """Remove an operator; returns whether it was registered."""
        name = operator_or_name.name if isinstance(operator_or_name, Operator) else operator_or_name
        return self._operators.pop(name, None) is not None

    def get(self, name: str) -> Operator:
        """Get an operator by name."""
        operator = self._operators.get(name)
        if operator is None:
            raise UnknownOperatorError(name)
        return operator

    def names(self) -> List[str]:
        return list(self._operators)

    def __contains__(self, name: object) -> bool:
        return name in self._operators

    def __len__(self) -> int:
        return len(self._operators)
