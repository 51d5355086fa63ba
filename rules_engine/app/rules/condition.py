"""
Condition tree nodes.
"""

import json
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import RuleDefinitionError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..facts.almanac import Almanac
    from ..operators.operator import OperatorRegistry


ALL = "all"
ANY = "any"
BOOLEAN_OPERATORS = (ALL, ANY)

# returned by a lenient almanac for an unknown fact or unresolvable path
_ABSENT = object()

logger = get_logger("rules_engine.condition")


class ConditionEvaluation(NamedTuple):
    """Outcome of a single leaf comparison."""
    result: bool
    fact_value: Any
    value: Any
    operator: str


def parse_priority(priority: Any) -> int:
    """Coerce a priority to a positive int."""
    try:
        parsed = int(priority)
    except (TypeError, ValueError):
        raise RuleDefinitionError(f"Invalid priority: {priority!r}", {"priority": priority})
    if parsed <= 0:
        raise RuleDefinitionError("Priority must be greater than zero", {"priority": priority})
    return parsed


class Condition:
    """Leaf test ``{fact, operator, value, params?, path?}`` or an all/any combinator.

    Evaluation writes ``result`` (and ``fact_result`` on leaves) onto the node.
    Rules only ever evaluate a per-run copy, so a definition can be shared
    by concurrent runs.
    """

    def __init__(self, properties: Mapping[str, Any]):
        if not isinstance(properties, Mapping) or not properties:
            raise RuleDefinitionError("Condition: constructor options required")

        self.result: Optional[bool] = None
        self.fact_result: Any = None
        self.priority: Optional[int] = None
        self.fact: Optional[str] = None
        self.value: Any = None
        self.params: Optional[Dict[str, Any]] = None
        self.path: Optional[str] = None
        self.children: List["Condition"] = []

        boolean_operator = self.boolean_operator_of(properties)
        self._combinator = boolean_operator is not None

        if self._combinator:
            sub_conditions = properties[boolean_operator]
            if not isinstance(sub_conditions, (list, tuple)):
                raise RuleDefinitionError(f'"{boolean_operator}" must be a list')
            if not sub_conditions:
                raise RuleDefinitionError(f'"{boolean_operator}" requires at least one condition')
            self.operator = boolean_operator
            self.priority = parse_priority(properties.get("priority", 1))
            self.children = [
                sub if isinstance(sub, Condition) else Condition(sub)
                for sub in sub_conditions
            ]
        else:
            for required in ("fact", "operator", "value"):
                if required not in properties:
                    raise RuleDefinitionError(
                        f'Condition: constructor "{required}" property required',
                        {"condition": dict(properties)}
                    )
            self.fact = properties["fact"]
            self.operator = properties["operator"]
            self.value = properties["value"]
            self.params = properties.get("params")
            self.path = properties.get("path")
            if properties.get("priority") is not None:
                self.priority = parse_priority(properties["priority"])

    @staticmethod
    def boolean_operator_of(properties: Mapping[str, Any]) -> Optional[str]:
        """Return "all"/"any" for combinator definitions, None for leaves."""
        present = [op for op in BOOLEAN_OPERATORS if op in properties]
        if len(present) > 1:
            raise RuleDefinitionError('Condition must contain exactly one of "all" or "any"')
        return present[0] if present else None

    def is_boolean_operator(self) -> bool:
        return self._combinator

    async def evaluate(self, almanac: "Almanac", operators: "OperatorRegistry") -> ConditionEvaluation:
        """Evaluate a leaf against the almanac."""
        if self._combinator:
            raise RuleDefinitionError("Cannot evaluate() a boolean condition")

        operator = operators.get(self.operator)

        if almanac.allow_undefined_facts and not almanac.is_defined(self.fact):
            logger.debug("Undefined fact treated as false", fact=self.fact, operator=self.operator)
            return ConditionEvaluation(False, None, self.value, self.operator)

        value = await self._get_value(almanac)
        fact_value = await almanac.fact_value(self.fact, self.params, self.path, missing=_ABSENT)
        if value is _ABSENT or fact_value is _ABSENT:
            logger.debug("Absent value treated as false", fact=self.fact, path=self.path, operator=self.operator)
            return ConditionEvaluation(False, None, None if value is _ABSENT else value, self.operator)

        result = operator.evaluate(fact_value, value)

        logger.debug(
            "Condition evaluated",
            fact=self.fact,
            fact_value=fact_value,
            operator=self.operator,
            value=value,
            result=result
        )
        return ConditionEvaluation(result, fact_value, value, self.operator)

    async def _get_value(self, almanac: "Almanac") -> Any:
        # {"fact": ...} as a value compares against another fact
        if isinstance(self.value, Mapping) and "fact" in self.value:
            return await almanac.fact_value(
                self.value["fact"], self.value.get("params"), self.value.get("path"), missing=_ABSENT
            )
        return self.value

    def to_json(self, stringify: bool = True) -> Union[str, Dict[str, Any]]:
        props: Dict[str, Any] = {}
        if self.priority is not None:
            props["priority"] = self.priority
        if self._combinator:
            props[self.operator] = [child.to_json(False) for child in self.children]
            if self.result is not None:
                props["result"] = self.result
        else:
            props["fact"] = self.fact
            props["operator"] = self.operator
            props["value"] = self.value
            if self.result is not None:
                props["factResult"] = self.fact_result
                props["result"] = self.result
            if self.params is not None:
                props["params"] = self.params
            if self.path is not None:
                props["path"] = self.path
        if stringify:
            return json.dumps(props, default=str)
        return props

    def __repr__(self) -> str:
        if self._combinator:
            return f"Condition({self.operator}, children={len(self.children)}, priority={self.priority})"
        return f"Condition({self.fact!r} {self.operator} {self.value!r})"
