"""
Rule model and condition-tree evaluation.
"""

import asyncio
import copy
import json
from typing import Any, Dict, List, Mapping, Optional, Union, TYPE_CHECKING

from shared.logging import get_logger, set_rule_context
from shared.errors import RuleDefinitionError
from ..operators.defaults import default_operators
from ..operators.operator import OperatorRegistry
from .condition import ALL, ANY, Condition, parse_priority
from .models import RuleEvent, RuleResult
from .notifications import EventEmitter, Listener

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..facts.almanac import Almanac
    from .engine import Engine


# notification channels used by Rule and Engine themselves
RESERVED_EVENT_TYPES = frozenset({"success", "failure", "error", "complete"})


class Rule:
    """A condition tree, the event it fires, and its scheduling priority.

    Subscribers of ``success``/``failure`` receive ``(event, almanac, rule_result)``.
    """

    def __init__(
        self,
        options: Optional[Union[str, Mapping[str, Any]]] = None,
        *,
        on_success: Optional[Listener] = None,
        on_failure: Optional[Listener] = None
    ):
        self.logger = get_logger("rules_engine.rule")
        self.emitter = EventEmitter("rules_engine.rule.notifications")
        self.engine: Optional["Engine"] = None
        self.conditions: Optional[Condition] = None
        self.name: Optional[str] = None
        self._default_operators: Optional[OperatorRegistry] = None

        if isinstance(options, str):
            try:
                options = json.loads(options)
            except ValueError as e:
                raise RuleDefinitionError(f"Rule: invalid JSON definition: {e}")
        options = options or {}

        if options.get("conditions") is not None:
            self.set_conditions(options["conditions"])
        if options.get("name") is not None:
            self.set_name(options["name"])

        on_success = on_success or options.get("onSuccess")
        on_failure = on_failure or options.get("onFailure")
        if on_success:
            self.on("success", on_success)
        if on_failure:
            self.on("failure", on_failure)

        priority = options.get("priority")
        self.set_priority(1 if priority is None else priority)
        self.set_event(options.get("event") or {"type": "unknown"})

    def on(self, event: str, listener: Listener) -> "Rule":
        self.emitter.on(event, listener)
        return self

    def set_priority(self, priority: Any) -> "Rule":
        """Set the scheduling priority (>= 1); higher runs sooner."""
        self.priority = parse_priority(priority)
        if self.engine is not None:
            self.engine.clear_prioritized_rules()
        return self

    def set_name(self, name: str) -> "Rule":
        if not name:
            raise RuleDefinitionError("Rule: name must be non-empty")
        self.name = name
        return self

    def set_conditions(self, conditions: Union[Condition, Mapping[str, Any]]) -> "Rule":
        """Set the condition tree; the root must be an all/any combinator."""
        if isinstance(conditions, Condition):
            root = conditions
        else:
            if not isinstance(conditions, Mapping) or (ALL not in conditions and ANY not in conditions):
                raise RuleDefinitionError('"conditions" root must contain a single instance of "all" or "any"')
            root = Condition(conditions)
        if not root.is_boolean_operator():
            raise RuleDefinitionError('"conditions" root must contain a single instance of "all" or "any"')
        self.conditions = root
        return self

    def set_event(self, event: Union[RuleEvent, Mapping[str, Any]]) -> "Rule":
        """Set the event emitted when the conditions pass."""
        if isinstance(event, RuleEvent):
            event = event.model_copy(deep=True)
        else:
            if not event:
                raise RuleDefinitionError("Rule: set_event() requires event object")
            if "type" not in event:
                raise RuleDefinitionError('Rule: set_event() requires event object with "type" property')
            event = RuleEvent(type=event["type"], params=event.get("params"))
        if event.type in RESERVED_EVENT_TYPES:
            raise RuleDefinitionError(
                f"Rule: event type '{event.type}' is reserved for engine notifications",
                {"event_type": event.type}
            )
        self.event = event
        return self

    def set_engine(self, engine: "Engine") -> "Rule":
        self.engine = engine
        return self

    def to_json(self, stringify: bool = True) -> Union[str, Dict[str, Any]]:
        """Defining fields only; evaluation annotations are never included."""
        props: Dict[str, Any] = {
            "conditions": self.conditions.to_json(False) if self.conditions else None,
            "priority": self.priority,
            "event": self.event.model_dump(exclude_none=True),
        }
        if self.name is not None:
            props["name"] = self.name
        if stringify:
            return json.dumps(props, default=str)
        return props

    def prioritize_conditions(self, conditions: List[Condition]) -> List[List[Condition]]:
        """Group conditions into tiers of descending priority.

        A condition without its own priority takes its fact's priority, else 1.
        """
        tiers: Dict[int, List[Condition]] = {}
        for condition in conditions:
            priority = condition.priority
            if not priority:
                fact = self.engine.get_fact(condition.fact) if self.engine and condition.fact else None
                priority = fact.priority if fact else 1
            tiers.setdefault(priority, []).append(condition)
        return [tiers[priority] for priority in sorted(tiers, reverse=True)]

    def _operators(self) -> OperatorRegistry:
        if self.engine is not None:
            return self.engine.operators
        if self._default_operators is None:
            self._default_operators = OperatorRegistry(default_operators())
        return self._default_operators

    async def evaluate(self, almanac: "Almanac") -> RuleResult:
        """Evaluate the condition tree and notify success/failure subscribers."""
        if self.conditions is None:
            raise RuleDefinitionError("Rule: conditions are required before evaluation")

        set_rule_context(self.event.type)
        rule_result = RuleResult(
            conditions=copy.deepcopy(self.conditions),
            event=self.event.model_copy(deep=True),
            priority=self.priority,
            name=self.name
        )

        root = rule_result.conditions
        passed = await self._run_tiers(root.children, root.operator, almanac)
        root.result = passed
        rule_result.set_result(passed)

        self.logger.debug("Rule evaluated", rule=self.name, event_type=self.event.type, result=passed)
        self.emitter.emit("success" if passed else "failure", rule_result.event, almanac, rule_result)
        return rule_result

    async def _evaluate_condition(self, condition: Condition, almanac: "Almanac") -> bool:
        if condition.is_boolean_operator():
            passes = await self._run_tiers(condition.children, condition.operator, almanac)
            condition.result = passes
            return passes

        evaluation = await condition.evaluate(almanac, self._operators())
        condition.fact_result = evaluation.fact_value
        condition.result = evaluation.result
        return evaluation.result

    async def _run_tiers(self, conditions: List[Condition], operator: str, almanac: "Almanac") -> bool:
        """Evaluate tiers in sequence, each tier's members concurrently.

        ``all`` stops scheduling after a tier with a false member, ``any``
        after a tier with a true member. A tier always settles completely
        before its outcome (or first error) is acted on.
        """
        if not conditions:
            return True
        for tier in self.prioritize_conditions(conditions):
            outcomes = await asyncio.gather(
                *(self._evaluate_condition(condition, almanac) for condition in tier),
                return_exceptions=True
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            if operator == ALL and not all(outcome is True for outcome in outcomes):
                return False
            if operator == ANY and any(outcome is True for outcome in outcomes):
                return True
        return operator == ALL

    def __repr__(self) -> str:
        return f"Rule(name={self.name!r}, event={self.event.type!r}, priority={self.priority})"
