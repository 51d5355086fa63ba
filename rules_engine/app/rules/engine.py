"""
Rule evaluation engine.

Rules are grouped into priority tiers. Tiers run strictly in sequence and
the rules of a tier run concurrently; each run gets its own Almanac, so
several runs may share one Engine. Mutating the fact, rule or operator
registries while a run is in flight is not supported.
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Set, Union, TYPE_CHECKING

from shared.logging import get_logger, run_id_var
from shared.errors import RuleDefinitionError
from ..facts.almanac import Almanac
from ..facts.fact import Fact, FactOptions
from ..operators.defaults import default_operators
from ..operators.operator import FactValueValidator, Operator, OperatorCallback, OperatorRegistry
from .models import EngineStatus, RuleFailure, RunResult
from .notifications import EventEmitter, Listener
from .rule import Rule

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class _RunState:
    """Stop flag of one in-flight run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.stop_requested = False


class Engine:
    """Rules engine.

    Notification channels (subscribe with ``on``):
    - ``success``: (event, almanac, rule_result)
    - ``failure``: (event, almanac, rule_result)
    - ``<event type>``: (event params, almanac, rule_result)
    - ``error``: (rule, exception) when a rule's evaluation raised
    - ``complete``: (run_result) when a run finished without being stopped
    """

    def __init__(
        self,
        rules: Optional[List[Union[Rule, Mapping[str, Any]]]] = None,
        *,
        allow_undefined_facts: bool = False,
        operators: Optional[OperatorRegistry] = None,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.logger = get_logger("rules_engine.engine")
        self.rules: List[Rule] = []
        self.facts: Dict[str, Fact] = {}
        self.operators = operators if operators is not None else OperatorRegistry(default_operators())
        self.allow_undefined_facts = allow_undefined_facts
        self.metrics = metrics
        self.status = EngineStatus.IDLE
        self.emitter = EventEmitter("rules_engine.engine.notifications")

        self._prioritized_rules: Optional[List[List[Rule]]] = None
        self._active_runs: Set[_RunState] = set()

        for rule in rules or ():
            self.add_rule(rule)

    def on(self, event: str, listener: Listener) -> "Engine":
        self.emitter.on(event, listener)
        return self

    # Rules

    def add_rule(self, properties: Union[Rule, str, Mapping[str, Any]]) -> "Engine":
        """Add a rule definition (Rule instance, mapping or JSON string).

        The same instance is never added twice; a named rule replaces an
        existing rule of the same name.
        """
        if not properties:
            raise RuleDefinitionError("Engine: add_rule() requires options")
        if isinstance(properties, Rule):
            rule = properties
        else:
            rule = Rule(properties)
            if isinstance(properties, Mapping) and "event" not in properties:
                raise RuleDefinitionError('Engine: add_rule() argument requires "event" property')
        if rule.conditions is None:
            raise RuleDefinitionError('Engine: add_rule() argument requires "conditions" property')

        if any(existing is rule for existing in self.rules):
            return self
        if rule.name is not None:
            self.rules = [existing for existing in self.rules if existing.name != rule.name]

        rule.set_engine(self)
        self.rules.append(rule)
        self.clear_prioritized_rules()
        self.logger.info("Rule added", rule=rule.name, event_type=rule.event.type, priority=rule.priority)
        return self

    def remove_rule(self, rule_or_name: Union[Rule, str]) -> bool:
        """Remove a rule by instance or name; returns whether one was removed."""
        if isinstance(rule_or_name, Rule):
            remaining = [rule for rule in self.rules if rule is not rule_or_name]
        elif isinstance(rule_or_name, str):
            remaining = [rule for rule in self.rules if rule.name != rule_or_name]
        else:
            raise RuleDefinitionError("Engine: remove_rule() requires a Rule instance or rule name")

        if len(remaining) == len(self.rules):
            return False
        self.rules = remaining
        self.clear_prioritized_rules()
        self.logger.info("Rule removed", rule=getattr(rule_or_name, "name", rule_or_name))
        return True

    def get_rules(self) -> List[Rule]:
        return list(self.rules)

    def clear_prioritized_rules(self) -> None:
        """Drop the cached tiers; called when rules or their priorities change."""
        self._prioritized_rules = None

    def prioritize_rules(self) -> List[List[Rule]]:
        """Rules grouped into tiers, highest priority first."""
        if self._prioritized_rules is None:
            tiers: Dict[int, List[Rule]] = {}
            for rule in self.rules:
                tiers.setdefault(rule.priority, []).append(rule)
            self._prioritized_rules = [tiers[priority] for priority in sorted(tiers, reverse=True)]
        return self._prioritized_rules

    # Facts

    def add_fact(
        self,
        id_or_fact: Union[Fact, str],
        value_or_method: Any = None,
        options: Optional[Union[FactOptions, Dict[str, Any]]] = None
    ) -> "Engine":
        """Add a fact definition, replacing any fact with the same id."""
        if isinstance(id_or_fact, Fact):
            fact = id_or_fact
        else:
            fact = Fact(id_or_fact, value_or_method, options)
        self.facts[fact.id] = fact
        self.logger.debug("Fact added", fact=fact.id, kind=fact.kind.value, priority=fact.priority)
        return self

    def remove_fact(self, fact_or_id: Union[Fact, str]) -> bool:
        fact_id = fact_or_id.id if isinstance(fact_or_id, Fact) else fact_or_id
        return self.facts.pop(fact_id, None) is not None

    def get_fact(self, fact_id: str) -> Optional[Fact]:
        return self.facts.get(fact_id)

    # Operators

    def add_operator(
        self,
        operator_or_name: Union[Operator, str],
        evaluate: Optional[OperatorCallback] = None,
        validator: Optional[FactValueValidator] = None
    ) -> "Engine":
        operator = self.operators.add(operator_or_name, evaluate, validator)
        self.logger.debug("Operator added", operator=operator.name)
        return self

    def remove_operator(self, operator_or_name: Union[Operator, str]) -> bool:
        return self.operators.remove(operator_or_name)

    # Running

    def stop(self) -> "Engine":
        """Stop starting new tiers in every in-flight run.

        Rules of the tier currently being evaluated are not cancelled; they
        finish and may still emit events after stop() returns.
        """
        for state in self._active_runs:
            state.stop_requested = True
        self.logger.warning("Engine stop requested", active_runs=len(self._active_runs))
        return self

    async def evaluate_rules(self, rules: List[Rule], almanac: Almanac, run_result: RunResult) -> None:
        """Evaluate one tier of rules concurrently."""
        await asyncio.gather(*(self._evaluate_rule(rule, almanac, run_result) for rule in rules))

    async def _evaluate_rule(self, rule: Rule, almanac: Almanac, run_result: RunResult) -> None:
        try:
            rule_result = await rule.evaluate(almanac)
        except Exception as e:
            self.logger.error(
                "Rule evaluation failed",
                rule=rule.name,
                event_type=rule.event.type,
                error=str(e),
                error_code=getattr(e, "code", type(e).__name__)
            )
            run_result.errors.append(RuleFailure(rule=rule, error=e, run_id=run_result.run_id))
            if self.metrics:
                self.metrics.increment_counter("rule_evaluations_total", result="error")
                self.metrics.record_error(getattr(e, "code", type(e).__name__))
            self.emitter.emit("error", rule, e)
            return

        run_result.results.append(rule_result)
        if rule_result.result:
            run_result.events.append(rule_result.event)
            almanac.record_success_event(rule_result.event.model_dump(exclude_none=True))
            self.emitter.emit("success", rule_result.event, almanac, rule_result)
            self.emitter.emit(rule_result.event.type, rule_result.event.params, almanac, rule_result)
        else:
            self.emitter.emit("failure", rule_result.event, almanac, rule_result)

        if self.metrics:
            self.metrics.increment_counter(
                "rule_evaluations_total", result="success" if rule_result.result else "failure"
            )

    async def run(self, runtime_facts: Optional[Mapping[str, Any]] = None) -> RunResult:
        """Evaluate every rule against the registered facts plus ``runtime_facts``.

        Returns the run's success events, per-rule results and per-rule
        errors. A rule that raises is recorded in ``errors`` and does not
        affect other rules.
        """
        state = _RunState(str(uuid.uuid4()))
        token = run_id_var.set(state.run_id)
        start_time = time.time()

        almanac = Almanac(
            self.facts,
            runtime_facts,
            allow_undefined_facts=self.allow_undefined_facts,
            metrics=self.metrics
        )
        run_result = RunResult(run_id=state.run_id, almanac=almanac)

        self._active_runs.add(state)
        self.status = EngineStatus.RUNNING
        self.logger.info(
            "Engine run started",
            rules=len(self.rules),
            runtime_facts=sorted(runtime_facts or {})
        )

        try:
            for tier in self.prioritize_rules():
                if state.stop_requested:
                    self.logger.info("Engine stopped; skipping remaining rules", skipped=len(tier))
                    break
                await self.evaluate_rules(tier, almanac, run_result)
        except Exception as e:
            self.logger.error("Engine run failed", error=str(e))
            if self.metrics:
                self.metrics.increment_counter("engine_runs_total", status="error")
            raise
        finally:
            self._active_runs.discard(state)
            run_id_var.reset(token)

        run_result.status = EngineStatus.STOPPED if state.stop_requested else EngineStatus.FINISHED
        self.status = run_result.status
        duration = time.time() - start_time

        self.logger.info(
            "Engine run completed",
            run_id=state.run_id,
            status=run_result.status.value,
            events=len(run_result.events),
            errors=len(run_result.errors),
            duration_ms=duration * 1000
        )
        if self.metrics:
            self.metrics.increment_counter("engine_runs_total", status=run_result.status.value)
            self.metrics.observe_histogram("engine_run_duration_seconds", duration)

        if run_result.status == EngineStatus.FINISHED:
            self.emitter.emit("complete", run_result)
        return run_result
