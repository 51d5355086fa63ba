"""
Almanac: per-run fact resolution and memoization.

An Almanac is built fresh for every Engine.run and discarded afterwards.
Its cache is the only state shared between concurrently evaluating rules
and conditions of one run.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import FactComputationError, PathResolutionError, RulesEngineException, UndefinedFactError
from .fact import Fact
from .paths import resolve_path

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


SUCCESS_EVENTS_FACT = "success-events"


class Almanac:
    """Fact lookups for a single run."""

    def __init__(
        self,
        facts: Optional[Mapping[str, Fact]] = None,
        runtime_facts: Optional[Mapping[str, Any]] = None,
        allow_undefined_facts: bool = False,
        metrics: Optional["MetricsCollector"] = None
    ):
        self.logger = get_logger("rules_engine.almanac")
        self.facts: Dict[str, Fact] = dict(facts or {})
        self.runtime_facts: Dict[str, Any] = {}
        self.allow_undefined_facts = allow_undefined_facts
        self.metrics = metrics

        # cache key -> in-flight or finished computation
        self._cache: Dict[str, "asyncio.Future[Any]"] = {}
        self._success_events: List[Any] = []

        self.facts.setdefault(
            SUCCESS_EVENTS_FACT,
            Fact(SUCCESS_EVENTS_FACT, self._success_events_fact, cache=False)
        )

        for fact_id, value in (runtime_facts or {}).items():
            self.add_runtime_fact(fact_id, value)

    def add_runtime_fact(self, fact_id: str, value: Any) -> None:
        """Insert or overwrite a runtime fact.

        Runtime values shadow registered facts of the same id. A Fact instance
        is registered as a fact of this run instead.
        """
        if isinstance(value, Fact):
            self.runtime_facts.pop(fact_id, None)
            self.facts[fact_id] = value
        else:
            self.runtime_facts[fact_id] = value
        self.logger.debug("Runtime fact added", fact=fact_id)

    def get_fact(self, fact_id: str) -> Optional[Fact]:
        return self.facts.get(fact_id)

    def is_defined(self, fact_id: str) -> bool:
        """Whether the id is known as a runtime fact or a registered fact."""
        return fact_id in self.runtime_facts or fact_id in self.facts

    def record_success_event(self, event: Any) -> None:
        self._success_events.append(event)

    def _success_events_fact(self, params: Dict[str, Any], almanac: "Almanac") -> List[Any]:
        return list(self._success_events)

    async def fact_value(
        self,
        fact_id: str,
        params: Optional[Dict[str, Any]] = None,
        path: Optional[str] = None,
        missing: Any = None
    ) -> Any:
        """Resolve a fact value, computing it at most once per (fact, params) when cached.

        With ``allow_undefined_facts``, an unknown fact or a path that cannot
        be resolved yields ``missing`` instead of raising.
        """
        params = params or {}

        if fact_id in self.runtime_facts:
            value = self.runtime_facts[fact_id]
        else:
            fact = self.facts.get(fact_id)
            if fact is None:
                if self.allow_undefined_facts:
                    self.logger.warning("Undefined fact resolved as absent", fact=fact_id)
                    return missing
                raise UndefinedFactError(fact_id)
            value = await self._resolve(fact, params)

        if path:
            try:
                value = resolve_path(value, path, fact_id)
            except PathResolutionError as e:
                if not self.allow_undefined_facts:
                    raise
                self.logger.warning("Unresolvable path treated as absent", fact=fact_id, path=path, error=e.message)
                return missing
            self.logger.debug("Fact path resolved", fact=fact_id, path=path)
        return value

    async def _resolve(self, fact: Fact, params: Dict[str, Any]) -> Any:
        if fact.is_constant():
            return fact.value

        cache_key = fact.get_cache_key(params)
        if cache_key is None:
            return await self._compute(fact, params)

        # No await between lookup and insert: the first caller claims the key.
        pending = self._cache.get(cache_key)
        if pending is None:
            pending = asyncio.ensure_future(self._compute(fact, params))
            self._cache[cache_key] = pending
        else:
            self.logger.debug("Fact cache hit", fact=fact.id, cache_key=cache_key)
            if self.metrics:
                self.metrics.increment_counter("fact_cache_hits_total", fact=fact.id)

        # shield: a cancelled waiter must not cancel the shared computation
        return await asyncio.shield(pending)

    async def _compute(self, fact: Fact, params: Dict[str, Any]) -> Any:
        self.logger.debug("Computing fact", fact=fact.id, params=params)
        if self.metrics:
            self.metrics.increment_counter("fact_computations_total", fact=fact.id)
        try:
            return await fact.calculate(params, self)
        except RulesEngineException:
            raise
        except Exception as e:
            self.logger.error("Fact computation failed", fact=fact.id, error=str(e))
            raise FactComputationError(fact.id, e) from e
