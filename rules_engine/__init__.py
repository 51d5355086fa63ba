"""
Rules engine.

Evaluates declarative rules (boolean trees of conditions over named facts)
against a per-run fact context, emitting success/failure events. Fact
computations are memoized per run and independent work runs concurrently
on asyncio.

Public surface:
- Engine, Rule, Condition, Fact, Almanac, Operator
- create_engine: config-driven factory
"""

from .app.facts.almanac import Almanac
from .app.facts.fact import Fact, FactKind, FactOptions
from .app.operators.operator import Operator, OperatorRegistry
from .app.operators.defaults import default_operators
from .app.rules.condition import Condition
from .app.rules.engine import Engine, EngineStatus
from .app.rules.models import RuleEvent, RuleFailure, RuleResult, RunResult
from .app.rules.rule import Rule
from .app.main import create_engine

__all__ = [
    "Almanac",
    "Condition",
    "Engine",
    "EngineStatus",
    "Fact",
    "FactKind",
    "FactOptions",
    "Operator",
    "OperatorRegistry",
    "Rule",
    "RuleEvent",
    "RuleFailure",
    "RuleResult",
    "RunResult",
    "create_engine",
    "default_operators",
]
