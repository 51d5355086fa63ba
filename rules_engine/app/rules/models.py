"""
Result and event models for the rules engine.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union, TYPE_CHECKING

from pydantic import BaseModel, Field

from shared.errors import ErrorResponse, RulesEngineException

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..facts.almanac import Almanac
    from .condition import Condition
    from .rule import Rule


class EngineStatus(str, Enum):
    """Engine run states."""
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    STOPPED = "stopped"


class RuleEvent(BaseModel):
    """Event emitted when a rule's conditions pass."""
    type: str = Field(..., min_length=1, description="Event name")
    params: Optional[Dict[str, Any]] = Field(None, description="Payload passed to listeners")


@dataclass
class RuleResult:
    """Outcome of one rule evaluation with the annotated condition tree."""
    conditions: "Condition"
    event: RuleEvent
    priority: int
    name: Optional[str] = None
    result: Optional[bool] = None

    def set_result(self, result: bool) -> None:
        self.result = result

    def to_json(self, stringify: bool = True) -> Union[str, Dict[str, Any]]:
        props: Dict[str, Any] = {
            "conditions": self.conditions.to_json(False),
            "event": self.event.model_dump(exclude_none=True),
            "priority": self.priority,
            "result": self.result,
        }
        if self.name is not None:
            props["name"] = self.name
        if stringify:
            return json.dumps(props, default=str)
        return props


@dataclass
class RuleFailure:
    """A rule whose evaluation raised instead of producing a result."""
    rule: "Rule"
    error: Exception
    run_id: Optional[str] = None

    def to_response(self) -> ErrorResponse:
        if isinstance(self.error, RulesEngineException):
            response = self.error.to_response()
        else:
            response = ErrorResponse(code="RULE_EVALUATION_ERROR", message=str(self.error))
        if self.run_id is not None:
            response.run_id = self.run_id
        return response


@dataclass
class RunResult:
    """Everything a single Engine.run produced."""
    run_id: str
    status: EngineStatus = EngineStatus.RUNNING
    events: List[RuleEvent] = field(default_factory=list)
    results: List[RuleResult] = field(default_factory=list)
    errors: List[RuleFailure] = field(default_factory=list)
    almanac: Optional["Almanac"] = None
