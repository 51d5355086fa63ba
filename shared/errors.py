"""
Shared error handling for the rules engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import run_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    run_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class RulesEngineException(Exception):
    """Base exception for the rules engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            run_id=run_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class UndefinedFactError(RulesEngineException):
    """A condition referenced a fact that is neither registered nor supplied at runtime."""

    def __init__(self, fact_id: str, details: Optional[Dict[str, Any]] = None):
        self.fact_id = fact_id
        super().__init__("UNDEFINED_FACT", f"Undefined fact: {fact_id}", {"fact": fact_id, **(details or {})})


class UnknownOperatorError(RulesEngineException):
    """A condition referenced an operator missing from the registry."""

    def __init__(self, operator: str, details: Optional[Dict[str, Any]] = None):
        self.operator = operator
        super().__init__("UNKNOWN_OPERATOR", f"Unknown operator: {operator}", {"operator": operator, **(details or {})})


class ValidationError(RulesEngineException):
    """Fact value rejected by an operator's validator."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class PathResolutionError(RulesEngineException):
    """Path navigation into a fact value failed."""

    def __init__(self, path: str, message: str, fact_id: Optional[str] = None, segment: Any = None):
        self.path = path
        self.fact_id = fact_id
        self.segment = segment
        super().__init__(
            "PATH_RESOLUTION_ERROR",
            f"Cannot resolve path '{path}': {message}",
            {"path": path, "fact": fact_id, "segment": segment}
        )


class FactComputationError(RulesEngineException):
    """A dynamic fact's computation raised."""

    def __init__(self, fact_id: str, cause: Exception):
        self.fact_id = fact_id
        self.cause = cause
        super().__init__(
            "FACT_COMPUTATION_ERROR",
            f"Fact '{fact_id}' computation failed: {cause}",
            {"fact": fact_id, "error_type": type(cause).__name__}
        )


class RuleDefinitionError(RulesEngineException):
    """Malformed rule, condition, fact, or operator definition."""

    def __init__(self, message: str = "Invalid rule definition", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_RULE", message, details)
