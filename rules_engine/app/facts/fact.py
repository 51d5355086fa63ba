"""
Fact definitions.
"""

import hashlib
import inspect
import json
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union, TYPE_CHECKING

from pydantic import BaseModel, Field

from shared.errors import RuleDefinitionError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .almanac import Almanac


class FactKind(str, Enum):
    """Fact kinds."""
    CONSTANT = "constant"
    DYNAMIC = "dynamic"


class FactOptions(BaseModel):
    """Fact options."""
    cache: bool = Field(True, description="Memoize computed values per (fact, params) within a run")
    priority: int = Field(1, ge=1, description="Higher priority facts are evaluated first")


def hash_from_object(obj: Any) -> str:
    """MD5 of the sorted-key JSON form; equal structures hash equally regardless of key order."""
    serialized = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(serialized.encode()).hexdigest()


class Fact:
    """Named value source: a constant or a computation of ``(params, almanac)``.

    Computation methods may be plain functions or coroutine functions.
    """

    def __init__(
        self,
        fact_id: str,
        value_or_method: Any = None,
        options: Optional[Union[FactOptions, Dict[str, Any]]] = None,
        **overrides: Any
    ):
        if not fact_id:
            raise RuleDefinitionError("Fact requires an id")
        self.id = fact_id

        if options is None:
            options = FactOptions()
        elif isinstance(options, dict):
            options = FactOptions(**options)
        if overrides:
            options = FactOptions(**{**options.model_dump(), **overrides})
        self.options = options
        self.priority = options.priority

        if callable(value_or_method):
            self._kind = FactKind.DYNAMIC
            self.calculation_method: Optional[Callable[..., Any]] = value_or_method
            self.value = None
        else:
            self._kind = FactKind.CONSTANT
            self.calculation_method = None
            self.value = value_or_method

    @property
    def kind(self) -> FactKind:
        return self._kind

    def is_constant(self) -> bool:
        return self._kind == FactKind.CONSTANT

    def is_dynamic(self) -> bool:
        return self._kind == FactKind.DYNAMIC

    async def calculate(self, params: Optional[Dict[str, Any]], almanac: "Almanac") -> Any:
        """Return the fact value for the given params."""
        if self.is_constant():
            return self.value
        result = self.calculation_method(params, almanac)
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def default_cache_keys(fact_id: str, params: Any) -> Dict[str, Any]:
        return {"id": fact_id, "params": params}

    def get_cache_key(self, params: Any) -> Optional[str]:
        """Cache key for the given params, or None when caching is disabled."""
        if not self.options.cache:
            return None
        return hash_from_object(self.default_cache_keys(self.id, params))

    def __repr__(self) -> str:
        return f"Fact({self.id!r}, kind={self._kind.value}, priority={self.priority})"
