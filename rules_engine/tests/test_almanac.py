"""
Unit tests for the Almanac.
"""

import asyncio
import pytest
from unittest.mock import MagicMock
from prometheus_client import CollectorRegistry

from rules_engine.app.facts.almanac import Almanac, SUCCESS_EVENTS_FACT
from rules_engine.app.facts.fact import Fact
from shared.errors import FactComputationError, PathResolutionError, UndefinedFactError
from shared.metrics import MetricsCollector


class TestAlmanac:
    """Test cases for Almanac fact resolution."""

    @pytest.fixture
    def profile(self):
        """Nested runtime fact value."""
        return {
            "name": "Ada",
            "addresses": [
                {"city": "London", "zip": "N1"},
                {"city": "Oslo", "zip": "0150"}
            ],
            "scores": {"math": 98}
        }

    @pytest.mark.asyncio
    async def test_runtime_fact_value(self):
        """Test runtime facts resolve directly."""
        almanac = Almanac({}, {"age": 30})

        assert await almanac.fact_value("age") == 30

    @pytest.mark.asyncio
    async def test_runtime_fact_shadows_registered_fact(self):
        """Test runtime value wins and the computation is never invoked."""
        compute = MagicMock(return_value=99)
        almanac = Almanac({"age": Fact("age", compute)}, {"age": 30})

        assert await almanac.fact_value("age") == 30
        compute.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_runtime_fact(self):
        """Test runtime facts can be added and overwritten after construction."""
        almanac = Almanac({"tier": Fact("tier", "silver")})

        almanac.add_runtime_fact("tier", "gold")
        assert await almanac.fact_value("tier") == "gold"

        almanac.add_runtime_fact("tier", "platinum")
        assert await almanac.fact_value("tier") == "platinum"

    @pytest.mark.asyncio
    async def test_add_runtime_fact_instance(self):
        """Test a Fact instance is registered rather than stored as a value."""
        almanac = Almanac({}, {"tier": "gold"})
        almanac.add_runtime_fact("tier", Fact("tier", lambda params, a: "computed"))

        assert await almanac.fact_value("tier") == "computed"

    @pytest.mark.asyncio
    async def test_constant_fact(self):
        """Test constant facts return their value."""
        almanac = Almanac({"limit": Fact("limit", 500)})

        assert await almanac.fact_value("limit") == 500

    @pytest.mark.asyncio
    async def test_dynamic_fact_receives_params_and_almanac(self):
        """Test computations get params and the almanac."""
        compute = MagicMock(return_value="ok")
        almanac = Almanac({"lookup": Fact("lookup", compute)})

        await almanac.fact_value("lookup", {"id": 7})

        compute.assert_called_once_with({"id": 7}, almanac)

    @pytest.mark.asyncio
    async def test_dependent_facts(self):
        """Test a fact computation can resolve other facts."""
        async def total(params, almanac):
            price = await almanac.fact_value("price")
            quantity = await almanac.fact_value("quantity")
            return price * quantity

        almanac = Almanac({"total": Fact("total", total), "price": Fact("price", 4)}, {"quantity": 3})

        assert await almanac.fact_value("total") == 12

    @pytest.mark.asyncio
    async def test_undefined_fact_strict(self):
        """Test unknown facts raise by default."""
        almanac = Almanac({})

        with pytest.raises(UndefinedFactError) as exc_info:
            await almanac.fact_value("missing")

        assert exc_info.value.fact_id == "missing"
        assert exc_info.value.code == "UNDEFINED_FACT"

    @pytest.mark.asyncio
    async def test_undefined_fact_lenient(self):
        """Test unknown facts resolve to None when allowed."""
        almanac = Almanac({}, allow_undefined_facts=True)

        assert await almanac.fact_value("missing") is None
        assert await almanac.fact_value("missing", path="a.b") is None

    @pytest.mark.asyncio
    async def test_is_defined(self):
        """Test definition lookup covers runtime and registered facts."""
        almanac = Almanac({"a": Fact("a", 1)}, {"b": 2})

        assert almanac.is_defined("a")
        assert almanac.is_defined("b")
        assert not almanac.is_defined("c")
        assert almanac.get_fact("a").value == 1

    @pytest.mark.asyncio
    async def test_path_navigation(self, profile):
        """Test dot and bracket paths into fact values."""
        almanac = Almanac({}, {"profile": profile})

        assert await almanac.fact_value("profile", path="addresses[1].city") == "Oslo"
        assert await almanac.fact_value("profile", path="$.scores.math") == 98
        assert await almanac.fact_value("profile", path='scores["math"]') == 98

    @pytest.mark.asyncio
    async def test_path_failure_raises(self, profile):
        """Test unresolvable paths raise instead of returning None."""
        almanac = Almanac({}, {"profile": profile})

        with pytest.raises(PathResolutionError) as exc_info:
            await almanac.fact_value("profile", path="addresses[5].city")

        assert exc_info.value.fact_id == "profile"

        with pytest.raises(PathResolutionError):
            await almanac.fact_value("profile", path="name.first")

    @pytest.mark.asyncio
    async def test_path_failure_lenient(self, profile):
        """Test unresolvable paths resolve as absent when undefined facts are allowed."""
        almanac = Almanac({}, {"profile": profile}, allow_undefined_facts=True)
        absent = object()

        assert await almanac.fact_value("profile", path="addresses[5].city") is None
        assert await almanac.fact_value("profile", path="missing", missing=absent) is absent
        assert await almanac.fact_value("profile", path="scores.math", missing=absent) == 98

    @pytest.mark.asyncio
    async def test_success_events_fact(self):
        """Test the built-in success-events fact tracks recorded events."""
        almanac = Almanac({})

        assert await almanac.fact_value(SUCCESS_EVENTS_FACT) == []

        almanac.record_success_event({"type": "approved"})

        assert await almanac.fact_value(SUCCESS_EVENTS_FACT) == [{"type": "approved"}]


class TestAlmanacCache:
    """Test cases for fact memoization."""

    @pytest.mark.asyncio
    async def test_concurrent_requests_compute_once(self):
        """Test concurrent lookups of one key share a single computation."""
        calls = 0

        async def slow(params, almanac):
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"call": calls}

        almanac = Almanac({"slow": Fact("slow", slow)})

        results = await asyncio.gather(*(almanac.fact_value("slow", {"id": 1}) for _ in range(10)))

        assert calls == 1
        assert all(result is results[0] for result in results)

    @pytest.mark.asyncio
    async def test_param_order_shares_cache_entry(self):
        """Test params differing only in key order hit the same entry."""
        compute = MagicMock(return_value=1)
        almanac = Almanac({"f": Fact("f", compute)})

        await almanac.fact_value("f", {"a": 1, "b": 2})
        await almanac.fact_value("f", {"b": 2, "a": 1})

        assert compute.call_count == 1

    @pytest.mark.asyncio
    async def test_distinct_params_compute_separately(self):
        """Test each distinct params value is computed once."""
        compute = MagicMock(side_effect=lambda params, almanac: params["n"])
        almanac = Almanac({"f": Fact("f", compute)})

        assert await almanac.fact_value("f", {"n": 1}) == 1
        assert await almanac.fact_value("f", {"n": 2}) == 2
        assert await almanac.fact_value("f", {"n": 1}) == 1
        assert compute.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_disabled_recomputes(self):
        """Test facts with caching off are computed on every lookup."""
        compute = MagicMock(return_value=1)
        almanac = Almanac({"f": Fact("f", compute, {"cache": False})})

        await asyncio.gather(*(almanac.fact_value("f") for _ in range(3)))

        assert compute.call_count == 3

    @pytest.mark.asyncio
    async def test_cache_scoped_to_almanac(self):
        """Test separate almanacs never share cached values."""
        compute = MagicMock(return_value=1)
        facts = {"f": Fact("f", compute)}

        await Almanac(facts).fact_value("f")
        await Almanac(facts).fact_value("f")

        assert compute.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_computation_not_retried(self):
        """Test a failure is wrapped, cached and not recomputed."""
        compute = MagicMock(side_effect=RuntimeError("backend down"))
        almanac = Almanac({"f": Fact("f", compute)})

        with pytest.raises(FactComputationError) as exc_info:
            await almanac.fact_value("f")
        with pytest.raises(FactComputationError):
            await almanac.fact_value("f")

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.fact_id == "f"
        assert compute.call_count == 1

    @pytest.mark.asyncio
    async def test_metrics_recorded(self):
        """Test computations and cache hits are counted."""
        registry = CollectorRegistry()
        metrics = MetricsCollector("rules_engine", registry)

        async def slow(params, almanac):
            await asyncio.sleep(0.01)
            return 1

        almanac = Almanac({"slow": Fact("slow", slow)}, metrics=metrics)
        await asyncio.gather(*(almanac.fact_value("slow") for _ in range(5)))

        assert registry.get_sample_value("fact_computations_total", {"fact": "slow"}) == 1
        assert registry.get_sample_value("fact_cache_hits_total", {"fact": "slow"}) == 4
