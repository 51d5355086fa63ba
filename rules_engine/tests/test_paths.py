"""
Unit tests for fact path navigation.
"""

import pytest

from rules_engine.app.facts.paths import parse_path, resolve_path
from shared.errors import PathResolutionError


class TestParsePath:
    """Test cases for path parsing."""

    @pytest.mark.parametrize("path,expected", [
        ("a", ["a"]),
        ("a.b.c", ["a", "b", "c"]),
        (".a.b", ["a", "b"]),
        ("$.a[0].b", ["a", 0, "b"]),
        ("[2]", [2]),
        ('a["key.with.dots"]', ["a", "key.with.dots"]),
        ("a['x'][1]", ["a", "x", 1]),
    ])
    def test_valid_paths(self, path, expected):
        """Test supported syntax."""
        assert parse_path(path) == expected

    @pytest.mark.parametrize("path", ["", "$", "a..b", "a[", "a[x]"])
    def test_malformed_paths(self, path):
        """Test malformed paths raise."""
        with pytest.raises(PathResolutionError):
            parse_path(path)


class TestResolvePath:
    """Test cases for path resolution."""

    @pytest.fixture
    def order(self):
        """Order document."""
        return {
            "id": "o-1",
            "lines": [
                {"sku": "A", "qty": 2},
                {"sku": "B", "qty": 1}
            ],
            "meta": {"0": "zero"}
        }

    def test_nested_lookup(self, order):
        """Test mapping and sequence traversal."""
        assert resolve_path(order, "lines[1].sku") == "B"
        assert resolve_path(order, "lines.0.qty") == 2

    def test_negative_index(self, order):
        """Test negative indexes count from the end."""
        assert resolve_path(order, "lines[-1].sku") == "B"

    def test_numeric_key_on_mapping(self, order):
        """Test bracket index falls back to a string key on mappings."""
        assert resolve_path(order, "meta[0]") == "zero"

    def test_missing_key(self, order):
        """Test missing keys raise with the failing segment."""
        with pytest.raises(PathResolutionError) as exc_info:
            resolve_path(order, "lines[0].price", fact_id="order")

        assert exc_info.value.segment == "price"
        assert exc_info.value.fact_id == "order"
        assert exc_info.value.code == "PATH_RESOLUTION_ERROR"

    def test_index_out_of_range(self, order):
        """Test out-of-range indexes raise."""
        with pytest.raises(PathResolutionError):
            resolve_path(order, "lines[9]")

    def test_non_container(self, order):
        """Test indexing into scalars raises."""
        with pytest.raises(PathResolutionError):
            resolve_path(order, "id.length")
        with pytest.raises(PathResolutionError):
            resolve_path(5, "a")
