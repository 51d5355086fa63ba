"""
Operator package.

An operator is a named predicate ``(fact_value, value) -> bool`` with an
optional guard on the fact value. Registries are scoped to an Engine; the
built-in set is composed in explicitly through ``default_operators()``.
"""
