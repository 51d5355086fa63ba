"""
Rules engine application package.

Subpackages:
- operators: Named binary predicates and their registry.
- facts: Fact definitions and the per-run Almanac that resolves and caches them.
- rules: Conditions, rules, the engine scheduler and result models.
"""
