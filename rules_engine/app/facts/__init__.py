"""
Facts package.

- fact: Constant and dynamic fact definitions with cache keys.
- almanac: Per-run fact resolution, runtime overrides and memoization.
- paths: Dot/bracket navigation into resolved fact values.
"""
