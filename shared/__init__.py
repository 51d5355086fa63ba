"""
Shared utilities for the rules engine.

This package aggregates common building blocks consumed by the engine:

- config: Engine configuration via pydantic-settings
- logging: Structured logging with run correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Cross-cutting logic lives here to avoid import cycles with the engine
package. Do not import from rules_engine into shared/.
"""
