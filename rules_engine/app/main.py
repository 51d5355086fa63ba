"""
Config-driven engine factory.
"""

from typing import Any, List, Mapping, Optional, Union

from prometheus_client import REGISTRY, CollectorRegistry

from shared.config import EngineConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector
from .rules.engine import Engine
from .rules.rule import Rule


def create_engine(
    config: Optional[EngineConfig] = None,
    rules: Optional[List[Union[Rule, Mapping[str, Any]]]] = None,
    registry: Optional[CollectorRegistry] = REGISTRY
) -> Engine:
    """Create an engine with logging and metrics configured from settings.

    Metrics go to the process-wide Prometheus registry unless another
    registry is given; engines sharing a registry share one collector.
    """
    config = config or get_config()
    configure_logging(config.engine_name, config.log_level)

    metrics = get_metrics_collector(config.engine_name, registry) if config.enable_metrics else None
    engine = Engine(
        rules,
        allow_undefined_facts=config.allow_undefined_facts,
        metrics=metrics
    )

    get_logger(f"{config.engine_name}.main").info(
        "Engine created",
        env=config.env,
        allow_undefined_facts=config.allow_undefined_facts,
        metrics_enabled=metrics is not None
    )
    return engine
