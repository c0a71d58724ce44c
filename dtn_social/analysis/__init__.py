"""Analysis module - Delivery metrics."""

from .metrics import MetricsCollector, SimulationMetrics

__all__ = [
    "MetricsCollector",
    "SimulationMetrics",
]
