"""Simulation module - Engine, network, nodes and trace events."""

from .engine import (
    SimulationEngine,
    SimulationConfig,
    SimulationState,
    SimulationPhase,
    MessageEvent,
    MessageEventType,
)
from .network import Network
from .node import Node
from .trace import TraceEvent, TraceScheduler, EventType, read_trace, write_trace
from .generator import MessageCreator, GeneratorConfig

__all__ = [
    "SimulationEngine",
    "SimulationConfig",
    "SimulationState",
    "SimulationPhase",
    "MessageEvent",
    "MessageEventType",
    "Network",
    "Node",
    "TraceEvent",
    "TraceScheduler",
    "EventType",
    "read_trace",
    "write_trace",
    "MessageCreator",
    "GeneratorConfig",
]
