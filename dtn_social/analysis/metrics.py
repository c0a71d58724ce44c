"""
Metrics collection for simulation analysis.

Collects message lifecycle counts, delivery latency and hop counts so
routing policies can be compared on the same trace.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from datetime import datetime
from collections import defaultdict
import json

from ..simulation.engine import MessageEvent, MessageEventType, SimulationState


@dataclass
class SimulationMetrics:
    """Aggregated metrics for a simulation run."""
    # Basic stats
    simulation_id: str
    policy: str
    start_time: datetime
    end_time: Optional[datetime]
    total_steps: int
    sim_time: float
    node_count: int

    # Message counts
    created: int
    started: int
    relayed: int
    aborted: int
    dropped: int
    evicted: int
    expired: int
    delivered: int

    # Delivery quality
    delivery_probability: float
    overhead_ratio: Optional[float]
    latency_avg: float
    latency_median: float
    hop_count_avg: float
    hop_count_median: float

    transfers_by_tier: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "simulation_id": self.simulation_id,
            "policy": self.policy,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_steps": self.total_steps,
            "sim_time": self.sim_time,
            "node_count": self.node_count,
            "created": self.created,
            "started": self.started,
            "relayed": self.relayed,
            "aborted": self.aborted,
            "dropped": self.dropped,
            "evicted": self.evicted,
            "expired": self.expired,
            "delivered": self.delivered,
            "delivery_probability": self.delivery_probability,
            "overhead_ratio": self.overhead_ratio,
            "latency_avg": self.latency_avg,
            "latency_median": self.latency_median,
            "hop_count_avg": self.hop_count_avg,
            "hop_count_median": self.hop_count_median,
            "transfers_by_tier": dict(self.transfers_by_tier),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


class MetricsCollector:
    """
    Collects metrics during simulation runs.

    Tracks:
    - Message lifecycle counts
    - Latency and hop count of first deliveries
    - Per-step timeline
    """

    def __init__(self, simulation_id: Optional[str] = None, policy: str = ""):
        import uuid
        self.simulation_id = simulation_id or str(uuid.uuid4())[:8]
        self.policy = policy
        self.start_time = datetime.now()
        self.end_time: Optional[datetime] = None

        self._counts: Dict[MessageEventType, int] = defaultdict(int)
        self._latencies: List[float] = []
        self._hop_counts: List[int] = []

        self._step_count = 0
        self._sim_time = 0.0
        self._started_this_step = 0
        self._delivered_this_step = 0

        # Per-node tracking
        self._node_deliveries: Dict[int, int] = defaultdict(int)
        self._node_relays: Dict[int, int] = defaultdict(int)

        self._timeline: List[Dict[str, Any]] = []

    def attach(self, engine) -> None:
        """Register this collector's callbacks on an engine."""
        engine.on_message_event(self.record_event)
        engine.on_step(self.record_step)

    def record_event(self, event: MessageEvent) -> None:
        """Record a single message lifecycle event."""
        self._counts[event.event_type] += 1

        if event.event_type is MessageEventType.STARTED:
            self._started_this_step += 1
        elif event.event_type is MessageEventType.RELAYED:
            self._node_relays[event.node] += 1
        elif event.event_type is MessageEventType.DELIVERED:
            self._delivered_this_step += 1
            self._node_deliveries[event.node] += 1
            self._latencies.append(event.time - event.message.created_at)
            self._hop_counts.append(event.message.hop_count)

    def record_step(self, state: SimulationState) -> None:
        """Record metrics for a simulation step."""
        self._step_count = state.step_count
        self._sim_time = state.current_time

        if self._started_this_step or self._delivered_this_step:
            self._timeline.append({
                "step": state.step_count,
                "time": state.current_time,
                "started": self._started_this_step,
                "delivered": self._delivered_this_step,
                "total_created": self.count(MessageEventType.CREATED),
                "total_delivered": self.count(MessageEventType.DELIVERED),
            })

        self._started_this_step = 0
        self._delivered_this_step = 0

    def count(self, event_type: MessageEventType) -> int:
        return self._counts.get(event_type, 0)

    def finalize(
        self,
        node_count: int,
        transfers_by_tier: Optional[Mapping] = None,
    ) -> SimulationMetrics:
        """Finalize metrics collection and return aggregated metrics."""
        self.end_time = datetime.now()

        created = self.count(MessageEventType.CREATED)
        relayed = self.count(MessageEventType.RELAYED)
        delivered = self.count(MessageEventType.DELIVERED)

        tiers = {
            getattr(tier, "name", str(tier)).lower(): count
            for tier, count in sorted((transfers_by_tier or {}).items())
        }

        return SimulationMetrics(
            simulation_id=self.simulation_id,
            policy=self.policy,
            start_time=self.start_time,
            end_time=self.end_time,
            total_steps=self._step_count,
            sim_time=self._sim_time,
            node_count=node_count,
            created=created,
            started=self.count(MessageEventType.STARTED),
            relayed=relayed,
            aborted=self.count(MessageEventType.ABORTED),
            dropped=self.count(MessageEventType.DROPPED),
            evicted=self.count(MessageEventType.EVICTED),
            expired=self.count(MessageEventType.EXPIRED),
            delivered=delivered,
            delivery_probability=delivered / created if created else 0.0,
            overhead_ratio=(relayed - delivered) / delivered if delivered else None,
            latency_avg=self._avg(self._latencies),
            latency_median=self._median(self._latencies),
            hop_count_avg=self._avg(self._hop_counts),
            hop_count_median=self._median(self._hop_counts),
            transfers_by_tier=tiers,
        )

    def _avg(self, values: List[float]) -> float:
        """Calculate average of a list."""
        return sum(values) / len(values) if values else 0.0

    def _median(self, values: List[float]) -> float:
        if not values:
            return 0.0
        ordered = sorted(values)
        mid = len(ordered) // 2
        if len(ordered) % 2:
            return float(ordered[mid])
        return (ordered[mid - 1] + ordered[mid]) / 2

    def get_top_relays(self, n: int = 10) -> List[tuple]:
        """Nodes that completed the most transfers as sender."""
        sorted_nodes = sorted(
            self._node_relays.items(),
            key=lambda x: x[1],
            reverse=True,
        )
        return sorted_nodes[:n]

    def get_node_activity(self, address: int) -> Dict[str, int]:
        return {
            "relayed": self._node_relays.get(address, 0),
            "delivered": self._node_deliveries.get(address, 0),
        }

    def get_timeline(self) -> List[Dict[str, Any]]:
        """Get the timeline of step metrics."""
        return self._timeline.copy()

    def compare_with(self, other: "MetricsCollector") -> Dict[str, Any]:
        """Compare this collector's metrics with another."""
        own_delivered = self.count(MessageEventType.DELIVERED)
        other_delivered = other.count(MessageEventType.DELIVERED)
        return {
            "delivery_ratio": own_delivered / max(1, other_delivered),
            "relay_ratio": (
                self.count(MessageEventType.RELAYED)
                / max(1, other.count(MessageEventType.RELAYED))
            ),
            "latency_avg_diff": self._avg(self._latencies) - other._avg(other._latencies),
        }

    def export_to_csv(self, filepath: str) -> None:
        """Export timeline data to CSV."""
        import csv

        if not self._timeline:
            return

        with open(filepath, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=self._timeline[0].keys())
            writer.writeheader()
            writer.writerows(self._timeline)

    def __repr__(self) -> str:
        return (
            f"MetricsCollector(id={self.simulation_id}, steps={self._step_count}, "
            f"delivered={self.count(MessageEventType.DELIVERED)})"
        )
