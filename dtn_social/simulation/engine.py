"""
Tick-driven simulation loop for DTN routing.

Replays a trace of link and message-creation events, moves transfers
forward and lets every node's routing policy act once per tick.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
import logging

from ..routing.buffer import QueueMode
from ..routing.connection import Transfer
from ..routing.message import Message
from ..routing.policy import create_policy
from ..social.contacts import ContactRelation
from .network import Network
from .node import Node
from .trace import EventType, TraceEvent, TraceScheduler, read_trace

logger = logging.getLogger(__name__)


class SimulationPhase(Enum):
    """Phases of a simulation run."""
    SETUP = "setup"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class MessageEventType(Enum):
    """What happened to a message."""
    CREATED = "created"
    STARTED = "started"  # Transfer started
    RELAYED = "relayed"  # Transfer completed and stored or delivered
    DELIVERED = "delivered"  # First arrival at the destination
    ABORTED = "aborted"  # Transfer cut short
    DROPPED = "dropped"  # Rejected, no room at the receiver
    EVICTED = "evicted"
    EXPIRED = "expired"


@dataclass
class MessageEvent:
    """A message lifecycle event reported to engine callbacks."""
    event_type: MessageEventType
    message: Message
    time: float
    node: int
    peer: Optional[int] = None


@dataclass
class SimulationConfig:
    """Configuration for a simulation run."""
    # Time settings, in trace time units (seconds)
    duration: Optional[float] = None  # None runs until the last trace event
    update_interval: float = 1.0

    # Routing
    policy: str = "tiered"
    queue_mode: QueueMode = QueueMode.FIFO

    # Resources
    buffer_size: Optional[int] = None  # Bytes per node, None for unbounded
    transmit_speed: Optional[float] = None  # Bytes per time unit, None for instant
    message_ttl: Optional[float] = None

    # Random seed for reproducibility
    seed: Optional[int] = None


@dataclass
class SimulationState:
    """Current state of a simulation."""
    phase: SimulationPhase = SimulationPhase.SETUP
    current_time: float = 0.0
    step_count: int = 0
    messages_created: int = 0
    transfers_started: int = 0
    deliveries: int = 0


class SimulationEngine:
    """
    Main simulation engine.

    Each step:
    1. Applies trace events that are due
    2. Advances in-flight transfers and hands over completed ones
    3. Drops expired messages
    4. Runs every node's routing policy, in address order
    """

    def __init__(
        self,
        contacts: Optional[ContactRelation] = None,
        config: Optional[SimulationConfig] = None,
    ):
        self.config = config or SimulationConfig()
        if self.config.update_interval <= 0:
            raise ValueError("update_interval must be positive")

        self.contacts = contacts
        self._network = Network(self.config.transmit_speed)
        self._scheduler = TraceScheduler()
        self._state = SimulationState()
        self._message_ids: Set[str] = set()

        # Event hooks
        self._on_message_event: List[Callable[[MessageEvent], None]] = []
        self._on_step: List[Callable[[SimulationState], None]] = []

    def add_node(self, address: int) -> Node:
        """Get a node, creating it with a fresh policy instance if needed."""
        node = self._network.node(address)
        if node is not None:
            return node

        seed = None if self.config.seed is None else self.config.seed + address
        node = Node(
            address,
            self._network,
            create_policy(self.config.policy, self.contacts),
            buffer_size=self.config.buffer_size,
            queue_mode=self.config.queue_mode,
            seed=seed,
        )
        node.buffer.on_evict(
            lambda message, node=node: self._emit(MessageEventType.EVICTED, message, node.address)
        )
        self._network.add_node(node)
        return node

    def get_node(self, address: int) -> Optional[Node]:
        return self._network.node(address)

    @property
    def nodes(self) -> List[Node]:
        return self._network.nodes

    @property
    def network(self) -> Network:
        return self._network

    @property
    def state(self) -> SimulationState:
        return self._state

    def schedule(self, events: Iterable[TraceEvent]) -> None:
        """Queue trace events."""
        self._scheduler.extend(events)

    def load_trace(self, path: str) -> int:
        """Queue every event of a trace file. Returns the number read."""
        events = read_trace(path)
        self.schedule(events)
        logger.info("Loaded %d trace events from %s", len(events), path)
        return len(events)

    def on_message_event(self, callback: Callable[[MessageEvent], None]) -> None:
        """Register a callback for message lifecycle events."""
        self._on_message_event.append(callback)

    def on_delivery(self, callback: Callable[[MessageEvent], None]) -> None:
        """Register a callback for first deliveries only."""
        def forward(event: MessageEvent) -> None:
            if event.event_type is MessageEventType.DELIVERED:
                callback(event)
        self._on_message_event.append(forward)

    def on_step(self, callback: Callable[[SimulationState], None]) -> None:
        """Register a callback for step completion."""
        self._on_step.append(callback)

    def run(self) -> SimulationState:
        """
        Run the full simulation.

        Returns the final simulation state.
        """
        if self.config.duration is not None:
            end_time = self.config.duration
        else:
            end_time = self._scheduler.last_timestamp or 0.0

        logger.info(
            "Running %s policy until t=%s with %d pending events",
            self.config.policy, end_time, self._scheduler.pending_count,
        )

        self._state.phase = SimulationPhase.RUNNING
        while self._state.current_time <= end_time:
            self._run_step()

            if self._state.phase != SimulationPhase.RUNNING:
                break

        if self._state.phase == SimulationPhase.RUNNING:
            self._state.phase = SimulationPhase.COMPLETED

        logger.info(
            "Simulation finished after %d steps: %d created, %d delivered",
            self._state.step_count, self._state.messages_created, self._state.deliveries,
        )
        return self._state

    def run_steps(self, n_steps: int) -> SimulationState:
        """Run a specific number of simulation steps."""
        self._state.phase = SimulationPhase.RUNNING

        for _ in range(n_steps):
            self._run_step()

            if self._state.phase != SimulationPhase.RUNNING:
                break

        return self._state

    def pause(self) -> None:
        """Pause the simulation."""
        self._state.phase = SimulationPhase.PAUSED

    def resume(self) -> None:
        """Resume a paused simulation."""
        if self._state.phase == SimulationPhase.PAUSED:
            self._state.phase = SimulationPhase.RUNNING

    def _run_step(self) -> None:
        """Execute a single simulation step."""
        now = self._state.current_time
        self._network.current_time = now

        for event in self._scheduler.process_events_until(now):
            self._handle_trace_event(event)

        for transfer in self._network.advance_transfers(self.config.update_interval):
            self._complete_transfer(transfer, now)

        for node in self._network.nodes:
            for message in node.drop_expired(now):
                self._emit(MessageEventType.EXPIRED, message, node.address)

        for node in self._network.nodes:
            connection = node.update()
            if connection is not None and connection.transfer is not None:
                transfer = connection.transfer
                self._state.transfers_started += 1
                self._emit(
                    MessageEventType.STARTED, transfer.message, transfer.sender, transfer.receiver
                )

        self._state.step_count += 1

        for callback in self._on_step:
            callback(self._state)

        self._state.current_time = now + self.config.update_interval

    def _handle_trace_event(self, event: TraceEvent) -> None:
        """Apply one trace event."""
        if event.event_type is EventType.CONN:
            if event.node_a == event.node_b:
                logger.warning("Link from node %s to itself ignored", event.node_a)
                return
            if event.up:
                self.add_node(event.node_a)
                self.add_node(event.node_b)
                self._network.connect(event.node_a, event.node_b)
                return

            aborted = self._network.disconnect(event.node_a, event.node_b)
            if aborted is not None:
                self._emit(MessageEventType.ABORTED, aborted.message, aborted.sender, aborted.receiver)
            return

        self._create_message(event)

    def _create_message(self, event: TraceEvent) -> None:
        if event.message_id in self._message_ids:
            logger.warning("Duplicate message id %s ignored", event.message_id)
            return
        if event.sender == event.receiver:
            logger.warning("Message %s is addressed to its own sender, ignored", event.message_id)
            return

        self._message_ids.add(event.message_id)
        node = self.add_node(event.sender)
        self.add_node(event.receiver)

        message = Message(
            message_id=event.message_id,
            origin=event.sender,
            destination=event.receiver,
            size=event.size,
            created_at=event.timestamp,
            ttl=self.config.message_ttl,
        )

        if node.create_message(message):
            self._state.messages_created += 1
            self._emit(MessageEventType.CREATED, message, node.address)
        else:
            self._emit(MessageEventType.DROPPED, message, node.address)

    def _complete_transfer(self, transfer: Transfer, now: float) -> None:
        """Hand a finished transfer to its receiver."""
        sender = self._network.node(transfer.sender)
        receiver = self._network.node(transfer.receiver)

        message = sender.buffer.get(transfer.message.message_id)
        if message is None:
            # Expired or evicted at the sender while in flight
            self._emit(MessageEventType.ABORTED, transfer.message, transfer.sender, transfer.receiver)
            return

        copy = message.forwarded(sender.address, now)

        if copy.destination == receiver.address:
            sender.buffer.remove(message.message_id)
            self._emit(MessageEventType.RELAYED, copy, sender.address, receiver.address)
            if receiver.deliver(copy, now):
                self._state.deliveries += 1
                self._emit(MessageEventType.DELIVERED, copy, receiver.address, sender.address)
            return

        if receiver.receive(copy):
            self._emit(MessageEventType.RELAYED, copy, sender.address, receiver.address)
        else:
            self._emit(MessageEventType.DROPPED, copy, receiver.address, sender.address)

    def _emit(
        self,
        event_type: MessageEventType,
        message: Message,
        node: int,
        peer: Optional[int] = None,
    ) -> None:
        event = MessageEvent(event_type, message, self._state.current_time, node, peer)
        for callback in self._on_message_event:
            callback(event)

    def transfers_by_tier(self) -> Counter:
        """Transfers started per routing tier, summed over all nodes."""
        total: Counter = Counter()
        for node in self._network.nodes:
            total.update(node.policy.started_by_tier)
        return total

    def export_state(self) -> Dict[str, Any]:
        """Export current simulation state for analysis."""
        return {
            "phase": self._state.phase.value,
            "current_time": self._state.current_time,
            "step_count": self._state.step_count,
            "messages_created": self._state.messages_created,
            "transfers_started": self._state.transfers_started,
            "deliveries": self._state.deliveries,
            "node_count": len(self._network.nodes),
            "active_links": self._network.connection_count,
            "pending_events": self._scheduler.pending_count,
            "buffered_messages": sum(len(n.buffer) for n in self._network.nodes),
            "policy": self.config.policy,
        }

    def __repr__(self) -> str:
        return f"SimulationEngine(nodes={len(self._network.nodes)}, phase={self._state.phase.value})"
