"""
Trace events that drive a simulation.

A trace is a text file of whitespace separated lines:

    <timestamp> CONN <node_a> <node_b> up|down
    <timestamp> C <message_id> <sender> <receiver> <size>

Consumers process events in timestamp order; traces are not required
to be sorted on disk.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional
import heapq
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of trace events."""
    CONN = "CONN"  # Link up or down
    CREATE = "C"  # Message creation


@dataclass
class TraceEvent:
    """
    A single trace event.

    For CONN events ``node_a``/``node_b`` are the link endpoints and
    ``up`` tells the direction of the change. For creation events they
    are the sender and receiver of the new message.
    """
    timestamp: float
    event_type: EventType
    node_a: int
    node_b: int
    up: bool = True
    message_id: str = ""
    size: int = 0
    sequence: int = 0

    @classmethod
    def connection(cls, timestamp: float, node_a: int, node_b: int, up: bool) -> "TraceEvent":
        return cls(timestamp, EventType.CONN, node_a, node_b, up=up)

    @classmethod
    def creation(
        cls,
        timestamp: float,
        message_id: str,
        sender: int,
        receiver: int,
        size: int,
    ) -> "TraceEvent":
        return cls(timestamp, EventType.CREATE, sender, receiver, message_id=message_id, size=size)

    @property
    def sender(self) -> int:
        return self.node_a

    @property
    def receiver(self) -> int:
        return self.node_b

    def __lt__(self, other: "TraceEvent") -> bool:
        return (self.timestamp, self.sequence) < (other.timestamp, other.sequence)


def _format_time(timestamp: float) -> str:
    return str(int(timestamp)) if float(timestamp).is_integer() else repr(timestamp)


def format_event(event: TraceEvent) -> str:
    """Render an event as a tab separated trace line."""
    ts = _format_time(event.timestamp)
    if event.event_type is EventType.CONN:
        state = "up" if event.up else "down"
        return f"{ts}\tCONN\t{event.node_a}\t{event.node_b}\t{state}"
    return f"{ts}\tC\t{event.message_id}\t{event.sender}\t{event.receiver}\t{event.size}"


def parse_trace_line(line: str) -> Optional[TraceEvent]:
    """
    Parse one trace line.

    Returns None for blank lines and ``#`` comments.

    Raises:
        ValueError: If the line is not a valid event.
    """
    tokens = line.split()
    if not tokens or tokens[0].startswith("#"):
        return None
    if len(tokens) < 2:
        raise ValueError(f"missing event type in {line!r}")

    timestamp = float(tokens[0])
    kind = tokens[1]

    if kind == EventType.CONN.value:
        if len(tokens) != 5 or tokens[4] not in ("up", "down"):
            raise ValueError(f"expected 'CONN <a> <b> up|down' in {line!r}")
        node_a, node_b = int(tokens[2]), int(tokens[3])
        if node_a == node_b:
            raise ValueError(f"node {node_a} cannot link to itself in {line!r}")
        return TraceEvent.connection(timestamp, node_a, node_b, tokens[4] == "up")

    if kind == EventType.CREATE.value:
        if len(tokens) < 6:
            raise ValueError(f"expected 'C <id> <sender> <receiver> <size>' in {line!r}")
        return TraceEvent.creation(
            timestamp, tokens[2], int(tokens[3]), int(tokens[4]), int(tokens[5])
        )

    raise ValueError(f"unknown event type {kind!r}")


def parse_trace(lines: Iterable[str]) -> List[TraceEvent]:
    """Parse trace lines, logging and skipping malformed ones."""
    events = []
    for line_number, line in enumerate(lines, start=1):
        try:
            event = parse_trace_line(line)
        except ValueError as e:
            logger.warning("Trace line %d skipped: %s", line_number, e)
            continue
        if event is not None:
            events.append(event)
    return events


def read_trace(path: str) -> List[TraceEvent]:
    """Read a trace file."""
    with open(path, "r") as f:
        return parse_trace(f)


def write_trace(events: Iterable[TraceEvent], path: str) -> int:
    """Write events to a trace file, returning how many were written."""
    count = 0
    with open(path, "w") as f:
        for event in events:
            f.write(format_event(event) + "\n")
            count += 1
    return count


class TraceScheduler:
    """
    Time-ordered queue of pending trace events.

    Events with equal timestamps come out in the order they were
    scheduled.
    """

    def __init__(self):
        self._event_queue: List[TraceEvent] = []
        self._sequence = 0
        self._processed = 0
        self._last_timestamp: Optional[float] = None

    def schedule(self, event: TraceEvent) -> TraceEvent:
        """Queue an event."""
        event.sequence = self._sequence
        self._sequence += 1
        heapq.heappush(self._event_queue, event)

        if self._last_timestamp is None or event.timestamp > self._last_timestamp:
            self._last_timestamp = event.timestamp
        return event

    def extend(self, events: Iterable[TraceEvent]) -> None:
        for event in events:
            self.schedule(event)

    def peek_next_event(self) -> Optional[TraceEvent]:
        """Peek at the next event without removing it."""
        if not self._event_queue:
            return None
        return self._event_queue[0]

    def process_events_until(self, end_time: float) -> List[TraceEvent]:
        """Pop every event with a timestamp at or before ``end_time``."""
        processed = []
        while self._event_queue and self._event_queue[0].timestamp <= end_time:
            processed.append(heapq.heappop(self._event_queue))
        self._processed += len(processed)
        return processed

    @property
    def last_timestamp(self) -> Optional[float]:
        """Latest timestamp ever scheduled."""
        return self._last_timestamp

    @property
    def pending_count(self) -> int:
        return len(self._event_queue)

    @property
    def processed_count(self) -> int:
        return self._processed

    def clear(self) -> None:
        self._event_queue.clear()

    def __repr__(self) -> str:
        return f"TraceScheduler(pending={self.pending_count}, processed={self.processed_count})"
