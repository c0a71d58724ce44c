"""
Messages carried through the network.

A message is stored once per holder. Forwarding creates the receiver's
copy, which extends the hop history with the forwarder.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple
import re

_DIGITS = re.compile(r"(\d+)")


def natural_id_key(message_id: str) -> Tuple:
    """Sort key ordering ``M2`` before ``M10``."""
    return tuple(
        (0, int(part)) if part.isdigit() else (1, part)
        for part in _DIGITS.split(message_id) if part
    )


@dataclass
class Message:
    """
    A message buffered at a node.

    ``hops`` lists the nodes that forwarded this copy, oldest first. It is
    empty at the origin and its last element is the most recent forwarder.
    ``receive_time`` is when the message entered the current holder's
    buffer.
    """
    message_id: str
    origin: int
    destination: int
    size: int
    created_at: float
    ttl: Optional[float] = None
    receive_time: Optional[float] = None
    hops: List[int] = field(default_factory=list)

    def __post_init__(self):
        if self.receive_time is None:
            self.receive_time = self.created_at

    @property
    def last_hop(self) -> Optional[int]:
        """The most recent forwarder, or None at the origin."""
        return self.hops[-1] if self.hops else None

    @property
    def hop_count(self) -> int:
        return len(self.hops)

    def is_expired(self, now: float) -> bool:
        """Whether the time-to-live has run out."""
        if self.ttl is None:
            return False
        return now >= self.created_at + self.ttl

    def forwarded(self, sender: int, now: float) -> "Message":
        """Copy held by the receiver after ``sender`` forwarded it."""
        return replace(self, receive_time=now, hops=self.hops + [sender])

    @property
    def sort_key(self) -> Tuple:
        """Oldest received first, id ascending on ties."""
        return (self.receive_time, natural_id_key(self.message_id))

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "origin": self.origin,
            "destination": self.destination,
            "size": self.size,
            "created_at": self.created_at,
            "ttl": self.ttl,
            "receive_time": self.receive_time,
            "hops": list(self.hops),
        }
