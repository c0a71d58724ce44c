"""
Active links between nodes and the transfers they carry.
"""

from dataclasses import dataclass
from typing import Optional

from .message import Message


@dataclass(eq=False)
class Transfer:
    """A message in flight from ``sender`` to ``receiver``."""
    message: Message
    sender: int
    receiver: int
    connection: "Connection"
    remaining: float
    started_at: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.remaining <= 0


class Connection:
    """
    An undirected link between two nodes.

    Links are created and torn down by the simulation; a connection that
    has been taken down stays ``is_up == False`` so callers holding a
    stale reference can tell. At most one transfer runs over a link at a
    time.
    """

    def __init__(self, node_a: int, node_b: int, speed: Optional[float] = None):
        if node_a == node_b:
            raise ValueError(f"cannot connect node {node_a} to itself")
        self.node_a = node_a
        self.node_b = node_b
        self.speed = speed
        self.is_up = True
        self.transfer: Optional[Transfer] = None

    @property
    def key(self) -> frozenset:
        return frozenset((self.node_a, self.node_b))

    def involves(self, node: int) -> bool:
        return node in (self.node_a, self.node_b)

    def other(self, node: int) -> int:
        """The endpoint that is not ``node``."""
        if node == self.node_a:
            return self.node_b
        if node == self.node_b:
            return self.node_a
        raise ValueError(f"node {node} is not an endpoint of {self!r}")

    @property
    def is_busy(self) -> bool:
        return self.transfer is not None

    def __repr__(self) -> str:
        state = "up" if self.is_up else "down"
        return f"Connection({self.node_a}<->{self.node_b}, {state})"
