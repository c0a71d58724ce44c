"""
A DTN node: buffer, routing policy and delivery record.
"""

from typing import Dict, List, Optional
import logging

from ..routing.buffer import MessageStore, QueueMode
from ..routing.connection import Connection
from ..routing.message import Message
from ..routing.policy import RoutingPolicy, TransferStatus

logger = logging.getLogger(__name__)


class Node:
    """
    A participant in the network.

    The node owns its buffer and is the only writer to it; its routing
    policy decides what to send and what to evict.
    """

    def __init__(
        self,
        address: int,
        network,
        policy: RoutingPolicy,
        buffer_size: Optional[int] = None,
        queue_mode: QueueMode = QueueMode.FIFO,
        seed: Optional[int] = None,
    ):
        self.address = address
        self.network = network
        self.policy = policy
        self.buffer = MessageStore(buffer_size, queue_mode, seed)
        self.buffer.set_evictor(
            lambda exclude_in_flight: self.policy.select_eviction_victim(self, exclude_in_flight)
        )
        self._delivered: Dict[str, float] = {}

    # Host interface used by routing policies

    def connections(self) -> List[Connection]:
        return self.network.active_connections(self.address)

    def peer(self, address: int) -> Optional["Node"]:
        return self.network.node(address)

    def is_transferring(self) -> bool:
        return self.network.is_transferring(self.address)

    def can_start_transfer(self) -> bool:
        return bool(self.connections())

    def is_sending(self, message_id: str) -> bool:
        return self.network.is_sending(self.address, message_id)

    def start_transfer(
        self,
        message: Message,
        connection: Connection,
        pull: bool = False,
    ) -> TransferStatus:
        """Push ``message`` to the other end, or pull it from there."""
        other = self.peer(connection.other(self.address))
        if other is None:
            return TransferStatus.DENIED

        sender, receiver = (other, self) if pull else (self, other)
        return self.network.start_transfer(message, connection, sender, receiver)

    # Buffer management

    def create_message(self, message: Message) -> bool:
        """Store a message originated here. False if there is no room."""
        return self.receive(message)

    def receive(self, message: Message) -> bool:
        """
        Store a relayed message, evicting others if needed.

        Returns False when the message is already held or no room could
        be made; the message is then not stored. Messages evicted before
        the eviction selector ran out of victims stay evicted, so a
        refused message can still cost buffer contents.
        """
        if message.message_id in self.buffer:
            return False
        if not self.buffer.make_room(message.size):
            logger.debug(
                "Node %s has no room for %s (%d bytes)",
                self.address, message.message_id, message.size,
            )
            return False

        self.buffer.add(message)
        return True

    def deliver(self, message: Message, now: float) -> bool:
        """Accept a message addressed to this node. True on first delivery."""
        if message.message_id in self._delivered:
            return False
        self._delivered[message.message_id] = now
        return True

    def has_delivered(self, message_id: str) -> bool:
        return message_id in self._delivered

    @property
    def delivered_count(self) -> int:
        return len(self._delivered)

    def drop_expired(self, now: float) -> List[Message]:
        """Remove messages whose time-to-live ran out."""
        expired = [m for m in self.buffer.messages() if m.is_expired(now)]
        for message in expired:
            self.buffer.remove(message.message_id)
        return expired

    def update(self) -> Optional[Connection]:
        """Let the routing policy act for this tick."""
        return self.policy.update(self)

    def __repr__(self) -> str:
        return f"Node({self.address}, policy={self.policy.name}, buffered={len(self.buffer)})"
