"""
Connection set and in-flight transfers.

The network knows every node and every active link. It is the only
place where a transfer between two nodes is started, advanced or
aborted.
"""

from typing import Dict, List, Optional
import logging

from ..routing.connection import Connection, Transfer
from ..routing.message import Message
from ..routing.policy import TransferStatus

logger = logging.getLogger(__name__)


class Network:
    """
    Registry of nodes and the links currently up between them.

    Links are kept in the order they came up, which is the order a node
    sees its connections in.
    """

    def __init__(self, transmit_speed: Optional[float] = None):
        self.transmit_speed = transmit_speed
        self.current_time = 0.0
        self._nodes: Dict[int, "Node"] = {}
        self._connections: Dict[frozenset, Connection] = {}

    def add_node(self, node) -> None:
        if node.address in self._nodes:
            raise ValueError(f"node {node.address} already exists")
        self._nodes[node.address] = node

    def node(self, address: int):
        """The node with this address, or None."""
        return self._nodes.get(address)

    @property
    def nodes(self) -> List:
        """All nodes ordered by address."""
        return [self._nodes[address] for address in sorted(self._nodes)]

    def connect(self, node_a: int, node_b: int) -> Connection:
        """Bring a link up. An existing link is returned unchanged."""
        key = frozenset((node_a, node_b))
        existing = self._connections.get(key)
        if existing is not None:
            logger.debug("Link %s<->%s is already up", node_a, node_b)
            return existing

        connection = Connection(node_a, node_b)
        self._connections[key] = connection
        return connection

    def disconnect(self, node_a: int, node_b: int) -> Optional[Transfer]:
        """
        Take a link down.

        Returns the transfer that was aborted by it, if any.
        """
        connection = self._connections.pop(frozenset((node_a, node_b)), None)
        if connection is None:
            logger.debug("Link %s<->%s is not up", node_a, node_b)
            return None

        connection.is_up = False
        aborted = connection.transfer
        connection.transfer = None
        return aborted

    def connection_between(self, node_a: int, node_b: int) -> Optional[Connection]:
        return self._connections.get(frozenset((node_a, node_b)))

    def active_connections(self, address: int) -> List[Connection]:
        """Links of a node that are up, in link-up order."""
        return [c for c in self._connections.values() if c.involves(address)]

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_transferring(self, address: int) -> bool:
        return any(c.is_busy for c in self.active_connections(address))

    def is_sending(self, address: int, message_id: str) -> bool:
        for connection in self.active_connections(address):
            transfer = connection.transfer
            if transfer and transfer.sender == address and transfer.message.message_id == message_id:
                return True
        return False

    def start_transfer(
        self,
        message: Message,
        connection: Connection,
        sender,
        receiver,
    ) -> TransferStatus:
        """
        Start moving ``message`` from ``sender`` to ``receiver``.

        Either registers exactly one transfer on the link and returns
        ACCEPTED, or changes nothing and returns the reason.
        """
        if not connection.is_up or self._connections.get(connection.key) is not connection:
            return TransferStatus.DENIED
        if message.message_id not in sender.buffer:
            return TransferStatus.DENIED

        if (
            connection.is_busy
            or self.is_transferring(sender.address)
            or self.is_transferring(receiver.address)
        ):
            return TransferStatus.BUSY

        is_final = message.destination == receiver.address
        if is_final and receiver.has_delivered(message.message_id):
            return TransferStatus.ALREADY_DELIVERED
        if message.message_id in receiver.buffer:
            return TransferStatus.DUPLICATE
        if not is_final and not receiver.buffer.fits(message.size):
            return TransferStatus.TOO_LARGE

        connection.transfer = Transfer(
            message=message,
            sender=sender.address,
            receiver=receiver.address,
            connection=connection,
            remaining=message.size,
            started_at=self.current_time,
        )
        return TransferStatus.ACCEPTED

    def advance_transfers(self, elapsed: float) -> List[Transfer]:
        """
        Move every transfer forward by ``elapsed`` time.

        Without a transmit speed a transfer completes on its first
        advance. Completed transfers are removed from their links.
        """
        completed = []
        for connection in list(self._connections.values()):
            transfer = connection.transfer
            if transfer is None:
                continue

            speed = connection.speed if connection.speed is not None else self.transmit_speed
            if speed is None:
                transfer.remaining = 0
            else:
                transfer.remaining -= speed * elapsed

            if transfer.is_complete:
                connection.transfer = None
                completed.append(transfer)

        return completed

    def __repr__(self) -> str:
        return f"Network(nodes={len(self._nodes)}, links={self.connection_count})"
