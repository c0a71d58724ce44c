"""
Routing policies for opportunistic message exchange.

A policy runs once per tick for its node and starts at most one
transfer. Candidates are tried in priority tiers; the first transfer
that starts ends the tick for that node.

Policies work against a *host*, the node they route for, which must
provide:

- ``address``: the node's identity
- ``buffer``: its ``MessageStore``
- ``connections()``: currently active connections
- ``peer(address)``: the host at the other end of a link, or None
- ``is_transferring()`` / ``can_start_transfer()``
- ``is_sending(message_id)``: whether a message is in flight from it
- ``start_transfer(message, connection, pull=False)``: returns a
  ``TransferStatus``; with ``pull`` the message comes from the peer
"""

from abc import ABC, abstractmethod
from collections import Counter
from enum import Enum, IntEnum
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from ..social.contacts import ContactRelation
from .connection import Connection
from .message import Message

logger = logging.getLogger(__name__)

MessagePredicate = Callable[[Message], bool]


class TransferStatus(Enum):
    """Outcome of trying to start a transfer."""
    ACCEPTED = "accepted"
    BUSY = "busy"  # Link or an endpoint already transferring
    ALREADY_DELIVERED = "already_delivered"
    DUPLICATE = "duplicate"  # Receiver already holds the message
    TOO_LARGE = "too_large"  # Can never fit the receiver's buffer
    DENIED = "denied"  # Link down or message gone


class Tier(IntEnum):
    """Priority levels of the exchange, tried in ascending order."""
    DIRECT = 0
    CONTACT_ORIGIN = 1
    CONTACT_RELAY = 2
    FLOOD = 3


def _start(host, message: Message, connection: Connection, pull: bool = False) -> bool:
    if not connection.is_up:
        return False

    status = host.start_transfer(message, connection, pull=pull)
    if status is TransferStatus.ACCEPTED:
        logger.debug(
            "Node %s started %s of %s over %r",
            host.address, "pull" if pull else "push", message.message_id, connection,
        )
        return True
    return False


def try_messages_for_connected(
    host,
    pairs: Sequence[Tuple[Message, Connection]],
) -> Optional[Tuple[Message, Connection]]:
    """Push each (message, connection) pair in order until one starts."""
    for message, connection in pairs:
        if _start(host, message, connection):
            return message, connection
    return None


def exchange_deliverable_messages(host) -> Optional[Connection]:
    """Hand off messages whose destination is at the other end of a link."""
    connections = host.connections()
    if not connections:
        return None

    pairs = [
        (message, connection)
        for message in host.buffer.messages()
        for connection in connections
        if message.destination == connection.other(host.address)
    ]

    started = try_messages_for_connected(host, host.buffer.sort_pairs(pairs))
    return started[1] if started else None


def try_all_messages_to_all_connections(host) -> Optional[Connection]:
    """Offer every buffered message on every link, with no filtering."""
    connections = host.connections()
    if not connections or len(host.buffer) == 0:
        return None

    messages = host.buffer.sorted_messages()
    for connection in connections:
        for message in messages:
            if _start(host, message, connection):
                return connection
    return None


def pull_from_connected(host, predicate: MessagePredicate) -> Optional[Connection]:
    """
    Ask connected peers for messages matching ``predicate``.

    Each peer's buffer is copied before iterating, since starting a
    transfer may change it.
    """
    for connection in host.connections():
        if host.is_transferring():
            break

        peer = host.peer(connection.other(host.address))
        if peer is None:
            continue

        for message in peer.buffer.snapshot():
            if predicate(message) and _start(host, message, connection, pull=True):
                return connection

    return None


def oldest_message(
    host,
    exclude_in_flight: bool,
    skip: Optional[MessagePredicate] = None,
) -> Optional[Message]:
    """
    The buffered message with the smallest receive time.

    Messages matching ``skip`` are never returned, nor are messages being
    sent when ``exclude_in_flight`` is set.
    """
    oldest = None
    for message in host.buffer.messages():
        if skip is not None and skip(message):
            continue
        if exclude_in_flight and host.is_sending(message.message_id):
            continue
        if oldest is None or message.sort_key < oldest.sort_key:
            oldest = message
    return oldest


class RoutingPolicy(ABC):
    """
    Decision policy shared by every routing variant.

    Each tick the policy does nothing while its node is transferring or
    has no link, then walks its exchange steps in order and stops at the
    first one that starts a transfer.
    """

    name = "base"

    def __init__(self):
        self.started_by_tier: Counter = Counter()

    @abstractmethod
    def exchange_steps(self) -> List[Tuple[Tier, Callable[..., Optional[Connection]]]]:
        """Exchange steps in priority order."""

    def update(self, host) -> Optional[Connection]:
        """Run one tick. Returns the connection a transfer started on."""
        if host.is_transferring() or not host.can_start_transfer():
            return None

        for tier, step in self.exchange_steps():
            connection = step(host)
            if connection is not None:
                self.started_by_tier[tier] += 1
                return connection

        return None

    def select_eviction_victim(self, host, exclude_in_flight: bool) -> Optional[Message]:
        """Pick the message to drop when the buffer needs space."""
        return oldest_message(host, exclude_in_flight)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DirectDeliveryPolicy(RoutingPolicy):
    """Only hands messages to their final destination."""

    name = "direct"

    def exchange_steps(self):
        return [(Tier.DIRECT, exchange_deliverable_messages)]


class FloodOnlyPolicy(RoutingPolicy):
    """Epidemic baseline: direct delivery, then flood. No social awareness."""

    name = "flood"

    def exchange_steps(self):
        return [
            (Tier.DIRECT, exchange_deliverable_messages),
            (Tier.FLOOD, try_all_messages_to_all_connections),
        ]


class ContactTieredPolicy(RoutingPolicy):
    """
    Social policy prioritizing the node's contacts.

    Tiers:
    0. messages destined to a connected node
    1. messages originated by a contact (push, then pull)
    2. messages last forwarded by a contact (push, then pull)
    3. any message over any link

    Eviction never drops a message originated by a contact. When only
    such messages are buffered there is no victim.
    """

    name = "tiered"

    def __init__(self, contacts: ContactRelation):
        super().__init__()
        self.contacts = contacts

    def exchange_steps(self):
        return [
            (Tier.DIRECT, exchange_deliverable_messages),
            (Tier.CONTACT_ORIGIN, self.exchange_messages_from_contacts),
            (Tier.CONTACT_RELAY, self.exchange_messages_relayed_from_contacts),
            (Tier.FLOOD, try_all_messages_to_all_connections),
        ]

    def originates_from_contact(self, host, message: Message) -> bool:
        return self.contacts.is_contact(host.address, message.origin)

    def relayed_from_contact(self, host, message: Message) -> bool:
        last_hop = message.last_hop
        return last_hop is not None and self.contacts.is_contact(host.address, last_hop)

    def exchange_messages_from_contacts(self, host) -> Optional[Connection]:
        return self._exchange_matching(
            host, lambda message: self.originates_from_contact(host, message)
        )

    def exchange_messages_relayed_from_contacts(self, host) -> Optional[Connection]:
        return self._exchange_matching(
            host, lambda message: self.relayed_from_contact(host, message)
        )

    def _exchange_matching(self, host, predicate: MessagePredicate) -> Optional[Connection]:
        connections = host.connections()
        if not connections:
            return None

        pairs = [
            (message, connection)
            for message in host.buffer.messages() if predicate(message)
            for connection in connections
        ]
        started = try_messages_for_connected(host, host.buffer.sort_pairs(pairs))
        if started:
            return started[1]

        # Nothing pushed, ask the peers instead
        return pull_from_connected(host, predicate)

    def select_eviction_victim(self, host, exclude_in_flight: bool) -> Optional[Message]:
        return oldest_message(
            host,
            exclude_in_flight,
            skip=lambda message: self.originates_from_contact(host, message),
        )

    def __repr__(self) -> str:
        return f"ContactTieredPolicy(contacts={self.contacts!r})"


POLICY_NAMES = ("tiered", "flood", "direct")


def create_policy(name: str, contacts: Optional[ContactRelation] = None) -> RoutingPolicy:
    """
    Build a fresh policy instance by name.

    Every node gets its own instance; the contact relation is shared.
    """
    key = name.lower()
    if key == "tiered":
        if contacts is None:
            raise ValueError("the tiered policy needs a contact relation")
        return ContactTieredPolicy(contacts)
    if key == "flood":
        return FloodOnlyPolicy()
    if key == "direct":
        return DirectDeliveryPolicy()
    raise ValueError(f"unknown routing policy {name!r}, expected one of {POLICY_NAMES}")
