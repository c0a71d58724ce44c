"""Routing module - Messages, buffers and routing policies."""

from .message import Message
from .connection import Connection, Transfer
from .buffer import MessageStore, QueueMode
from .policy import (
    RoutingPolicy,
    ContactTieredPolicy,
    FloodOnlyPolicy,
    DirectDeliveryPolicy,
    TransferStatus,
    Tier,
    create_policy,
)

__all__ = [
    "Message",
    "Connection",
    "Transfer",
    "MessageStore",
    "QueueMode",
    "RoutingPolicy",
    "ContactTieredPolicy",
    "FloodOnlyPolicy",
    "DirectDeliveryPolicy",
    "TransferStatus",
    "Tier",
    "create_policy",
]
