"""
Bounded per-node message buffer.

The buffer decides retrieval order (queue mode) and reclaims space by
asking an eviction selector for victims. The selector belongs to the
node's routing policy; the buffer never picks a victim on its own.
"""

from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar
import logging
import random

from .message import Message

logger = logging.getLogger(__name__)

T = TypeVar("T")

EvictionSelector = Callable[[bool], Optional[Message]]


class QueueMode(Enum):
    """Order in which buffered messages are offered."""
    FIFO = "fifo"  # Oldest received first
    RANDOM = "random"


class MessageStore:
    """
    Messages held by one node, keyed by message id.

    Capacity is measured in bytes (message sizes). ``None`` means
    unbounded.
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        queue_mode: QueueMode = QueueMode.FIFO,
        seed: Optional[int] = None,
    ):
        self.capacity = capacity
        self.queue_mode = queue_mode
        self._rng = random.Random(seed)
        self._messages: Dict[str, Message] = {}
        self._used = 0
        self._evictor: Optional[EvictionSelector] = None
        self._on_evict: List[Callable[[Message], None]] = []

    def set_evictor(self, evictor: EvictionSelector) -> None:
        """Install the function choosing eviction victims."""
        self._evictor = evictor

    def on_evict(self, callback: Callable[[Message], None]) -> None:
        """Register a callback for evicted messages."""
        self._on_evict.append(callback)

    def add(self, message: Message) -> None:
        if message.message_id in self._messages:
            raise ValueError(f"message {message.message_id} is already buffered")
        self._messages[message.message_id] = message
        self._used += message.size

    def remove(self, message_id: str) -> Optional[Message]:
        """Remove a message, returning it if it was buffered."""
        message = self._messages.pop(message_id, None)
        if message is not None:
            self._used -= message.size
        return message

    def get(self, message_id: str) -> Optional[Message]:
        return self._messages.get(message_id)

    def messages(self) -> List[Message]:
        """Buffered messages in insertion order."""
        return list(self._messages.values())

    def snapshot(self) -> List[Message]:
        """A copy of the contents, safe to iterate while the buffer changes."""
        return list(self._messages.values())

    def sorted_messages(self) -> List[Message]:
        """Buffered messages in queue-mode order."""
        pairs = self.sort_pairs([(m, None) for m in self._messages.values()])
        return [message for message, _ in pairs]

    def sort_pairs(self, pairs: Sequence[Tuple[Message, T]]) -> List[Tuple[Message, T]]:
        """
        Order (message, x) pairs by the queue mode of the message.

        FIFO is stable, so pairs sharing a message keep their input order.
        """
        ordered = list(pairs)
        if self.queue_mode is QueueMode.RANDOM:
            self._rng.shuffle(ordered)
        else:
            ordered.sort(key=lambda pair: pair[0].sort_key)
        return ordered

    @property
    def used(self) -> int:
        return self._used

    @property
    def free_space(self) -> Optional[int]:
        if self.capacity is None:
            return None
        return self.capacity - self._used

    def fits(self, size: int) -> bool:
        """Whether a message of ``size`` could ever be stored here."""
        return self.capacity is None or size <= self.capacity

    def make_room(self, size: int) -> bool:
        """
        Evict messages until ``size`` bytes are free.

        Returns False if the message can never fit or the eviction
        selector runs out of victims. Messages evicted before running out
        stay evicted.
        """
        if self.capacity is None:
            return True
        if size > self.capacity:
            return False

        while self.capacity - self._used < size:
            victim = self._evictor(True) if self._evictor else None
            if victim is None:
                logger.debug("No eviction candidate for %d bytes", size)
                return False
            self.remove(victim.message_id)
            for callback in self._on_evict:
                callback(victim)

        return True

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"MessageStore(messages={len(self)}, used={self._used}, capacity={self.capacity})"
