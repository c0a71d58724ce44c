"""
Synthetic trace generation from a social network.

Produces deterministic message-creation events between users, plus
optional link events for two kinds of infrastructure:

- hybrid nodes: users with an always-on link to every other hybrid
  node that is one of their contacts
- mailboxes: always-on boxes linked to their owner during the night
  and to the mailboxes of the owner's contacts at all times

Messages are only created during the day. A new night begins roughly
six hours after time 0 and every 24 hours after that, and lasts six
to eight hours.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
import logging
import random

from ..social.contacts import ContactRelation
from .trace import TraceEvent

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
DAYTIME_SECONDS = 17 * 60 * 60
FIRST_NIGHT = 21600
NIGHT_MIN = 21600
NIGHT_JITTER = 7200
# End of the looped HYCCUPS connection trace
LAST_CONN_TIMESTAMP = 14106341


@dataclass
class GeneratorConfig:
    """Configuration for trace generation."""
    seed: int = 0
    num_hybrid_nodes: int = 0
    num_mailboxes: int = 0
    msg_size_range: Tuple[int, int] = (100, 1000)
    daily_msgs_per_host: int = 1
    only_nodes_with_contacts_send: bool = False
    end_time: int = LAST_CONN_TIMESTAMP


class MessageCreator:
    """
    Generates trace events for a population described by a contact relation.

    Mailbox ``i`` gets address ``population + i``, outside the user range,
    so every node treats it as a contact.
    """

    def __init__(self, contacts: ContactRelation, config: Optional[GeneratorConfig] = None):
        self.contacts = contacts
        self.config = config or GeneratorConfig()

    def generate(self) -> List[TraceEvent]:
        """
        Generate the full event list.

        Events are sorted by timestamp. Events sharing a timestamp keep
        generation order: permanent links first, then message creations
        and nightly mailbox links.

        Raises:
            ValueError: If the configuration cannot be satisfied.
        """
        self._validate()
        rng = random.Random(self.config.seed)

        hybrid_nodes = [
            self._random_node_with_contacts(rng)
            for _ in range(self.config.num_hybrid_nodes)
        ]
        mailbox_owners = [
            self._random_node_with_contacts(rng)
            for _ in range(self.config.num_mailboxes)
        ]

        events = self._permanent_links(hybrid_nodes, hybrid_nodes)

        mailboxes = [self.contacts.population + i for i in range(len(mailbox_owners))]
        events.extend(self._permanent_links(mailboxes, mailbox_owners))

        events.extend(self._create_messages(rng, mailbox_owners))
        events.sort(key=lambda event: event.timestamp)

        logger.info(
            "Generated %d events (%d hybrid nodes, %d mailboxes)",
            len(events), len(hybrid_nodes), len(mailboxes),
        )
        return events

    def _validate(self) -> None:
        config = self.config
        population = self.contacts.population

        if population < 2:
            raise ValueError("trace generation needs at least two users")
        if config.daily_msgs_per_host < 1:
            raise ValueError("daily_msgs_per_host must be at least 1")

        low, high = config.msg_size_range
        if low < 1 or high < low:
            raise ValueError(f"invalid message size range {config.msg_size_range}")

        if population * config.daily_msgs_per_host > DAYTIME_SECONDS:
            raise ValueError("more than one message per second of daytime requested")

        needs_contacts = (
            config.num_hybrid_nodes > 0
            or config.num_mailboxes > 0
            or config.only_nodes_with_contacts_send
        )
        if needs_contacts and not self.contacts.nodes_with_contacts():
            raise ValueError("no user has contacts, cannot pick hybrid nodes, mailbox owners or senders")

    def _random_node_with_contacts(self, rng: random.Random) -> int:
        while True:
            node = rng.randrange(self.contacts.population)
            if self.contacts.has_contacts(node):
                return node

    def _permanent_links(self, addresses: Sequence[int], owners: Sequence[int]) -> List[TraceEvent]:
        """Links up for the whole trace between addresses whose owners are contacts."""
        events = []
        for i in range(len(addresses)):
            for j in range(i + 1, len(addresses)):
                if addresses[i] == addresses[j]:
                    continue
                if self.contacts.is_contact(owners[i], owners[j]):
                    events.append(TraceEvent.connection(0, addresses[i], addresses[j], up=True))
                    events.append(
                        TraceEvent.connection(self.config.end_time, addresses[i], addresses[j], up=False)
                    )
        return events

    def _create_messages(self, rng: random.Random, mailbox_owners: Sequence[int]) -> List[TraceEvent]:
        config = self.config
        population = self.contacts.population

        interval = DAYTIME_SECONDS // (population * config.daily_msgs_per_host)
        threshold = interval // 5
        step_min, step_max = interval - threshold, interval + threshold
        size_min, size_max = config.msg_size_range

        events = []
        next_sleep = FIRST_NIGHT
        sleep_count = 0
        msg_count = 0
        time = 0

        while time < config.end_time:
            sender = rng.randrange(population)
            senders_contacts = self.contacts.contacts_of(sender)
            while config.only_nodes_with_contacts_send and not senders_contacts:
                sender = rng.randrange(population)
                senders_contacts = self.contacts.contacts_of(sender)

            if senders_contacts:
                receiver = rng.choice(senders_contacts)
            else:
                # No contacts, pick anyone else
                receiver = rng.randrange(population - 1)
                if receiver >= sender:
                    receiver += 1

            size = rng.randrange(size_min, size_max) if size_max > size_min else size_min
            msg_count += 1
            events.append(TraceEvent.creation(time, f"M{msg_count}", sender, receiver, size))

            if time > next_sleep:
                sleep_time = rng.randrange(NIGHT_JITTER) + NIGHT_MIN

                for i, owner in enumerate(mailbox_owners):
                    mailbox = population + i
                    events.append(TraceEvent.connection(time, owner, mailbox, up=True))
                    events.append(TraceEvent.connection(time + sleep_time, owner, mailbox, up=False))

                time += sleep_time
                sleep_count += 1
                next_sleep = FIRST_NIGHT + sleep_count * SECONDS_PER_DAY

            if step_max > step_min:
                time += rng.randrange(step_max - step_min) + step_min
            else:
                time += max(1, step_min)

        return events
