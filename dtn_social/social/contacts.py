"""
Contact relation between DTN nodes.

Defines who is socially connected to whom. The relation is built once
from a static listing and is read-only afterwards, so a single instance
can be shared by every node's routing policy.
"""

from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple


class ContactRelation:
    """
    A directed contact relation over a known population of users.

    Users are identified by 0-based integers in ``[0, population)``.
    Any identity outside that range (mailboxes, relays and other
    infrastructure nodes) is a contact of everyone, in both directions.

    Edges are stored exactly as listed: an edge ``a -> b`` answers
    ``is_contact(a, b)`` but not ``is_contact(b, a)`` unless the listing
    also contains ``b -> a``.
    """

    def __init__(self, population: int, edges: Mapping[int, Iterable[int]]):
        if population < 0:
            raise ValueError(f"population must be non-negative, got {population}")

        self._population = population
        self._ordered: Dict[int, Tuple[int, ...]] = {}
        self._lookup: Dict[int, FrozenSet[int]] = {}

        for user_id in range(population):
            contacts = tuple(dict.fromkeys(edges.get(user_id, ())))
            self._ordered[user_id] = contacts
            self._lookup[user_id] = frozenset(contacts)

    @classmethod
    def empty(cls, population: int) -> "ContactRelation":
        """Relation where no user has any contact."""
        return cls(population, {})

    @property
    def population(self) -> int:
        """Number of known users."""
        return self._population

    def is_infrastructure(self, node: int) -> bool:
        """True for identities outside the known user range."""
        return not 0 <= node < self._population

    def is_contact(self, node_a: int, node_b: int) -> bool:
        """Check whether ``node_b`` is recorded as a contact of ``node_a``."""
        if self.is_infrastructure(node_a) or self.is_infrastructure(node_b):
            return True
        return node_b in self._lookup[node_a]

    def contacts_of(self, node: int) -> Tuple[int, ...]:
        """Contacts of a user in listing order."""
        return self._ordered.get(node, ())

    def has_contacts(self, node: int) -> bool:
        return bool(self._ordered.get(node))

    def nodes_with_contacts(self) -> List[int]:
        """Users that list at least one contact, in id order."""
        return [user_id for user_id, contacts in self._ordered.items() if contacts]

    @property
    def edge_count(self) -> int:
        """Number of recorded (directed) edges."""
        return sum(len(contacts) for contacts in self._ordered.values())

    def asymmetric_edges(self) -> List[Tuple[int, int]]:
        """
        Edges ``a -> b`` with no recorded ``b -> a``.

        Only used for diagnostics; lookups never symmetrize the relation.
        """
        missing = []
        for user_id, contacts in self._ordered.items():
            for contact_id in contacts:
                if user_id not in self._lookup.get(contact_id, frozenset()):
                    missing.append((user_id, contact_id))
        return missing

    def __contains__(self, node: int) -> bool:
        return 0 <= node < self._population

    def __repr__(self) -> str:
        return f"ContactRelation(population={self._population}, edges={self.edge_count})"
