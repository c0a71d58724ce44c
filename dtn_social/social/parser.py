"""
Parsers for static social inputs.

Reads the social network listing and the users-and-interests listing
of a dataset. Parsing never aborts the simulation: malformed lines are
reported through the log and the affected user simply ends up with an
empty set.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set
import logging

from .contacts import ContactRelation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetProfile:
    """Size of a dataset's user and interest id spaces."""
    name: str
    population: int
    interest_count: int = 0


DATASETS: Dict[str, DatasetProfile] = {
    "hyccups": DatasetProfile("hyccups", population=73, interest_count=5),
    "office": DatasetProfile("office", population=93, interest_count=12),
}


class InterestIndex:
    """Bidirectional index between users and the interests they declared."""

    def __init__(
        self,
        interest_count: int,
        user_interests: Dict[int, List[int]],
    ):
        self.interest_count = interest_count
        self._user_interests: Dict[int, FrozenSet[int]] = {
            user_id: frozenset(interests)
            for user_id, interests in user_interests.items()
        }
        members: Dict[int, Set[int]] = {i: set() for i in range(interest_count)}
        for user_id, interests in user_interests.items():
            for interest in interests:
                members.setdefault(interest, set()).add(user_id)
        self._members = {i: frozenset(users) for i, users in members.items()}

    def interests_of(self, user_id: int) -> FrozenSet[int]:
        return self._user_interests.get(user_id, frozenset())

    def members_of(self, interest: int) -> FrozenSet[int]:
        return self._members.get(interest, frozenset())

    def shared_interests(self, user_a: int, user_b: int) -> FrozenSet[int]:
        """Interests declared by both users."""
        return self.interests_of(user_a) & self.interests_of(user_b)

    def __repr__(self) -> str:
        declared = sum(1 for interests in self._user_interests.values() if interests)
        return f"InterestIndex(interests={self.interest_count}, users_with_interests={declared})"


@dataclass
class SocialProfile:
    """Everything loaded for one dataset."""
    profile: DatasetProfile
    contacts: ContactRelation
    interests: Optional[InterestIndex] = field(default=None, repr=False)


def _read_lines(path: str, label: str) -> Optional[List[str]]:
    try:
        with open(path, "r") as f:
            return f.read().splitlines()
    except OSError as e:
        logger.error("%s parser could not read %s: %s", label, path, e)
        return None


def _to_index(token: str, upper: int) -> int:
    """Convert a 1-based token to a 0-based id below ``upper``."""
    value = int(token.strip()) - 1
    if not 0 <= value < upper:
        raise ValueError(f"id {token.strip()} outside 1..{upper}")
    return value


def parse_social_network(lines: Iterable[str], population: int) -> ContactRelation:
    """
    Parse a social network listing.

    Each line holds a user followed by that user's contacts, comma
    separated and 1-based. Ids are normalized to 0-based. Edges are
    recorded only in the direction they are listed.

    Args:
        lines: Lines of the listing.
        population: Number of users in the dataset.

    Returns:
        ContactRelation: Relation with an empty contact set for every
            user whose line was missing or malformed.
    """
    edges: Dict[int, List[int]] = {}

    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue

        tokens = line.split(",")
        try:
            user_id = _to_index(tokens[0], population)
        except ValueError as e:
            logger.warning("Social network line %d skipped: %s", line_number, e)
            continue

        try:
            contacts = [_to_index(t, population) for t in tokens[1:] if t.strip()]
        except ValueError as e:
            logger.warning(
                "Social network line %d (user %d) is malformed, contacts dropped: %s",
                line_number, user_id + 1, e,
            )
            edges[user_id] = []
            continue

        edges[user_id] = contacts

    relation = ContactRelation(population, edges)

    asymmetric = relation.asymmetric_edges()
    if asymmetric:
        logger.debug(
            "%d of %d contact edges have no reverse edge",
            len(asymmetric), relation.edge_count,
        )

    return relation


def parse_interests(
    lines: Iterable[str],
    population: int,
    interest_count: int,
) -> InterestIndex:
    """
    Parse a users-and-interests listing.

    Each line is ``<user> <interest>,<interest>,...`` with 1-based ids;
    an interest list of ``0`` means the user declared none.
    """
    user_interests: Dict[int, List[int]] = {u: [] for u in range(population)}

    for line_number, line in enumerate(lines, start=1):
        tokens = line.split()
        if not tokens:
            continue

        try:
            user_id = _to_index(tokens[0], population)
        except ValueError as e:
            logger.warning("Interests line %d skipped: %s", line_number, e)
            continue

        if len(tokens) < 2 or tokens[1] == "0":
            continue

        try:
            interests = [
                _to_index(t, interest_count)
                for t in tokens[1].split(",") if t.strip()
            ]
        except ValueError as e:
            logger.warning(
                "Interests line %d (user %d) is malformed, interests dropped: %s",
                line_number, user_id + 1, e,
            )
            continue

        user_interests[user_id] = interests

    return InterestIndex(interest_count, user_interests)


def load_social_network(path: str, population: int) -> ContactRelation:
    """Load a social network listing from disk."""
    lines = _read_lines(path, "Social network")
    if lines is None:
        return ContactRelation.empty(population)
    return parse_social_network(lines, population)


def load_interests(path: str, population: int, interest_count: int) -> InterestIndex:
    """Load a users-and-interests listing from disk."""
    lines = _read_lines(path, "Interests")
    if lines is None:
        return InterestIndex(interest_count, {})
    return parse_interests(lines, population, interest_count)


def load_social_profile(
    profile: DatasetProfile,
    social_path: Optional[str] = None,
    interests_path: Optional[str] = None,
) -> SocialProfile:
    """
    Load the social inputs of a dataset.

    Missing paths yield empty contact and interest sets.
    """
    if social_path:
        contacts = load_social_network(social_path, profile.population)
    else:
        contacts = ContactRelation.empty(profile.population)

    if interests_path:
        interests = load_interests(interests_path, profile.population, profile.interest_count)
    else:
        interests = InterestIndex(profile.interest_count, {})

    logger.info(
        "Loaded %s dataset: %d users, %d contact edges",
        profile.name, profile.population, contacts.edge_count,
    )
    return SocialProfile(profile=profile, contacts=contacts, interests=interests)
