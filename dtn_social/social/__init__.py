"""Social module - Contact relation and static input parsers."""

from .contacts import ContactRelation
from .parser import (
    DATASETS,
    DatasetProfile,
    InterestIndex,
    SocialProfile,
    load_social_network,
    load_interests,
    load_social_profile,
    parse_social_network,
    parse_interests,
)

__all__ = [
    "ContactRelation",
    "DATASETS",
    "DatasetProfile",
    "InterestIndex",
    "SocialProfile",
    "load_social_network",
    "load_interests",
    "load_social_profile",
    "parse_social_network",
    "parse_interests",
]
