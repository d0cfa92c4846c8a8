"""Firewall rule data models."""

from dataclasses import dataclass
from enum import Enum


class Direction(str, Enum):
    """Traffic direction a block rule applies to."""

    INBOUND = "in"
    OUTBOUND = "out"


@dataclass(frozen=True)
class RuleDescriptor:
    """A single directional block rule for one IP of a domain.

    `rule_id` is derived from (domain, direction, ordinal) only, so the same
    domain always yields the same identifiers.
    """

    domain: str
    direction: Direction
    ip: str
    rule_id: str
