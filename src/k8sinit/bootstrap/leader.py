"""Deterministic initializer selection.

Every node that observes the same complete roster computes the same
answer without exchanging a message: the lexicographically smallest
instance id. This is only safe on a complete roster; a partial snapshot
can name a different node, which is why the argument must be a
`CompleteRoster`.
"""

from __future__ import annotations

from .membership import CompleteRoster


def select_leader(roster: CompleteRoster) -> str:
    """Return the member id designated to initialize the cluster.

    Args:
        roster: Roster that has reached its desired size.

    Returns:
        Smallest member id in lexicographic order.
    """
    if not isinstance(roster, CompleteRoster):
        raise TypeError(f"select_leader requires a CompleteRoster, got {type(roster).__name__}")
    if not roster.member_ids:
        raise ValueError(f"Roster of {roster.group_name} is empty")
    return sorted(roster.member_ids)[0]
