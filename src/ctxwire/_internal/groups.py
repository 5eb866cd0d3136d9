from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class GroupOrder:
    """Iteration order of a component group, fixed by its first full resolution."""

    members: tuple[Any, ...]
    """Member keys in registration order."""
    order: tuple[Any, ...]
    """Member keys in iteration order."""

    def matches(self, members: Sequence[Any]) -> bool:
        return self.members == tuple(members)


def compute_order(
    members: Sequence[Any],
    discovered: Mapping[Any, Sequence[Any]],
) -> tuple[Any, ...]:
    """Return the iteration order of a group.

    Members keep their registration order, except that members whose
    construction started while another member was being resolved follow that
    member immediately, in the order their construction started.

    Args:
        members: Member keys in registration order.
        discovered: For each member, the other members constructed during its
            resolution.

    """
    order: list[Any] = []
    placed: set[Any] = set()
    for member in members:
        if member in placed:
            continue
        order.append(member)
        placed.add(member)
        for follower in discovered.get(member, ()):
            if follower in placed or follower not in members:
                continue
            order.append(follower)
            placed.add(follower)
    return tuple(order)


__all__ = ["GroupOrder", "compute_order"]
