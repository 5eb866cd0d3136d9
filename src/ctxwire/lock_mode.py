from __future__ import annotations

from enum import Enum


class LockMode(Enum):
    """Select locking behavior for cached component construction.

    Use these values for the container-level ``lock_mode``. Child and domain
    containers inherit the mode of the container that created them.

    Prefer ``NONE`` only for containers that are never resolved from more
    than one thread.
    """

    THREAD = "thread"
    """Guard each container cache with a re-entrant ``threading.RLock``."""

    NONE = "none"
    """Disable locking around cache reads/writes."""
