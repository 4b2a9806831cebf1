"""
draftstore/locks.py -- Per-entity lock registry.

Every entity id gets its own ``threading.RLock`` so that two writers on
the same draft run one after the other while writers on different
drafts never wait on each other.  Locks are created lazily and kept for
the lifetime of the registry.

Usage::

    locks = LockRegistry()
    with locks.lock("sol_1a2b3c4d"):
        ...
"""

import threading


class LockRegistry:
    """Hands out one re-entrant lock per key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def get(self, key):
        """Return the RLock for *key*, creating it on first use."""
        lock = self._locks.get(key)
        if lock is not None:
            return lock

        with self._guard:
            # Double-check after acquiring the guard
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def lock(self, key):
        """Context manager form: ``with registry.lock(eid): ...``."""
        return self.get(key)

    def __len__(self):
        return len(self._locks)
