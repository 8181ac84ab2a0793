"""Per-delivery serialization.

Provider webhooks and restaurant actions for the same delivery may arrive
concurrently. Every code path that reads, transitions and saves a
delivery holds that delivery's lock, so at most one transition per
delivery is in flight while different deliveries proceed in parallel.
"""

import asyncio
from contextlib import asynccontextmanager

from protean.utils.globals import current_domain


class DeliveryLocks:
    """One ``asyncio.Lock`` per delivery id, created on first use.

    ``hold`` counts holders and waiters; a discarded lock is only forgotten
    once nobody holds or waits on it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}
        self._retired: set[str] = set()

    def for_delivery(self, delivery_id) -> asyncio.Lock:
        key = str(delivery_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, delivery_id):
        key = str(delivery_id)
        lock = self.for_delivery(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield lock
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                if key in self._retired:
                    self._forget(key)

    def discard(self, delivery_id) -> None:
        """Forget the lock of a delivery that reached a terminal state."""
        key = str(delivery_id)
        lock = self._locks.get(key)
        if lock is None:
            return
        if self._users.get(key) or lock.locked():
            self._retired.add(key)
            return
        self._forget(key)

    def _forget(self, key: str) -> None:
        self._locks.pop(key, None)
        self._retired.discard(key)

    def __len__(self):
        return len(self._locks)


_locks = DeliveryLocks()


def get_locks() -> DeliveryLocks:
    return _locks


def reset_locks() -> None:
    """Drop every lock (useful for testing, where each test has its own loop)."""
    global _locks
    _locks = DeliveryLocks()


async def process_locked(command, locks: DeliveryLocks | None = None):
    """Process a command addressed to one delivery while holding its lock."""
    locks = locks if locks is not None else get_locks()
    async with locks.hold(command.delivery_id):
        return current_domain.process(command, asynchronous=False)
