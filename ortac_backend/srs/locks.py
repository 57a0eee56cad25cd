"""Per-learner mutual exclusion for progress and review-card updates."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class LearnerLocks:
    """Registry of one asyncio.Lock per learner.

    Serialises updates from the same process, e.g. two browser tabs hitting
    the same worker. Cross-process races are caught by the optimistic version
    check on LearnerProgress instead.

    A learner's lock is dropped once its last holder or waiter leaves.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def get(self, learner_id: int) -> asyncio.Lock:
        lock = self._locks.get(learner_id)
        if lock is None:
            lock = self._locks[learner_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, learner_id: int) -> AsyncIterator[None]:
        lock = self.get(learner_id)
        self._users[learner_id] = self._users.get(learner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[learner_id] -= 1
            if not self._users[learner_id]:
                del self._users[learner_id]
                self._locks.pop(learner_id, None)

    def __len__(self) -> int:
        return len(self._locks)


learner_locks = LearnerLocks()
