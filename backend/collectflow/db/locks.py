"""Named asyncio locks for read-modify-write critical sections."""

import asyncio
from collections.abc import Hashable


class KeyedLocks:
    """Lazily created asyncio.Lock per key.

    Each store owns one instance, so tests get fresh locks per workspace.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def workflow(self, workflow_id: str) -> asyncio.Lock:
        return self.get(("workflow", workflow_id))

    def collection(self, run_id: str | None, kind: str) -> asyncio.Lock:
        # run_id is None for global kinds, which share one store across runs
        return self.get(("collection", run_id, kind))

    def mutation(self, mutation_id: str) -> asyncio.Lock:
        return self.get(("mutation", mutation_id))

    def run(self, run_id: str) -> asyncio.Lock:
        return self.get(("run", run_id))

    def schema(self, workflow_id: str) -> asyncio.Lock:
        # held by schema writes and by collection writes while they validate and store
        return self.get(("schema", workflow_id))
