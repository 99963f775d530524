"""Per-session locks so at most one turn runs per session at a time."""

import asyncio
import weakref


class SessionLocks:
    """Registry of ``asyncio.Lock`` objects keyed by session id.

    Locks are held weakly and disappear once no turn references them.
    Serialization is per process.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
