# locks.py
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List

from slot_swapper.errors import LockTimeout


def slot_key(slot_id: int) -> str:
    return f"slot:{slot_id}"


def request_key(request_id: int) -> str:
    return f"request:{request_id}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class RowLocks:
    """Per-row mutual exclusion for negotiation transitions.

    Keys are taken in sorted order, so two callers locking the same pair of
    rows in opposite order still queue on the same first key. Each acquire
    waits at most `timeout` seconds before giving up with LockTimeout.
    """

    def __init__(self, timeout: float = 2.0):
        self.timeout = timeout
        self._entries: Dict[str, _Entry] = {}

    def _checkout(self, key: str) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        return entry

    def _checkin(self, key: str, entry: _Entry):
        entry.users -= 1
        if entry.users == 0:
            del self._entries[key]

    def held_keys(self) -> List[str]:
        return sorted(key for key, entry in self._entries.items() if entry.lock.locked())

    @asynccontextmanager
    async def hold(self, *keys: str):
        ordered = sorted(set(keys))
        checked_out = []
        acquired = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                checked_out.append((key, entry))
                try:
                    await asyncio.wait_for(entry.lock.acquire(), self.timeout)
                except asyncio.TimeoutError:
                    raise LockTimeout(f"Timed out waiting for {key}") from None
                acquired.append(entry)
            yield
        finally:
            for entry in reversed(acquired):
                entry.lock.release()
            for key, entry in reversed(checked_out):
                self._checkin(key, entry)
