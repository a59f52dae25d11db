from collections import OrderedDict
from threading import Lock

DEFAULT_CAPACITY = 10


class RecentCounterparties:
    """Most recently used counterparty ids per viewer, newest first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("Capacity must be positive")
        self.capacity = capacity
        self._entries: dict[str, OrderedDict[str, None]] = {}
        self._lock = Lock()

    def touch(self, viewer_id: str, counterparty_ids: list[str]) -> None:
        with self._lock:
            recent = self._entries.setdefault(viewer_id, OrderedDict())
            for counterparty_id in counterparty_ids:
                if counterparty_id == viewer_id:
                    continue
                recent.pop(counterparty_id, None)
                recent[counterparty_id] = None
            while len(recent) > self.capacity:
                recent.popitem(last=False)

    def for_viewer(self, viewer_id: str) -> list[str]:
        with self._lock:
            recent = self._entries.get(viewer_id)
            if not recent:
                return []
            return list(reversed(recent))
