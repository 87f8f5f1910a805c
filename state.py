"""
Process-local state for Group Guard Bot

Rate windows, DM wizard sessions and admin-mention cooldowns live here.
Nothing in this module is persisted; a restart starts from empty maps.
"""
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional


class BoundedStore:
    """Key/value map with optional LRU eviction by last access.

    max_keys=0 keeps every key forever.
    """

    def __init__(self, max_keys: int = 0):
        self.max_keys = max_keys
        self._items: OrderedDict = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Any:
        if key not in self._items:
            return default
        self._items.move_to_end(key)
        return self._items[key]

    def set(self, key: Hashable, value: Any):
        self._items[key] = value
        self._items.move_to_end(key)
        if self.max_keys and len(self._items) > self.max_keys:
            self._items.popitem(last=False)

    def setdefault(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        if key in self._items:
            return self.get(key)
        value = factory()
        self.set(key, value)
        return value

    def evict(self, key: Hashable) -> Optional[Any]:
        return self._items.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
