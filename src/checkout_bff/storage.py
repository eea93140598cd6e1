# src/checkout_bff/storage.py
"""
Per-browser key/value storage areas.

The checkout flow keeps its recovery records in two areas scoped to the
browser: a *local* area keyed by the long-lived device cookie (it survives
the round trip to PayPal) and a *session* area keyed by the BFF session
cookie. Both are plain string stores holding JSON text.
"""

import typing
from abc import ABC, abstractmethod

LOCAL_AREA = "localStorage"
SESSION_AREA = "sessionStorage"


class StorageError(Exception):
    """A storage area refused a write (quota exceeded, area unavailable)."""


class StorageArea(ABC):
    name: str = "storage"

    @abstractmethod
    def get_item(self, key: str) -> typing.Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> typing.List[str]:
        ...


class InMemoryStorage(StorageArea):
    def __init__(self, name: str = "storage", max_items: typing.Optional[int] = None):
        self.name = name
        self.max_items = max_items
        self._data: typing.Dict[str, str] = {}

    def get_item(self, key: str) -> typing.Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.max_items is not None and key not in self._data and len(self._data) >= self.max_items:
            raise StorageError(f"{self.name}: quota of {self.max_items} items exceeded")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> typing.List[str]:
        return list(self._data.keys())


class RedundantStorage:
    """
    Tries each backing area in priority order.

    Writes go to the first area that accepts them, reads walk the areas in
    order and removals hit every area.
    """

    def __init__(self, *areas: StorageArea):
        if not areas:
            raise ValueError("RedundantStorage needs at least one storage area.")
        self.areas = areas

    def write(self, key: str, value: str) -> str:
        """Returns the name of the area that accepted the write."""
        errors = []
        for area in self.areas:
            try:
                area.set_item(key, value)
                return area.name
            except StorageError as e:
                errors.append(str(e))
        raise StorageError("; ".join(errors))

    def write_all(self, key: str, value: str) -> typing.List[str]:
        """Writes to every area independently; returns the names that succeeded."""
        written = []
        for area in self.areas:
            try:
                area.set_item(key, value)
                written.append(area.name)
            except StorageError:
                continue
        return written

    def read_each(self, key: str) -> typing.Iterator[str]:
        """Yields the value held in each area, in priority order."""
        for area in self.areas:
            value = area.get_item(key)
            if value is not None:
                yield value

    def remove(self, key: str) -> None:
        for area in self.areas:
            area.remove_item(key)

    def keys(self) -> typing.Set[str]:
        found: typing.Set[str] = set()
        for area in self.areas:
            found.update(area.keys())
        return found


class StorageRegistry:
    """Hands out the storage area belonging to a device or a BFF session."""

    def __init__(self, max_items_per_area: typing.Optional[int] = None):
        self.max_items_per_area = max_items_per_area
        self._local: typing.Dict[str, InMemoryStorage] = {}
        self._session: typing.Dict[str, InMemoryStorage] = {}

    def local_area(self, device_id: str) -> InMemoryStorage:
        if device_id not in self._local:
            self._local[device_id] = InMemoryStorage(LOCAL_AREA, self.max_items_per_area)
        return self._local[device_id]

    def session_area(self, session_id: str) -> InMemoryStorage:
        if session_id not in self._session:
            self._session[session_id] = InMemoryStorage(SESSION_AREA, self.max_items_per_area)
        return self._session[session_id]
