"""
Record Store contract and an in-memory implementation.

Keys are slash-separated paths into a JSON tree (``users/{id}``,
``chats/{chatKey}/messages``), the same addressing the realtime database
uses. Writing ``None`` removes a node. Reads return deep copies so callers
can never mutate stored state in place.

The in-memory store backs the test-suite and local development when no
Firebase credentials are configured.
"""

import abc
import asyncio
import copy
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from classcrush.core.errors import InvalidInput, NotFound


def split_path(key: str) -> List[str]:
    """Normalise a store key into its path segments."""
    parts = [part for part in key.strip("/").split("/") if part]
    if not parts:
        raise InvalidInput("Store key must not be empty")
    return parts


def join_path(*parts: str) -> str:
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


class Subscription:
    """
    Push-based watch on one key.

    Async-iterable: yields the full value at the key after every change,
    starting with the current value. ``close()`` stops delivery and releases
    the underlying listener; iteration then ends.
    """

    _CLOSED = object()

    def __init__(self, key: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.key = key
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._on_close: Optional[Callable[[], None]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def bind_close(self, callback: Callable[[], None]) -> None:
        self._on_close = callback

    def deliver(self, value: Any) -> None:
        """Queue a snapshot. Thread-safe; ignored once closed."""
        if self._closed:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, value)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()
        self._loop.call_soon_threadsafe(self._queue.put_nowait, self._CLOSED)

    def __aiter__(self) -> AsyncIterator[Any]:
        return self

    async def __anext__(self) -> Any:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        value = await self._queue.get()
        if value is self._CLOSED or self._closed:
            raise StopAsyncIteration
        return value


class RecordStore(abc.ABC):
    """Minimum operations the matching core needs from its database."""

    @abc.abstractmethod
    async def get_or_none(self, key: str) -> Any:
        """Value at ``key`` or ``None`` when absent."""

    async def get(self, key: str) -> Any:
        """Value at ``key``; raises ``NotFound`` when absent."""
        value = await self.get_or_none(key)
        if value is None:
            raise NotFound(f"No record at '{key}'", detail={"key": key})
        return value

    @abc.abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Full overwrite. ``None`` removes the node."""

    @abc.abstractmethod
    async def update_fields(self, key: str, fields: Dict[str, Any]) -> None:
        """
        Partial merge under ``key``. Field names may be nested paths
        (``"uid/chatKey"``); all fields are applied as one write.
        """

    @abc.abstractmethod
    async def push(self, collection_key: str, value: Any) -> str:
        """Append under a generated unique child key and return that key."""

    @abc.abstractmethod
    async def subscribe(self, key: str) -> Subscription:
        """Watch ``key`` until the returned subscription is closed."""

    @abc.abstractmethod
    async def query_by_field(
        self, collection_key: str, field: str, equals: Any
    ) -> Dict[str, Any]:
        """Children of ``collection_key`` whose ``field`` equals ``equals``."""

    @abc.abstractmethod
    async def create_if_absent(self, key: str, value: Any) -> bool:
        """Conditional put. True if this call created the node."""

    async def delete(self, key: str) -> None:
        await self.set(key, None)


class InMemoryRecordStore(RecordStore):
    """Dict-tree store with the realtime database's path semantics."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._root: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._subscriptions: Dict[int, Subscription] = {}

    # ------------------------------------------------------------------ #
    # Tree helpers
    # ------------------------------------------------------------------ #

    def _read(self, parts: List[str]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _write(self, parts: List[str], value: Any) -> None:
        if value is None:
            self._remove(parts)
            return
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = copy.deepcopy(value)

    def _remove(self, parts: List[str]) -> None:
        trail = [self._root]
        node: Any = self._root
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            node = node[part]
            trail.append(node)
        if isinstance(node, dict):
            node.pop(parts[-1], None)
        # Drop parents left empty, as the realtime database does.
        for depth in range(len(parts) - 2, -1, -1):
            parent, child_name = trail[depth], parts[depth]
            if isinstance(parent.get(child_name), dict) and not parent[child_name]:
                del parent[child_name]
            else:
                break

    def _notify(self, changed: List[List[str]]) -> None:
        for subscription in list(self._subscriptions.values()):
            watched = split_path(subscription.key)
            for parts in changed:
                overlap = min(len(watched), len(parts))
                if watched[:overlap] == parts[:overlap]:
                    subscription.deliver(copy.deepcopy(self._read(watched)))
                    break

    # ------------------------------------------------------------------ #
    # RecordStore
    # ------------------------------------------------------------------ #

    async def get_or_none(self, key: str) -> Any:
        return copy.deepcopy(self._read(split_path(key)))

    async def set(self, key: str, value: Any) -> None:
        parts = split_path(key)
        self._write(parts, value)
        self._notify([parts])

    async def update_fields(self, key: str, fields: Dict[str, Any]) -> None:
        base = split_path(key)
        changed = []
        for field, value in fields.items():
            parts = base + split_path(field)
            self._write(parts, value)
            changed.append(parts)
        self._notify(changed)

    async def push(self, collection_key: str, value: Any) -> str:
        child_key = uuid.uuid4().hex[:20]
        await self.set(join_path(collection_key, child_key), value)
        return child_key

    async def subscribe(self, key: str) -> Subscription:
        subscription = Subscription(key)
        token = id(subscription)
        self._subscriptions[token] = subscription
        subscription.bind_close(lambda: self._subscriptions.pop(token, None))
        subscription.deliver(copy.deepcopy(self._read(split_path(key))))
        return subscription

    async def query_by_field(
        self, collection_key: str, field: str, equals: Any
    ) -> Dict[str, Any]:
        collection = self._read(split_path(collection_key))
        if not isinstance(collection, dict):
            return {}
        return {
            child_key: copy.deepcopy(value)
            for child_key, value in collection.items()
            if isinstance(value, dict) and value.get(field) == equals
        }

    async def create_if_absent(self, key: str, value: Any) -> bool:
        parts = split_path(key)
        if self._read(parts) is not None:
            return False
        self._write(parts, value)
        self._notify([parts])
        return True
