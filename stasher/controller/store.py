from typing import Dict, Generic, Iterable, List, Optional, TypeVar, Union

from stasher.resources.custom import CustomResource

T = TypeVar("T", bound=CustomResource)


class DeletedFinalStateUnknown(Generic[T]):
    """Tombstone for an object that vanished while the watch was down.

    `obj` is the last state seen in the cache, which may be stale.
    """

    def __init__(self, key: str, obj: Optional[T]):
        self.key = key
        self.obj = obj

    def __repr__(self) -> str:
        return f"<DeletedFinalStateUnknown {self.key}>"


def deletion_handling_key(obj: Union[T, DeletedFinalStateUnknown]) -> str:
    """Work queue key of a deleted object or tombstone."""
    # tombstones carry the key of the cached object, which may be None
    return obj.key


class Store(Generic[T]):
    """Keyed local cache of one resource kind, written only by its change feed."""

    def __init__(self) -> None:
        self._items: Dict[str, T] = {}

    def get(self, key: str) -> Optional[T]:
        return self._items.get(key)

    def list(self) -> List[T]:
        return list(self._items.values())

    def keys(self) -> List[str]:
        return list(self._items.keys())

    def list_namespace(self, namespace: str) -> List[T]:
        return [o for o in self._items.values() if o.namespace == namespace]

    def add(self, obj: T) -> Optional[T]:
        """Insert or overwrite `obj`, returning the previous value."""
        old = self._items.get(obj.key)
        self._items[obj.key] = obj
        return old

    def delete(self, key: str) -> Optional[T]:
        return self._items.pop(key, None)

    def replace(self, objs: Iterable[T]) -> Dict[str, T]:
        """Swap the whole content for `objs`, returning the previous content."""
        old = self._items
        self._items = {o.key: o for o in objs}
        return old

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: str) -> bool:
        return key in self._items
