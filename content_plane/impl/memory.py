import logging
import threading
from collections.abc import Iterator
from typing import Any

from content_plane.base import ObjectStore, RefStore, RefValue, verify_object
from content_plane.errors import ConcurrentHeadUpdate, ObjectNotFound
from content_plane.hashing import hash_object
from content_plane.objects import ObjectKind

logger = logging.getLogger(__name__)

# oid -> (kind, payload)
MemoryObjectData = dict[str, tuple[str, bytes]]
MemoryRefData = dict[str, RefValue]


class MemoryObjectStore(ObjectStore):
    def __init__(self, data: MemoryObjectData | None = None) -> None:
        self.data: MemoryObjectData = {} if data is None else data

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("MemoryObjectStore(...)")
        else:
            with p.group(4, "MemoryObjectStore(", ")"):
                p.breakable()
                p.text(f"objects={len(self.data)},")
                p.breakable()

    def put(self, kind: ObjectKind, payload: bytes) -> str:
        oid = hash_object(kind.value, payload)
        if oid not in self.data:
            self.data[oid] = (kind.value, bytes(payload))
            logger.debug("Stored %s %s (%d bytes)", kind.value, oid, len(payload))
        return oid

    def get(self, oid: str) -> tuple[ObjectKind, bytes]:
        try:
            kind, payload = self.data[oid]
        except KeyError:
            raise ObjectNotFound(oid) from None
        return verify_object(oid, kind, payload), payload

    def exists(self, oid: str) -> bool:
        return oid in self.data

    def iter_ids(self) -> Iterator[str]:
        return iter(list(self.data))


class MemoryRefStore(RefStore):
    def __init__(self, data: MemoryRefData | None = None) -> None:
        self.data: MemoryRefData = {} if data is None else data
        self._lock = threading.Lock()

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("MemoryRefStore(...)")
        else:
            with p.group(4, "MemoryRefStore(", ")"):
                p.breakable()
                p.text(f"refs={self.data},")
                p.breakable()

    def get(self, name: str) -> RefValue | None:
        return self.data.get(name)

    def compare_and_set(
        self, name: str, expected: RefValue | None, new: RefValue
    ) -> None:
        with self._lock:
            current = self.data.get(name)
            if current != expected:
                raise ConcurrentHeadUpdate(
                    name,
                    expected.value if expected else None,
                    current.value if current else None,
                )
            self.data[name] = new

    def iter_names(self, prefix: str = "") -> Iterator[str]:
        return iter(sorted(name for name in self.data if name.startswith(prefix)))
