from collections.abc import Iterator
from typing import NamedTuple

from content_plane.errors import DanglingReference, ObjectCorrupted
from content_plane.hashing import hash_object
from content_plane.objects import ObjectKind


class RefValue(NamedTuple):
    """Value of a reference: a commit id, or the name of another ref when symbolic."""

    symbolic: bool
    value: str


class ObjectStore:
    """
    Content-addressed persistence of blob, tree and commit objects.

    Objects are keyed by the hash of their kind and payload. ``put`` is the
    only write path: there is no way to overwrite or delete an existing key.
    """

    def put(self, kind: ObjectKind, payload: bytes) -> str:
        """Persist an object if absent and return its identifier."""
        raise NotImplementedError()

    def get(self, oid: str) -> tuple[ObjectKind, bytes]:
        """Load an object, raising ObjectNotFound or ObjectCorrupted."""
        raise NotImplementedError()

    def exists(self, oid: str) -> bool:
        """Check whether an object has been persisted."""
        raise NotImplementedError()

    def iter_ids(self) -> Iterator[str]:
        """Iterate over the identifiers of all stored objects."""
        raise NotImplementedError()

    def get_typed(self, oid: str, kind: ObjectKind) -> bytes:
        """Load an object that must be of the given kind."""
        actual, payload = self.get(oid)
        if actual != kind:
            raise DanglingReference(
                oid, kind.value, f"expected {kind.value}, found {actual.value}"
            )
        return payload

    def kind_of(self, oid: str) -> ObjectKind | None:
        """Kind of a stored object, or None when it is absent."""
        if not self.exists(oid):
            return None
        return self.get(oid)[0]


def verify_object(oid: str, kind: str, payload: bytes) -> ObjectKind:
    """Check that a stored object hashes to its key and has a known kind."""
    try:
        object_kind = ObjectKind(kind)
    except ValueError:
        raise ObjectCorrupted(oid, f"unknown object kind {kind!r}") from None
    actual = hash_object(object_kind.value, payload)
    if actual != oid:
        raise ObjectCorrupted(oid, f"content hashes to {actual}")
    return object_kind


class RefStore:
    """
    Storage of named references (HEAD, refs/heads/<branch>).

    References are the only mutable state of a repository. Every write is a
    compare-and-set against the value the caller last observed.
    """

    def get(self, name: str) -> RefValue | None:
        """Current value of a reference, or None when it does not exist."""
        raise NotImplementedError()

    def compare_and_set(
        self, name: str, expected: RefValue | None, new: RefValue
    ) -> None:
        """Set a reference to ``new`` if it still equals ``expected``.

        Raises ConcurrentHeadUpdate when the stored value differs.
        """
        raise NotImplementedError()

    def iter_names(self, prefix: str = "") -> Iterator[str]:
        """Iterate over reference names starting with ``prefix``."""
        raise NotImplementedError()
