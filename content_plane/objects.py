"""
Object model and canonical serialization.

Blobs are stored as raw bytes. Trees and commits are stored as canonical
JSON: sorted keys, compact separators and ASCII-only output, so that the
same logical object always produces the same payload and therefore the same
identifier. Tree entries are additionally sorted by the byte form of their
names before serialization.
"""

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

from content_plane.errors import ObjectCorrupted
from content_plane.hashing import is_identifier

if TYPE_CHECKING:
    from content_plane.base import ObjectStore


class ObjectKind(str, Enum):
    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"


ENTRY_KINDS = (ObjectKind.BLOB, ObjectKind.TREE)


def _to_bytes(obj: Any) -> bytes:
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("ascii")


def _from_bytes(raw: bytes) -> Any:
    return json.loads(raw.decode("ascii"))


def validate_entry_name(name: str) -> None:
    """Raise ValueError for names that cannot appear in a tree."""
    if not isinstance(name, str) or not name:
        raise ValueError("Tree entry name must be a non-empty string")
    if name in (".", ".."):
        raise ValueError(f"Tree entry name cannot be '{name}'")
    if "/" in name or "\0" in name:
        raise ValueError(f"Tree entry name contains a separator: {name!r}")


def name_sort_key(name: str) -> bytes:
    return os.fsencode(name)


@dataclass(frozen=True)
class TreeEntry:
    name: str
    kind: ObjectKind
    oid: str

    def __post_init__(self) -> None:
        validate_entry_name(self.name)
        if self.kind not in ENTRY_KINDS:
            raise ValueError(f"Tree entry kind must be blob or tree, got {self.kind}")
        if not is_identifier(self.oid):
            raise ValueError(f"Tree entry {self.name!r} has invalid oid {self.oid!r}")


@dataclass(frozen=True)
class Tree:
    """Directory listing, always held in canonical (name-sorted) order."""

    entries: tuple[TreeEntry, ...] = ()

    @classmethod
    def from_entries(cls, entries: list[TreeEntry]) -> "Tree":
        ordered = sorted(entries, key=lambda e: name_sort_key(e.name))
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.name == cur.name:
                raise ValueError(f"Duplicate tree entry name: {cur.name!r}")
        return cls(tuple(ordered))

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, name: str) -> TreeEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def encode(self) -> bytes:
        return _to_bytes([[e.kind.value, e.oid, e.name] for e in self.entries])

    @classmethod
    def decode(cls, payload: bytes) -> "Tree":
        raw = _from_bytes(payload)
        if not isinstance(raw, list):
            raise ValueError("Tree payload must be a list")
        entries = []
        for item in raw:
            if not isinstance(item, list) or len(item) != 3:
                raise ValueError(f"Malformed tree entry: {item!r}")
            kind, oid, name = item
            entries.append(TreeEntry(name=name, kind=ObjectKind(kind), oid=oid))
        tree = cls.from_entries(entries)
        if tree.encode() != payload:
            raise ValueError("Tree payload is not in canonical form")
        return tree

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("Tree(...)")
        else:
            with p.group(4, "Tree(", ")"):
                for entry in self.entries:
                    p.breakable()
                    p.text(f"{entry.kind.value} {entry.oid[:7]} {entry.name},")
                p.breakable()


@dataclass(frozen=True)
class Commit:
    tree: str
    parents: tuple[str, ...] = field(default_factory=tuple)
    author: str = ""
    timestamp: int = 0
    message: str = ""

    def encode(self) -> bytes:
        return _to_bytes(
            {
                "tree": self.tree,
                "parents": list(self.parents),
                "author": self.author,
                "timestamp": self.timestamp,
                "message": self.message,
            }
        )

    @classmethod
    def decode(cls, payload: bytes) -> "Commit":
        raw = _from_bytes(payload)
        if not isinstance(raw, dict):
            raise ValueError("Commit payload must be an object")
        expected = {"tree", "parents", "author", "timestamp", "message"}
        if set(raw) != expected:
            raise ValueError(f"Unknown commit fields: {sorted(set(raw) ^ expected)}")
        if not isinstance(raw["parents"], list):
            raise ValueError("Commit parents must be a list")
        if not isinstance(raw["author"], str) or not isinstance(raw["message"], str):
            raise ValueError("Commit author and message must be strings")
        timestamp = raw["timestamp"]
        if not isinstance(timestamp, int) or isinstance(timestamp, bool):
            raise ValueError(f"Commit timestamp must be an integer, got {timestamp!r}")
        commit = cls(
            tree=raw["tree"],
            parents=tuple(raw["parents"]),
            author=raw["author"],
            timestamp=raw["timestamp"],
            message=raw["message"],
        )
        for oid in (commit.tree, *commit.parents):
            if not isinstance(oid, str) or not is_identifier(oid):
                raise ValueError(f"Commit references invalid oid {oid!r}")
        if commit.encode() != payload:
            raise ValueError("Commit payload is not in canonical form")
        return commit

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("Commit(...)")
        else:
            with p.group(4, "Commit(", ")"):
                p.breakable()
                p.text(f"tree={self.tree[:7]},")
                p.breakable()
                p.text(f"parents={[oid[:7] for oid in self.parents]},")
                p.breakable()
                p.text(f"author={self.author!r},")
                p.breakable()
                p.text(f"message={self.message!r},")
                p.breakable()


def load_tree(store: "ObjectStore", oid: str) -> Tree:
    payload = store.get_typed(oid, ObjectKind.TREE)
    try:
        return Tree.decode(payload)
    except (ValueError, TypeError, UnicodeDecodeError) as e:
        raise ObjectCorrupted(oid, f"cannot decode tree: {e}") from e


def load_commit(store: "ObjectStore", oid: str) -> Commit:
    payload = store.get_typed(oid, ObjectKind.COMMIT)
    try:
        return Commit.decode(payload)
    except (ValueError, TypeError, UnicodeDecodeError) as e:
        raise ObjectCorrupted(oid, f"cannot decode commit: {e}") from e
