import logging
import os
import stat
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Union

from content_plane.base import ObjectStore
from content_plane.errors import FilesystemError, UnsupportedEntryKind
from content_plane.objects import ObjectKind, Tree, TreeEntry, load_tree

logger = logging.getLogger(__name__)

# name -> file content, or name -> nested directory
TreeMapping = Mapping[str, Union[bytes, "TreeMapping"]]


def _describe_mode(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return "symlink"
    if stat.S_ISFIFO(mode):
        return "fifo"
    if stat.S_ISSOCK(mode):
        return "socket"
    if stat.S_ISCHR(mode):
        return "character device"
    if stat.S_ISBLK(mode):
        return "block device"
    return "unknown"


class TreeBuilder:
    """
    Converts directories into blob and tree objects.

    Regular files become blobs and directories become trees; every child is
    stored before the tree that lists it. Symlinks and special files raise
    UnsupportedEntryKind. Entries whose name is in ``ignore`` are skipped at
    every level.
    """

    def __init__(self, store: ObjectStore, ignore: Iterable[str] = ()) -> None:
        self.store = store
        self.ignore = frozenset(ignore)

    def put_tree(self, entries: list[TreeEntry]) -> str:
        tree = Tree.from_entries(entries)
        return self.store.put(ObjectKind.TREE, tree.encode())

    def build_tree(self, directory: str | Path) -> str:
        directory = Path(directory)
        entries = []
        try:
            with os.scandir(directory) as it:
                dir_entries = list(it)
        except OSError as e:
            raise FilesystemError(str(directory), e) from e

        for dir_entry in dir_entries:
            if dir_entry.name in self.ignore:
                continue
            path = directory / dir_entry.name
            try:
                if dir_entry.is_symlink():
                    raise UnsupportedEntryKind(str(path), "symlink")
                if dir_entry.is_dir(follow_symlinks=False):
                    kind = ObjectKind.TREE
                elif dir_entry.is_file(follow_symlinks=False):
                    kind = ObjectKind.BLOB
                else:
                    mode = dir_entry.stat(follow_symlinks=False).st_mode
                    raise UnsupportedEntryKind(str(path), _describe_mode(mode))
            except OSError as e:
                raise FilesystemError(str(path), e) from e

            if kind is ObjectKind.TREE:
                oid = self.build_tree(path)
            else:
                try:
                    content = path.read_bytes()
                except OSError as e:
                    raise FilesystemError(str(path), e) from e
                oid = self.store.put(ObjectKind.BLOB, content)
            entries.append(TreeEntry(name=dir_entry.name, kind=kind, oid=oid))

        oid = self.put_tree(entries)
        logger.debug("Built tree %s for %s (%d entries)", oid, directory, len(entries))
        return oid

    def build_from_mapping(self, mapping: TreeMapping) -> str:
        """Build a tree from nested dicts of bytes instead of a real directory."""
        entries = []
        for name, value in mapping.items():
            if name in self.ignore:
                continue
            if isinstance(value, Mapping):
                oid = self.build_from_mapping(value)
                entries.append(TreeEntry(name, ObjectKind.TREE, oid))
            elif isinstance(value, (bytes, bytearray)):
                oid = self.store.put(ObjectKind.BLOB, bytes(value))
                entries.append(TreeEntry(name, ObjectKind.BLOB, oid))
            else:
                raise TypeError(
                    f"Entry {name!r} must be bytes or a mapping, "
                    f"got {type(value).__name__}"
                )
        return self.put_tree(entries)

    def read_tree(self, tree_oid: str, base_path: str = "") -> dict[str, str]:
        """Flatten a tree into ``{"dir/file": blob_oid}``."""
        result = {}
        for entry in load_tree(self.store, tree_oid):
            path = base_path + entry.name
            if entry.kind is ObjectKind.BLOB:
                result[path] = entry.oid
            else:
                result.update(self.read_tree(entry.oid, f"{path}/"))
        return result
