import logging
import os
import tempfile
import zlib
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from content_plane.base import ObjectStore, RefStore, RefValue, verify_object
from content_plane.errors import (
    ConcurrentHeadUpdate,
    FilesystemError,
    ObjectCorrupted,
    ObjectNotFound,
)
from content_plane.hashing import hash_object, is_identifier, object_header
from content_plane.objects import ObjectKind

logger = logging.getLogger(__name__)

SYMBOLIC_PREFIX = "ref: "


class FsObjectStore(ObjectStore):
    """
    One zlib-compressed file per object under ``objects/<oid[:2]>/<oid[2:]>``.

    The file holds the kind header followed by the payload, i.e. exactly the
    bytes that were hashed.
    """

    def __init__(self, root: str | Path, compression_level: int = 6) -> None:
        self.root = Path(root)
        self.objects_dir = self.root / "objects"
        self.compression_level = compression_level

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("FsObjectStore(...)")
        else:
            p.text(f"FsObjectStore(path={self.objects_dir})")

    def object_path(self, oid: str) -> Path:
        # objects/<first two hex chars>/<rest>
        return self.objects_dir / oid[:2] / oid[2:]

    def put(self, kind: ObjectKind, payload: bytes) -> str:
        oid = hash_object(kind.value, payload)
        path = self.object_path(oid)
        if path.exists():
            return oid

        data = zlib.compress(
            object_header(kind.value, payload) + payload, self.compression_level
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise FilesystemError(str(path), e) from e

        logger.debug("Stored %s %s (%d bytes)", kind.value, oid, len(payload))
        return oid

    def get(self, oid: str) -> tuple[ObjectKind, bytes]:
        if not is_identifier(oid):
            raise ObjectNotFound(oid)
        path = self.object_path(oid)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFound(oid) from None
        except OSError as e:
            raise FilesystemError(str(path), e) from e

        try:
            data = zlib.decompress(raw)
        except zlib.error as e:
            raise ObjectCorrupted(oid, f"cannot decompress: {e}") from e

        header, sep, payload = data.partition(b"\0")
        kind, _, size = header.decode("ascii", errors="replace").partition(" ")
        if not sep or not size.isdigit() or int(size) != len(payload):
            raise ObjectCorrupted(oid, "malformed object header")
        return verify_object(oid, kind, payload), payload

    def exists(self, oid: str) -> bool:
        return is_identifier(oid) and self.object_path(oid).is_file()

    def iter_ids(self) -> Iterator[str]:
        if not self.objects_dir.is_dir():
            return
        for shard in sorted(self.objects_dir.iterdir()):
            if len(shard.name) != 2 or not shard.is_dir():
                continue
            for entry in sorted(shard.iterdir()):
                oid = shard.name + entry.name
                if is_identifier(oid):
                    yield oid


class FsRefStore(RefStore):
    """
    References stored as small text files, e.g. ``HEAD`` or ``refs/heads/main``.

    A symbolic ref holds ``ref: <name>``, a direct ref holds a commit id.
    Writers take ``<ref>.lock`` with O_EXCL, write the new value into it and
    rename it over the ref; finding the lock taken means another writer is
    mid-update.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("FsRefStore(...)")
        else:
            p.text(f"FsRefStore(path={self.root})")

    def _ref_path(self, name: str) -> Path:
        parts = name.split("/")
        if not name or any(part in ("", ".", "..") for part in parts):
            raise ValueError(f"Invalid reference name: {name!r}")
        return self.root.joinpath(*parts)

    def _read(self, path: Path) -> RefValue | None:
        try:
            value = path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise FilesystemError(str(path), e) from e
        if not value:
            return None
        if value.startswith(SYMBOLIC_PREFIX):
            return RefValue(symbolic=True, value=value[len(SYMBOLIC_PREFIX) :].strip())
        return RefValue(symbolic=False, value=value)

    def get(self, name: str) -> RefValue | None:
        return self._read(self._ref_path(name))

    def compare_and_set(
        self, name: str, expected: RefValue | None, new: RefValue
    ) -> None:
        path = self._ref_path(name)
        lock_path = path.with_name(path.name + ".lock")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            current = self._read(path)
            raise ConcurrentHeadUpdate(
                name,
                expected.value if expected else None,
                current.value if current else None,
            ) from None
        except OSError as e:
            raise FilesystemError(str(lock_path), e) from e

        try:
            with os.fdopen(fd, "w") as f:
                current = self._read(path)
                if current != expected:
                    raise ConcurrentHeadUpdate(
                        name,
                        expected.value if expected else None,
                        current.value if current else None,
                    )
                if new.symbolic:
                    f.write(f"{SYMBOLIC_PREFIX}{new.value}\n")
                else:
                    f.write(f"{new.value}\n")
            os.replace(lock_path, path)
        except OSError as e:
            lock_path.unlink(missing_ok=True)
            raise FilesystemError(str(path), e) from e
        except BaseException:
            lock_path.unlink(missing_ok=True)
            raise

    def iter_names(self, prefix: str = "") -> Iterator[str]:
        if not self.root.is_dir():
            return iter(())
        names = []
        for root, dirnames, filenames in os.walk(self.root):
            rel = Path(root).relative_to(self.root)
            # object shards are not refs
            if rel == Path("."):
                dirnames[:] = [d for d in dirnames if d != "objects"]
            for filename in filenames:
                if filename.endswith(".lock"):
                    continue
                name = (rel / filename).as_posix()
                if name.startswith(prefix):
                    names.append(name)
        return iter(sorted(names))
