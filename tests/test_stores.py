import os
import zlib
from pathlib import Path

import pytest
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from content_plane.base import ObjectStore, RefStore, RefValue
from content_plane.errors import (
    ConcurrentHeadUpdate,
    DanglingReference,
    ObjectCorrupted,
    ObjectNotFound,
)
from content_plane.hashing import hash_object
from content_plane.impl.fs import FsObjectStore, FsRefStore
from content_plane.impl.memory import MemoryObjectStore, MemoryRefStore
from content_plane.impl.sql import Base, ObjectModel, SqlObjectStore, SqlRefStore
from content_plane.objects import ObjectKind


class StoreProvider:
    """Builds an object store and a ref store, and can tamper with stored bytes."""

    def create(self, path: Path) -> tuple[ObjectStore, RefStore]:
        raise NotImplementedError()

    def corrupt(self, store: ObjectStore, oid: str, payload: bytes) -> None:
        raise NotImplementedError()


class MemoryStoreProvider(StoreProvider):
    def create(self, path: Path) -> tuple[ObjectStore, RefStore]:
        return MemoryObjectStore(), MemoryRefStore()

    def corrupt(self, store: ObjectStore, oid: str, payload: bytes) -> None:
        assert isinstance(store, MemoryObjectStore)
        kind, _ = store.data[oid]
        store.data[oid] = (kind, payload)


class FsStoreProvider(StoreProvider):
    def create(self, path: Path) -> tuple[ObjectStore, RefStore]:
        return FsObjectStore(path / "meta"), FsRefStore(path / "meta")

    def corrupt(self, store: ObjectStore, oid: str, payload: bytes) -> None:
        assert isinstance(store, FsObjectStore)
        header = f"blob {len(payload)}\0".encode()
        store.object_path(oid).write_bytes(zlib.compress(header + payload))


class SqlStoreProvider(StoreProvider):
    def create(self, path: Path) -> tuple[ObjectStore, RefStore]:
        engine = create_engine(f"sqlite:///{path / 'store.db'}")
        Base.metadata.create_all(engine)
        self.Session = sessionmaker(bind=engine)
        return SqlObjectStore(self.Session), SqlRefStore(self.Session)

    def corrupt(self, store: ObjectStore, oid: str, payload: bytes) -> None:
        with self.Session() as session:
            session.execute(
                update(ObjectModel)
                .where(ObjectModel.oid == oid)
                .values(payload=payload)
            )
            session.commit()


PROVIDERS = [MemoryStoreProvider, FsStoreProvider, SqlStoreProvider]
PROVIDER_IDS = ["memory", "fs", "sql"]


@pytest.mark.parametrize("provider_cls", PROVIDERS, ids=PROVIDER_IDS)
def test_put_is_idempotent(tmp_path: Path, provider_cls: type[StoreProvider]):
    objects, _ = provider_cls().create(tmp_path)

    oid1 = objects.put(ObjectKind.BLOB, b"hello")
    oid2 = objects.put(ObjectKind.BLOB, b"hello")

    assert oid1 == oid2 == hash_object("blob", b"hello")
    assert list(objects.iter_ids()) == [oid1], "Store must hold exactly one copy"
    assert objects.get(oid1) == (ObjectKind.BLOB, b"hello")


@pytest.mark.parametrize("provider_cls", PROVIDERS, ids=PROVIDER_IDS)
def test_get_missing_object(tmp_path: Path, provider_cls: type[StoreProvider]):
    objects, _ = provider_cls().create(tmp_path)
    missing = hash_object("blob", b"never stored")

    assert objects.exists(missing) is False
    assert objects.kind_of(missing) is None
    with pytest.raises(ObjectNotFound) as exc_info:
        objects.get(missing)
    assert exc_info.value.to_dict()["code"] == "OBJECT_NOT_FOUND"


@pytest.mark.parametrize("provider_cls", PROVIDERS, ids=PROVIDER_IDS)
def test_kind_binding(tmp_path: Path, provider_cls: type[StoreProvider]):
    objects, _ = provider_cls().create(tmp_path)

    blob = objects.put(ObjectKind.BLOB, b"[]")
    tree = objects.put(ObjectKind.TREE, b"[]")

    assert blob != tree
    assert objects.kind_of(tree) is ObjectKind.TREE
    assert objects.get_typed(tree, ObjectKind.TREE) == b"[]"
    with pytest.raises(DanglingReference):
        objects.get_typed(blob, ObjectKind.TREE)


@pytest.mark.parametrize("provider_cls", PROVIDERS, ids=PROVIDER_IDS)
def test_corruption_is_detected(tmp_path: Path, provider_cls: type[StoreProvider]):
    provider = provider_cls()
    objects, _ = provider.create(tmp_path)

    oid = objects.put(ObjectKind.BLOB, b"hello")
    provider.corrupt(objects, oid, b"HELLO")

    assert objects.exists(oid)
    with pytest.raises(ObjectCorrupted):
        objects.get(oid)


def test_fs_store_layout(tmp_path: Path):
    objects = FsObjectStore(tmp_path)
    oid = objects.put(ObjectKind.BLOB, b"content")

    path = tmp_path / "objects" / oid[:2] / oid[2:]
    assert path.is_file()
    assert zlib.decompress(path.read_bytes()) == b"blob 7\0content"
    assert not [p for p in path.parent.iterdir() if p.suffix == ".tmp"]


def test_fs_store_rejects_garbage(tmp_path: Path):
    objects = FsObjectStore(tmp_path)
    oid = objects.put(ObjectKind.BLOB, b"content")

    objects.object_path(oid).write_bytes(b"not zlib at all")
    with pytest.raises(ObjectCorrupted):
        objects.get(oid)

    objects.object_path(oid).write_bytes(zlib.compress(b"blob 99\0content"))
    with pytest.raises(ObjectCorrupted):
        objects.get(oid)


def test_fs_store_rejects_non_identifiers(tmp_path: Path):
    objects = FsObjectStore(tmp_path)
    assert objects.exists("../../etc/passwd") is False
    with pytest.raises(ObjectNotFound):
        objects.get("../../etc/passwd")


@pytest.mark.parametrize("provider_cls", PROVIDERS, ids=PROVIDER_IDS)
def test_ref_compare_and_set(tmp_path: Path, provider_cls: type[StoreProvider]):
    _, refs = provider_cls().create(tmp_path)
    head = RefValue(symbolic=True, value="refs/heads/main")
    first = RefValue(symbolic=False, value="a" * 64)
    second = RefValue(symbolic=False, value="b" * 64)

    assert refs.get("HEAD") is None
    refs.compare_and_set("HEAD", None, head)
    assert refs.get("HEAD") == head

    refs.compare_and_set("refs/heads/main", None, first)
    refs.compare_and_set("refs/heads/main", first, second)
    assert refs.get("refs/heads/main") == second

    with pytest.raises(ConcurrentHeadUpdate) as exc_info:
        refs.compare_and_set("refs/heads/main", first, first)
    assert exc_info.value.actual == "b" * 64
    assert refs.get("refs/heads/main") == second

    with pytest.raises(ConcurrentHeadUpdate):
        refs.compare_and_set("HEAD", None, first)

    assert list(refs.iter_names("refs/heads/")) == ["refs/heads/main"]


def test_fs_ref_lock_blocks_writers(tmp_path: Path):
    refs = FsRefStore(tmp_path)
    value = RefValue(symbolic=False, value="c" * 64)
    refs.compare_and_set("HEAD", None, value)

    lock = tmp_path / "HEAD.lock"
    lock.write_text("")
    with pytest.raises(ConcurrentHeadUpdate):
        refs.compare_and_set("HEAD", value, RefValue(symbolic=False, value="d" * 64))
    assert refs.get("HEAD") == value
    assert lock.exists(), "A lock held by someone else must not be removed"

    os.remove(lock)
    refs.compare_and_set("HEAD", value, RefValue(symbolic=False, value="d" * 64))
    assert (tmp_path / "HEAD").read_text() == "d" * 64 + "\n"
    assert not lock.exists()


def test_fs_ref_file_format(tmp_path: Path):
    refs = FsRefStore(tmp_path)
    refs.compare_and_set("HEAD", None, RefValue(symbolic=True, value="refs/heads/main"))
    assert (tmp_path / "HEAD").read_text() == "ref: refs/heads/main\n"

    with pytest.raises(ValueError):
        refs.get("refs/../../escape")
