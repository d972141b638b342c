import hashlib
import json

import pytest

from content_plane.errors import ObjectCorrupted
from content_plane.hashing import hash_object, is_identifier
from content_plane.impl.memory import MemoryObjectStore
from content_plane.objects import (
    Commit,
    ObjectKind,
    Tree,
    TreeEntry,
    load_commit,
    load_tree,
)

BLOB_A = hash_object("blob", b"a")
BLOB_B = hash_object("blob", b"b")


def test_hash_binds_kind_header():
    assert hash_object("blob", b"hello") == hashlib.sha256(b"blob 5\0hello").hexdigest()
    assert hash_object("blob", b"hello") != hash_object("tree", b"hello")
    assert hash_object("blob", b"") != hash_object("tree", b"")


def test_identifier_format():
    oid = hash_object("commit", b"x")
    assert is_identifier(oid)
    assert len(oid) == 64
    assert not is_identifier(oid.upper())
    assert not is_identifier(oid[:-1])
    assert not is_identifier("g" * 64)


def test_tree_order_independence():
    entries = [
        TreeEntry("b.txt", ObjectKind.BLOB, BLOB_B),
        TreeEntry("a.txt", ObjectKind.BLOB, BLOB_A),
        TreeEntry("A", ObjectKind.BLOB, BLOB_A),
    ]
    forward = Tree.from_entries(entries)
    backward = Tree.from_entries(list(reversed(entries)))

    assert forward.encode() == backward.encode()
    # byte-wise order: uppercase sorts before lowercase
    assert [e.name for e in forward] == ["A", "a.txt", "b.txt"]


def test_tree_rejects_duplicates_and_bad_names():
    with pytest.raises(ValueError):
        Tree.from_entries(
            [
                TreeEntry("same", ObjectKind.BLOB, BLOB_A),
                TreeEntry("same", ObjectKind.BLOB, BLOB_B),
            ]
        )
    for name in ["", ".", "..", "a/b", "nul\0"]:
        with pytest.raises(ValueError):
            TreeEntry(name, ObjectKind.BLOB, BLOB_A)
    with pytest.raises(ValueError):
        TreeEntry("c", ObjectKind.COMMIT, BLOB_A)
    with pytest.raises(ValueError):
        TreeEntry("short", ObjectKind.BLOB, "abc")


def test_tree_decode_round_trip():
    tree = Tree.from_entries(
        [
            TreeEntry("sub", ObjectKind.TREE, BLOB_A),
            TreeEntry("café", ObjectKind.BLOB, BLOB_B),
        ]
    )
    assert Tree.decode(tree.encode()) == tree


def test_tree_decode_rejects_non_canonical():
    payload = (
        f'[["blob","{BLOB_B}","b"],["blob","{BLOB_A}","a"]]'.encode()
    )
    with pytest.raises(ValueError):
        Tree.decode(payload)


def test_empty_tree_is_distinct():
    empty = Tree.from_entries([])
    assert empty.encode() == b"[]"
    assert len(empty) == 0
    one = Tree.from_entries([TreeEntry("a", ObjectKind.BLOB, BLOB_A)])
    assert hash_object("tree", empty.encode()) != hash_object("tree", one.encode())


def test_commit_encoding_is_canonical():
    commit = Commit(
        tree=BLOB_A,
        parents=(BLOB_B,),
        author="Ada <ada@example.com>",
        timestamp=1700000000,
        message="multi\nline\n",
    )
    same = Commit(
        tree=BLOB_A,
        parents=(BLOB_B,),
        author="Ada <ada@example.com>",
        timestamp=1700000000,
        message="multi\nline\n",
    )
    assert commit.encode() == same.encode()
    assert Commit.decode(commit.encode()) == commit
    assert Commit(tree=BLOB_A, parents=(BLOB_A, BLOB_B)).encode() != Commit(
        tree=BLOB_A, parents=(BLOB_B, BLOB_A)
    ).encode()


def test_load_helpers_report_corruption():
    store = MemoryObjectStore()
    bad_tree = store.put(ObjectKind.TREE, b'{"not": "a list"}')
    bad_commit = store.put(ObjectKind.COMMIT, b'{"tree": "x"}')
    not_json = store.put(ObjectKind.TREE, b"\xff\xfe")

    with pytest.raises(ObjectCorrupted):
        load_tree(store, bad_tree)
    with pytest.raises(ObjectCorrupted):
        load_commit(store, bad_commit)
    with pytest.raises(ObjectCorrupted):
        load_tree(store, not_json)

    canonical = Commit(tree=BLOB_A, parents=(BLOB_B,), author="a", message="m")
    spaced = store.put(ObjectKind.COMMIT, canonical.encode().replace(b",", b", "))
    with pytest.raises(ObjectCorrupted):
        load_commit(store, spaced)


@pytest.mark.parametrize(
    "field, value",
    [
        ("author", ["x"]),
        ("message", None),
        ("timestamp", "soon"),
        ("timestamp", True),
        ("parents", BLOB_B),
    ],
)
def test_load_commit_rejects_ill_typed_fields(field, value):
    store = MemoryObjectStore()
    raw = {
        "tree": BLOB_A,
        "parents": [],
        "author": "a",
        "timestamp": 0,
        "message": "m",
        field: value,
    }
    oid = store.put(ObjectKind.COMMIT, json.dumps(raw, sort_keys=True).encode())

    with pytest.raises(ObjectCorrupted):
        load_commit(store, oid)


def test_pretty_repr():
    pretty = pytest.importorskip("IPython.lib.pretty")
    tree = Tree.from_entries([TreeEntry("a", ObjectKind.BLOB, BLOB_A)])
    commit = Commit(tree=BLOB_A, author="ada", message="hi")

    assert BLOB_A[:7] in pretty.pretty(tree)
    assert "message='hi'" in pretty.pretty(commit)
