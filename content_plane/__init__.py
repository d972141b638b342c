from .base import ObjectStore, RefStore, RefValue
from .checkout import Materializer
from .commits import CommitManager
from .config import RepoSettings
from .errors import (
    AmbiguousIdentifier,
    ConcurrentHeadUpdate,
    ContentPlaneError,
    DanglingReference,
    FilesystemError,
    ObjectCorrupted,
    ObjectNotFound,
    ReferenceExists,
    UnsupportedEntryKind,
)
from .hashing import hash_object
from .logging_utils import configure_logging
from .objects import Commit, ObjectKind, Tree, TreeEntry
from .refs import ReferenceManager
from .repo import ContentRepo, create_fs_repo, create_memory_repo, create_sql_repo
from .tree import TreeBuilder

__all__ = [
    "ObjectStore",
    "RefStore",
    "RefValue",
    "Materializer",
    "CommitManager",
    "RepoSettings",
    "AmbiguousIdentifier",
    "ConcurrentHeadUpdate",
    "ContentPlaneError",
    "DanglingReference",
    "FilesystemError",
    "ObjectCorrupted",
    "ObjectNotFound",
    "ReferenceExists",
    "UnsupportedEntryKind",
    "hash_object",
    "configure_logging",
    "Commit",
    "ObjectKind",
    "Tree",
    "TreeEntry",
    "ReferenceManager",
    "ContentRepo",
    "create_fs_repo",
    "create_memory_repo",
    "create_sql_repo",
    "TreeBuilder",
]
