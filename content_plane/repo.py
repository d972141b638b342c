import logging
import shutil
import time
from collections.abc import Iterable
from itertools import islice
from pathlib import Path
from typing import Any, Callable

from sqlalchemy.orm import Session

from content_plane.base import ObjectStore, RefStore
from content_plane.checkout import Materializer
from content_plane.commits import CommitManager
from content_plane.config import RepoSettings
from content_plane.errors import ConcurrentHeadUpdate, FilesystemError
from content_plane.impl.fs import FsObjectStore, FsRefStore
from content_plane.impl.memory import (
    MemoryObjectData,
    MemoryObjectStore,
    MemoryRefData,
    MemoryRefStore,
)
from content_plane.impl.sql import SqlObjectStore, SqlRefStore
from content_plane.objects import Commit, ObjectKind
from content_plane.refs import ReferenceManager
from content_plane.tree import TreeBuilder

logger = logging.getLogger(__name__)


def _empty_directory(directory: Path, keep: Iterable[str]) -> None:
    keep = set(keep)
    if not directory.exists():
        return
    for path in directory.iterdir():
        if path.name in keep:
            continue
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            raise FilesystemError(str(path), e) from e


class ContentRepo:
    """
    Repository over an object store and a ref store.

    Wires the tree builder, commit manager, reference manager and
    materializer into the two user-level flows: recording a snapshot of a
    directory and restoring one.
    """

    def __init__(
        self,
        objects: ObjectStore,
        refs: RefStore,
        settings: RepoSettings | None = None,
        workdir: str | Path | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.settings = settings or RepoSettings()
        self.objects = objects
        self.workdir = Path(workdir) if workdir is not None else None
        self.clock = clock or (lambda: int(time.time()))

        self.trees = TreeBuilder(objects, ignore=self.settings.ignored_names)
        self.commits = CommitManager(objects)
        self.refs = ReferenceManager(objects, refs, self.settings.default_branch)
        self.materializer = Materializer(objects)

        self.refs.init()

    def _repr_pretty_(self, p: Any, cycle: bool) -> None:
        if cycle:
            p.text("ContentRepo(...)")
        else:
            with p.group(4, "ContentRepo(", ")"):
                p.breakable()
                p.text(f"branch={self.current_branch()!r},")
                p.breakable()
                p.text(f"head={self.head},")
                p.breakable()
                p.text("objects=")
                p.pretty(self.objects)
                p.text(",")
                p.breakable()

    @property
    def head(self) -> str | None:
        return self.refs.read_head()

    def _directory(self, directory: str | Path | None) -> Path:
        if directory is not None:
            return Path(directory)
        if self.workdir is None:
            raise ValueError("No directory given and the repository has no workdir")
        return self.workdir

    def snapshot(
        self,
        message: str,
        directory: str | Path | None = None,
        author: str | None = None,
        timestamp: int | None = None,
    ) -> str:
        """Record ``directory`` (default: the workdir) as a new commit on HEAD."""
        tree_oid = self.trees.build_tree(self._directory(directory))
        return self.commit_tree(tree_oid, message, author=author, timestamp=timestamp)

    def commit_tree(
        self,
        tree_oid: str,
        message: str,
        author: str | None = None,
        timestamp: int | None = None,
    ) -> str:
        author = self.settings.author if author is None else author
        timestamp = self.clock() if timestamp is None else timestamp

        retries = 0
        while True:
            parent = self.refs.read_head()
            oid = self.commits.commit(
                tree_oid,
                [parent] if parent else [],
                author=author,
                message=message,
                timestamp=timestamp,
            )
            try:
                self.refs.update_head(oid, expected=parent)
                return oid
            except ConcurrentHeadUpdate as e:
                retries += 1
                if retries > self.settings.head_update_retries:
                    raise
                logger.warning(
                    "HEAD moved to %s while committing, retrying (%d/%d)",
                    e.actual,
                    retries,
                    self.settings.head_update_retries,
                )

    def restore(
        self,
        destination: str | Path | None = None,
        revision: str = "HEAD",
        clean: bool = False,
    ) -> str:
        """Write the tree of ``revision`` into ``destination``.

        ``revision`` may name a commit or a tree. With ``clean`` the
        destination is emptied first, except for ignored names such as the
        metadata directory. HEAD is not moved. Returns the tree id.
        """
        destination = self._directory(destination)
        oid = self.refs.resolve(revision)
        tree_oid = oid
        if self.objects.kind_of(oid) is ObjectKind.COMMIT:
            tree_oid = self.commits.get_commit(oid).tree

        # every object is read before the destination is touched
        plan = self.materializer.plan(tree_oid)
        if clean:
            _empty_directory(destination, self.settings.ignored_names)
        self.materializer.apply(plan, destination)
        logger.info("Restored %s into %s", revision, destination)
        return tree_oid

    def log(
        self, revision: str = "HEAD", limit: int | None = None
    ) -> list[tuple[str, Commit]]:
        if revision in ("HEAD", "@") and self.head is None:
            return []
        start = self.refs.resolve(revision)
        oids = islice(self.commits.iter_history([start]), limit)
        return [(oid, self.commits.get_commit(oid)) for oid in oids]

    def resolve(self, revision: str) -> str:
        return self.refs.resolve(revision)

    def current_branch(self) -> str | None:
        return self.refs.current_branch()

    def list_branches(self) -> list[str]:
        return self.refs.list_branches()

    def create_branch(self, name: str, revision: str = "HEAD") -> str:
        oid = self.refs.resolve(revision)
        self.refs.create_branch(name, oid)
        return oid

    def switch_branch(self, name: str) -> None:
        self.refs.set_head_branch(name)

    def detach(self, revision: str) -> str:
        oid = self.refs.resolve(revision)
        self.refs.detach_head(oid)
        return oid


def create_memory_repo(
    objects: MemoryObjectData | None = None,
    refs: MemoryRefData | None = None,
    settings: RepoSettings | None = None,
    workdir: str | Path | None = None,
) -> ContentRepo:
    return ContentRepo(
        MemoryObjectStore(objects), MemoryRefStore(refs), settings, workdir=workdir
    )


def create_fs_repo(
    workdir: str | Path, settings: RepoSettings | None = None
) -> ContentRepo:
    """Open (or initialize) a repository stored in ``<workdir>/<metadata_dir>``."""
    settings = settings or RepoSettings()
    metadata = Path(workdir) / settings.metadata_dir
    try:
        (metadata / "objects").mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(str(metadata), e) from e
    return ContentRepo(
        FsObjectStore(metadata, compression_level=settings.compression_level),
        FsRefStore(metadata),
        settings,
        workdir=workdir,
    )


def create_sql_repo(
    session_maker: Callable[[], Session],
    settings: RepoSettings | None = None,
    workdir: str | Path | None = None,
) -> ContentRepo:
    return ContentRepo(
        SqlObjectStore(session_maker),
        SqlRefStore(session_maker),
        settings,
        workdir=workdir,
    )
