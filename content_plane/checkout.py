"""
Materializing trees back onto the filesystem.

Checkout runs in two phases. The first walks the whole tree through the
object store and collects every directory and file content, so a missing or
corrupted object fails the checkout before anything touches the
destination. The second phase writes. If the host filesystem fails midway,
the raised FilesystemError has ``partial=True`` and lists what was already
written; nothing is rolled back.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from content_plane.base import ObjectStore
from content_plane.errors import FilesystemError
from content_plane.objects import ObjectKind, load_tree

logger = logging.getLogger(__name__)


@dataclass
class CheckoutPlan:
    directories: list[PurePosixPath] = field(default_factory=list)
    files: list[tuple[PurePosixPath, bytes]] = field(default_factory=list)


class Materializer:
    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def plan(self, tree_oid: str) -> CheckoutPlan:
        plan = CheckoutPlan()
        self._plan_tree(tree_oid, PurePosixPath(), plan)
        return plan

    def _plan_tree(
        self, tree_oid: str, base: PurePosixPath, plan: CheckoutPlan
    ) -> None:
        for entry in load_tree(self.store, tree_oid):
            path = base / entry.name
            if entry.kind is ObjectKind.TREE:
                plan.directories.append(path)
                self._plan_tree(entry.oid, path, plan)
            else:
                content = self.store.get_typed(entry.oid, ObjectKind.BLOB)
                plan.files.append((path, content))

    def checkout(self, tree_oid: str, destination: str | Path) -> list[str]:
        """Recreate a tree under ``destination``; returns the written paths."""
        plan = self.plan(tree_oid)
        logger.debug(
            "Checking out %s into %s (%d dirs, %d files)",
            tree_oid,
            destination,
            len(plan.directories),
            len(plan.files),
        )
        return self.apply(plan, destination)

    def apply(self, plan: CheckoutPlan, destination: str | Path) -> list[str]:
        destination = Path(destination)
        written: list[str] = []
        target = destination
        try:
            destination.mkdir(parents=True, exist_ok=True)
            for rel in plan.directories:
                target = destination.joinpath(*rel.parts)
                target.mkdir(exist_ok=True)
                written.append(str(rel))
            for rel, content in plan.files:
                target = destination.joinpath(*rel.parts)
                target.write_bytes(content)
                written.append(str(rel))
        except OSError as e:
            raise FilesystemError(
                str(target), e, partial=bool(written), written=written
            ) from e
        return written
