import logging
from collections import deque
from collections.abc import Iterable, Iterator, Sequence

from content_plane.base import ObjectStore
from content_plane.errors import DanglingReference, ObjectNotFound
from content_plane.objects import Commit, ObjectKind, load_commit

logger = logging.getLogger(__name__)


class CommitManager:
    """
    Creates commit objects and walks the history graph.

    Creating a commit never moves HEAD; that is up to the caller, through
    the ReferenceManager.
    """

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def _require(self, oid: str, kind: ObjectKind) -> None:
        try:
            self.store.get_typed(oid, kind)
        except ObjectNotFound:
            raise DanglingReference(oid, kind.value, "object does not exist") from None

    def commit(
        self,
        root_tree_id: str,
        parent_ids: Sequence[str],
        author: str,
        message: str,
        timestamp: int,
    ) -> str:
        self._require(root_tree_id, ObjectKind.TREE)
        for parent in parent_ids:
            self._require(parent, ObjectKind.COMMIT)

        commit = Commit(
            tree=root_tree_id,
            parents=tuple(parent_ids),
            author=author,
            timestamp=timestamp,
            message=message,
        )
        oid = self.store.put(ObjectKind.COMMIT, commit.encode())
        logger.info("Created commit %s (tree %s)", oid, root_tree_id)
        return oid

    def get_commit(self, oid: str) -> Commit:
        return load_commit(self.store, oid)

    def iter_history(self, oids: Iterable[str | None]) -> Iterator[str]:
        """Walk parent links, first parents before the others, each commit once."""
        queue = deque(oids)
        visited = set()
        while queue:
            oid = queue.popleft()
            if not oid or oid in visited:
                continue
            visited.add(oid)
            yield oid
            commit = self.get_commit(oid)
            # Return first parent next
            queue.extendleft(commit.parents[:1])
            # Return other parents later
            queue.extend(commit.parents[1:])

    def is_ancestor(self, commit: str, maybe_ancestor: str) -> bool:
        return maybe_ancestor in self.iter_history([commit])
