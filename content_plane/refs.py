"""
HEAD and branch references.

HEAD is normally symbolic and names a branch ref (``refs/heads/main``) that
holds the commit id; a detached HEAD holds a commit id itself. A repository
with no commits has HEAD pointing at a branch ref that does not exist yet.
"""

import logging
import string

from content_plane.base import ObjectStore, RefStore, RefValue
from content_plane.errors import (
    AmbiguousIdentifier,
    ConcurrentHeadUpdate,
    DanglingReference,
    ObjectNotFound,
    ReferenceExists,
)
from content_plane.hashing import is_identifier
from content_plane.objects import ObjectKind

logger = logging.getLogger(__name__)

HEAD = "HEAD"
BRANCH_PREFIX = "refs/heads/"
MIN_PREFIX_LENGTH = 4
MAX_SYMBOLIC_DEPTH = 5

_UNSET = object()


def validate_branch_name(name: str) -> None:
    if not name or name == HEAD:
        raise ValueError(f"Invalid branch name: {name!r}")
    for part in name.split("/"):
        if part in ("", ".", "..") or part.endswith(".lock"):
            raise ValueError(f"Invalid branch name: {name!r}")
    if any(c in string.whitespace or c in "~^:?*[\\" for c in name):
        raise ValueError(f"Invalid branch name: {name!r}")


class ReferenceManager:
    def __init__(
        self, objects: ObjectStore, refs: RefStore, default_branch: str = "main"
    ) -> None:
        validate_branch_name(default_branch)
        self.objects = objects
        self.refs = refs
        self.default_branch = default_branch

    def init(self) -> None:
        """Point HEAD at the default branch unless HEAD already exists."""
        if self.refs.get(HEAD) is not None:
            return
        try:
            self.refs.compare_and_set(HEAD, None, self._default_head())
        except ConcurrentHeadUpdate:
            logger.debug("HEAD was initialized by another writer")

    def _default_head(self) -> RefValue:
        return RefValue(symbolic=True, value=BRANCH_PREFIX + self.default_branch)

    def _resolve_ref(self, name: str) -> tuple[str, RefValue | None]:
        """Follow symbolic refs; returns the final ref name and its value."""
        for _ in range(MAX_SYMBOLIC_DEPTH):
            value = self.refs.get(name)
            if value is None and name == HEAD:
                value = self._default_head()
            if value is None or not value.symbolic:
                return name, value
            name = value.value
        raise DanglingReference(name, "ref", "symbolic reference chain is too deep")

    def _require_commit(self, oid: str) -> None:
        try:
            self.objects.get_typed(oid, ObjectKind.COMMIT)
        except ObjectNotFound:
            raise DanglingReference(oid, "commit", "object does not exist") from None

    def read_head(self) -> str | None:
        _, value = self._resolve_ref(HEAD)
        return value.value if value else None

    def update_head(
        self, new_oid: str, expected: str | None | object = _UNSET
    ) -> None:
        """Move HEAD (or the branch it names) to ``new_oid``.

        With ``expected``, the update only happens if HEAD still resolves to
        that commit id (None meaning "no commits yet").
        """
        self._require_commit(new_oid)
        target, current = self._resolve_ref(HEAD)
        current_oid = current.value if current else None
        if expected is not _UNSET and expected != current_oid:
            raise ConcurrentHeadUpdate(
                target, expected, current_oid  # type: ignore[arg-type]
            )

        self.refs.compare_and_set(
            target, current, RefValue(symbolic=False, value=new_oid)
        )
        logger.info("Moved %s from %s to %s", target, current_oid, new_oid)

    def current_branch(self) -> str | None:
        head = self.refs.get(HEAD)
        if head is None:
            return self.default_branch
        if not head.symbolic:
            return None
        return head.value.removeprefix(BRANCH_PREFIX)

    def list_branches(self) -> list[str]:
        return [
            name.removeprefix(BRANCH_PREFIX)
            for name in self.refs.iter_names(BRANCH_PREFIX)
        ]

    def create_branch(self, name: str, commit_oid: str) -> None:
        validate_branch_name(name)
        self._require_commit(commit_oid)
        ref = BRANCH_PREFIX + name
        if self.refs.get(ref) is not None:
            raise ReferenceExists(ref)
        # "a" and "a/b" cannot both be refs on a filesystem
        taken = set(self.list_branches())
        if self.current_branch() is not None:
            taken.add(self.current_branch())
        for other in taken:
            if other.startswith(name + "/") or name.startswith(other + "/"):
                raise ReferenceExists(BRANCH_PREFIX + other)
        self.refs.compare_and_set(ref, None, RefValue(symbolic=False, value=commit_oid))
        logger.info("Created branch %s at %s", name, commit_oid)

    def set_head_branch(self, name: str) -> None:
        validate_branch_name(name)
        ref = BRANCH_PREFIX + name
        if self.refs.get(ref) is None:
            raise DanglingReference(ref, "ref", "branch does not exist")
        self.refs.compare_and_set(
            HEAD, self.refs.get(HEAD), RefValue(symbolic=True, value=ref)
        )
        logger.info("HEAD now follows %s", ref)

    def detach_head(self, commit_oid: str) -> None:
        self._require_commit(commit_oid)
        self.refs.compare_and_set(
            HEAD, self.refs.get(HEAD), RefValue(symbolic=False, value=commit_oid)
        )
        logger.info("HEAD detached at %s", commit_oid)

    def resolve(self, revision: str) -> str:
        """Turn HEAD, a branch name, a full id or a unique id prefix into an id."""
        if revision in (HEAD, "@"):
            oid = self.read_head()
            if oid is None:
                raise ObjectNotFound(revision)
            return oid

        if revision in self.list_branches():
            branch = self.refs.get(BRANCH_PREFIX + revision)
            if branch is not None:
                return branch.value

        if is_identifier(revision):
            if not self.objects.exists(revision):
                raise ObjectNotFound(revision)
            return revision

        prefix = revision.lower()
        is_hex = all(c in string.hexdigits for c in prefix)
        if len(prefix) >= MIN_PREFIX_LENGTH and is_hex:
            matches = [
                oid for oid in self.objects.iter_ids() if oid.startswith(prefix)
            ]
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                raise AmbiguousIdentifier(prefix, matches)
        raise ObjectNotFound(revision)
