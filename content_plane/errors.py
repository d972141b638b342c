"""Error definitions for the content-addressed store."""

from typing import Any


class ContentPlaneError(Exception):
    """Base exception for store, reference and working-tree errors."""

    def __init__(
        self, code: str, message: str, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ObjectNotFound(ContentPlaneError):
    """No object has been persisted under the identifier."""

    def __init__(self, oid: str) -> None:
        super().__init__(
            code="OBJECT_NOT_FOUND",
            message=f"Object not found: {oid}",
            details={"oid": oid},
        )
        self.oid = oid


class ObjectCorrupted(ContentPlaneError):
    """Stored bytes do not hash to their own key, or cannot be decoded."""

    def __init__(self, oid: str, reason: str) -> None:
        super().__init__(
            code="OBJECT_CORRUPTED",
            message=f"Object {oid} is corrupted: {reason}",
            details={"oid": oid, "reason": reason},
        )
        self.oid = oid


class DanglingReference(ContentPlaneError):
    """A commit, tree or ref points at a missing object or one of the wrong kind."""

    def __init__(self, oid: str, expected_kind: str, reason: str) -> None:
        super().__init__(
            code="DANGLING_REFERENCE",
            message=f"Reference to {oid} is dangling: {reason}",
            details={"oid": oid, "expected_kind": expected_kind, "reason": reason},
        )
        self.oid = oid


class UnsupportedEntryKind(ContentPlaneError):
    """Filesystem entry that cannot be represented as a blob or a tree."""

    def __init__(self, path: str, kind: str) -> None:
        super().__init__(
            code="UNSUPPORTED_ENTRY_KIND",
            message=f"Cannot snapshot {path}: unsupported entry kind '{kind}'",
            details={"path": path, "kind": kind},
        )
        self.path = path


class FilesystemError(ContentPlaneError):
    """I/O failure reported by the host filesystem.

    ``partial`` is set by checkout when some paths were already written
    before the failure; ``written`` lists them.
    """

    def __init__(
        self,
        path: str,
        error: OSError,
        partial: bool = False,
        written: list[str] | None = None,
    ) -> None:
        details: dict[str, Any] = {
            "path": path,
            "errno": error.errno,
            "strerror": error.strerror,
        }
        if partial:
            details["partial"] = True
            details["written"] = list(written or [])
        super().__init__(
            code="FILESYSTEM_ERROR",
            message=f"Filesystem error on {path}: {error}",
            details=details,
        )
        self.path = path
        self.error = error
        self.partial = partial
        self.written = list(written or [])


class ConcurrentHeadUpdate(ContentPlaneError):
    """A reference changed between reading it and swapping it."""

    def __init__(self, ref: str, expected: str | None, actual: str | None) -> None:
        super().__init__(
            code="CONCURRENT_HEAD_UPDATE",
            message=f"Reference {ref} moved: expected {expected}, found {actual}",
            details={"ref": ref, "expected": expected, "actual": actual},
        )
        self.ref = ref
        self.expected = expected
        self.actual = actual


class AmbiguousIdentifier(ContentPlaneError):
    """An abbreviated identifier matches more than one object."""

    def __init__(self, prefix: str, candidates: list[str]) -> None:
        super().__init__(
            code="AMBIGUOUS_IDENTIFIER",
            message=f"Identifier prefix {prefix} is ambiguous",
            details={"prefix": prefix, "candidates": sorted(candidates)},
        )


class ReferenceExists(ContentPlaneError):
    def __init__(self, ref: str) -> None:
        super().__init__(
            code="REFERENCE_EXISTS",
            message=f"Reference {ref} already exists",
            details={"ref": ref},
        )
