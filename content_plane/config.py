"""Repository settings."""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "CPLANE_"


@dataclass(frozen=True)
class RepoSettings:
    """Settings shared by every component of a repository."""

    # Name of the metadata directory inside a working directory
    metadata_dir: str = ".cplane"
    default_branch: str = "main"

    # Opaque commit author used when the caller passes none
    author: str = "unknown <unknown>"

    # zlib level for the on-disk object store
    compression_level: int = 6

    # How many times a snapshot re-reads HEAD after losing a race
    head_update_retries: int = 0

    # Extra entry names skipped by the tree builder, besides metadata_dir
    ignore: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.metadata_dir or "/" in self.metadata_dir:
            raise ValueError("metadata_dir must be a single path component")
        if not self.default_branch:
            raise ValueError("default_branch cannot be empty")
        if not (0 <= self.compression_level <= 9):
            raise ValueError("compression_level must be between 0 and 9")
        if self.head_update_retries < 0:
            raise ValueError("head_update_retries cannot be negative")

    @property
    def ignored_names(self) -> frozenset[str]:
        return frozenset((self.metadata_dir, *self.ignore))

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "RepoSettings":
        """Build settings from CPLANE_* environment variables (and a .env file)."""
        load_dotenv(dotenv_path)
        logger.debug("Environment variables loaded from .env if present")

        kwargs: dict = {}
        if value := os.getenv(f"{ENV_PREFIX}METADATA_DIR"):
            kwargs["metadata_dir"] = value
        if value := os.getenv(f"{ENV_PREFIX}DEFAULT_BRANCH"):
            kwargs["default_branch"] = value
        if value := os.getenv(f"{ENV_PREFIX}AUTHOR"):
            kwargs["author"] = value
        if value := os.getenv(f"{ENV_PREFIX}COMPRESSION_LEVEL"):
            kwargs["compression_level"] = int(value)
        if value := os.getenv(f"{ENV_PREFIX}HEAD_UPDATE_RETRIES"):
            kwargs["head_update_retries"] = int(value)
        if value := os.getenv(f"{ENV_PREFIX}IGNORE"):
            kwargs["ignore"] = tuple(
                name.strip() for name in value.split(",") if name.strip()
            )
        return cls(**kwargs)
