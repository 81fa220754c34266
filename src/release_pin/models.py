"""
Data models for the release pinning tool.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    # For type checkers only; avoids runtime circular import
    from .repository import Repository


DEFAULT_REMOTE = "origin"
DEFAULT_HOST_URL = "https://github.com"
SHORT_HASH_LENGTH = 7


class Slot(Enum):
    """Which side of a comparison a pinned commit belongs to."""

    FROM = "from"
    TO = "to"


@dataclass
class PinSettings:
    """Settings shared by every repository built from one registry."""

    remote: str = DEFAULT_REMOTE
    strict: bool = False
    host_url: str = DEFAULT_HOST_URL


@dataclass(eq=False)
class Commit:
    """A commit pinned in (or collected from) a repository.

    Identity is the ``(hash, repo.path)`` pair; instances are shared through
    ``CommitRegistry`` so equality by identity is enough.
    """

    hash: str
    repo: "Repository"
    subject: Optional[str] = None
    author: Optional[str] = None

    @property
    def short_hash(self) -> str:
        return self.hash[:SHORT_HASH_LENGTH]

    @property
    def key(self) -> tuple[str, Path]:
        return self.hash, self.repo.path

    def __repr__(self) -> str:
        return f"Commit(hash={self.hash!r}, repo={str(self.repo.path)!r})"


@dataclass
class TreeEntry:
    """One line of ``git ls-tree`` output."""

    mode: str
    type: str
    hash: str
    path: str

    @property
    def is_gitlink(self) -> bool:
        return self.mode == "160000" and self.type == "commit"


@dataclass
class HierarchyEntry:
    """Structured representation of an item in the repository hierarchy.

    Returned by core logic for UI formatting (e.g., Rich tables) without embedding
    presentation concerns in business logic.
    """

    name: str
    path: Path
    depth: int
    is_submodule: bool
    url: str
    parent_name: Optional[str] = None
    parent_path: Optional[Path] = None


@dataclass
class PinnedEntry:
    """Pinned from/to state of one repository after a pin run."""

    name: str
    path: Path
    depth: int
    from_hash: Optional[str]
    to_hash: Optional[str]
    compare_url: Optional[str] = None

    @property
    def is_changed(self) -> bool:
        return self.from_hash is not None and self.to_hash is not None and self.from_hash != self.to_hash


class PinError(Exception):
    """Base exception for pinning operations."""

    pass


class GitRepositoryError(PinError):
    """Exception raised for Git repository related errors."""

    pass


class RemoteUrlError(GitRepositoryError):
    """Exception raised when a remote URL is missing or matches no known shape."""

    pass


class SubmoduleError(PinError):
    """Exception raised for submodule related errors."""

    pass


class RevisionResolutionError(PinError):
    """Exception raised when a revision cannot be resolved to a commit."""

    pass
