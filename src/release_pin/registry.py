"""
Identity maps for repositories and commits.

A registry guarantees that one physical repository (keyed by its normalized
path) and one commit (keyed by hash and repository) are modeled exactly once.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from .git_manager import GitManager
from .models import Commit, PinSettings, SubmoduleError
from .repository import Repository


logger = logging.getLogger(__name__)

GitManagerFactory = Callable[[Path], GitManager]


def normalize_path(path: Union[str, Path]) -> Path:
    """Return the absolute, symlink-resolved form of ``path`` used as identity key."""
    return Path(path).expanduser().resolve()


class CommitRegistry:
    """Find-or-create store for commits keyed by ``(hash, repository path)``."""

    def __init__(self) -> None:
        self._commits: Dict[Tuple[str, Path], Commit] = {}

    def find_or_create(
        self,
        hash: str,
        repo: Repository,
        subject: Optional[str] = None,
        author: Optional[str] = None,
    ) -> Commit:
        key = (hash, repo.path)
        commit = self._commits.get(key)
        if commit is None:
            commit = Commit(hash=hash, repo=repo, subject=subject, author=author)
            self._commits[key] = commit
            repo.commits.append(commit)
            return commit

        # Fill details learned later (e.g. a pinned commit that shows up in a log)
        if commit.subject is None and subject is not None:
            commit.subject = subject
        if commit.author is None and author is not None:
            commit.author = author
        return commit

    def all(self) -> List[Commit]:
        return list(self._commits.values())

    def for_repo(self, repo: Repository) -> List[Commit]:
        return [c for c in self._commits.values() if c.repo.path == repo.path]

    def clear(self) -> None:
        self._commits.clear()


class RepositoryRegistry:
    """Keyed store mapping a normalized filesystem path to one Repository."""

    def __init__(
        self,
        settings: Optional[PinSettings] = None,
        git_manager_factory: Optional[GitManagerFactory] = None,
    ) -> None:
        self.settings = settings or PinSettings()
        self.git_manager_factory: GitManagerFactory = git_manager_factory or GitManager
        self.commits = CommitRegistry()
        self._repositories: Dict[Path, Repository] = {}
        # Paths whose construction is in progress; guards against cyclic .gitmodules
        self._pending: Set[Path] = set()

    def find_or_create(self, path: Union[str, Path]) -> Repository:
        """Return the repository registered for ``path``, building it if needed.

        The entry is committed only after construction succeeded, so a failed
        construction never leaves a half-initialized repository reachable.
        """
        key = normalize_path(path)
        existing = self._repositories.get(key)
        if existing is not None:
            return existing

        if key in self._pending:
            raise SubmoduleError(f"Cyclic submodule declaration detected at {key}")

        self._pending.add(key)
        try:
            repository = Repository(key, registry=self)
        finally:
            self._pending.discard(key)

        self._repositories[key] = repository
        logger.info(f"Registered repository {repository.name_with_owner} at {key}")
        return repository

    def get(self, path: Union[str, Path]) -> Optional[Repository]:
        return self._repositories.get(normalize_path(path))

    def all(self) -> List[Repository]:
        """Return every registered repository in registration order."""
        return list(self._repositories.values())

    def create_git_manager(self, path: Path) -> GitManager:
        return self.git_manager_factory(path)

    def clear(self) -> None:
        self._repositories.clear()
        self._pending.clear()
        self.commits.clear()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return normalize_path(path) in self._repositories

    def __len__(self) -> int:
        return len(self._repositories)
