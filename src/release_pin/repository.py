"""
Repository model: remote identity, submodule discovery and revision pinning.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, TYPE_CHECKING

from .models import (
    Commit,
    GitRepositoryError,
    RemoteUrlError,
    RevisionResolutionError,
    Slot,
    SubmoduleError,
)
from .remote_url import canonical_url, parse_remote_url

if TYPE_CHECKING:
    from .registry import RepositoryRegistry


logger = logging.getLogger(__name__)

GITMODULES_FILE = ".gitmodules"
SUBMODULE_PATH_MARKER = "path ="
DETACHED_HEAD = "HEAD"


class Repository:
    """One git repository at a filesystem path, plus its submodules.

    Instances are created through ``RepositoryRegistry.find_or_create`` so that a
    path is modeled at most once. Construction opens the working tree, registers
    every submodule declared in ``.gitmodules`` (recursively, through the same
    registry) and parses the remote URL into owner and name.
    """

    def __init__(self, path: Path, registry: "RepositoryRegistry") -> None:
        self.path = Path(path)
        self.registry = registry
        self.settings = registry.settings
        self.git_manager = registry.create_git_manager(self.path)

        self.main_repo: Optional[Repository] = None
        self.commits: List[Commit] = []
        self.from_commit: Optional[Commit] = None
        self.to_commit: Optional[Commit] = None

        # Fails with GitRepositoryError before anything is discovered
        _ = self.git_manager.repo

        self.sub_repos: List[Repository] = []
        try:
            self._retrieve_sub_repos()
            self.owner, self.name = self._resolve_remote_identity()
        except Exception:
            # Registered submodules must not point at an instance that never registers
            self._detach_sub_repos()
            raise
        self.url = canonical_url(self.owner, self.name, self.settings.host_url)

    def __repr__(self) -> str:
        return f"Repository(path={str(self.path)!r}, name={self.name_with_owner!r})"

    # --- Accessors ---
    @property
    def name_with_owner(self) -> str:
        owner = getattr(self, "owner", None)
        name = getattr(self, "name", None)
        if owner is None or name is None:
            return self.path.name
        return f"{owner}/{name}"

    @property
    def is_submodule(self) -> bool:
        return self.main_repo is not None

    @property
    def depth(self) -> int:
        depth = 0
        parent = self.main_repo
        while parent is not None:
            depth += 1
            parent = parent.main_repo
        return depth

    @property
    def is_changed(self) -> bool:
        """True when both sides are pinned and point at different commits."""
        if self.from_commit is None or self.to_commit is None:
            return False
        return self.from_commit.hash != self.to_commit.hash

    @property
    def compare_url(self) -> Optional[str]:
        if self.from_commit is None or self.to_commit is None:
            return None
        return f"{self.url}/compare/{self.from_commit.hash}...{self.to_commit.hash}"

    def get_pinned(self, slot: Slot) -> Optional[Commit]:
        if slot is Slot.FROM:
            return self.from_commit
        if slot is Slot.TO:
            return self.to_commit
        raise ValueError(f"Unknown slot: {slot!r}")

    def set_pinned(self, slot: Slot, commit: Optional[Commit]) -> None:
        if slot is Slot.FROM:
            self.from_commit = commit
        elif slot is Slot.TO:
            self.to_commit = commit
        else:
            raise ValueError(f"Unknown slot: {slot!r}")

    # --- Construction helpers ---
    def _read_submodule_paths(self) -> List[str]:
        """Return the relative paths declared by ``path =`` lines in .gitmodules.

        Every ``path =`` line counts, read as plain text rather than through
        GitPython's ``repo.submodules``.
        """
        gitmodules = self.path / GITMODULES_FILE
        if not gitmodules.exists():
            return []

        try:
            lines = gitmodules.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading {gitmodules}: {e}")
            raise SubmoduleError(f"Failed to read {gitmodules}: {e}") from e

        paths: List[str] = []
        for line in lines:
            if SUBMODULE_PATH_MARKER not in line:
                continue
            relative = line.split(SUBMODULE_PATH_MARKER, 1)[1].strip()
            if relative:
                paths.append(relative)
        return paths

    def _retrieve_sub_repos(self) -> None:
        for relative in self._read_submodule_paths():
            sub_repo = self.registry.find_or_create(self.path / relative)
            sub_repo.main_repo = self
            self.sub_repos.append(sub_repo)
            logger.debug(f"Discovered submodule {relative} in {self.path}")

    def _detach_sub_repos(self) -> None:
        for sub_repo in self.sub_repos:
            if sub_repo.main_repo is self:
                sub_repo.main_repo = None
        self.sub_repos = []

    def _resolve_remote_identity(self) -> Tuple[str, str]:
        remote_url = self.git_manager.get_remote_url(self.settings.remote)
        if remote_url is None:
            logger.error(f"No URL configured for remote '{self.settings.remote}' in {self.path}")
            raise RemoteUrlError(f"No URL configured for remote '{self.settings.remote}' in {self.path}")
        try:
            return parse_remote_url(remote_url)
        except RemoteUrlError:
            logger.error(f"Unrecognized remote URL '{remote_url}' in {self.path}")
            raise

    # --- Revision pinning ---
    def pin_revisions(self, target: str, source: str) -> bool:
        """Pin ``target`` into the ``from`` slot and ``source`` into the ``to`` slot.

        The repository is checked out at each revision in turn (pulling the latest
        state of branches) and submodules receive the commit recorded in this
        repository's tree at that revision. The originally checked-out branch, or
        commit when HEAD was detached, is restored afterwards.

        Returns:
            True once both revisions are pinned.

        Raises:
            RevisionResolutionError: when HEAD cannot be read, or, in strict mode,
                when any git step fails.
        """
        original = self._record_checkout()
        logger.info(f"Pinning {self.name_with_owner}: from={target} to={source} (current: {original})")

        try:
            self._resolve_one(target, Slot.FROM)
            self._resolve_one(source, Slot.TO)
        except Exception:
            # Leave the tree as found, but report the original failure
            self._restore_checkout(original, strict=False)
            raise
        self._restore_checkout(original, strict=self.settings.strict)

        logger.info(
            f"Pinned {self.name_with_owner}: "
            f"{self.from_commit.hash if self.from_commit else None} -> "
            f"{self.to_commit.hash if self.to_commit else None}"
        )
        return True

    def _record_checkout(self) -> str:
        """Return the branch to restore, or the HEAD commit when detached."""
        try:
            current = self.git_manager.get_current_branch()
            if current == DETACHED_HEAD:
                current = self.git_manager.get_head_commit()
            return current
        except GitRepositoryError as e:
            logger.error(f"Could not determine current checkout of {self.path}: {e}")
            raise RevisionResolutionError(f"Could not determine current checkout of {self.path}: {e}") from e

    def _restore_checkout(self, original: str, strict: bool) -> None:
        self._attempt(f"restore checkout of {original}", self.git_manager.force_checkout, original, strict=strict)

    def _attempt(self, step: str, func: Callable[..., Any], *args: Any, strict: Optional[bool] = None) -> Any:
        """Run a git step under the configured failure policy.

        Best-effort mode logs the failure and returns None; strict mode raises
        RevisionResolutionError.
        """
        if strict is None:
            strict = self.settings.strict
        try:
            return func(*args)
        except GitRepositoryError as e:
            if strict:
                logger.error(f"{step} failed for {self.name_with_owner}: {e}")
                raise RevisionResolutionError(f"{step} failed for {self.name_with_owner}: {e}") from e
            logger.warning(f"{step} failed for {self.name_with_owner}, continuing: {e}")
            return None

    def _normalize_tag(self, ref: str) -> str:
        """Replace a tag name with the short hash it points at; other refs pass through.

        Only an exact tag name counts as a match.
        """
        tags = self._attempt("list tags", self.git_manager.list_tags) or []
        if ref not in tags:
            return ref

        self._attempt(f"fetch tag {ref}", self.git_manager.fetch_tag, ref, self.settings.remote)
        short_hash = self._attempt(f"resolve tag {ref}", self.git_manager.get_short_commit_for_tag, ref)
        if not short_hash:
            return ref
        logger.debug(f"Tag {ref} in {self.name_with_owner} resolves to {short_hash}")
        return short_hash

    def _resolve_one(self, ref: str, slot: Slot) -> Commit:
        resolved = self._normalize_tag(ref)
        self._attempt(f"checkout {resolved}", self.git_manager.force_checkout, resolved)

        # A detached HEAD (tag or raw hash) has nothing to pull
        if self._attempt("read current branch", self.git_manager.get_current_branch) == DETACHED_HEAD:
            logger.debug(f"Skipping pull for detached {resolved} in {self.name_with_owner}")
        else:
            self._attempt(f"pull {resolved}", self.git_manager.pull)

        try:
            commit_hash = self.git_manager.get_head_short_hash()
        except GitRepositoryError as e:
            logger.error(f"Could not read HEAD of {self.name_with_owner} at {ref}: {e}")
            raise RevisionResolutionError(f"Could not read HEAD of {self.name_with_owner} at {ref}: {e}") from e

        commit = self.registry.commits.find_or_create(commit_hash, self)
        self.set_pinned(slot, commit)
        logger.debug(f"{self.name_with_owner} {slot.value} = {commit_hash} ({ref})")

        if self.sub_repos:
            self._cascade(slot)
        return commit

    def _relative_path_of(self, sub_repo: Repository) -> str:
        try:
            return sub_repo.path.relative_to(self.path).as_posix()
        except ValueError:
            return sub_repo.path.as_posix()

    def _cascade(self, slot: Slot) -> None:
        """Record each submodule's gitlink hash at HEAD into its ``slot``.

        Submodule working trees are never checked out or pulled here.
        """
        by_path = {self._relative_path_of(sub): sub for sub in self.sub_repos}
        entries = self._attempt(
            "list submodule tree entries", self.git_manager.list_tree_entries, list(by_path)
        )
        if entries is None:
            for sub_repo in self.sub_repos:
                sub_repo.set_pinned(slot, None)
            return

        seen = set()
        for entry in entries:
            sub_repo = by_path.get(entry.path)
            if not entry.is_gitlink or sub_repo is None:
                logger.debug(f"Ignoring tree entry {entry.path} ({entry.type}) in {self.name_with_owner}")
                continue
            sub_commit = self.registry.commits.find_or_create(entry.hash, sub_repo)
            sub_repo.set_pinned(slot, sub_commit)
            seen.add(sub_repo.path)
            logger.debug(f"{sub_repo.name_with_owner} {slot.value} = {entry.hash} (via {self.name_with_owner})")

        for sub_repo in self.sub_repos:
            if sub_repo.path not in seen:
                logger.warning(
                    f"Submodule {self._relative_path_of(sub_repo)} is not present in "
                    f"{self.name_with_owner} at {slot.value}; leaving it unpinned"
                )
                sub_repo.set_pinned(slot, None)

    # --- History ---
    def collect_commits(self) -> List[Commit]:
        """Register and return the non-merge commits between the pinned revisions."""
        if self.from_commit is None or self.to_commit is None:
            raise RevisionResolutionError(f"{self.name_with_owner} has not been pinned yet")
        try:
            rows = self.git_manager.log_between(self.from_commit.hash, self.to_commit.hash)
        except GitRepositoryError as e:
            logger.error(f"Could not list commits for {self.name_with_owner}: {e}")
            raise RevisionResolutionError(f"Could not list commits for {self.name_with_owner}: {e}") from e

        return [
            self.registry.commits.find_or_create(commit_hash, self, subject=subject, author=author)
            for commit_hash, subject, author in rows
        ]
