"""
Git repository access for a single working tree.

Every command runs against the working tree this manager was built for, so no
process-wide working directory is ever changed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import GitRepositoryError, TreeEntry, SHORT_HASH_LENGTH


logger = logging.getLogger(__name__)

LOG_FIELD_SEPARATOR = "\x1f"


class GitManager:
    """Runs the read-oriented git commands needed to pin revisions."""

    def __init__(self, repo_path: Union[str, Path]) -> None:
        """Initialize Git manager for the working tree at ``repo_path``."""
        self.repo_path = Path(repo_path).resolve()
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance, opening it on first access."""
        if self._repo is None:
            self._repo = self._open_repository()
        return self._repo

    def _open_repository(self) -> Repo:
        """Open the repository rooted exactly at ``repo_path``.

        Parent directories are not searched: a submodule path that is not an
        initialized repository must fail instead of resolving to its parent.
        """
        if not self.repo_path.is_dir():
            raise GitRepositoryError(f"Not a directory: {self.repo_path}")
        try:
            repo = Repo(self.repo_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise GitRepositoryError(f"No Git repository found at {self.repo_path}") from e
        logger.debug(f"Opened Git repository at: {self.repo_path}")
        return repo

    def _run(self, command: str, *args: str) -> str:
        """Run ``git <command> <args>`` in this working tree and return stdout."""
        logger.debug(f"git {command.replace('_', '-')} {' '.join(args)} (in {self.repo_path})")
        try:
            return getattr(self.repo.git, command)(*args)
        except GitCommandError as e:
            logger.debug(f"git {command.replace('_', '-')} failed in {self.repo_path}: {e}")
            raise GitRepositoryError(
                f"git {command.replace('_', '-')} {' '.join(args)} failed in {self.repo_path}: {e}"
            ) from e

    # --- Identity ---
    def get_remote_url(self, remote_name: str = "origin") -> Optional[str]:
        """Return the configured URL of a remote, or None when it is not set."""
        try:
            value = self._run("config", "--get", f"remote.{remote_name}.url").strip()
        except GitRepositoryError:
            return None
        return value or None

    def get_current_branch(self) -> str:
        """Return the checked-out branch name, or ``HEAD`` when detached."""
        return self._run("rev_parse", "--abbrev-ref", "HEAD").strip()

    def get_head_commit(self) -> str:
        """Return the full hash of HEAD."""
        return self._run("rev_parse", "HEAD").strip()

    def get_head_short_hash(self) -> str:
        """Return the abbreviated hash of HEAD as printed by ``git log``."""
        value = self._run("log", "-1", "--format=%h").strip()
        if not value:
            raise GitRepositoryError(f"Could not read HEAD commit in {self.repo_path}")
        return value

    # --- Tags ---
    def list_tags(self) -> List[str]:
        """List local tag names."""
        output = self._run("tag", "-l")
        return [t.strip() for t in output.splitlines() if t.strip()]

    def fetch_tag(self, tag: str, remote_name: str = "origin") -> None:
        """Force-fetch a single tag from a remote, overwriting the local one."""
        self._run("fetch", remote_name, "tag", tag, "-f")

    def get_short_commit_for_tag(self, tag: str) -> str:
        """Return the short commit hash a tag points at."""
        value = self._run("rev_list", "-n", "1", tag).strip()
        if not value:
            raise GitRepositoryError(f"Tag {tag} does not point at a commit")
        return value[:SHORT_HASH_LENGTH]

    # --- Working tree ---
    def force_checkout(self, ref: str) -> None:
        """Checkout a ref, discarding local modifications."""
        self._run("checkout", ref, "-f")

    def pull(self) -> None:
        """Pull the latest state of the checked-out ref."""
        self._run("pull")

    # --- Trees and history ---
    def list_tree_entries(self, paths: Sequence[str], treeish: str = "HEAD") -> List[TreeEntry]:
        """Return ``git ls-tree`` entries at ``treeish`` restricted to ``paths``.

        Records are NUL-terminated ``<mode> <type> <hash>\\t<path>`` so that paths
        are reported verbatim, never C-quoted.
        """
        if not paths:
            return []
        output = self._run("ls_tree", "-z", treeish, "--", *paths)
        entries: List[TreeEntry] = []
        for line in output.split("\0"):
            if not line.strip():
                continue
            meta, sep, path = line.partition("\t")
            parts = meta.split()
            if not sep or len(parts) < 3:
                logger.debug(f"Skipping unparseable ls-tree line: {line!r}")
                continue
            entries.append(TreeEntry(mode=parts[0], type=parts[1], hash=parts[2], path=path))
        return entries

    def log_between(self, from_ref: str, to_ref: str) -> List[Tuple[str, str, str]]:
        """Return ``(short_hash, subject, author)`` for non-merge commits in from..to."""
        fmt = LOG_FIELD_SEPARATOR.join(["%h", "%s", "%an"])
        output = self._run("log", "--no-merges", f"--format={fmt}", f"{from_ref}..{to_ref}")
        commits: List[Tuple[str, str, str]] = []
        for line in output.splitlines():
            fields = line.split(LOG_FIELD_SEPARATOR)
            if len(fields) != 3 or not fields[0]:
                continue
            commits.append((fields[0], fields[1], fields[2]))
        return commits
