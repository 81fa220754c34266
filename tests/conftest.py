"""
Shared fixtures: an in-memory stand-in for GitManager.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from release_pin.models import GitRepositoryError, PinSettings, TreeEntry
from release_pin.registry import RepositoryRegistry


@dataclass
class FakeRepoState:
    """Git state of one fake working tree."""

    remote_url: Optional[str] = "git@github.com:acme/widget.git"
    current: str = "main"
    branches: Dict[str, str] = field(default_factory=lambda: {"main": "aaaaaaa"})
    tags: Dict[str, str] = field(default_factory=dict)
    # branch -> hash the branch moves to on pull
    remote_advances: Dict[str, str] = field(default_factory=dict)
    # commit hash -> {submodule path: gitlink hash}
    trees: Dict[str, Dict[str, str]] = field(default_factory=dict)
    log_rows: List[Tuple[str, str, str]] = field(default_factory=list)
    failing: Set[str] = field(default_factory=set)
    calls: List[Tuple[str, ...]] = field(default_factory=list)

    @property
    def head(self) -> str:
        return self.branches.get(self.current, self.current)

    def known_commits(self) -> Set[str]:
        return set(self.branches.values()) | {h[:7] for h in self.tags.values()} | set(self.trees)


class FakeGitManager:
    """Mimics the GitManager API against a FakeRepoState."""

    def __init__(self, repo_path: Path, world: "FakeGitWorld") -> None:
        self.repo_path = Path(repo_path).resolve()
        self.world = world

    @property
    def state(self) -> FakeRepoState:
        return self.world.repos[self.repo_path]

    @property
    def repo(self):
        if self.repo_path not in self.world.repos:
            raise GitRepositoryError(f"No Git repository found at {self.repo_path}")
        return self.state

    def _call(self, name: str, *args: str) -> FakeRepoState:
        state = self.state
        state.calls.append((name,) + args)
        if name in state.failing:
            raise GitRepositoryError(f"git {name} failed")
        return state

    def get_remote_url(self, remote_name: str = "origin") -> Optional[str]:
        return self._call("get_remote_url", remote_name).remote_url

    def get_current_branch(self) -> str:
        state = self._call("get_current_branch")
        return state.current if state.current in state.branches else "HEAD"

    def get_head_commit(self) -> str:
        return self._call("get_head_commit").head

    def get_head_short_hash(self) -> str:
        return self._call("get_head_short_hash").head[:7]

    def list_tags(self) -> List[str]:
        return sorted(self._call("list_tags").tags)

    def fetch_tag(self, tag: str, remote_name: str = "origin") -> None:
        self._call("fetch_tag", tag, remote_name)

    def get_short_commit_for_tag(self, tag: str) -> str:
        return self._call("get_short_commit_for_tag", tag).tags[tag][:7]

    def force_checkout(self, ref: str) -> None:
        state = self._call("force_checkout", ref)
        if ref not in state.branches and ref not in state.known_commits():
            raise GitRepositoryError(f"pathspec '{ref}' did not match")
        state.current = ref

    def pull(self) -> None:
        state = self._call("pull")
        if state.current in state.remote_advances:
            state.branches[state.current] = state.remote_advances[state.current]

    def list_tree_entries(self, paths, treeish: str = "HEAD") -> List[TreeEntry]:
        state = self._call("list_tree_entries", *paths)
        tree = state.trees.get(state.head, {})
        return [TreeEntry("160000", "commit", tree[p], p) for p in paths if p in tree]

    def log_between(self, from_ref: str, to_ref: str) -> List[Tuple[str, str, str]]:
        return self._call("log_between", from_ref, to_ref).log_rows


class FakeGitWorld:
    """A set of fake repositories keyed by resolved path."""

    def __init__(self) -> None:
        self.repos: Dict[Path, FakeRepoState] = {}

    def add(self, path: Path, gitmodules: Optional[List[str]] = None, **kwargs) -> FakeRepoState:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        if gitmodules is not None:
            lines = []
            for sub in gitmodules:
                lines.extend([f'[submodule "{sub}"]', f"\tpath = {sub}", f"\turl = ../{sub}.git"])
            (path / ".gitmodules").write_text("\n".join(lines) + "\n")
        state = FakeRepoState(**kwargs)
        self.repos[path.resolve()] = state
        return state

    def factory(self, path: Path) -> FakeGitManager:
        return FakeGitManager(path, self)

    def registry(self, settings: Optional[PinSettings] = None) -> RepositoryRegistry:
        return RepositoryRegistry(settings, git_manager_factory=self.factory)


@pytest.fixture()
def fake_git() -> FakeGitWorld:
    return FakeGitWorld()
