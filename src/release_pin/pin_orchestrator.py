"""
Top-level orchestration of a pin run across a repository hierarchy.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .models import HierarchyEntry, PinnedEntry, PinSettings
from .registry import RepositoryRegistry
from .repository import Repository


logger = logging.getLogger(__name__)


class PinOrchestrator:
    """Owns a repository registry and pins revisions from its root repository."""

    def __init__(
        self,
        root_path: Optional[Path] = None,
        settings: Optional[PinSettings] = None,
        registry: Optional[RepositoryRegistry] = None,
    ) -> None:
        """Initialize the orchestrator and discover the repository hierarchy."""
        self.root_path = Path(root_path or Path.cwd())
        self.registry = registry or RepositoryRegistry(settings)
        self.root_repo: Repository = self.registry.find_or_create(self.root_path)
        logger.info(
            f"Initialized pin orchestrator for {self.root_repo.name_with_owner} "
            f"with {len(self.registry)} repositories"
        )

    def walk(self) -> List[Repository]:
        """Return the hierarchy depth-first, root first, each repository once."""
        ordered: List[Repository] = []
        seen = set()

        def _visit(repo: Repository) -> None:
            if repo.path in seen:
                return
            seen.add(repo.path)
            ordered.append(repo)
            for sub_repo in repo.sub_repos:
                _visit(sub_repo)

        _visit(self.root_repo)
        return ordered

    def pin(self, target: str, source: str, collect_commits: bool = False) -> List[PinnedEntry]:
        """Pin ``target`` (from) and ``source`` (to) across the hierarchy.

        Args:
            target: Revision recorded in the ``from`` slot.
            source: Revision recorded in the ``to`` slot.
            collect_commits: Also register the commits between the pinned
                revisions of the root repository.
        """
        logger.info(f"Pinning {target}..{source} from {self.root_repo.path}")
        self.root_repo.pin_revisions(target, source)

        if collect_commits and self.root_repo.is_changed:
            commits = self.root_repo.collect_commits()
            logger.info(f"Collected {len(commits)} commits in {self.root_repo.name_with_owner}")

        return self.get_pinned_entries()

    def get_pinned_entries(self) -> List[PinnedEntry]:
        return [
            PinnedEntry(
                name=repo.name_with_owner,
                path=repo.path,
                depth=repo.depth,
                from_hash=repo.from_commit.hash if repo.from_commit else None,
                to_hash=repo.to_commit.hash if repo.to_commit else None,
                compare_url=repo.compare_url,
            )
            for repo in self.walk()
        ]

    def get_hierarchy_entries(self) -> List[HierarchyEntry]:
        """Return structured hierarchy entries for UI formatting."""
        return [
            HierarchyEntry(
                name=repo.name_with_owner,
                path=repo.path,
                depth=repo.depth,
                is_submodule=repo.is_submodule,
                url=repo.url,
                parent_name=repo.main_repo.name_with_owner if repo.main_repo else None,
                parent_path=repo.main_repo.path if repo.main_repo else None,
            )
            for repo in self.walk()
        ]

    def all_repositories(self) -> List[Repository]:
        return self.registry.all()
