"""
Release Pin - pin two revisions across a git repository and all of its submodules.

This package resolves branch, tag or commit references to concrete commit hashes
in a root repository and records, through the root's tree, the commit of every
nested submodule at both revisions.
"""

__version__ = "0.1.0"

from .models import (
    Commit,
    PinSettings,
    Slot,
    PinError,
    GitRepositoryError,
    RemoteUrlError,
    SubmoduleError,
    RevisionResolutionError,
)
from .remote_url import parse_remote_url
from .git_manager import GitManager
from .repository import Repository
from .registry import RepositoryRegistry, CommitRegistry
from .pin_orchestrator import PinOrchestrator

__all__ = [
    "Commit",
    "PinSettings",
    "Slot",
    "PinError",
    "GitRepositoryError",
    "RemoteUrlError",
    "SubmoduleError",
    "RevisionResolutionError",
    "parse_remote_url",
    "GitManager",
    "Repository",
    "RepositoryRegistry",
    "CommitRegistry",
    "PinOrchestrator",
]
