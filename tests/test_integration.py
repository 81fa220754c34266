"""
Integration tests against real git repositories built in a temporary directory.

The root repository's remote is `git@github.com:acme/widget.git`, rewritten with
`url.<path>.insteadOf` to a local bare repository so that fetch and pull work
offline while the configured URL still parses as a GitHub remote.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
from git import Repo

from release_pin.git_manager import GitManager
from release_pin.models import GitRepositoryError, PinSettings, RevisionResolutionError
from release_pin.pin_orchestrator import PinOrchestrator
from release_pin.registry import RepositoryRegistry


pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")

REMOTE_URL = "git@github.com:acme/widget.git"
VENDOR_URL = "https://github.com/acme/vendor.git"
GITMODULES = f'[submodule "libs/vendor"]\n\tpath = libs/vendor\n\turl = {VENDOR_URL}\n'


def _init(path: Path) -> Repo:
    repo = Repo.init(path)
    repo.git.symbolic_ref("HEAD", "refs/heads/main")
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "Test Author")
        cw.set_value("user", "email", "test@example.com")
        cw.set_value("commit", "gpgsign", "false")
        cw.set_value("tag", "gpgsign", "false")
        cw.set_value("pull", "rebase", "false")
    return repo


def _commit(repo: Repo, filename: str, content: str, message: str) -> str:
    (Path(repo.working_dir) / filename).write_text(content)
    repo.git.add(filename)
    repo.git.commit("-m", message)
    return repo.head.commit.hexsha


def _set_gitlink(repo: Repo, sha: str, path: str = "libs/vendor") -> None:
    repo.git.update_index("--add", "--cacheinfo", f"160000,{sha},{path}")


@pytest.fixture()
def playground(tmp_path: Path):
    """Root repo `work` (tag v1.0.0 + one later commit on main) with a vendor gitlink."""
    bare_path = tmp_path / "origin.git"
    bare = Repo.init(bare_path, bare=True)
    bare.git.symbolic_ref("HEAD", "refs/heads/main")

    work_path = tmp_path / "work"
    work = _init(work_path)
    work.create_remote("origin", REMOTE_URL)
    with work.config_writer() as cw:
        cw.set_value(f'url "{bare_path.as_posix()}"', "insteadOf", REMOTE_URL)

    vendor = _init(work_path / "libs" / "vendor")
    vendor.create_remote("origin", VENDOR_URL)
    vendor_v1 = _commit(vendor, "vendor.txt", "v1\n", "Vendor v1")
    vendor_v2 = _commit(vendor, "vendor.txt", "v2\n", "Vendor v2")

    (work_path / ".gitmodules").write_text(GITMODULES)
    work.git.add(".gitmodules")
    _set_gitlink(work, vendor_v1)
    release = _commit(work, "README.md", "# widget\n", "Initial release")
    work.create_tag("v1.0.0")

    _set_gitlink(work, vendor_v2)
    head = _commit(work, "README.md", "# widget\n\nBump vendor\n", "Bump vendor to v2")

    work.git.push("-u", "origin", "main")
    work.git.push("origin", "--tags")

    return {
        "tmp_path": tmp_path,
        "bare_path": bare_path,
        "work": work,
        "work_path": work_path,
        "vendor": vendor,
        "vendor_path": work_path / "libs" / "vendor",
        "vendor_v1": vendor_v1,
        "vendor_v2": vendor_v2,
        "release": release,
        "head": head,
    }


def _short(repo: Repo, sha: str) -> str:
    return repo.git.rev_parse("--short", sha)


class TestGitManager:
    def test_rejects_non_repository(self, tmp_path):
        with pytest.raises(GitRepositoryError):
            _ = GitManager(tmp_path).repo
        with pytest.raises(GitRepositoryError):
            _ = GitManager(tmp_path / "missing").repo

    def test_does_not_search_parent_directories(self, playground):
        docs = playground["work_path"] / "docs"
        docs.mkdir()
        with pytest.raises(GitRepositoryError):
            _ = GitManager(docs).repo

    def test_identity_and_refs(self, playground):
        gm = GitManager(playground["work_path"])
        work = playground["work"]

        assert gm.get_remote_url() == REMOTE_URL
        assert gm.get_remote_url("upstream") is None
        assert gm.get_current_branch() == "main"
        assert gm.get_head_commit() == playground["head"]
        assert gm.get_head_short_hash() == _short(work, playground["head"])
        assert gm.list_tags() == ["v1.0.0"]
        assert gm.get_short_commit_for_tag("v1.0.0") == playground["release"][:7]

    def test_list_tree_entries(self, playground):
        gm = GitManager(playground["work_path"])

        entries = gm.list_tree_entries(["libs/vendor"])

        assert len(entries) == 1
        assert entries[0].is_gitlink
        assert entries[0].path == "libs/vendor"
        assert entries[0].hash == playground["vendor_v2"]
        assert gm.list_tree_entries([]) == []

    def test_log_between(self, playground):
        gm = GitManager(playground["work_path"])

        rows = gm.log_between(playground["release"], playground["head"])

        assert rows == [(_short(playground["work"], playground["head"]), "Bump vendor to v2", "Test Author")]

    def test_checkout_failure_raises(self, playground):
        with pytest.raises(GitRepositoryError):
            GitManager(playground["work_path"]).force_checkout("no-such-branch")


class TestPinAgainstRealRepositories:
    def test_end_to_end(self, playground):
        work, vendor = playground["work"], playground["vendor"]
        registry = RepositoryRegistry()

        repo = registry.find_or_create(playground["work_path"])
        assert (repo.owner, repo.name, repo.url) == ("acme", "widget", "https://github.com/acme/widget")
        assert [s.path for s in repo.sub_repos] == [playground["vendor_path"].resolve()]

        assert repo.pin_revisions("v1.0.0", "main") is True

        assert repo.from_commit.hash == _short(work, playground["release"])
        assert repo.to_commit.hash == _short(work, playground["head"])
        sub = repo.sub_repos[0]
        assert sub.from_commit.hash == playground["vendor_v1"]
        assert sub.to_commit.hash == playground["vendor_v2"]

        # Restoration and untouched submodule working tree
        assert work.active_branch.name == "main"
        assert vendor.active_branch.name == "main"
        assert vendor.head.commit.hexsha == playground["vendor_v2"]

    def test_pull_picks_up_new_remote_commits(self, playground):
        other = Repo.clone_from(str(playground["bare_path"]), str(playground["tmp_path"] / "other"))
        with other.config_writer() as cw:
            cw.set_value("user", "name", "Other Author")
            cw.set_value("user", "email", "other@example.com")
            cw.set_value("commit", "gpgsign", "false")
        latest = _commit(other, "CHANGELOG.md", "1.1.0\n", "Prepare 1.1.0")
        other.git.push("origin", "main")

        orchestrator = PinOrchestrator(playground["work_path"])
        entries = orchestrator.pin("v1.0.0", "main")

        assert entries[0].to_hash == _short(playground["work"], latest)
        assert playground["work"].active_branch.name == "main"

    def test_idempotent_on_unchanged_remote(self, playground):
        repo = RepositoryRegistry().find_or_create(playground["work_path"])

        repo.pin_revisions("v1.0.0", "main")
        first = (repo.from_commit.hash, repo.to_commit.hash)
        repo.pin_revisions("v1.0.0", "main")

        assert (repo.from_commit.hash, repo.to_commit.hash) == first

    def test_detached_head_is_restored(self, playground):
        work = playground["work"]
        work.git.checkout(playground["release"])
        repo = RepositoryRegistry().find_or_create(playground["work_path"])

        repo.pin_revisions("main", "main")

        assert work.head.is_detached
        assert work.head.commit.hexsha == playground["release"]

    def test_non_ascii_submodule_path(self, tmp_path):
        work_path = tmp_path / "w"
        work = _init(work_path)
        work.create_remote("origin", REMOTE_URL)
        with work.config_writer() as cw:
            cw.set_value("core", "quotePath", "true")
        cafe = _init(work_path / "café")
        cafe.create_remote("origin", "git@github.com:acme/cafe.git")
        cafe_sha = _commit(cafe, "menu.txt", "espresso\n", "Menu")

        (work_path / ".gitmodules").write_text(
            '[submodule "café"]\n\tpath = café\n\turl = ../cafe.git\n', encoding="utf-8"
        )
        work.git.add(".gitmodules")
        _set_gitlink(work, cafe_sha, "café")
        head = _commit(work, "README.md", "# widget\n", "Add café")

        entries = GitManager(work_path).list_tree_entries(["café"])
        assert [(e.path, e.hash) for e in entries] == [("café", cafe_sha)]

        repo = RepositoryRegistry().find_or_create(work_path)
        # A raw hash checks out detached, so nothing is pulled from the unreachable remote
        repo.pin_revisions(head[:7], head[:7])

        assert work.active_branch.name == "main"
        assert repo.sub_repos[0].name == "cafe"
        assert repo.sub_repos[0].to_commit.hash == cafe_sha

    def test_strict_mode_rejects_unknown_revision(self, playground):
        repo = RepositoryRegistry(PinSettings(strict=True)).find_or_create(playground["work_path"])

        with pytest.raises(RevisionResolutionError):
            repo.pin_revisions("no-such-branch", "main")
        assert playground["work"].active_branch.name == "main"
