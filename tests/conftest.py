"""Pytest configuration and fixtures for super-repo tests."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not found")


def git(cwd: Path, *args: str) -> str:
    """Run git in cwd and return its stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str | None = None) -> str:
    """Write a file, commit it and return the new HEAD."""
    target = repo / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-m", message or f"Update {name}")
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's git config and super-repo settings out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    # Local-path submodules are refused by default since git 2.38.1
    monkeypatch.setenv("GIT_CONFIG_COUNT", "1")
    monkeypatch.setenv("GIT_CONFIG_KEY_0", "protocol.file.allow")
    monkeypatch.setenv("GIT_CONFIG_VALUE_0", "always")
    monkeypatch.delenv("SUPER_JOBS", raising=False)
    monkeypatch.delenv("SUPER_LOG_LEVEL", raising=False)


class SuperRepoWorkspace:
    """A super repo whose managed repositories clone local bare remotes."""

    def __init__(self, base: Path):
        self.root = base / "super"
        self.remotes = base / "remotes"
        self.root.mkdir()
        self.remotes.mkdir()
        git(self.root, "init", "-b", "master")
        self._manifest: list[str] = []

    def add_repo(
        self,
        path: str,
        branch: str = "master",
        declare_branch: bool = True,
        name: str | None = None,
    ) -> Path:
        """Create a remote with one commit on branch, clone it to path and register it."""
        name = name or path
        slug = name.replace("/", "_")
        bare = self.remotes / f"{slug}.git"
        upstream = self.remotes / f"{slug}-upstream"

        bare.mkdir()
        git(bare, "init", "--bare", "-b", branch)
        upstream.mkdir()
        git(upstream, "init", "-b", branch)
        commit_file(upstream, "README.md", f"# {name}\n", "Initial commit")
        git(upstream, "remote", "add", "origin", str(bare))
        git(upstream, "push", "origin", branch)

        clone = self.root / path
        clone.parent.mkdir(parents=True, exist_ok=True)
        git(self.root, "clone", "--branch", branch, str(bare), str(clone))

        self.register(path, name=name, branch=branch if declare_branch else None)
        return clone

    def register(self, path: str, name: str | None = None, branch: str | None = None) -> None:
        """Append a submodule section to .gitmodules."""
        section = [f'[submodule "{name or path}"]', f"\tpath = {path}", f"\turl = ../{path}.git"]
        if branch is not None:
            section.append(f"\tbranch = {branch}")
        self._manifest.extend(section)
        (self.root / ".gitmodules").write_text("\n".join(self._manifest) + "\n")

    def upstream(self, name: str) -> Path:
        return self.remotes / f"{name.replace('/', '_')}-upstream"

    def push_upstream(self, name: str, filename: str, content: str) -> str:
        """Commit on the upstream copy and push it, returning the new remote tip."""
        upstream = self.upstream(name)
        head = commit_file(upstream, filename, content)
        git(upstream, "push", "origin", "HEAD")
        return head

    def head(self, path: str) -> str:
        return git(self.root / path, "rev-parse", "HEAD")


@pytest.fixture
def workspace(tmp_path: Path) -> SuperRepoWorkspace:
    """Create an empty super repo with a directory for its remotes."""
    return SuperRepoWorkspace(tmp_path)
