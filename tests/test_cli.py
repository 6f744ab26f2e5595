"""Tests for the super command line."""

from __future__ import annotations

import json
from pathlib import Path

from conftest import SuperRepoWorkspace, commit_file, git, requires_git
from typer.testing import CliRunner

from super_repo import __version__
from super_repo.core import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_schema_lists_commands():
    result = runner.invoke(app, ["--schema"])

    assert result.exit_code == 0
    schema = json.loads(result.stdout)
    assert [tool["name"] for tool in schema["tools"]] == ["init", "add", "pull", "list"]


def test_pull_without_manifest_fails(tmp_path: Path):
    result = runner.invoke(app, ["pull", str(tmp_path)])

    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_pull_rejects_invalid_jobs(tmp_path: Path):
    result = runner.invoke(app, ["pull", str(tmp_path), "--jobs", "0"])

    assert result.exit_code == 1
    assert "at least 1" in result.stdout


@requires_git
def test_pull_text_report(workspace: SuperRepoWorkspace):
    workspace.add_repo("a", branch="main")
    b = workspace.add_repo("b")
    workspace.push_upstream("a", "one.txt", "1\n")
    git(b, "checkout", "-b", "feature-x")

    result = runner.invoke(app, ["pull", str(workspace.root), "--jobs", "2"])

    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert lines[0].startswith("a ") and "updated" in lines[0]
    assert lines[2].startswith("b ") and "expected 'master'" in lines[2]
    assert "Total: 2" in result.stdout


@requires_git
def test_pull_exits_non_zero_on_failure(workspace: SuperRepoWorkspace):
    clone = workspace.add_repo("a")
    workspace.push_upstream("a", "remote.txt", "remote\n")
    commit_file(clone, "local.txt", "local\n")

    result = runner.invoke(app, ["pull", str(workspace.root), "--json", "--sequential"])

    assert result.exit_code == 1
    data = json.loads(result.stdout)
    [repository] = data["repositories"]
    assert repository["status"] == "failed"
    assert repository["result"]["category"] == "diverged"


@requires_git
def test_pull_dry_run_json(workspace: SuperRepoWorkspace):
    workspace.add_repo("a")
    workspace.push_upstream("a", "one.txt", "1\n")
    before = workspace.head("a")

    result = runner.invoke(app, ["pull", str(workspace.root), "--dry-run", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["repositories"][0]["status"] == "would_update"
    assert data["summary"]["would_update"] == 1
    assert workspace.head("a") == before


@requires_git
def test_list(workspace: SuperRepoWorkspace):
    workspace.add_repo("a", branch="main")
    workspace.add_repo("b", declare_branch=False)

    result = runner.invoke(app, ["list", str(workspace.root), "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert [(r["path"], r["target_branch"]) for r in data["repositories"]] == [
        ("a", "main"),
        ("b", "master"),
    ]


@requires_git
def test_init_and_add(tmp_path: Path):
    remote = tmp_path / "remote.git"
    seed = tmp_path / "seed"
    seed.mkdir()
    git(seed, "init", "-b", "master")
    commit_file(seed, "README.md", "# seed\n")
    git(tmp_path, "clone", "--bare", str(seed), str(remote))
    root = tmp_path / "super"

    init_result = runner.invoke(app, ["init", str(root)])
    add_result = runner.invoke(
        app, ["add", str(remote), "libs/seed", "--branch", "master", "--root", str(root)]
    )
    list_result = runner.invoke(app, ["list", str(root), "--json"])

    assert init_result.exit_code == 0, init_result.stdout
    assert (root / ".git").exists()
    assert add_result.exit_code == 0, add_result.stdout
    assert (root / "libs" / "seed" / "README.md").exists()
    [repository] = json.loads(list_result.stdout)["repositories"]
    assert repository["path"] == "libs/seed"
    assert repository["branch"] == "master"
