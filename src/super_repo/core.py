"""
super-repo: Keep every repository of a super repository up to date.

A tool for managing a directory of git submodules (the "super repo") - register
new repositories, list them, and pull all of them in parallel, fast-forwarding
only the repositories that are on their tracked branch and have a clean
working tree.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, replace
from enum import StrEnum
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .formatters import OutputFormatter
from .schema import get_tool_schema

logger = logging.getLogger(__name__)

MANIFEST_FILE = ".gitmodules"
DEFAULT_BRANCH = "master"
DEFAULT_REMOTE = "origin"
DETACHED = "(detached)"
SHORT_HASH_LENGTH = 7

# =============================================================================
# Domain Models
# =============================================================================


class ErrorCategory(StrEnum):
    """Category of a per-repository failure."""

    MANIFEST = "manifest"
    REPOSITORY_ACCESS = "repository_access"
    FETCH = "fetch"
    DIVERGED = "diverged"
    MERGE = "merge"
    INTERNAL = "internal"


class OutcomeStatus(StrEnum):
    """Terminal state of one repository after a pull."""

    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    WOULD_UPDATE = "would_update"
    SKIPPED_WRONG_BRANCH = "skipped_wrong_branch"
    SKIPPED_DIRTY = "skipped_dirty"
    FAILED = "failed"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class RepositoryDescriptor:
    """A repository registered in the super repo manifest."""

    name: str
    path: Path
    branch: str | None = None
    fallback_branch: str = DEFAULT_BRANCH
    index: int = 0

    @property
    def target_branch(self) -> str:
        """Branch the repository is expected to track."""
        return self.branch or self.fallback_branch

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path.as_posix(),
            "branch": self.branch,
            "target_branch": self.target_branch,
        }


@dataclass(frozen=True)
class RepositoryState:
    """Snapshot of a repository's working tree and its fetched remote tip."""

    path: Path
    branch: str
    dirty: bool
    local_ref: str | None = None
    remote_ref: str | None = None
    remote: str = DEFAULT_REMOTE
    staged_count: int = 0
    unstaged_count: int = 0

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "branch": self.branch,
            "dirty": self.dirty,
            "local_ref": self.local_ref,
            "remote_ref": self.remote_ref,
            "remote": self.remote,
            "staged_count": self.staged_count,
            "unstaged_count": self.unstaged_count,
        }


@dataclass(frozen=True)
class Eligible:
    """The repository may be fast-forwarded to its target branch."""

    target_branch: str


@dataclass(frozen=True)
class SkippedWrongBranch:
    """The repository is not on the branch it is supposed to track."""

    current: str
    expected: str


@dataclass(frozen=True)
class SkippedDirty:
    """The repository has uncommitted changes."""


Eligibility = Eligible | SkippedWrongBranch | SkippedDirty


def eligibility_to_dict(eligibility: Eligibility | None) -> dict | None:
    """Convert an eligibility decision to a dictionary for JSON output."""
    match eligibility:
        case Eligible(target_branch=target):
            return {"decision": "eligible", "target_branch": target}
        case SkippedWrongBranch(current=current, expected=expected):
            return {"decision": "skipped_wrong_branch", "current": current, "expected": expected}
        case SkippedDirty():
            return {"decision": "skipped_dirty"}
        case _:
            return None


@dataclass(frozen=True)
class UpdateSuccess:
    """A fast-forward that went through (or would, in a dry run)."""

    old_ref: str
    new_ref: str
    commit_count: int = 0
    changed_files: tuple[str, ...] = ()
    file_count: int = 0
    ahead_count: int = 0
    dry_run: bool = False

    @property
    def up_to_date(self) -> bool:
        return self.old_ref == self.new_ref

    def to_dict(self) -> dict:
        data = asdict(self)
        data["changed_files"] = list(self.changed_files)
        return data


@dataclass(frozen=True)
class UpdateFailure:
    """Why a repository could not be updated."""

    category: ErrorCategory
    message: str

    def to_dict(self) -> dict:
        return {"category": self.category.value, "message": self.message}


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of pulling (or skipping) one repository."""

    descriptor: RepositoryDescriptor
    eligibility: Eligibility | None = None
    result: UpdateSuccess | UpdateFailure | None = None

    @property
    def path(self) -> Path:
        return self.descriptor.path

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def branch(self) -> str:
        return self.descriptor.target_branch

    @property
    def index(self) -> int:
        return self.descriptor.index

    @property
    def status(self) -> OutcomeStatus:
        """Classify the outcome. Raises InternalError for impossible combinations."""
        match (self.eligibility, self.result):
            case (_, UpdateFailure(category=ErrorCategory.INTERNAL)):
                return OutcomeStatus.INTERNAL_ERROR
            case (_, UpdateFailure()):
                return OutcomeStatus.FAILED
            case (SkippedWrongBranch(), None):
                return OutcomeStatus.SKIPPED_WRONG_BRANCH
            case (SkippedDirty(), None):
                return OutcomeStatus.SKIPPED_DIRTY
            case (Eligible(), UpdateSuccess() as success) if success.up_to_date:
                return OutcomeStatus.UP_TO_DATE
            case (Eligible(), UpdateSuccess(dry_run=True)):
                return OutcomeStatus.WOULD_UPDATE
            case (Eligible(), UpdateSuccess()):
                return OutcomeStatus.UPDATED
        raise InternalError(
            f"malformed outcome for {self.path}: {self.eligibility!r} / {self.result!r}"
        )

    @property
    def is_failure(self) -> bool:
        try:
            return self.status in (OutcomeStatus.FAILED, OutcomeStatus.INTERNAL_ERROR)
        except InternalError:
            return True

    def to_dict(self) -> dict:
        try:
            status = self.status.value
        except InternalError:
            status = OutcomeStatus.INTERNAL_ERROR.value
        return {
            **self.descriptor.to_dict(),
            "status": status,
            "eligibility": eligibility_to_dict(self.eligibility),
            "result": self.result.to_dict() if self.result is not None else None,
        }


@dataclass
class PullSummary:
    """Summary of pull results."""

    total: int = 0
    updated: int = 0
    up_to_date: int = 0
    would_update: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[UpdateOutcome]) -> PullSummary:
        """Build pull summary from outcomes."""
        summary = cls(total=len(outcomes))
        for outcome in outcomes:
            try:
                status = outcome.status
            except InternalError:
                status = OutcomeStatus.INTERNAL_ERROR

            match status:
                case OutcomeStatus.UPDATED:
                    summary.updated += 1
                case OutcomeStatus.UP_TO_DATE:
                    summary.up_to_date += 1
                case OutcomeStatus.WOULD_UPDATE:
                    summary.would_update += 1
                case OutcomeStatus.SKIPPED_WRONG_BRANCH | OutcomeStatus.SKIPPED_DIRTY:
                    summary.skipped += 1
                case _:
                    summary.failed += 1
        return summary


@dataclass
class PullReport:
    """Every outcome of one pull run."""

    outcomes: list[UpdateOutcome] = field(default_factory=list)
    interrupted: bool = False

    @property
    def summary(self) -> PullSummary:
        return PullSummary.from_outcomes(self.outcomes)

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return 130
        if any(outcome.is_failure for outcome in self.outcomes):
            return 1
        return 0

    def to_dict(self) -> dict:
        ordered = sorted(self.outcomes, key=lambda o: o.index)
        return {
            "repositories": [o.to_dict() for o in ordered],
            "summary": self.summary.to_dict(),
            "interrupted": self.interrupted,
        }


# =============================================================================
# Errors
# =============================================================================


class SuperRepoError(Exception):
    """Base class for all super-repo errors."""

    category: ErrorCategory = ErrorCategory.INTERNAL


class ConfigurationError(SuperRepoError):
    """Invalid option or environment value."""


class ManifestError(SuperRepoError):
    """The super repo manifest is missing or malformed."""

    category = ErrorCategory.MANIFEST


class RepositoryAccessError(SuperRepoError):
    """A managed path is missing or not a git working tree."""

    category = ErrorCategory.REPOSITORY_ACCESS


class FetchError(SuperRepoError):
    """Fetching from the remote failed."""

    category = ErrorCategory.FETCH


class DivergedError(SuperRepoError):
    """Local and remote branches have diverged and need a manual merge."""

    category = ErrorCategory.DIVERGED


class MergeError(SuperRepoError):
    """git refused the fast-forward and left the repository unchanged."""

    category = ErrorCategory.MERGE


class InternalError(SuperRepoError):
    """An invariant was violated."""

    category = ErrorCategory.INTERNAL


# =============================================================================
# Git Operations (Low-level)
# =============================================================================


def _git_env() -> dict[str, str]:
    env = os.environ.copy()
    # Parallel workers must never wait on a credential prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


class GitOperations:
    """Low-level Git operations for a single repository."""

    def __init__(self, repo_path: Path):
        self.repo_path = repo_path

    def _run(
        self, *args: str, check: bool = True, detach: bool = False
    ) -> subprocess.CompletedProcess:
        """Run a git command in the repository.

        With ``detach`` the command runs in its own session, so a terminal
        interrupt sent to our process group does not reach it.
        """
        logger.debug("git %s (in %s)", " ".join(args), self.repo_path)
        return subprocess.run(
            ["git", *args],
            cwd=self.repo_path,
            capture_output=True,
            text=True,
            check=check,
            env=_git_env(),
            start_new_session=detach,
        )

    def list_config_file(self, config_file: Path) -> tuple[bool, str]:
        """List all entries of a git-config formatted file, NUL separated."""
        result = self._run("config", "-z", "--file", str(config_file), "--list", check=False)
        if result.returncode != 0:
            return False, result.stderr.strip()
        return True, result.stdout

    def get_toplevel(self) -> Path | None:
        """Get the top-level directory of the working tree containing repo_path."""
        result = self._run("rev-parse", "--show-toplevel", check=False)
        if result.returncode == 0 and result.stdout.strip():
            return Path(result.stdout.strip())
        return None

    def get_current_branch(self) -> str:
        """Get current branch name, empty when HEAD is detached."""
        result = self._run("symbolic-ref", "--quiet", "--short", "HEAD", check=False)
        if result.returncode == 0:
            return result.stdout.strip()
        return ""

    def get_config(self, key: str) -> str:
        """Get a config value, empty when unset."""
        result = self._run("config", "--get", key, check=False)
        if result.returncode == 0:
            return result.stdout.strip()
        return ""

    def get_status_porcelain(self) -> dict | None:
        """Get branch, HEAD commit and staged/unstaged counts in one command.

        Uses 'git status --porcelain=v2 --branch'. Untracked files are not
        listed, they never make a repository dirty. Returns None if git fails.
        """
        result = self._run(
            "status", "--porcelain=v2", "--branch", "--untracked-files=no", check=False
        )
        if result.returncode != 0:
            return None

        info: dict = {
            "branch": "",
            "oid": "",
            "staged_count": 0,
            "unstaged_count": 0,
        }
        for line in result.stdout.splitlines():
            if line.startswith("# branch.head "):
                info["branch"] = line[len("# branch.head ") :]
            elif line.startswith("# branch.oid "):
                info["oid"] = line[len("# branch.oid ") :]
            elif line.startswith("1 ") or line.startswith("2 "):
                # Changed entry: XY sub mH mI mW hH hI path
                xy = line[2:4]
                if xy[0] != ".":
                    info["staged_count"] += 1
                if xy[1] != ".":
                    info["unstaged_count"] += 1
            elif line.startswith("u "):
                # Unmerged entry: counts as both staged and unstaged
                info["staged_count"] += 1
                info["unstaged_count"] += 1
        return info

    def fetch_branch(self, remote: str, branch: str) -> tuple[bool, str]:
        """Fetch one branch into its remote-tracking ref."""
        refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
        try:
            result = self._run("fetch", "--no-tags", remote, refspec, check=False)
        except OSError as e:
            return False, str(e)
        if result.returncode != 0:
            return False, result.stderr.strip() or result.stdout.strip()
        return True, ""

    def resolve_commit(self, ref: str) -> str | None:
        """Resolve a ref to a full commit hash."""
        result = self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        return None

    def get_head(self) -> str | None:
        return self.resolve_commit("HEAD")

    def is_ancestor(self, ancestor: str, descendant: str) -> bool | None:
        """Check ancestry between two commits. None if git could not tell."""
        result = self._run("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        return None

    def count_commits(self, ref1: str, ref2: str) -> int:
        """Count commits reachable from ref2 but not from ref1."""
        result = self._run("rev-list", "--count", f"{ref1}..{ref2}", check=False)
        if result.returncode == 0 and result.stdout.strip().isdigit():
            return int(result.stdout.strip())
        return 0

    def get_changed_files_between(self, ref1: str, ref2: str) -> list[str]:
        """Get files changed between two refs, in git's order."""
        result = self._run("diff", "--name-only", "-z", ref1, ref2, check=False)
        if result.returncode == 0 and result.stdout:
            return [name for name in result.stdout.split("\0") if name]
        return []

    def fast_forward(self, commit: str) -> tuple[bool, str]:
        """Fast-forward the checked-out branch to commit."""
        result = self._run("merge", "--ff-only", "--quiet", commit, check=False, detach=True)
        if result.returncode != 0:
            return False, result.stderr.strip() or result.stdout.strip()
        return True, result.stdout.strip()


# =============================================================================
# Repository Registry
# =============================================================================


def _parse_manifest_entries(raw: str) -> dict[str, dict[str, str]]:
    """Group `git config -z --list` output by submodule name, in file order."""
    sections: dict[str, dict[str, str]] = {}
    for entry in raw.split("\0"):
        if not entry:
            continue
        key, _, value = entry.partition("\n")
        if not key.startswith("submodule."):
            continue
        # Subsection names may themselves contain dots
        name, dot, variable = key[len("submodule.") :].rpartition(".")
        if not dot or not name:
            continue
        sections.setdefault(name, {})[variable] = value
    return sections


def load_manifest(root: Path, fallback_branch: str = DEFAULT_BRANCH) -> list[RepositoryDescriptor]:
    """Load the repositories registered in the super repo at root.

    Repositories are returned in declaration order. A submodule without a
    ``branch`` key tracks ``fallback_branch``; ``branch = .`` tracks the
    branch currently checked out in the super repo.
    """
    root = root.expanduser()
    if not root.is_dir():
        raise ManifestError(f"{root} is not a directory")
    if not (root / ".git").exists():
        raise ManifestError(f"{root} is not a git repository; run 'super init' first")

    manifest = root / MANIFEST_FILE
    if not manifest.is_file():
        raise ManifestError(f"no {MANIFEST_FILE} in {root}; add a repository with 'super add'")

    ops = GitOperations(root)
    try:
        success, output = ops.list_config_file(manifest)
    except OSError as e:
        raise ManifestError(f"could not read {manifest}: {e}") from e
    if not success:
        raise ManifestError(f"malformed {MANIFEST_FILE}: {output}")

    descriptors: list[RepositoryDescriptor] = []
    seen_paths: set[Path] = set()
    super_branch: str | None = None

    for name, variables in _parse_manifest_entries(output).items():
        raw_path = variables.get("path", "").strip()
        if not raw_path:
            raise ManifestError(f"submodule '{name}' in {MANIFEST_FILE} has no path")

        path = Path(raw_path)
        if path.is_absolute() or ".." in path.parts:
            raise ManifestError(f"submodule '{name}' has a path outside the super repo: {raw_path}")
        if path in seen_paths:
            raise ManifestError(f"path '{raw_path}' is registered more than once")
        seen_paths.add(path)

        branch = variables.get("branch", "").strip() or None
        if branch == ".":
            if super_branch is None:
                super_branch = ops.get_current_branch()
            if super_branch:
                branch = super_branch
            else:
                logger.warning(
                    "Submodule '%s' follows the super repo branch, but HEAD is detached; "
                    "using '%s'",
                    name,
                    fallback_branch,
                )
                branch = None

        descriptors.append(
            RepositoryDescriptor(
                name=name,
                path=path,
                branch=branch,
                fallback_branch=fallback_branch,
                index=len(descriptors),
            )
        )

    logger.debug("Loaded %d repositories from %s", len(descriptors), manifest)
    return descriptors


# =============================================================================
# Repository Manager
# =============================================================================


class GitRepository:
    """High-level interface for a single managed repository."""

    def __init__(self, root: Path, descriptor: RepositoryDescriptor):
        self.descriptor = descriptor
        self.path = root / descriptor.path
        self.name = descriptor.name
        self.ops = GitOperations(self.path)

    def inspect(self, fetch: bool = True) -> RepositoryState:
        """Inspect the working tree, then optionally fetch the target branch.

        Raises RepositoryAccessError if the path is not a usable working tree
        and FetchError if the remote cannot be fetched.
        """
        relative = self.descriptor.path.as_posix()
        if not self.path.is_dir():
            raise RepositoryAccessError(f"{relative} does not exist")

        toplevel = self.ops.get_toplevel()
        if toplevel is None or toplevel.resolve() != self.path.resolve():
            raise RepositoryAccessError(
                f"{relative} is not an initialized git working tree "
                "(try 'git submodule update --init')"
            )

        info = self.ops.get_status_porcelain()
        if info is None:
            raise RepositoryAccessError(f"could not read the status of {relative}")

        local_ref = info["oid"] if info["oid"] != "(initial)" else None
        if local_ref is None:
            raise RepositoryAccessError(f"{relative} has no commits")

        target = self.descriptor.target_branch
        remote = self.ops.get_config(f"branch.{target}.remote") or DEFAULT_REMOTE

        state = RepositoryState(
            path=self.path,
            branch=info["branch"] or DETACHED,
            dirty=info["staged_count"] > 0 or info["unstaged_count"] > 0,
            local_ref=local_ref,
            remote=remote,
            staged_count=info["staged_count"],
            unstaged_count=info["unstaged_count"],
        )
        return self.fetch(state) if fetch else state

    def fetch(self, state: RepositoryState) -> RepositoryState:
        """Fetch the target branch once and record the remote tip on the state."""
        target = self.descriptor.target_branch
        success, error = self.ops.fetch_branch(state.remote, target)
        if not success:
            raise FetchError(f"fetching {state.remote}/{target} failed: {error}")
        remote_ref = self.ops.resolve_commit(f"refs/remotes/{state.remote}/{target}")
        if remote_ref is None:
            raise FetchError(f"{state.remote}/{target} could not be resolved after fetching")
        return replace(state, remote_ref=remote_ref)

    def _changed_top_level_entries(self, old: str, new: str) -> tuple[list[str], int]:
        files = self.ops.get_changed_files_between(old, new)
        entries: dict[str, None] = {}
        for name in files:
            entries.setdefault(name.split("/", 1)[0], None)
        return list(entries), len(files)

    def fast_forward(self, state: RepositoryState, dry_run: bool = False) -> UpdateSuccess:
        """Fast-forward the local branch to the fetched remote tip.

        The ref either ends at the remote tip or is left where it was.
        """
        old, new = state.local_ref, state.remote_ref
        if old is None or new is None:
            raise InternalError(f"{self.descriptor.path} was inspected without a fetch")

        if old == new:
            return UpdateSuccess(old_ref=old, new_ref=old, dry_run=dry_run)

        target = self.descriptor.target_branch
        behind = self.ops.is_ancestor(old, new)
        if behind is None:
            raise RepositoryAccessError(f"could not compare {target} with {state.remote}/{target}")

        if not behind:
            ahead = self.ops.is_ancestor(new, old)
            if ahead is None:
                raise RepositoryAccessError(
                    f"could not compare {state.remote}/{target} with {target}"
                )
            if ahead:
                return UpdateSuccess(
                    old_ref=old,
                    new_ref=old,
                    ahead_count=self.ops.count_commits(new, old),
                    dry_run=dry_run,
                )
            raise DivergedError(
                f"{target} and {state.remote}/{target} have diverged; merge manually"
            )

        commit_count = self.ops.count_commits(old, new)
        if not dry_run:
            success, message = self.ops.fast_forward(new)
            head = self.ops.get_head()
            if not success:
                if head != old:
                    raise InternalError(
                        f"fast-forward failed and HEAD moved to {head}; "
                        f"inspect the repository manually: {message}"
                    )
                raise MergeError(f"fast-forward refused: {message}")
            if head != new:
                raise InternalError(f"HEAD is at {head} after fast-forward, expected {new}")

        changed, file_count = self._changed_top_level_entries(old, new)
        return UpdateSuccess(
            old_ref=old,
            new_ref=new,
            commit_count=commit_count,
            changed_files=tuple(changed),
            file_count=file_count,
            dry_run=dry_run,
        )


# =============================================================================
# Eligibility Policy and Update Execution
# =============================================================================


def evaluate_eligibility(state: RepositoryState, descriptor: RepositoryDescriptor) -> Eligibility:
    """Decide whether a repository may be updated automatically.

    The branch check comes first: a dirty repository on the wrong branch is
    reported as being on the wrong branch.
    """
    target = descriptor.target_branch
    if state.branch != target:
        return SkippedWrongBranch(current=state.branch, expected=target)
    if state.dirty:
        return SkippedDirty()
    return Eligible(target_branch=target)


def apply_update(
    repo: GitRepository,
    state: RepositoryState,
    eligibility: Eligibility,
    dry_run: bool = False,
) -> UpdateOutcome:
    """Turn an eligibility decision into an outcome, fast-forwarding if eligible."""
    match eligibility:
        case SkippedWrongBranch() | SkippedDirty():
            return UpdateOutcome(repo.descriptor, eligibility)
        case Eligible():
            return UpdateOutcome(
                repo.descriptor, eligibility, repo.fast_forward(state, dry_run=dry_run)
            )
    raise InternalError(f"unknown eligibility {eligibility!r} for {repo.descriptor.path}")


# =============================================================================
# Pull Coordinator
# =============================================================================


class PullCoordinator:
    """Pull all repositories of a super repo in parallel."""

    def __init__(
        self,
        root: Path,
        max_workers: int | None = None,
        *,
        dry_run: bool = False,
    ):
        self.root = root.expanduser().resolve()
        self.max_workers = max_workers or resolve_max_workers()
        self.dry_run = dry_run

    def pull_one(self, descriptor: RepositoryDescriptor) -> UpdateOutcome:
        """Inspect, evaluate and update one repository. Never raises."""
        repo = GitRepository(self.root, descriptor)
        eligibility: Eligibility | None = None
        try:
            state = repo.inspect(fetch=False)
            eligibility = evaluate_eligibility(state, descriptor)
            logger.info("%s: %s", descriptor.path, eligibility)
            if isinstance(eligibility, Eligible):
                state = repo.fetch(state)
            logger.debug("%s: %s", descriptor.path, state.to_dict())
            return apply_update(repo, state, eligibility, dry_run=self.dry_run)
        except SuperRepoError as e:
            if e.category == ErrorCategory.INTERNAL:
                logger.error("%s: %s", descriptor.path, e)
            else:
                logger.info("%s: %s failure: %s", descriptor.path, e.category, e)
            return UpdateOutcome(descriptor, eligibility, UpdateFailure(e.category, str(e)))
        except Exception as e:
            logger.exception("Unexpected error while pulling %s", descriptor.path)
            return UpdateOutcome(
                descriptor,
                eligibility,
                UpdateFailure(ErrorCategory.INTERNAL, f"{type(e).__name__}: {e}"),
            )

    def run(self, descriptors: Sequence[RepositoryDescriptor]) -> PullReport:
        """Pull every repository and wait for all of them.

        On KeyboardInterrupt, repositories that have not started are dropped,
        the ones in flight are allowed to finish and are still reported.
        """
        slots: list[UpdateOutcome | None] = [None] * len(descriptors)
        interrupted = False

        executor = ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(descriptors) or 1)),
            thread_name_prefix="super-pull",
        )
        futures = {}
        try:
            for index, descriptor in enumerate(descriptors):
                futures[executor.submit(self.pull_one, descriptor)] = index
            for future in as_completed(futures):
                slots[futures[future]] = future.result()
        except KeyboardInterrupt:
            interrupted = True
            logger.warning("Interrupted, waiting for repositories in progress to finish")
            executor.shutdown(wait=True, cancel_futures=True)
            for future, index in futures.items():
                if slots[index] is None and future.done() and not future.cancelled():
                    slots[index] = future.result()
        finally:
            executor.shutdown(wait=True)

        return PullReport(
            outcomes=[outcome for outcome in slots if outcome is not None],
            interrupted=interrupted,
        )

    def pull_all(self) -> PullReport:
        """Load the manifest and pull everything it registers."""
        return self.run(load_manifest(self.root))


# =============================================================================
# Configuration
# =============================================================================

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def resolve_max_workers(value: int | None = None) -> int:
    """Resolve the worker bound.

    Priority order:
    1. Explicit value (--jobs)
    2. $SUPER_JOBS environment variable
    3. Number of available CPUs
    """
    if value is None:
        env_jobs = os.environ.get("SUPER_JOBS", "").strip()
        if not env_jobs:
            return os.cpu_count() or 1
        try:
            value = int(env_jobs)
        except ValueError:
            raise ConfigurationError(f"SUPER_JOBS must be an integer, got '{env_jobs}'") from None
    if value < 1:
        raise ConfigurationError(f"number of jobs must be at least 1, got {value}")
    return value


def resolve_log_level(verbose: bool = False) -> str:
    """Resolve log level from --verbose, then $SUPER_LOG_LEVEL, then WARNING."""
    if verbose:
        return "DEBUG"
    level = os.environ.get("SUPER_LOG_LEVEL", "").strip().upper() or "WARNING"
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"SUPER_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
    return level


def configure_logging(level: str) -> None:
    """Send log records to stderr so they never mix with the report."""
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(threadName)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@contextmanager
def sigterm_as_interrupt() -> Iterator[None]:
    """Treat SIGTERM like Ctrl-C for the duration of the block."""

    def _interrupt(signum, frame):
        raise KeyboardInterrupt

    previous = signal.signal(signal.SIGTERM, _interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="super",
    help="Keep all repositories of a super repo up to date.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"super {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """super: Keep all repositories of a super repo up to date."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(highlight=False)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def _run_git(args: list[str], cwd: Path) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=False,
        env=_git_env(),
    )


@app.command()
def init(
    path: Path = typer.Argument(
        None,
        help="Directory to turn into a super repo",
    ),
):
    """Initialize a new super repo."""
    console, _ = get_console_and_formatter(False)
    target_path = path if path else Path(".")
    target_path.mkdir(parents=True, exist_ok=True)

    result = _run_git(["init"], target_path)
    if result.returncode != 0:
        console.print(
            f"[red]Failed to initialize the super repo:[/] {escape(result.stderr.strip())}"
        )
        raise typer.Exit(1)

    console.print("[green]The super repo was initialized successfully.[/]")
    console.print("You can now add your repos with 'super add <url>'.")


@app.command()
def add(
    repository: str = typer.Argument(
        ...,
        help="URL or path of the repository to add",
    ),
    path: str = typer.Argument(
        None,
        help="Where to place the repository inside the super repo",
    ),
    branch: str = typer.Option(
        None,
        "--branch",
        "-b",
        help="Branch to track (recorded in .gitmodules)",
    ),
    root: Path = typer.Option(
        None,
        "--root",
        help="Super repo directory (default: current directory)",
    ),
):
    """Add a repository to the super repo as a submodule."""
    console, _ = get_console_and_formatter(False)
    target_root = root if root else Path(".")

    args = ["submodule", "add"]
    if branch:
        args += ["--branch", branch]
    args.append(repository)
    if path:
        args.append(path)

    result = _run_git(args, target_root)
    if result.returncode != 0:
        console.print(f"[red]Failed to add the submodule:[/] {escape(result.stderr.strip())}")
        raise typer.Exit(1)

    console.print(f"[green]The submodule {path or repository} was added successfully.[/]")
    console.print(
        f"[dim]You probably want to commit this (along with {MANIFEST_FILE}, "
        "if this is the first submodule).[/]"
    )


@app.command()
def pull(
    path: Path = typer.Argument(
        None,
        help="Super repo directory (default: current directory)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    jobs: int = typer.Option(
        None,
        "--jobs",
        help="Maximum number of repositories pulled at once (default: $SUPER_JOBS or CPU count)",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        "-s",
        help="Pull one repository at a time",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Fetch and show what would be fast-forwarded without changing anything",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every git command to stderr",
    ),
):
    """Fetch and fast-forward every repository on its tracked branch.

    Repositories on another branch or with uncommitted changes are skipped.
    Repositories whose branch has diverged from the remote are reported and
    left alone. Exits with status 1 if any repository failed.
    """
    console, formatter = get_console_and_formatter(json_output)

    try:
        configure_logging(resolve_log_level(verbose))
        max_workers = 1 if sequential else resolve_max_workers(jobs)
        coordinator = PullCoordinator(path if path else Path("."), max_workers, dry_run=dry_run)
        descriptors = load_manifest(coordinator.root)
    except SuperRepoError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(1)

    with sigterm_as_interrupt():
        if not json_output and descriptors:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=Console(stderr=True),
                transient=True,
            ) as progress:
                progress.add_task(f"Pulling {len(descriptors)} repositories...", total=None)
                report = coordinator.run(descriptors)
        else:
            report = coordinator.run(descriptors)

    formatter.print_pull_report(report)
    if report.exit_code:
        raise typer.Exit(report.exit_code)


@app.command("list")
def list_repos(
    path: Path = typer.Argument(
        None,
        help="Super repo directory (default: current directory)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
):
    """List the repositories registered in the super repo."""
    console, formatter = get_console_and_formatter(json_output)
    target_path = path if path else Path(".")

    try:
        descriptors = load_manifest(target_path)
    except SuperRepoError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        raise typer.Exit(1)

    formatter.print_repo_list(descriptors, target_path.resolve())
