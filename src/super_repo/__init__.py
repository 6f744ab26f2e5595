"""super-repo: Keep every repository of a super repository up to date."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .core import (
    DivergedError,
    Eligibility,
    Eligible,
    ErrorCategory,
    FetchError,
    GitOperations,
    GitRepository,
    InternalError,
    ManifestError,
    MergeError,
    OutcomeStatus,
    PullCoordinator,
    PullReport,
    PullSummary,
    RepositoryAccessError,
    RepositoryDescriptor,
    RepositoryState,
    SkippedDirty,
    SkippedWrongBranch,
    SuperRepoError,
    UpdateFailure,
    UpdateOutcome,
    UpdateSuccess,
    app,
    apply_update,
    evaluate_eligibility,
    load_manifest,
)
from .formatters import OutputFormatter, render_report
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "Eligibility",
    "Eligible",
    "OutcomeStatus",
    "PullReport",
    "PullSummary",
    "RepositoryDescriptor",
    "RepositoryState",
    "SkippedDirty",
    "SkippedWrongBranch",
    "UpdateFailure",
    "UpdateOutcome",
    "UpdateSuccess",
    # Errors
    "DivergedError",
    "ErrorCategory",
    "FetchError",
    "InternalError",
    "ManifestError",
    "MergeError",
    "RepositoryAccessError",
    "SuperRepoError",
    # Operations
    "GitOperations",
    "GitRepository",
    "PullCoordinator",
    "apply_update",
    "evaluate_eligibility",
    "load_manifest",
    # Functions
    "get_tool_schema",
    "render_report",
    # Formatters
    "OutputFormatter",
]
