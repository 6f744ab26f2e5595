"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__

_PATH_PROPERTY = {
    "type": "string",
    "description": "Super repo directory (default: current directory)",
    "default": ".",
}

_JSON_PROPERTY = {
    "type": "boolean",
    "description": "Output as JSON for machine parsing",
    "default": False,
}


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "super",
        "version": __version__,
        "description": "Keep all repositories of a super repo up to date. A super repo is a git repository whose submodules (listed in .gitmodules) are the managed repositories. Pulling works on every repository in parallel: the ones on their tracked branch with a clean working tree are fetched and fast-forwarded.",
        "usage": "super <command> [path] [options]",
        "tools": [
            {
                "name": "init",
                "description": "Initialize a new super repo (git init).",
                "inputSchema": {
                    "type": "object",
                    "properties": {"path": _PATH_PROPERTY},
                    "required": [],
                },
            },
            {
                "name": "add",
                "description": "Add a repository to the super repo as a git submodule. Commit .gitmodules afterwards.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "repository": {
                            "type": "string",
                            "description": "URL or path of the repository to add",
                        },
                        "path": {
                            "type": "string",
                            "description": "Where to place the repository inside the super repo",
                        },
                        "branch": {
                            "type": "string",
                            "description": "Branch to track, recorded in .gitmodules (default: master)",
                        },
                        "root": _PATH_PROPERTY,
                    },
                    "required": ["repository"],
                },
            },
            {
                "name": "pull",
                "description": "Fetch and fast-forward every repository that is on its tracked branch and clean. Repositories on another branch or with uncommitted changes are skipped without fetching. Diverged repositories are reported and never merged. Exit status is 1 if any repository failed.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "path": _PATH_PROPERTY,
                        "json": _JSON_PROPERTY,
                        "jobs": {
                            "type": "integer",
                            "description": "Maximum number of repositories pulled at once (default: $SUPER_JOBS or CPU count)",
                            "minimum": 1,
                        },
                        "sequential": {
                            "type": "boolean",
                            "description": "Pull one repository at a time",
                            "default": False,
                        },
                        "dry_run": {
                            "type": "boolean",
                            "description": "Fetch and show what would be fast-forwarded without changing anything",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "repositories": {
                            "type": "array",
                            "description": "One entry per registered repository, in .gitmodules order",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "name": {"type": "string"},
                                    "path": {"type": "string"},
                                    "branch": {"type": ["string", "null"]},
                                    "target_branch": {"type": "string"},
                                    "status": {
                                        "type": "string",
                                        "enum": [
                                            "updated",
                                            "up_to_date",
                                            "would_update",
                                            "skipped_wrong_branch",
                                            "skipped_dirty",
                                            "failed",
                                            "internal_error",
                                        ],
                                    },
                                    "eligibility": {"type": ["object", "null"]},
                                    "result": {"type": ["object", "null"]},
                                },
                            },
                        },
                        "summary": {
                            "type": "object",
                            "properties": {
                                "total": {"type": "integer"},
                                "updated": {"type": "integer"},
                                "up_to_date": {"type": "integer"},
                                "would_update": {"type": "integer"},
                                "skipped": {"type": "integer"},
                                "failed": {"type": "integer"},
                            },
                        },
                        "interrupted": {"type": "boolean"},
                    },
                },
                "examples": [
                    {
                        "description": "Pull every repository of the super repo in the current directory",
                        "command": "super pull --json",
                    },
                    {
                        "description": "Preview with at most four parallel fetches",
                        "command": "super pull ~/src --dry-run --jobs 4 --json",
                    },
                ],
            },
            {
                "name": "list",
                "description": "List the repositories registered in the super repo with the branch each one tracks.",
                "inputSchema": {
                    "type": "object",
                    "properties": {"path": _PATH_PROPERTY, "json": _JSON_PROPERTY},
                    "required": [],
                },
            },
        ],
        "environment": {
            "SUPER_JOBS": "Default worker bound for pull",
            "SUPER_LOG_LEVEL": "Log level for stderr diagnostics (CRITICAL, ERROR, WARNING, INFO, DEBUG)",
        },
        "notes": [
            "A submodule without a branch in .gitmodules tracks 'master'",
            "Only fast-forwards are performed; diverged repositories need a manual merge",
            "Use 'pull --dry-run --json' first to see what would change",
        ],
    }
