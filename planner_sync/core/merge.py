"""Field-level reconciliation of local and remote planner documents."""

from typing import Any


def merge_documents(local: dict[str, Any] | None, remote: dict[str, Any] | None) -> dict[str, Any]:
    """Shallow-merge two JSON objects, remote values winning per key.

    Keys present only locally are kept and keys present only remotely are
    adopted. There is no timestamp comparison: a local change to a key that
    also exists remotely is overwritten. Neither input is modified.

    Args:
        local: Local document (None is treated as empty)
        remote: Remote document, or None when no remote copy exists

    Returns:
        New merged document
    """
    merged = dict(local or {})
    merged.update(remote or {})
    return merged
