#!/usr/bin/env python3
"""Create-or-update a branch on the fork so it points at a given commit."""

import logging

from clients.github_client import GithubApiError, GithubAuthError
from utils.change_models import RefSyncResult, RepositoryRef
from utils.metrics import incr

logger = logging.getLogger(__name__)


class RefSyncError(Exception):
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


def has_exact_ref(refs, branch: str) -> bool:
    """True if ``refs`` (a matching-refs listing) contains exactly ``refs/heads/<branch>``.

    The listing is a prefix match: asking for ``feature`` also returns
    ``feature-2`` and ``feature/x``.
    """
    wanted = f"refs/heads/{branch}"
    return any(r.get("ref") == wanted for r in refs)


def sync_branch(client, head: RepositoryRef, branch: str, sha: str, force: bool = False) -> RefSyncResult:
    """Ensure ``branch`` exists on ``head`` and points at ``sha``.

    Args:
        client: GithubClient (or a substitute with the same methods)
        head: Repository carrying the branch (the actor's fork)
        branch: Branch name without the ``refs/heads/`` prefix
        sha: Commit the branch must point at
        force: Permit non-fast-forward updates of an existing branch

    Raises:
        RefSyncError: On any API failure, including a rejected non-forced update
    """
    try:
        matching = client.list_matching_refs(head.owner, head.name, f"heads/{branch}")
        if has_exact_ref(matching, branch):
            data = client.update_ref(head.owner, head.name, f"heads/{branch}", sha, force=force)
            action = "updated"
        else:
            data = client.create_ref(head.owner, head.name, f"refs/heads/{branch}", sha)
            action = "created"
    except GithubAuthError as e:
        raise RefSyncError(f"Failed to create or update branch {branch}: {e}", code="UNAUTHORIZED") from e
    except GithubApiError as e:
        hint = " (use --force to overwrite diverged history)" if e.code == "VALIDATION" and not force else ""
        raise RefSyncError(f"Failed to create or update branch {branch}: {e}{hint}", code=e.code) from e

    ref_name = data.get("ref") or f"refs/heads/{branch}"
    logger.info(f"{action.capitalize()} branch {ref_name}")
    incr(f"ref.{action}")
    return RefSyncResult(ref=ref_name, sha=(data.get("object") or {}).get("sha", sha), action=action)
