#!/usr/bin/env python3
"""Resolve the actor and the base repository's default-branch tip.

Builds the CurrentContext used by every later step: authenticated user, base
repository metadata, and the default branch ref → tip commit → tip tree.
"""

import logging

from pydantic import ValidationError

from clients.github_client import GithubApiError, GithubAuthError
from utils.change_models import (
    CurrentContext, GitCommit, GitRef, GitTree, RepoInfo, RepositoryRef, UserInfo
)

# Set up logging
logger = logging.getLogger(__name__)


class ContextError(Exception):
    """Raised when the actor or base repository cannot be resolved."""
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


def _code(e: Exception) -> str:
    if isinstance(e, GithubAuthError):
        return "UNAUTHORIZED"
    if isinstance(e, ValidationError):
        return "MALFORMED_RESPONSE"
    return getattr(e, "code", "UNKNOWN")


def resolve_context(client, base: RepositoryRef) -> CurrentContext:
    """Resolve the authenticated actor and the base repository tip.

    Args:
        client: GithubClient (or a substitute with the same methods)
        base: Base repository receiving the pull request

    Returns:
        Frozen CurrentContext for this run

    Raises:
        ContextError: Naming the phase that failed
    """
    try:
        user = UserInfo.model_validate(client.get_authenticated_user())
    except (GithubApiError, GithubAuthError, ValidationError) as e:
        raise ContextError(f"Failed to get current user: {e}", code=_code(e)) from e

    try:
        repo = RepoInfo.model_validate(client.get_repository(base.owner, base.name))
    except (GithubApiError, GithubAuthError, ValidationError) as e:
        raise ContextError(f"Failed to get base repo: {e}", code=_code(e)) from e

    # The repository API resolves renames and redirects; keep addressing the
    # repository under its canonical owner/name from here on.
    owner, name = repo.owner.login, repo.name
    try:
        ref = GitRef.model_validate(client.get_ref(owner, name, f"heads/{repo.default_branch}"))
        commit = GitCommit.model_validate(client.get_commit(owner, name, ref.sha))
        tree = GitTree.model_validate(client.get_tree(owner, name, commit.tree.sha))
    except (GithubApiError, GithubAuthError, ValidationError) as e:
        raise ContextError(f"Failed to get base repo default ref: {e}", code=_code(e)) from e

    logger.info(f"User: {user.login}, Base repository: {repo.full_name}")
    logger.debug(f"✓ Default branch {repo.default_branch} at {ref.sha}")
    return CurrentContext(user=user, repo=repo, ref=ref, commit=commit, tree=tree)
