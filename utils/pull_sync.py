#!/usr/bin/env python3
"""Create-or-update the pull request carrying the fork's branch upstream.

Open pull requests are looked up by head (``owner:branch``). When several are
open for the same head the policy decides: ``first`` updates the first one in
the order GitHub lists them, ``error`` refuses to choose.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from clients.github_client import GithubApiError, GithubAuthError
from utils.change_models import MultiplePullsPolicy, PullRequestInfo, PullSyncResult, RepositoryRef
from utils.metrics import incr

logger = logging.getLogger(__name__)


class PullSyncError(Exception):
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


def select_pull(pulls, head_label: str, policy: MultiplePullsPolicy = "first"):
    """Pick the open pull request to update, or None to create one.

    Raises:
        PullSyncError: ``AMBIGUOUS`` when several match and policy is ``error``
    """
    if not pulls:
        return None
    if len(pulls) > 1:
        numbers = ", ".join(f"#{p.get('number')}" for p in pulls)
        if policy == "error":
            raise PullSyncError(f"Several open pull requests for {head_label}: {numbers}", code="AMBIGUOUS")
        logger.warning(f"Several open pull requests for {head_label} ({numbers}); updating #{pulls[0].get('number')}")
    return pulls[0]


def sync_pull_request(
    client,
    base: RepositoryRef,
    head_label: str,
    base_branch: str,
    title: str,
    body: str,
    policy: MultiplePullsPolicy = "first",
) -> PullSyncResult:
    """Ensure one open pull request from ``head_label`` into ``base_branch``.

    Args:
        client: GithubClient (or a substitute with the same methods)
        base: Repository receiving the pull request
        head_label: ``actor:branch``
        base_branch: Target branch, normally the default branch
        title: Pull request title
        body: Pull request body
        policy: What to do when several open pull requests match

    Raises:
        PullSyncError: On any API failure or an ambiguous match under ``error``
    """
    try:
        current = client.list_pulls(base.owner, base.name, head=head_label, state="open")
        existing = select_pull(current, head_label, policy)
        if existing is not None:
            data = client.update_pull(
                base.owner, base.name, int(existing["number"]),
                title=title, base=base_branch, body=body, maintainer_can_modify=True,
            )
            action = "updated"
        else:
            data = client.create_pull(
                base.owner, base.name,
                title=title, head=head_label, base=base_branch, body=body, maintainer_can_modify=True,
            )
            action = "created"
        pull = PullRequestInfo.model_validate(data)
    except GithubAuthError as e:
        raise PullSyncError(f"Failed to create or update pull request for {head_label}: {e}", code="UNAUTHORIZED") from e
    except GithubApiError as e:
        raise PullSyncError(f"Failed to create or update pull request for {head_label}: {e}", code=e.code) from e
    except ValidationError as e:
        raise PullSyncError(f"Unexpected pull request response: {e}", code="MALFORMED_RESPONSE") from e

    logger.info(f"{action.capitalize()} pull request #{pull.number} {pull.html_url or ''}".rstrip())
    incr(f"pull.{action}")
    return PullSyncResult(pull=pull, action=action)
