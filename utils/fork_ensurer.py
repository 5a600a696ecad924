#!/usr/bin/env python3
"""Make sure the actor owns a fork of the base repository."""

import logging
from typing import Any, Dict, Tuple

from clients.github_client import GithubApiError, GithubAuthError
from utils.change_models import CurrentContext
from utils.lookup import NotFound
from utils.metrics import incr

logger = logging.getLogger(__name__)


class ForkError(Exception):
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


def ensure_fork(client, context: CurrentContext) -> Tuple[Dict[str, Any], bool]:
    """Return ``(fork, created)`` for ``actor/<base repo name>``.

    A missing fork is requested and returned immediately; GitHub completes the
    copy asynchronously and this does not wait for it.
    """
    head = context.head
    try:
        result = client.lookup_repository(head.owner, head.name)
        if not isinstance(result, NotFound):
            logger.info(f"Using existing fork {head.full_name}")
            incr("fork.existing")
            return result.value, False
        fork = client.create_fork(context.base.owner, context.base.name)
    except GithubAuthError as e:
        raise ForkError(f"Failed to get or create fork {head.full_name}: {e}", code="UNAUTHORIZED") from e
    except GithubApiError as e:
        raise ForkError(f"Failed to get or create fork {head.full_name}: {e}", code=e.code) from e

    logger.info(f"Created fork {fork.get('full_name', head.full_name)}")
    incr("fork.created")
    return fork, True
