#!/usr/bin/env python3
"""Stage file additions and removals as one commit on top of the base tip.

Each destination is checked against the base repository at the tip commit so
that unchanged files and removals of absent paths are dropped. When nothing is
left, no tree or commit is created and the caller skips the ref and pull
request steps.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from clients.github_client import GithubApiError, GithubAuthError
from utils.change_models import CurrentContext, FileChange, GitBlob, GitCommit, GitTree, TreeEntry, TreeMutation
from utils.lookup import NotFound
from utils.metrics import incr

logger = logging.getLogger(__name__)


class TreeMutationError(Exception):
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


def _decode(content: str) -> bytes:
    # The contents API wraps base64 at 60 columns
    try:
        return base64.b64decode("".join(content.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise TreeMutationError(f"Undecodable content from GitHub: {e}", code="MALFORMED_RESPONSE") from e


class TreeMutator:
    """Builds a single commit from an ordered list of FileChange."""

    def __init__(self, client, context: CurrentContext):
        self.client = client
        self.context = context

    # ---- reads ----
    def _current(self, path: str) -> Optional[Dict[str, Any]]:
        """Return content metadata at ``path`` on the tip, or None when absent."""
        base = self.context.base
        result = self.client.lookup_content(base.owner, base.name, path, self.context.tip_sha)
        if isinstance(result, NotFound):
            return None
        data = result.value
        if isinstance(data, list) or data.get("type") == "dir":
            raise TreeMutationError(f"Destination '{path}' is a directory", code="VALIDATION")
        return data

    def _current_bytes(self, data: Dict[str, Any]) -> Optional[bytes]:
        """Bytes of an existing file entry, or None for non-file entries."""
        if data.get("type", "file") != "file":
            return None
        content = data.get("content") or ""
        if data.get("encoding") == "base64" and (content or not data.get("size")):
            return _decode(content)
        # Files over the inline limit come back without content
        base = self.context.base
        if not data.get("sha"):
            raise TreeMutationError(f"Content entry for '{data.get('path')}' has no sha", code="MALFORMED_RESPONSE")
        blob = GitBlob.model_validate(self.client.get_blob(base.owner, base.name, data["sha"]))
        return _decode(blob.content or "")

    # ---- staging ----
    def _stage_addition(self, change: FileChange) -> Optional[TreeEntry]:
        path = change.destination_path
        try:
            local = Path(change.local_path).read_bytes()
        except OSError as e:
            raise TreeMutationError(f"Cannot read local file {change.local_path}: {e}", code="LOCAL_READ") from e

        existing = self._current(path)
        if existing is not None and self._current_bytes(existing) == local:
            logger.info(f"Unchanged, skipping {path}")
            return None

        head = self.context.head
        blob = GitBlob.model_validate(self.client.create_blob(head.owner, head.name, local))
        logger.debug(f"✓ Created blob {blob.sha} for {path} ({len(local)} bytes)")
        return TreeEntry(path=path, sha=blob.sha)

    def _stage_removal(self, change: FileChange) -> Optional[TreeEntry]:
        path = change.destination_path
        if self._current(path) is None:
            logger.info(f"Not present, skipping removal of {path}")
            return None
        return TreeEntry(path=path, sha=None)

    def stage(self, changes: Sequence[FileChange]) -> Tuple[List[TreeEntry], List[str]]:
        """Resolve each change to a tree entry, dropping no-ops. Creates blobs only.

        Returns:
            (entries to commit, destination paths skipped)
        """
        entries: List[TreeEntry] = []
        skipped: List[str] = []
        for change in changes:
            if change.operation == "add":
                entry = self._stage_addition(change)
            else:
                entry = self._stage_removal(change)
            if entry is None:
                skipped.append(change.destination_path)
            else:
                entries.append(entry)
        return entries, skipped

    def apply(self, changes: Sequence[FileChange], message: str) -> TreeMutation:
        """Stage ``changes`` and commit them on top of the tip.

        Returns:
            TreeMutation whose ``commit`` is None when every change was a no-op

        Raises:
            TreeMutationError: On local read failures or any GitHub error
        """
        try:
            entries, skipped = self.stage(changes)
            mutation = TreeMutation(staged=[e.path for e in entries], skipped=skipped)
            incr("tree.files_staged", len(entries))
            incr("tree.files_skipped", len(skipped))
            if not entries:
                logger.info("No changes to commit")
                return mutation

            head = self.context.head
            tree = GitTree.model_validate(self.client.create_tree(
                head.owner,
                head.name,
                [e.model_dump() for e in entries],
                base_tree=self.context.tip_tree_sha,
            ))
            commit = GitCommit.model_validate(
                self.client.create_commit(head.owner, head.name, message, tree.sha, [self.context.tip_sha])
            )
        except GithubAuthError as e:
            raise TreeMutationError(f"Failed to create commit: {e}", code="UNAUTHORIZED") from e
        except GithubApiError as e:
            raise TreeMutationError(f"Failed to create commit: {e}", code=e.code) from e
        except ValidationError as e:
            raise TreeMutationError(f"Failed to create commit: {e}", code="MALFORMED_RESPONSE") from e

        logger.info(f"Created commit {commit.sha}")
        return mutation.model_copy(update={"commit": commit})
