#!/usr/bin/env python3
"""Pydantic models for the fork, branch and pull request workflow.

This module defines the transient request/response shapes used by one run:
repository identifiers, the resolved base context, file changes, staged tree
entries and the results of each synchronization step.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from configs.config import Config


# Type aliases for better readability
ChangeOperation = Literal["add", "remove"]
SyncAction = Literal["created", "updated"]
MultiplePullsPolicy = Literal["first", "error"]


class RepositoryRef(BaseModel):
    """Identifies a base or fork repository."""

    owner: str = Field(..., min_length=1, description="Repository owner (user or organization)")
    name: str = Field(..., min_length=1, description="Repository name")

    model_config = {"extra": "ignore", "frozen": True}

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, spec: str) -> "RepositoryRef":
        """Parse an ``owner/repo`` string.

        Raises:
            ValueError: If the string is not exactly two non-empty segments
        """
        parts = (spec or "").strip().split("/")
        if len(parts) != 2 or not all(p.strip() for p in parts):
            raise ValueError(f"Invalid repository '{spec}', expected owner/repo")
        return cls(owner=parts[0].strip(), name=parts[1].strip())


class UserInfo(BaseModel):
    """Basic user information."""

    login: str = Field(..., description="GitHub username")

    model_config = {"extra": "ignore", "frozen": True}


class RepoInfo(BaseModel):
    """Repository metadata needed by the workflow."""

    name: str = Field(..., description="Repository name")
    full_name: str = Field(..., description="owner/name")
    default_branch: str = Field(..., description="Default branch name")
    owner: UserInfo = Field(..., description="Repository owner")
    html_url: Optional[str] = Field(None, description="GitHub URL for the repository")
    fork: bool = Field(False, description="Whether the repository is a fork")

    model_config = {"extra": "ignore", "frozen": True}


class ObjectPointer(BaseModel):
    sha: str

    model_config = {"extra": "ignore", "frozen": True}


class GitRef(BaseModel):
    """A named pointer to a commit."""

    ref: str = Field(..., description="Full ref name, e.g. refs/heads/main")
    object: ObjectPointer = Field(..., description="Target object")

    model_config = {"extra": "ignore", "frozen": True}

    @property
    def sha(self) -> str:
        return self.object.sha


class GitCommit(BaseModel):
    sha: str = Field(..., description="Commit SHA")
    tree: ObjectPointer = Field(..., description="Root tree of the commit")
    message: Optional[str] = Field(None, description="Commit message")
    html_url: Optional[str] = Field(None, description="GitHub URL for the commit")

    model_config = {"extra": "ignore", "frozen": True}


class GitTree(BaseModel):
    sha: str = Field(..., description="Tree SHA")

    model_config = {"extra": "ignore", "frozen": True}


class GitBlob(BaseModel):
    sha: str = Field(..., description="Blob SHA")
    content: Optional[str] = Field(None, description="Content, base64 when fetched")

    model_config = {"extra": "ignore", "frozen": True}


class CurrentContext(BaseModel):
    """Actor, base repository and default-branch tip, resolved once per run."""

    user: UserInfo
    repo: RepoInfo
    ref: GitRef
    commit: GitCommit
    tree: GitTree

    model_config = {"extra": "ignore", "frozen": True}

    @property
    def base(self) -> RepositoryRef:
        return RepositoryRef(owner=self.repo.owner.login, name=self.repo.name)

    @property
    def head(self) -> RepositoryRef:
        """The actor's fork, which carries the base repository's name."""
        return RepositoryRef(owner=self.user.login, name=self.repo.name)

    @property
    def tip_sha(self) -> str:
        return self.ref.sha

    @property
    def tip_tree_sha(self) -> str:
        return self.tree.sha


class FileChange(BaseModel):
    """One addition or removal at a destination path."""

    local_path: Optional[str] = Field(None, description="Local source file for additions")
    destination_path: str = Field(..., description="Path inside the repository")
    operation: ChangeOperation = Field(..., description="add or remove")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("destination_path")
    @classmethod
    def _normalize_destination(cls, value: str) -> str:
        path = (value or "").strip().lstrip("/")
        if not path or path.endswith("/"):
            raise ValueError(f"Invalid destination path '{value}'")
        return path

    @model_validator(mode="after")
    def _check_source(self) -> "FileChange":
        if self.operation == "add" and not self.local_path:
            raise ValueError(f"Addition of '{self.destination_path}' needs a local file")
        if self.operation == "remove" and self.local_path:
            raise ValueError(f"Removal of '{self.destination_path}' takes no local file")
        return self


class TreeEntry(BaseModel):
    """A staged tree entry; ``sha=None`` marks a deletion."""

    path: str
    mode: str = Field(default_factory=lambda: Config.DEFAULT_FILE_MODE)
    type: Literal["blob"] = "blob"
    sha: Optional[str] = None

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def is_deletion(self) -> bool:
        return self.sha is None


class TreeMutation(BaseModel):
    """Result of staging a change set; ``commit is None`` means nothing to do."""

    commit: Optional[GitCommit] = None
    staged: List[str] = Field(default_factory=list, description="Destination paths written or removed")
    skipped: List[str] = Field(default_factory=list, description="Destination paths left untouched")

    @property
    def changed(self) -> bool:
        return self.commit is not None


class RefSyncResult(BaseModel):
    ref: str
    sha: str
    action: SyncAction


class PullRequestInfo(BaseModel):
    number: int = Field(..., description="Pull request number")
    html_url: Optional[str] = Field(None, description="GitHub URL for the PR")
    title: Optional[str] = Field(None, description="Pull request title")
    state: Optional[str] = Field(None, description="Pull request state")

    model_config = {"extra": "ignore"}


class PullSyncResult(BaseModel):
    pull: PullRequestInfo
    action: SyncAction


class PullRequestPlan(BaseModel):
    """Validated inputs for one run."""

    base: RepositoryRef
    branch: str = Field(..., min_length=1, description="Head branch on the fork")
    title: str = Field(..., min_length=1, description="Pull request title")
    body: str = Field("", description="Pull request body")
    message: Optional[str] = Field(None, description="Commit message, defaults to the title")
    changes: List[FileChange] = Field(..., min_length=1)
    force: bool = Field(False, description="Allow non-fast-forward branch updates")
    multiple_pulls: MultiplePullsPolicy = "first"

    @field_validator("branch")
    @classmethod
    def _strip_heads_prefix(cls, value: str) -> str:
        branch = value.strip()
        for prefix in ("refs/heads/", "heads/"):
            if branch.startswith(prefix):
                branch = branch[len(prefix):]
        if not branch:
            raise ValueError("Branch name is empty")
        return branch

    @property
    def commit_message(self) -> str:
        return self.message or self.title


class RunSummary(BaseModel):
    """What a run did, for printing or JSON output."""

    actor: str
    base: str
    fork: str
    staged: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    commit_sha: Optional[str] = None
    ref: Optional[RefSyncResult] = None
    pull: Optional[PullSyncResult] = None

    @property
    def noop(self) -> bool:
        return self.commit_sha is None
