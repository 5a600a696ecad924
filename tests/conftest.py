from __future__ import annotations

import base64
import itertools
from typing import Any, Dict, List, Optional

import pytest

from clients.github_client import GithubApiError
from configs.config import Config
from utils.change_models import RepositoryRef
from utils.lookup import Found, NotFound


def _wrap64(data: bytes) -> str:
    # Mimic the contents API, which wraps base64 at 60 columns
    encoded = base64.b64encode(data).decode("ascii")
    return "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60)) + "\n"


class FakeGithub:
    """In-memory stand-in for GithubClient covering one base repo and one fork."""

    def __init__(self, actor: str = "octocat", owner: str = "upstream", name: str = "hello") -> None:
        self.actor = actor
        self.base = RepositoryRef(owner=owner, name=name)
        self.default_branch = "main"
        self.files: Dict[str, bytes] = {}
        self.forks: Dict[str, Dict[str, Any]] = {}
        self.fork_refs: Dict[str, str] = {}
        self.blobs: Dict[str, bytes] = {}
        self.trees: Dict[str, Dict[str, Any]] = {"tree-0": {"entries": [], "base_tree": None}}
        self.commits: Dict[str, Dict[str, Any]] = {"commit-0": {"tree": "tree-0", "parents": []}}
        self.tip = "commit-0"
        self.pulls: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.inline_limit: Optional[int] = None
        self._ids = itertools.count(1)
        self.closed = False

    # ---- helpers for tests ----
    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures[name]

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def writes(self) -> List[str]:
        write_ops = {
            "create_fork", "create_blob", "create_tree", "create_commit",
            "create_ref", "update_ref", "create_pull", "update_pull",
        }
        return [c[0] for c in self.calls if c[0] in write_ops]

    def merge(self, commit_sha: str) -> None:
        """Apply a commit's staged entries to the base repo and advance its tip."""
        tree = self.trees[self.commits[commit_sha]["tree"]]
        for entry in tree["entries"]:
            if entry["sha"] is None:
                self.files.pop(entry["path"], None)
            else:
                self.files[entry["path"]] = self.blobs[entry["sha"]]
        self.tip = commit_sha

    def add_fork(self) -> None:
        self.forks[self.actor] = {"full_name": f"{self.actor}/{self.base.name}", "fork": True}

    def add_pull(self, number: int, head: str) -> None:
        self.pulls.append({"number": number, "head": head, "state": "open", "title": "old", "html_url": f"https://github.test/pull/{number}"})

    def _descends(self, sha: str, ancestor: str) -> bool:
        pending = [sha]
        while pending:
            current = pending.pop()
            if current == ancestor:
                return True
            pending.extend(self.commits.get(current, {}).get("parents", []))
        return False

    def _next(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # ---- GithubClient surface ----
    def get_authenticated_user(self):
        self._call("get_authenticated_user")
        return {"login": self.actor, "id": 1}

    def get_repository(self, owner, repo):
        self._call("get_repository", owner, repo)
        if (owner, repo) != (self.base.owner, self.base.name):
            raise GithubApiError(f"Not found: GET /repos/{owner}/{repo}", code="NOT_FOUND", status=404)
        return {
            "name": self.base.name,
            "full_name": self.base.full_name,
            "default_branch": self.default_branch,
            "owner": {"login": self.base.owner},
        }

    def lookup_repository(self, owner, repo):
        self._call("lookup_repository", owner, repo)
        if owner in self.forks and repo == self.base.name:
            return Found(self.forks[owner])
        return NotFound(f"repository {owner}/{repo}")

    def create_fork(self, owner, repo):
        self._call("create_fork", owner, repo)
        self.add_fork()
        return self.forks[self.actor]

    def get_ref(self, owner, repo, ref):
        self._call("get_ref", owner, repo, ref)
        assert ref == f"heads/{self.default_branch}"
        return {"ref": f"refs/{ref}", "object": {"sha": self.tip, "type": "commit"}}

    def get_commit(self, owner, repo, sha):
        self._call("get_commit", owner, repo, sha)
        return {"sha": sha, "tree": {"sha": self.commits[sha]["tree"]}, "message": "m"}

    def get_tree(self, owner, repo, sha):
        self._call("get_tree", owner, repo, sha)
        return {"sha": sha, "tree": [], "truncated": False}

    def get_blob(self, owner, repo, sha):
        self._call("get_blob", owner, repo, sha)
        for data in self.files.values():
            if f"sha-{len(data)}-{hash(data)}" == sha:
                return {"sha": sha, "content": _wrap64(data), "encoding": "base64"}
        raise GithubApiError("Not found: blob", code="NOT_FOUND", status=404)

    def lookup_content(self, owner, repo, path, ref):
        self._call("lookup_content", owner, repo, path, ref)
        assert (owner, repo) == (self.base.owner, self.base.name)
        assert ref == self.tip
        if path in self.files:
            data = self.files[path]
            sha = f"sha-{len(data)}-{hash(data)}"
            if self.inline_limit is not None and len(data) > self.inline_limit:
                return Found({"type": "file", "path": path, "sha": sha, "size": len(data), "content": "", "encoding": "none"})
            return Found({"type": "file", "path": path, "sha": sha, "size": len(data), "content": _wrap64(data), "encoding": "base64"})
        children = [p for p in self.files if p.startswith(path + "/")]
        if children:
            return Found([{"type": "file", "path": p} for p in children])
        return NotFound(path)

    def create_blob(self, owner, repo, content):
        self._call("create_blob", owner, repo, content)
        sha = self._next("blob")
        self.blobs[sha] = content
        return {"sha": sha}

    def create_tree(self, owner, repo, entries, base_tree):
        self._call("create_tree", owner, repo, entries, base_tree)
        sha = self._next("tree")
        self.trees[sha] = {"entries": entries, "base_tree": base_tree}
        return {"sha": sha}

    def create_commit(self, owner, repo, message, tree, parents):
        self._call("create_commit", owner, repo, message, tree, parents)
        sha = self._next("commit")
        self.commits[sha] = {"tree": tree, "parents": parents, "message": message}
        return {"sha": sha, "tree": {"sha": tree}, "message": message}

    def list_matching_refs(self, owner, repo, ref):
        self._call("list_matching_refs", owner, repo, ref)
        prefix = f"refs/{ref}"
        return [{"ref": r, "object": {"sha": s}} for r, s in self.fork_refs.items() if r.startswith(prefix)]

    def create_ref(self, owner, repo, ref, sha):
        self._call("create_ref", owner, repo, ref, sha)
        assert ref not in self.fork_refs
        self.fork_refs[ref] = sha
        return {"ref": ref, "object": {"sha": sha}}

    def update_ref(self, owner, repo, ref, sha, force=False):
        self._call("update_ref", owner, repo, ref, sha, force)
        full = f"refs/{ref}"
        assert full in self.fork_refs
        current = self.fork_refs[full]
        if not force and sha in self.commits and not self._descends(sha, current):
            raise GithubApiError(
                "Validation failed: PATCH ref: Update is not a fast forward", code="VALIDATION", status=422
            )
        self.fork_refs[full] = sha
        return {"ref": full, "object": {"sha": sha}}

    def list_pulls(self, owner, repo, head, state="open"):
        self._call("list_pulls", owner, repo, head, state)
        return [p for p in self.pulls if p["head"] == head and p["state"] == state]

    def create_pull(self, owner, repo, *, title, head, base, body, maintainer_can_modify=True):
        self._call("create_pull", owner, repo, title, head, base, body, maintainer_can_modify)
        number = 100 + len(self.pulls)
        pull = {"number": number, "head": head, "state": "open", "title": title, "body": body,
                "html_url": f"https://github.test/pull/{number}"}
        self.pulls.append(pull)
        return pull

    def update_pull(self, owner, repo, number, *, title, base, body, maintainer_can_modify=True):
        self._call("update_pull", owner, repo, number, title, base, body, maintainer_can_modify)
        for pull in self.pulls:
            if pull["number"] == number:
                pull.update({"title": title, "body": body})
                return pull
        raise GithubApiError("Not found: pull", code="NOT_FOUND", status=404)

    def close(self):
        self.closed = True


@pytest.fixture
def fake() -> FakeGithub:
    return FakeGithub()


@pytest.fixture(autouse=True)
def _isolated_metrics(tmp_path, monkeypatch):
    monkeypatch.setattr(Config, "METRICS_ENABLED", False)
    monkeypatch.setattr(Config, "METRICS_ROOT", str(tmp_path / "metrics"))
