#!/usr/bin/env python3
"""GitHub REST API client for fork, branch and pull request operations.

This module wraps the handful of REST endpoints the fork pull request agent
needs (users, repos, git refs/commits/trees/blobs, contents and pulls) behind
an explicitly constructed client. Callers receive plain response dictionaries;
expected "not found" answers come back as ``NotFound`` outcomes and every
other failure is raised as a typed error.
"""

import base64
import logging
from typing import Dict, List, Any, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from configs.config import Config
from utils.lookup import Found, NotFound, Lookup

# Set up logging
logger = logging.getLogger(__name__)


class GithubAuthError(Exception):
    """Raised when GitHub API authentication fails."""
    pass


class GithubApiError(Exception):
    """Raised when GitHub API operations fail, with a typed code and HTTP status."""

    def __init__(self, message: str, code: str = "UNKNOWN", status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("message") or "")
    return ""


class GithubClient:
    """Client for the GitHub REST API, owning one authenticated session."""

    def __init__(
        self,
        token: Optional[str] = None,
        timeout_s: Optional[int] = None,
        base_url: Optional[str] = None,
        retry_total: Optional[int] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub access token (defaults to GITHUB_TOKEN / GITHUB_PAT)
            timeout_s: Request timeout in seconds (defaults to Config.HTTP_TIMEOUT_S)
            base_url: REST API root (defaults to Config.GITHUB_API_URL)
            retry_total: Retries for idempotent requests (defaults to Config.HTTP_RETRY_TOTAL)

        Raises:
            GithubAuthError: If no valid token is provided
        """
        github_config = Config.get_github_config()
        self.token = (token or github_config["token"] or "").strip()
        self.timeout_s = timeout_s or github_config["timeout_s"]
        self.base_url = (base_url or github_config["base_url"]).rstrip("/")

        if not self.token:
            raise GithubAuthError("GitHub token is required (GITHUB_TOKEN or GITHUB_PAT env var)")

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'token {self.token}',
            'Accept': 'application/vnd.github+json',
            'User-Agent': github_config["user_agent"],
        })

        total = github_config["retry_total"] if retry_total is None else retry_total
        retry_strategy = Retry(
            total=total,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=github_config["retry_backoff"],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

        logger.info("GitHub client initialized")

    # ---- HTTP helpers ----
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {path}")
        try:
            response = self.session.request(method, url, params=params, json=payload, timeout=self.timeout_s)
        except requests.Timeout as e:
            raise GithubApiError(f"Timeout after {self.timeout_s}s: {method} {path}", code="TIMEOUT") from e
        except requests.RequestException as e:
            raise GithubApiError(f"Request failed: {method} {path}: {e}", code="NETWORK") from e

        sc = response.status_code
        if sc < 400:
            if sc == 204 or not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise GithubApiError(
                    f"Malformed response: {method} {path} (HTTP {sc}) is not JSON", code="MALFORMED_RESPONSE", status=sc
                ) from e

        detail = _error_message(response)
        suffix = f": {detail}" if detail else ""
        if sc == 401:
            raise GithubAuthError(f"Invalid GitHub token (HTTP 401){suffix}")
        if sc == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                raise GithubApiError(f"Rate limited: {method} {path}{suffix}", code="RATE_LIMIT", status=sc)
            raise GithubAuthError(f"Insufficient permissions for {method} {path} (HTTP 403){suffix}")
        if sc == 404:
            raise GithubApiError(f"Not found: {method} {path}{suffix}", code="NOT_FOUND", status=sc)
        if sc == 409:
            raise GithubApiError(f"Conflict: {method} {path}{suffix}", code="CONFLICT", status=sc)
        if sc == 422:
            raise GithubApiError(f"Validation failed: {method} {path}{suffix}", code="VALIDATION", status=sc)
        if sc == 429:
            raise GithubApiError(f"Rate limited: {method} {path}{suffix}", code="RATE_LIMIT", status=sc)
        if sc >= 500:
            raise GithubApiError(f"GitHub server error: HTTP {sc}{suffix}", code="SERVER", status=sc)
        raise GithubApiError(f"GitHub API error: HTTP {sc}{suffix}", status=sc)

    def _lookup(self, path: str, what: str, params: Optional[Dict[str, Any]] = None) -> Lookup[Any]:
        try:
            return Found(self._request("GET", path, params=params))
        except GithubApiError as e:
            if e.code == "NOT_FOUND":
                logger.debug(f"{what} not found")
                return NotFound(what)
            raise

    def _paginate(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            query = dict(params or {})
            query.update({"page": page, "per_page": Config.PAGE_SIZE})
            batch = self._request("GET", path, params=query)
            if not batch:
                break
            items.extend(batch)
            if len(batch) < Config.PAGE_SIZE:
                break
            page += 1
            if page > Config.MAX_PAGES:
                logger.warning(f"{path} returned more than {Config.MAX_PAGES} pages, truncating")
                break
        return items

    # ---- Users and repositories ----
    def get_authenticated_user(self) -> Dict[str, Any]:
        return self._request("GET", "/user")

    def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        logger.info(f"Fetching repository metadata: {owner}/{repo}")
        return self._request("GET", f"/repos/{owner}/{repo}")

    def lookup_repository(self, owner: str, repo: str) -> Lookup[Dict[str, Any]]:
        return self._lookup(f"/repos/{owner}/{repo}", f"repository {owner}/{repo}")

    def create_fork(self, owner: str, repo: str) -> Dict[str, Any]:
        """Request a fork of owner/repo for the authenticated user.

        GitHub answers 202 and finishes the copy asynchronously.
        """
        return self._request("POST", f"/repos/{owner}/{repo}/forks", payload={})

    # ---- Git database ----
    def get_ref(self, owner: str, repo: str, ref: str) -> Dict[str, Any]:
        """Fetch a single ref, e.g. ``heads/main``."""
        return self._request("GET", f"/repos/{owner}/{repo}/git/ref/{ref}")

    def list_matching_refs(self, owner: str, repo: str, ref: str) -> List[Dict[str, Any]]:
        """List refs whose name starts with ``ref``.

        This returns matching prefixes, not exact matches.
        """
        return self._paginate(f"/repos/{owner}/{repo}/git/matching-refs/{ref}")

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> Dict[str, Any]:
        return self._request("POST", f"/repos/{owner}/{repo}/git/refs", payload={"ref": ref, "sha": sha})

    def update_ref(self, owner: str, repo: str, ref: str, sha: str, force: bool = False) -> Dict[str, Any]:
        return self._request(
            "PATCH", f"/repos/{owner}/{repo}/git/refs/{ref}", payload={"sha": sha, "force": force}
        )

    def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")

    def get_tree(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}/git/trees/{sha}")

    def get_blob(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}/git/blobs/{sha}")

    def create_blob(self, owner: str, repo: str, content: bytes) -> Dict[str, Any]:
        payload = {"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"}
        return self._request("POST", f"/repos/{owner}/{repo}/git/blobs", payload=payload)

    def create_tree(self, owner: str, repo: str, entries: List[Dict[str, Any]], base_tree: str) -> Dict[str, Any]:
        payload = {"tree": entries, "base_tree": base_tree}
        return self._request("POST", f"/repos/{owner}/{repo}/git/trees", payload=payload)

    def create_commit(self, owner: str, repo: str, message: str, tree: str, parents: List[str]) -> Dict[str, Any]:
        payload = {"message": message, "tree": tree, "parents": parents}
        return self._request("POST", f"/repos/{owner}/{repo}/git/commits", payload=payload)

    # ---- Contents ----
    def lookup_content(self, owner: str, repo: str, path: str, ref: str) -> Lookup[Any]:
        """Fetch file (or directory) metadata at ``path`` as of ``ref``."""
        quoted = quote(path.lstrip("/"), safe="/")
        return self._lookup(
            f"/repos/{owner}/{repo}/contents/{quoted}", f"{owner}/{repo}/{path}@{ref}", params={"ref": ref}
        )

    # ---- Pull requests ----
    def list_pulls(self, owner: str, repo: str, head: str, state: str = "open") -> List[Dict[str, Any]]:
        return self._paginate(f"/repos/{owner}/{repo}/pulls", params={"head": head, "state": state})

    def create_pull(
        self, owner: str, repo: str, *, title: str, head: str, base: str, body: str, maintainer_can_modify: bool = True
    ) -> Dict[str, Any]:
        payload = {
            "title": title,
            "head": head,
            "base": base,
            "body": body,
            "maintainer_can_modify": maintainer_can_modify,
        }
        return self._request("POST", f"/repos/{owner}/{repo}/pulls", payload=payload)

    def update_pull(
        self, owner: str, repo: str, number: int, *, title: str, base: str, body: str, maintainer_can_modify: bool = True
    ) -> Dict[str, Any]:
        payload = {
            "title": title,
            "base": base,
            "body": body,
            "maintainer_can_modify": maintainer_can_modify,
        }
        return self._request("PATCH", f"/repos/{owner}/{repo}/pulls/{number}", payload=payload)

    def close(self) -> None:
        """Close the GitHub client session."""
        if self.session:
            self.session.close()
            logger.debug("GitHub client session closed")
