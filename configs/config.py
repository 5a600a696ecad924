import os
from typing import Dict, Any, Optional

class Config:
	"""Configuration for the fork pull request agent."""

	# GitHub REST configuration
	GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip('/')
	GITHUB_USER_AGENT = os.getenv("GITHUB_USER_AGENT", "fork-pr-agent/1.0")
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "30"))
	# Retries apply to idempotent methods only; 0 keeps a failed read fatal
	HTTP_RETRY_TOTAL = int(os.getenv("HTTP_RETRY_TOTAL", "0"))
	HTTP_RETRY_BACKOFF = float(os.getenv("HTTP_RETRY_BACKOFF", "1.0"))
	PAGE_SIZE = int(os.getenv("GITHUB_PAGE_SIZE", "100"))
	MAX_PAGES = int(os.getenv("GITHUB_MAX_PAGES", "50"))

	# Tree and pull request behavior
	DEFAULT_FILE_MODE = os.getenv("DEFAULT_FILE_MODE", "100644")
	MULTIPLE_PULLS_POLICY = os.getenv("MULTIPLE_PULLS_POLICY", "first")

	# Observability
	METRICS_ROOT = os.getenv("METRICS_ROOT", ".cache/fork_pr/metrics")
	METRICS_ENABLED = bool(int(os.getenv("METRICS_ENABLED", "0")))

	@classmethod
	def github_token(cls) -> Optional[str]:
		"""Return the trimmed access token, or None when unset or blank.

		Read on every call so a `.env` loaded after import is honored.
		"""
		raw = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PAT") or ""
		return raw.strip() or None

	@classmethod
	def get_github_config(cls) -> Dict[str, Any]:
		"""Get GitHub configuration for the REST client."""
		return {
			"base_url": cls.GITHUB_API_URL,
			"token": cls.github_token(),
			"timeout_s": cls.HTTP_TIMEOUT_S,
			"retry_total": cls.HTTP_RETRY_TOTAL,
			"retry_backoff": cls.HTTP_RETRY_BACKOFF,
			"user_agent": cls.GITHUB_USER_AGENT,
		}

	@classmethod
	def observability(cls) -> Dict[str, Any]:
		return {
			"metrics_root": cls.METRICS_ROOT,
			"metrics_enabled": cls.METRICS_ENABLED,
		}
