#!/usr/bin/env python3
"""Fork pull request agent.

Forks a base repository, commits file additions/removals to a branch on the
fork and opens (or updates) the pull request carrying that branch upstream.
Re-running with the same inputs is a no-op once the base already contains the
files.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv
from pydantic import ValidationError

from clients.github_client import GithubClient, GithubApiError, GithubAuthError
from configs.config import Config
from utils.change_models import PullRequestPlan, RunSummary
from utils.change_parser import ChangeSpecError, build_file_changes, parse_repo_spec
from utils.context_resolver import ContextError, resolve_context
from utils.fork_ensurer import ForkError, ensure_fork
from utils.metrics import Timer, incr, run_scope
from utils.pull_sync import PullSyncError, sync_pull_request
from utils.ref_sync import RefSyncError, sync_branch
from utils.tree_mutator import TreeMutationError, TreeMutator

# Set up logging
logger = logging.getLogger(__name__)

PIPELINE_ERRORS = (
	ContextError,
	ForkError,
	TreeMutationError,
	RefSyncError,
	PullSyncError,
	GithubAuthError,
	GithubApiError,
)


class ForkPullRequestAgent:
	"""Runs resolve → fork → commit → branch → pull request, strictly in order."""

	def __init__(self, client):
		"""Initialize the agent.

		Args:
			client: GithubClient, or any substitute exposing the same methods
		"""
		self.client = client
		logger.info("Fork pull request agent initialized")

	def run(self, plan: PullRequestPlan) -> RunSummary:
		"""Execute one run.

		Each step waits for the previous one and the first failure aborts the
		run. A failure after the branch update leaves the branch updated
		without a pull request change.

		Args:
			plan: Validated inputs

		Returns:
			RunSummary; ``noop`` is True when every change was already in place

		Raises:
			ContextError, ForkError, TreeMutationError, RefSyncError, PullSyncError
		"""
		with run_scope(repo=plan.base.full_name, branch=plan.branch):
			return self._run(plan)

	def _run(self, plan: PullRequestPlan) -> RunSummary:
		with Timer("phase.resolve"):
			context = resolve_context(self.client, plan.base)
		with Timer("phase.fork"):
			ensure_fork(self.client, context)
		with Timer("phase.tree"):
			mutation = TreeMutator(self.client, context).apply(plan.changes, plan.commit_message)

		summary = RunSummary(
			actor=context.user.login,
			base=context.repo.full_name,
			fork=context.head.full_name,
			staged=mutation.staged,
			skipped=mutation.skipped,
		)
		if not mutation.changed:
			logger.info("Nothing to do: every change is already in place")
			incr("run.noop")
			return summary

		commit_sha = mutation.commit.sha
		with Timer("phase.ref"):
			ref = sync_branch(self.client, context.head, plan.branch, commit_sha, force=plan.force)

		head_label = f"{context.user.login}:{plan.branch}"
		with Timer("phase.pull"):
			pull = sync_pull_request(
				self.client,
				context.base,
				head_label,
				context.repo.default_branch,
				plan.title,
				plan.body,
				plan.multiple_pulls,
			)

		return summary.model_copy(update={"commit_sha": commit_sha, "ref": ref, "pull": pull})

	def close(self) -> None:
		"""Close the agent and cleanup resources."""
		close = getattr(self.client, "close", None)
		if close:
			close()
		logger.info("Fork pull request agent closed")


def print_run_summary(summary: RunSummary) -> None:
	"""Print a compact summary of a run."""
	print(f"User: {summary.actor}")
	print(f"Base repository: {summary.base}")
	print(f"Fork: {summary.fork}")
	for path in summary.staged:
		print(f"Changed: {path}")
	for path in summary.skipped:
		print(f"Unchanged: {path}")

	if summary.noop:
		print("Nothing to do")
		return

	print(f"Commit: {summary.commit_sha}")
	if summary.ref:
		print(f"{summary.ref.action.capitalize()} branch {summary.ref.ref}")
	if summary.pull:
		pull = summary.pull.pull
		print(f"{summary.pull.action.capitalize()} pull request #{pull.number} {pull.html_url or ''}".rstrip())


def build_parser():
	import argparse

	parser = argparse.ArgumentParser(
		prog="fork-pr",
		description="Fork a repository, commit files to a branch and open or update a pull request",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  fork-pr octo/hello README.md docs/README-2.md --branch add-readme --title "Add README copy"
  fork-pr octo/hello --addfile a.txt --destfile dir/a.txt --rmfile old.txt --branch sync --title "Sync files" --force

The access token is read from GITHUB_TOKEN.
		"""
	)
	parser.add_argument("base_repo", metavar="BASE_REPO", help="Base repository as owner/repo")
	parser.add_argument("files", nargs="*", metavar="SOURCE DEST", help="Local file and its destination path")
	parser.add_argument("--branch", "-b", required=True, help="Head branch on the fork")
	parser.add_argument("--title", "-t", required=True, help="Pull request title")
	body = parser.add_mutually_exclusive_group()
	body.add_argument("--body", default="", help="Pull request body")
	body.add_argument("--body-file", help="Read the pull request body from a file")
	parser.add_argument("--message", "-m", help="Commit message (defaults to the title)")
	parser.add_argument("--addfile", action="append", default=[], help="Local file to add (repeatable)")
	parser.add_argument("--destfile", action="append", default=[], help="Destination of the matching --addfile (repeatable)")
	parser.add_argument("--rmfile", action="append", default=[], help="Repository path to remove (repeatable)")
	parser.add_argument("--force", "-f", action="store_true", help="Overwrite the branch even if histories diverged")
	parser.add_argument(
		"--on-multiple-pulls",
		choices=["first", "error"],
		default=Config.MULTIPLE_PULLS_POLICY,
		help="When several open pull requests match the head: update the first listed, or fail",
	)
	parser.add_argument("--json", action="store_true", help="Output JSON instead of a summary")
	parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
	return parser


def build_plan(parser, args) -> PullRequestPlan:
	"""Validate arguments into a plan; exits with status 2 on malformed input."""
	try:
		base = parse_repo_spec(args.base_repo)
		changes = build_file_changes(args.files, args.addfile, args.destfile, args.rmfile)
	except ChangeSpecError as e:
		parser.error(str(e))

	body = args.body
	if args.body_file:
		try:
			body = Path(args.body_file).read_text(encoding="utf-8")
		except OSError as e:
			parser.error(f"Cannot read --body-file: {e}")

	try:
		return PullRequestPlan(
			base=base,
			branch=args.branch,
			title=args.title,
			body=body,
			message=args.message,
			changes=changes,
			force=args.force,
			multiple_pulls=args.on_multiple_pulls,
		)
	except ValidationError as e:
		parser.error(f"Invalid arguments: {e.errors()[0].get('msg', e)}")


def main(argv: Optional[Sequence[str]] = None):
	"""CLI entry point for the fork pull request agent."""
	load_dotenv()
	parser = build_parser()
	# SOURCE DEST may come after options such as --branch
	args = parser.parse_intermixed_args(argv)
	plan = build_plan(parser, args)

	# Set up logging
	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
	)

	# Suppress verbose logs from libraries unless in debug mode
	if not args.verbose:
		logging.getLogger("clients.github_client").setLevel(logging.WARNING)
		logging.getLogger("urllib3").setLevel(logging.WARNING)

	token = Config.github_token()
	if not token:
		print("ERROR: GITHUB_TOKEN must be provided as an environment variable", file=sys.stderr)
		sys.exit(2)

	agent = None
	try:
		agent = ForkPullRequestAgent(GithubClient(token=token))
		summary = agent.run(plan)
		if args.json:
			print(json.dumps(summary.model_dump(), indent=2, default=str))
		else:
			print_run_summary(summary)
			print("Done!")
		sys.exit(0)

	except PIPELINE_ERRORS as e:
		if getattr(e, "code", None) == "TIMEOUT":
			print(
				f"Error: Timeout talking to GitHub ({Config.HTTP_TIMEOUT_S}s). Please retry or increase HTTP_TIMEOUT_S.",
				file=sys.stderr,
			)
		else:
			print(f"Error: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		sys.exit(1)

	except KeyboardInterrupt:
		print("\nOperation cancelled by user", file=sys.stderr)
		sys.exit(1)

	except Exception as e:
		# Unexpected error
		print(f"Unexpected error: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		else:
			print("Use --verbose for more details", file=sys.stderr)
		sys.exit(1)

	finally:
		if agent:
			agent.close()


if __name__ == "__main__":
	main()
