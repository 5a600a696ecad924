#!/usr/bin/env python3
"""Turn command-line file arguments into an ordered list of FileChange.

Two forms are accepted, never mixed:
  - a single positional ``SOURCE DEST`` pair
  - repeated ``--addfile F --destfile D`` pairs and ``--rmfile D`` options

All validation happens here, before any network call.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from pydantic import ValidationError

from utils.change_models import FileChange, RepositoryRef


class ChangeSpecError(ValueError):
    """Raised when repository or file arguments are malformed."""


def parse_repo_spec(spec: str) -> RepositoryRef:
    try:
        return RepositoryRef.parse(spec)
    except (ValueError, ValidationError) as e:
        raise ChangeSpecError(str(e)) from e


def _first_error(e: ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    return str(errors[0].get("msg", e)).removeprefix("Value error, ")


def build_file_changes(
    positional: Optional[Sequence[str]] = None,
    addfiles: Optional[Sequence[str]] = None,
    destfiles: Optional[Sequence[str]] = None,
    rmfiles: Optional[Sequence[str]] = None,
) -> List[FileChange]:
    """Build the ordered change set.

    Additions come first, then removals, each in command-line order.

    Raises:
        ChangeSpecError: On a wrong positional count, mismatched
            addfile/destfile counts, mixed forms or an empty change set
    """
    positional = list(positional or [])
    addfiles = list(addfiles or [])
    destfiles = list(destfiles or [])
    rmfiles = list(rmfiles or [])

    if positional and (addfiles or destfiles or rmfiles):
        raise ChangeSpecError("Use either SOURCE DEST or --addfile/--destfile/--rmfile, not both")
    if positional and len(positional) != 2:
        raise ChangeSpecError(f"Expected SOURCE and DEST, got {len(positional)} positional file argument(s)")
    if len(addfiles) != len(destfiles):
        raise ChangeSpecError(
            f"Each --addfile needs a matching --destfile ({len(addfiles)} addfile, {len(destfiles)} destfile)"
        )

    if positional:
        addfiles, destfiles = [positional[0]], [positional[1]]

    changes: List[FileChange] = []
    try:
        for source, dest in zip(addfiles, destfiles):
            changes.append(FileChange(local_path=source, destination_path=dest, operation="add"))
        for dest in rmfiles:
            changes.append(FileChange(destination_path=dest, operation="remove"))
    except ValidationError as e:
        raise ChangeSpecError(_first_error(e)) from e

    if not changes:
        raise ChangeSpecError("Nothing to do: give SOURCE DEST or at least one --addfile/--rmfile")

    seen = set()
    for change in changes:
        if change.destination_path in seen:
            raise ChangeSpecError(f"Destination '{change.destination_path}' is given more than once")
        seen.add(change.destination_path)
    return changes
