#!/usr/bin/env python3
"""Tagged outcomes for GitHub lookups where "not found" is an expected answer.

A lookup returns ``Found(value)`` or ``NotFound(what)``. Any other failure is
raised as a typed exception by the client, so callers never compare status
codes to decide between "absent" and "broken".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T


@dataclass(frozen=True)
class NotFound:
    what: str = ""


Lookup = Union[Found[T], NotFound]
