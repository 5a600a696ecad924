#!/usr/bin/env python3
"""Run counters and phase timers written as JSONL.

Disabled unless METRICS_ENABLED=1. Every record written inside ``run_scope``
carries that run's id and repository so the phases of one run can be grouped.
Failed phases record the typed error code raised by the step. Callers pass
short labels only; a label that contains the configured token is masked.
"""

from __future__ import annotations

import contextvars
import json
import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator

from configs.config import Config

MAX_LABEL_LEN = 200

_run_labels: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("run_labels", default={})


def _path() -> Path:
    root = Path(Config.METRICS_ROOT)
    root.mkdir(parents=True, exist_ok=True)
    return root / "metrics.log"


def _label(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    token = Config.github_token()
    if token and token in value:
        value = value.replace(token, "***")
    if len(value) > MAX_LABEL_LEN:
        return value[:MAX_LABEL_LEN] + "…"
    return value


@contextmanager
def run_scope(**labels: Any) -> Iterator[str]:
    """Tag records written inside the block with a fresh run id and ``labels``."""
    run_id = uuid.uuid4().hex[:12]
    reset = _run_labels.set({"run": run_id, **labels})
    try:
        yield run_id
    finally:
        _run_labels.reset(reset)


def incr(name: str, value: Any = 1, **kw) -> None:
    if not Config.METRICS_ENABLED:
        return
    rec: Dict[str, Any] = {"ts": int(time.time()), "metric": name, "value": value}
    for k, v in {**_run_labels.get(), **kw}.items():
        rec[k] = _label(v)
    line = json.dumps(rec, separators=(",", ":")) + "\n"
    with open(_path(), "a", encoding="utf-8") as f:
        f.write(line)
        f.flush()
        os.fsync(f.fileno())


class Timer:
    """Record a phase's latency and whether it succeeded.

    On failure the record also carries ``code``: the exception's typed code
    when it has one (ForkError, RefSyncError...), else its class name.
    """

    def __init__(self, name: str, **kw):
        self.name = name
        self.kw = kw
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        dt = time.perf_counter() - self._t0
        labels = dict(self.kw)
        if exc_type is None:
            labels["outcome"] = "ok"
        else:
            labels["outcome"] = "error"
            labels["code"] = getattr(exc, "code", None) or exc_type.__name__
        incr(f"{self.name}.latency_s", dt, **labels)
