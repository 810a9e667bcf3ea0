"""
Logging setup for gridlines.

Scheduler jobs run inside a sweep context: the job name and a short run id
are stamped on every record logged while the sweep is active, so one
sweep's lines can be pulled out of a shared log. Services attach game
fields through ``extra`` (canonical_id, incident, provider, week); the JSON
output keeps them as top-level keys for data-quality queries such as
"every default_lines incident this week".
"""
import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

GAME_FIELDS = ("canonical_id", "incident", "provider", "week")

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s%(sweep)s: %(message)s"


@dataclass(frozen=True)
class Sweep:
    job: str
    run_id: str


_current_sweep: ContextVar[Optional[Sweep]] = ContextVar("sweep", default=None)


@contextmanager
def sweep_context(job: str, run_id: Optional[str] = None) -> Iterator[Sweep]:
    """
    Tag everything logged inside the block with a job name and run id.

    Contexts nest; the innermost one wins and the outer one is restored on
    exit. Each asyncio task sees the sweep that was active when it was
    created.

    Args:
        job: Scheduler job or CLI command name (e.g. "lines_sweep_morning")
        run_id: Explicit id; a 12-character random hex id when omitted
    """
    sweep = Sweep(job=job, run_id=run_id or uuid.uuid4().hex[:12])
    token = _current_sweep.set(sweep)
    try:
        yield sweep
    finally:
        _current_sweep.reset(token)


def current_sweep() -> Optional[Sweep]:
    """The active sweep, or None outside any sweep."""
    return _current_sweep.get()


class SweepFilter(logging.Filter):
    """Copies the active sweep onto each record (job, run_id and a console label)."""

    def filter(self, record: logging.LogRecord) -> bool:
        sweep = _current_sweep.get()
        record.job = sweep.job if sweep else ""
        record.run_id = sweep.run_id if sweep else ""
        record.sweep = f" [{sweep.job} {sweep.run_id}]" if sweep else ""
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line with the sweep and any game fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "job": getattr(record, "job", ""),
            "run_id": getattr(record, "run_id", ""),
        }
        for field in GAME_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    handler: Optional[logging.Handler] = None,
) -> None:
    """
    Install one root handler with the sweep filter.

    Args:
        level: Root level name; unknown names fall back to INFO
        json_output: JSON lines instead of the console format
        handler: Handler to install (stdout stream handler when omitted)
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = handler or logging.StreamHandler(sys.stdout)
    handler.addFilter(SweepFilter())
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(handler)

    for noisy in ("httpx", "httpcore", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
