"""
Structured logging for the tools runner.

Every record carries the project key and the phase of the invocation
(resolve, fetch, extract, sweep, exec) when they are known, set with
log_context(). Console output goes to stderr through rich; stdout belongs
to the launched tool. With a log file configured, records are also
appended there as JSON lines.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import orjson
from rich.console import Console, ConsoleRenderable
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text

ROOT_LOGGER = "toolsrunner"
_CONTEXT_KEYS = ("project", "phase")

_project_var: ContextVar[str | None] = ContextVar("project", default=None)
_phase_var: ContextVar[str | None] = ContextVar("phase", default=None)


def current_context() -> dict[str, str]:
    """Project and phase of the running invocation, where set."""
    context = {"project": _project_var.get(), "phase": _phase_var.get()}
    return {key: value for key, value in context.items() if value}


@contextmanager
def log_context(project: str | None = None, phase: str | None = None) -> Iterator[None]:
    """Scope the project key and/or phase attached to log records.

    Values left as None keep whatever the enclosing scope set.
    """
    tokens = []
    if project is not None:
        tokens.append((_project_var, _project_var.set(project)))
    if phase is not None:
        tokens.append((_phase_var, _phase_var.set(phase)))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", {})


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for the optional log file."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_fields(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(entry, default=str).decode()


class ContextRichHandler(RichHandler):
    """RichHandler showing the phase next to the level and fields after the message."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        phase = _record_fields(record).get("phase")
        if phase:
            return Text.assemble(level_text, " ", (phase, "cyan"))
        return level_text

    def render_message(self, record: logging.LogRecord, message: str) -> ConsoleRenderable:
        shown = {
            key: value
            for key, value in _record_fields(record).items()
            if key not in _CONTEXT_KEYS
        }
        if shown:
            rendered = " ".join(f"{key}={value}" for key, value in shown.items())
            message = f"{message} [dim]{escape(rendered)}[/dim]"
        return super().render_message(record, message)


class ContextLogger:
    """Logger whose calls take structured fields as keyword arguments.

        logger.info("Cache miss", reason="token_mismatch")
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, exc_info: bool = False, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**current_context(), **fields}
        self._logger.log(level, msg, exc_info=exc_info, extra={"fields": fields})

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **fields)


_console: Console | None = None
_configured = False


def get_console() -> Console:
    """Shared stderr console for log output and progress bars."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "WARNING",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the toolsrunner logger.

    Args:
        log_level: Console threshold (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional JSON-lines file that receives every record.
        console_output: Whether to log to stderr at all.
    """
    global _configured

    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.propagate = False

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        logger.addHandler(file_handler)

    if console_output:
        console_handler = ContextRichHandler(
            console=get_console(),
            show_time=False,
            show_path=False,
            rich_tracebacks=True,
            markup=True,
        )
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Get a logger under the toolsrunner namespace."""
    if not _configured:
        setup_logging()

    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"

    return ContextLogger(logging.getLogger(name))
