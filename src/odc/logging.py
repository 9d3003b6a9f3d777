"""
Structured logging for the OData connector.

Each connector handler runs inside log_context(handler=..., table=...), and
every record emitted inside it carries those two fields:
- in the JSON Lines log file (JSONFormatter)
- as a colored prefix on the rich console (ContextRichHandler)

Loggers are obtained with get_logger(__name__) and accept keyword context:

    logger.debug("Cache set", key=index_key, chunks=3)
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

LOGGER_NAMESPACE = "odc"

_handler_var: ContextVar[str | None] = ContextVar("handler", default=None)
_table_var: ContextVar[str | None] = ContextVar("table", default=None)

_CONTEXT_STYLES = {"handler": "cyan", "table": "magenta"}


def current_context() -> dict[str, str]:
    """Handler and table of the enclosing log_context(), when set."""
    context: dict[str, str] = {}
    handler = _handler_var.get()
    table = _table_var.get()
    if handler:
        context["handler"] = handler
    if table:
        context["table"] = table
    return context


@contextmanager
def log_context(handler: str | None = None, table: str | None = None) -> Iterator[None]:
    """Tag every log record emitted in the block with handler and table.

    Arguments left as None keep the enclosing block's value.
    """
    tokens = []
    if handler is not None:
        tokens.append((_handler_var, _handler_var.set(handler)))
    if table is not None:
        tokens.append((_table_var, _table_var.set(table)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with handler/table context and keyword fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **current_context(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextRichHandler(RichHandler):
    """RichHandler that prefixes the level with the active handler and table."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        context = current_context()
        if not context:
            return level_text

        prefix = Text()
        for name, value in context.items():
            prefix.append(f" {value}", style=_CONTEXT_STYLES[name])
        return Text.assemble(level_text, prefix)


class ContextLogger:
    """Wraps a stdlib logger so keyword arguments become structured fields.

    ``exc_info`` is passed through to the stdlib logger.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log(self, level: int, msg: str, exc_info: bool = False, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            msg,
            exc_info=exc_info,
            extra={"fields": {**current_context(), **fields}},
        )

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
    """Shared stderr console used by the log handler."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the ``odc`` logger.

    Args:
        log_level: Level for the console (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: JSON Lines file that receives every record at DEBUG and up.
            None disables file logging.
        console_output: Whether to log to the rich console.
    """
    global _configured

    level = getattr(logging, log_level.upper())
    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    package_logger.handlers.clear()
    package_logger.propagate = False
    package_logger.setLevel(logging.DEBUG if log_file else level)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        package_logger.addHandler(file_handler)

    if console_output:
        console_handler = ContextRichHandler(
            console=get_console(),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setLevel(level)
        package_logger.addHandler(console_handler)

    # httpx logs every request at INFO
    for name in ("httpx", "httpcore", "aiosqlite", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Context-aware logger under the ``odc`` namespace.

    Args:
        name: Module name, usually __name__.
    """
    if not _configured:
        setup_logging()

    if name != LOGGER_NAMESPACE and not name.startswith(f"{LOGGER_NAMESPACE}."):
        name = f"{LOGGER_NAMESPACE}.{name}"
    return ContextLogger(logging.getLogger(name))
