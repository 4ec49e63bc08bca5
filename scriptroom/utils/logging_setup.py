from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(cycle_id)s | %(project_id)s | %(tool)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_CYCLE_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_cycle_id", default=None)
LOG_PROJECT_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_project_id", default=None)
LOG_TOOL: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_tool", default=None)

# Record attribute -> context variable. Every record gets each attribute, "-" when unset.
_CONTEXT_FIELDS: Dict[str, contextvars.ContextVar[Optional[str]]] = {
    "cycle_id": LOG_CYCLE_ID,
    "project_id": LOG_PROJECT_ID,
    "tool": LOG_TOOL,
}

# SDK loggers that log every HTTP request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for attr, var in _CONTEXT_FIELDS.items():
            setattr(record, attr, var.get() or "-")
        return True


@contextmanager
def log_context(
    cycle_id: Optional[str] = None,
    project_id: Optional[str] = None,
    tool: Optional[str] = None,
) -> Iterator[None]:
    """Scope cycle/project/tool tags for records logged inside the block (task-local)."""
    values = {"cycle_id": cycle_id, "project_id": project_id, "tool": tool}
    tokens = [
        (_CONTEXT_FIELDS[attr], _CONTEXT_FIELDS[attr].set(value))
        for attr, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def configure_logging(
    log_file: str = "logs/app.log",
    level: int | str = logging.INFO,
    enable_console: bool = False,
    force: bool = False,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, "_scriptroom_logging_configured", False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    context_filter = ContextFilter()

    handlers = [logging.FileHandler(log_path, encoding="utf-8")]
    if enable_console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        # On the handler, not the root logger, so records propagated from child loggers are tagged too.
        handler.addFilter(context_filter)
        root.addHandler(handler)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root.setLevel(level)
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.captureWarnings(True)
    root._scriptroom_logging_configured = True
    return root
