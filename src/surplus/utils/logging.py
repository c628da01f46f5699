"""Logging setup for the surplus core.

structlog renders every line; the standard library handlers decide where it
goes. Integrity violations are logged at ERROR, so the error file (when
file logging is on) is where operators find them.
"""

import logging
import logging.handlers
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

_LEVELS = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

_QUIET_LOGGERS = ("protean", "sqlalchemy.engine", "asyncio", "httpx")

MAX_LOG_BYTES = 10 * 1024 * 1024


def current_env() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level(env: str | None = None) -> str:
    """LOG_LEVEL wins; otherwise the level follows the environment."""
    return os.getenv("LOG_LEVEL", _LEVELS.get(env or current_env(), "INFO")).upper()


def _rotating(path: Path, level: int | str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=5, encoding="utf-8")
    handler.setLevel(level)
    return handler


def setup_stdlib_logging(level: str, log_dir: str | Path | None) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    root.addHandler(console)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(_rotating(log_dir / "surplus.log", level))
        root.addHandler(_rotating(log_dir / "surplus_error.log", logging.ERROR))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_structlog(json_output: bool) -> None:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
    ]
    if json_output:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(log_dir: str | Path | None = "logs", env: str | None = None) -> None:
    """Configure console (and, with ``log_dir``, rotating file) logging.

    Production and staging emit one JSON object per line; everything else
    gets the human-readable console renderer.
    """
    env = env or current_env()
    setup_stdlib_logging(get_log_level(env), log_dir)
    setup_structlog(json_output=env in ("production", "staging"))


def bind_operation(**kwargs: Any) -> None:
    """Bind context (donation id, actor, ...) to every log line of the current operation."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_operation() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def operation(**kwargs: Any) -> Iterator[None]:
    """Scope ``bind_operation`` to a block (one HTTP request, one CLI job)."""
    bind_operation(**kwargs)
    try:
        yield
    finally:
        clear_operation()
