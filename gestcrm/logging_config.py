"""
Logging configuration for Gestionale CRM.

Single 'gestcrm' logger used across all modules.

  Log file : logs/gestcrm.log
  Rotation : 5 MB × 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL)
             defaults to INFO when unset

Usage
-----
    from gestcrm.logging_config import configure_logging, log_call, log_fallback

    configure_logging()          # once at startup, idempotent

    @log_call                    # trace a command
    def clients_list(...): ...

    @log_fallback(SomeError, default=[])   # degrade a read instead of raising
    def fetch_something(): ...

Log format per line
-------------------
    2026-03-02 09:15:40 | DEBUG    | CALL clients_list | args=(stato=None)
    2026-03-02 09:15:40 | INFO     | OK   clients_list | 18ms
    2026-03-02 09:15:41 | ERROR    | FAIL deals_add | OperationalError: timeout | 5003ms
    2026-03-02 09:15:42 | WARNING  | DEGRADED fetch_deals | UndefinedTable: relation "deals" does not exist
"""

import copy
import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

_LOG_DIR = Path(__file__).parent.parent / "logs"
_LOG_FILE = _LOG_DIR / "gestcrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_BACKUP_COUNT = 3
_MAX_ARG_REPR = 120  # collections of clients/deals get passed around; keep lines short


def configure_logging() -> logging.Logger:
    """
    Set up the gestcrm logger. Idempotent — safe to call on every CLI entry.
    Returns the configured logger.
    """
    _LOG_DIR.mkdir(exist_ok=True)

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("gestcrm")

    # Guard: don't add duplicate handlers if already configured
    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)

    return logger


def _short_repr(value) -> str:
    text = repr(value)
    if len(text) > _MAX_ARG_REPR:
        return text[:_MAX_ARG_REPR - 3] + "..."
    return text


def log_call(func):
    """
    Decorator: logs entry, clean exit, and exceptions for any function.

    - DEBUG on entry   : CALL <name> | args=(...)   (each arg repr capped)
    - INFO  on success : OK   <name> | <N>ms
    - ERROR on failure : FAIL <name> | ExcType: message | <N>ms   (then re-raises)
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("gestcrm")
        name = func.__name__
        start = time.perf_counter()

        parts = [_short_repr(a) for a in args] + [f"{k}={_short_repr(v)}" for k, v in kwargs.items()]
        arg_str = ", ".join(parts) if parts else "—"
        logger.debug(f"CALL {name} | args=({arg_str})")

        try:
            result = func(*args, **kwargs)
            ms = int((time.perf_counter() - start) * 1000)
            logger.info(f"OK   {name} | {ms}ms")
            return result
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise

    return wrapper


def log_fallback(exceptions, default=None):
    """
    Decorator factory: on any of `exceptions`, log a WARNING and return a
    fresh copy of `default` instead of raising.

    Used on read-side store calls where an empty result is an acceptable
    answer (missing table, network blip). Writes must not use it.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exceptions as exc:
                logging.getLogger("gestcrm").warning(
                    f"DEGRADED {func.__name__} | {type(exc).__name__}: {exc}"
                )
                return copy.copy(default)
        return wrapper
    return decorator
