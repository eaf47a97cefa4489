"""
Logging helpers.

Hosts call `setup_logging()` once; library modules only use module loggers.
Logs go to a stable per-user file so a failed export can be diagnosed after
the fact.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import os
import threading
import time
from pathlib import Path
from typing import Iterator, Optional

ENV_LOG_LEVEL = "LITHORELIEF_LOG_LEVEL"

_LOG_ONCE_KEYS: set[str] = set()
_LOG_ONCE_LOCK = threading.Lock()


def default_log_dir() -> Path:
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / "LithoRelief" / "logs"

    xdg_state_home = os.environ.get("XDG_STATE_HOME")
    if xdg_state_home:
        return Path(xdg_state_home) / "lithorelief" / "logs"

    return Path.home() / ".local" / "state" / "lithorelief" / "logs"


def _parse_log_level(level: str | int) -> int:
    if isinstance(level, int):
        return int(level)
    value = str(level).strip().upper()
    if not value:
        return logging.INFO
    resolved = getattr(logging, value, logging.INFO)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    *,
    log_level: str | int = "INFO",
    log_dir: Optional[str | Path] = None,
    filename: str = "lithorelief.log",
) -> Optional[Path]:
    """
    Configure root logging to a UTF-8 file.

    Idempotent: if a FileHandler is already attached, its path is returned and
    no second handler is added. Returns None when the log directory cannot be
    created (logging then stays unconfigured rather than breaking the host).
    """
    root = logging.getLogger()

    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)

    level = _parse_log_level(os.environ.get(ENV_LOG_LEVEL) or log_level)
    root.setLevel(level)

    resolved_dir = Path(log_dir) if log_dir is not None else default_log_dir()
    try:
        resolved_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None

    log_path = resolved_dir / filename

    fmt = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    try:
        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
    except OSError:
        return None
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    root.info("Logging initialized: %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def format_exception_message(prefix: str, message: str, *, log_path: Optional[Path]) -> str:
    if log_path is None:
        return f"{prefix}\n\n{message}"
    return f"{prefix}\n\n{message}\n\n(log file: {log_path})"


def log_once(
    logger: logging.Logger,
    key: str,
    level: int,
    msg: str,
    *args,
    exc_info: bool | BaseException | None = None,
) -> bool:
    """
    Logs at most once per process for the given key.

    Used for settings that get clamped on every call (e.g. an oversized
    sampling resolution) so repeated exports don't flood the log.
    """
    k = str(key)
    with _LOG_ONCE_LOCK:
        if k in _LOG_ONCE_KEYS:
            return False
        _LOG_ONCE_KEYS.add(k)

    logger.log(level, msg, *args, exc_info=exc_info)
    return True


@contextmanager
def log_duration(logger: logging.Logger, stage: str, level: int = logging.DEBUG) -> Iterator[None]:
    """Log how long the wrapped pipeline stage took."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.log(level, "%s finished in %.3f s", stage, time.perf_counter() - start)
