"""Logging setup for lnd-beacon."""

import logging
import sys
from pathlib import Path

DEFAULT_LOG_PATH = Path.home() / ".config" / "lnd-beacon" / "lnd-beacon.log"


def setup_logger(
    name: str = "lnd_beacon",
    level: int = logging.INFO,
    log_file: Path | None = None,
    stream: bool = True,
) -> logging.Logger:
    """
    Configure and return the package logger.

    Args:
        name: Logger name. Module loggers under ``lnd_beacon.*`` propagate here.
        level: Logging level.
        log_file: Optional path to a log file.
        stream: Also log to stderr. The terminal UI turns this off since it owns the screen.

    Returns:
        Configured logger.
    """
    log = logging.getLogger(name)
    if log.handlers:
        return log

    log.setLevel(level)
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if stream:
        h = logging.StreamHandler(sys.stderr)
        h.setFormatter(fmt)
        log.addHandler(h)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        log.addHandler(fh)

    if not log.handlers:
        log.addHandler(logging.NullHandler())

    return log
