"""Logging helpers shared across the turn pipeline.

Records go through the standard library ``logging`` package so a host
application can attach its own handlers. Messages use percent-style
templates, and formatting is skipped when a level is disabled so per-chunk
tracing costs nothing in production.

Examples
--------
>>> level, used_default = configure_logging("INFO")
>>> log_info(get_logger(__name__), "stream.chunk index=%s", 3)
"""

from __future__ import annotations

import enum
import logging
import typing as typ

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class LogLevel(enum.StrEnum):
    """Level names accepted by :func:`configure_logging`."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def numeric(self) -> int:
        """Return the matching ``logging`` constant."""
        return typ.cast("int", getattr(logging, self.value))


_ALIASES = {"WARN": LogLevel.WARNING, "FATAL": LogLevel.CRITICAL}


def parse_level(raw: str | None) -> LogLevel | None:
    """Return the level named by ``raw``, or ``None`` when unrecognised.

    Matching ignores case and surrounding whitespace; ``WARN`` and ``FATAL``
    are accepted as their long forms.
    """
    name = (raw or "").strip().upper()
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return LogLevel(name)
    except ValueError:
        return None


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Configure root logging.

    Parameters
    ----------
    level : str | None
        Requested level name. Missing or unknown names fall back to INFO.
    force : bool, optional
        Replace handlers already attached to the root logger.

    Returns
    -------
    tuple[str, bool]
        The effective level name and whether the INFO fallback was used.
    """
    parsed = parse_level(level)
    effective = LogLevel.INFO if parsed is None else parsed
    logging.basicConfig(level=effective.numeric, format=DEFAULT_FORMAT, force=force)
    return (effective.value, parsed is None)


def get_logger(name: str) -> logging.Logger:
    """Return the named logger."""
    return logging.getLogger(name)


def _log(
    logger: logging.Logger,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    if not logger.isEnabledFor(level.numeric):
        return
    message = template % args if args else template
    # stacklevel 3 attributes the record to the caller of log_<level>.
    logger.log(
        level.numeric,
        message,
        exc_info=exc_info,  # type: ignore[arg-type]
        stacklevel=3,
    )


def log_debug(logger: logging.Logger, template: str, *args: object) -> None:
    """Emit a DEBUG message."""
    _log(logger, LogLevel.DEBUG, template, args, None)


def log_info(
    logger: logging.Logger,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit an INFO message.

    Parameters
    ----------
    logger : logging.Logger
        Target logger.
    template : str
        Percent-style template.
    *args : object
        Values interpolated into ``template``.
    exc_info : object | None, optional
        Exception info attached to the record.

    Raises
    ------
    TypeError
        If ``args`` do not fit ``template``.
    """
    _log(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: logging.Logger,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit a WARNING message."""
    _log(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: logging.Logger,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Emit an ERROR message."""
    _log(logger, LogLevel.ERROR, template, args, exc_info)


__all__ = (
    "LogLevel",
    "configure_logging",
    "get_logger",
    "log_debug",
    "log_error",
    "log_info",
    "log_warning",
    "parse_level",
)
