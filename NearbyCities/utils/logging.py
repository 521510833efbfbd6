"""
Centralized logging configuration for the NearbyCities package.

Every module obtains its logger through :func:`get_logger`, so the output
format (JSON or text), the level and the optional rotating log file are
controlled from one place, either via :func:`configure_logging` or through
the ``NEARBYCITIES_LOG_*`` environment variables.
"""

import json
import logging
import os
import platform
import socket
import sys
import uuid
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any, Union, List

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_JSON_FORMAT = True

# Environment overrides
LOG_LEVEL_ENV_VAR = 'NEARBYCITIES_LOG_LEVEL'
LOG_FORMAT_ENV_VAR = 'NEARBYCITIES_LOG_FORMAT'  # 'json' or 'text'
LOG_FILE_ENV_VAR = 'NEARBYCITIES_LOG_FILE'

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}

_logging_configured = False

_service_info = {
    'service_name': 'nearbycities',
    'service_version': None,
    'hostname': socket.gethostname(),
    'os': platform.system(),
}

# Attributes every LogRecord carries; anything else was passed through `extra`
_RESERVED_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime', 'extras'}


class JsonFormatter(logging.Formatter):
    """Format log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': self.formatTime(record, '%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        for key, value in _service_info.items():
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info),
            }

        extras = getattr(record, 'extras', None)
        if extras:
            log_data.update(extras)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """
    Adapter that attaches a fixed set of context fields to every record.

    Fields passed per call through ``extra=`` are merged over the adapter's
    own context, so a component logger can carry e.g. ``component='index'``
    while individual calls add ``city_count`` or ``request_id``.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extras = dict(self.extra)
        if 'extra' in kwargs:
            extras.update(kwargs['extra'])

        kwargs_copy = kwargs.copy()
        kwargs_copy['extra'] = {'extras': extras}
        return msg, kwargs_copy


def configure_logging(level: Optional[Union[int, str]] = None,
                      format_str: Optional[str] = None,
                      use_json: Optional[bool] = None,
                      log_file: Optional[str] = None) -> None:
    """
    Configure logging for the NearbyCities package.

    Args:
        level: Log level (default: INFO or the NEARBYCITIES_LOG_LEVEL env var)
        format_str: Format string used when logging as text
        use_json: Whether to emit JSON lines (default: True or NEARBYCITIES_LOG_FORMAT)
        log_file: Optional path of a rotating log file (default: NEARBYCITIES_LOG_FILE)
    """
    global _logging_configured

    if _logging_configured and level is None and format_str is None and use_json is None and log_file is None:
        return

    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, logging.INFO)

    if isinstance(level, str):
        level = LOG_LEVELS.get(level.lower(), logging.INFO)

    if format_str is None:
        format_str = DEFAULT_LOG_FORMAT

    if use_json is None:
        env_format = os.environ.get(LOG_FORMAT_ENV_VAR, '').lower()
        use_json = env_format == 'json' if env_format else DEFAULT_JSON_FORMAT

    if log_file is None:
        log_file = os.environ.get(LOG_FILE_ENV_VAR)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        try:
            handlers.append(RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5
            ))
        except OSError as e:
            print(f"Warning: Could not create log file {log_file}: {e}", file=sys.stderr)

    for handler in handlers:
        if use_json:
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(logging.Formatter(format_str))
        root_logger.addHandler(handler)

    _logging_configured = True

    try:
        from NearbyCities import __version__
        _service_info['service_version'] = __version__
    except ImportError:
        pass

    log_mode = 'JSON structured' if use_json else 'text'
    root_logger.debug(f"Logging configured with level: {logging.getLevelName(level)}, format: {log_mode}")


def set_log_level(level: Union[int, str]) -> None:
    """
    Set the log level for NearbyCities loggers at runtime.

    Args:
        level: 'debug', 'info', 'warning', 'error', 'critical' or a logging constant

    Example:
        >>> from NearbyCities.utils.logging import set_log_level
        >>> set_log_level('debug')
    """
    if isinstance(level, str):
        level_str = level.lower()
        if level_str not in LOG_LEVELS:
            valid_levels = ", ".join(LOG_LEVELS.keys())
            raise ValueError(f"Invalid log level: {level}. Valid levels are: {valid_levels}")
        level = LOG_LEVELS[level_str]

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if level <= logging.INFO:
        root_logger.info(f"Log level set to: {logging.getLevelName(level)}")


def get_logger(name: str, extra: Optional[Dict[str, Any]] = None) -> Union[logging.Logger, StructuredLoggerAdapter]:
    """
    Get a logger configured the NearbyCities way.

    Returns a StructuredLoggerAdapter when JSON logging is active so that
    ``extra`` fields end up as top-level keys of the JSON line, and a plain
    Logger otherwise.

    Example:
        >>> logger = get_logger(__name__, {'component': 'index'})
        >>> logger.info("Index built", extra={'city_count': 1000})
    """
    configure_logging()

    logger = logging.getLogger(name)

    root_logger = logging.getLogger()
    if root_logger.handlers and isinstance(root_logger.handlers[0].formatter, JsonFormatter):
        return StructuredLoggerAdapter(logger, extra)

    return logger


def get_request_id() -> str:
    """Generate a unique request ID for tracing."""
    return str(uuid.uuid4())


configure_logging()
