"""
Utility functions for the NearbyCities package.

JSON output helpers shared by the CLI and the API, and a single place that
turns arbitrary exceptions into logged NearbyCities errors.
"""

import json
from logging import Logger, LoggerAdapter
from typing import Any, Optional, Type, Union

from NearbyCities.exceptions import NearbyCitiesError
from NearbyCities.utils.logging import get_logger

logger = get_logger(__name__)


def format_json(data: Any, indent: Optional[int] = 2, sort_keys: bool = False) -> str:
    """
    Format data as a JSON string, keeping non-ASCII city names readable.

    Example:
        >>> print(format_json({'name': 'Hải Dương', 'distance': 42.17}))
        {
          "name": "Hải Dương",
          "distance": 42.17
        }
    """
    return json.dumps(
        data,
        indent=indent,
        ensure_ascii=False,
        sort_keys=sort_keys,
        default=str
    )


def handle_exception(
    error: Exception,
    logger: Optional[Union[Logger, LoggerAdapter]] = None,
    error_class: Type[NearbyCitiesError] = NearbyCitiesError,
    user_message: Optional[str] = None,
) -> NearbyCitiesError:
    """
    Log an exception and return it as a NearbyCities error.

    Errors that already belong to the NearbyCities hierarchy are logged and
    returned unchanged; anything else is wrapped in ``error_class`` with the
    original exception kept as the cause.

    Args:
        error: The exception that occurred
        logger: Logger to report to (defaults to this module's logger)
        error_class: Class used to wrap foreign exceptions
        user_message: Optional message to show to the end user

    Returns:
        The NearbyCities error describing the failure
    """
    log = logger or globals()['logger']

    if isinstance(error, NearbyCitiesError):
        wrapped = error
    else:
        wrapped = error_class(
            message=f"{error.__class__.__name__}: {error}",
            user_message=user_message,
            cause=error,
        )

    if wrapped.status_code >= 500:
        log.error(f"{wrapped.error_code}: {wrapped.message}", exc_info=error)
    else:
        log.warning(f"{wrapped.error_code}: {wrapped.message}")

    return wrapped
