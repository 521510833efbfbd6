"""
Exception hierarchy for NearbyCities.

Every error carries two messages: ``message`` is written for the logs and
``user_message`` is safe to show to an API or CLI user. ``error_code`` is a
stable identifier (``NC-<AREA>-<NUMBER>``) and ``status_code`` the HTTP status
the API answers with.

Codes by area:

* ``NC-DB-1xxx``: the SQLite/PostgreSQL storage layer
* ``NC-DATA-2xxx``: datasets, lookups and user input
* ``NC-API-3xxx``: HTTP request parameters
* ``NC-SYS-4xxx``: startup and index preparation
"""

import sys
import traceback
from typing import Any, Dict, Optional


class NearbyCitiesError(Exception):
    """Base exception for all NearbyCities errors."""

    status_code = 500
    error_code = "NC-GENERIC-ERROR"
    user_message = "An unexpected error occurred."

    def __init__(
        self,
        message: Optional[str] = None,
        user_message: Optional[str] = None,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        include_traceback: bool = True
    ):
        self.message = message or self.__class__.__doc__ or "An error occurred."
        super().__init__(self.message)

        self.user_message = user_message or type(self).user_message
        self.error_code = error_code or type(self).error_code
        self.status_code = status_code or type(self).status_code
        self.context = dict(context or {})
        self.cause = cause

        # Captured while an exception is being handled, e.g. when wrapping a sqlite3 error
        self.traceback = None
        if include_traceback and sys.exc_info()[0] is not None:
            self.traceback = traceback.format_exc()

    def to_dict(self, include_details: bool = False) -> Dict[str, Any]:
        """
        Serialize the error for an API response.

        Args:
            include_details: Add the log message, context, cause and traceback
                under ``technical_details``. Only for debug mode.
        """
        error_dict = {
            "error_code": self.error_code,
            "message": self.user_message,
            "status_code": self.status_code,
        }
        if not include_details:
            return error_dict

        details: Dict[str, Any] = {"message": self.message, "context": self.context}
        cause = self.cause or self.__cause__
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        if self.traceback:
            details["traceback"] = self.traceback
        error_dict["technical_details"] = details
        return error_dict


# Storage
class DatabaseError(NearbyCitiesError):
    """The city database failed."""
    error_code = "NC-DB-1000"
    user_message = "The city database is unavailable."


class ConnectionError(DatabaseError):
    """Could not open a connection to SQLite or PostgreSQL."""
    error_code = "NC-DB-1001"
    user_message = "Unable to connect to the city database. Please try again later."


class QueryError(DatabaseError):
    """A statement against the city database failed."""
    error_code = "NC-DB-1002"
    user_message = "The city lookup could not be completed."


class TransactionError(DatabaseError):
    """A transaction could not be committed or rolled back."""
    error_code = "NC-DB-1003"
    user_message = "The city database could not be updated."


class ConfigurationError(DatabaseError):
    """The database URI or settings are unusable."""
    error_code = "NC-DB-1004"
    user_message = "The city database is incorrectly configured."


# Datasets and input
class DataError(NearbyCitiesError):
    """Problem with a dataset or with the data a caller supplied."""
    status_code = 400
    error_code = "NC-DATA-2000"
    user_message = "The city data could not be processed."


class DataImportError(DataError):
    """A world cities or IP2Location CSV could not be read or downloaded."""
    status_code = 500
    error_code = "NC-DATA-2001"
    user_message = "The city dataset could not be loaded. Check the file and its format."


class DataNotFoundError(DataError):
    """A requested record does not exist."""
    status_code = 404
    error_code = "NC-DATA-2002"
    user_message = "The requested city could not be found."


class ValidationError(DataError, ValueError):
    """A coordinate, radius, geohash, IP address or name query is malformed."""
    status_code = 400
    error_code = "NC-DATA-2003"
    user_message = "The provided location is invalid. Please check your input."


class NoMatchError(DataNotFoundError):
    """A city name or IP address could not be resolved to a location."""
    error_code = "NC-DATA-2004"
    user_message = "No matching city was found."


# HTTP API
class APIError(NearbyCitiesError):
    """Base class for request handling errors."""
    status_code = 400
    error_code = "NC-API-3000"
    user_message = "The request could not be processed."


class InvalidParameterError(APIError):
    """A query string parameter is missing or has the wrong type."""
    error_code = "NC-API-3004"
    user_message = "Invalid parameters provided. Please check your request."


# Startup
class SystemError(NearbyCitiesError):
    """Base class for errors that stop the service from running."""
    error_code = "NC-SYS-4000"
    user_message = "A system error occurred. Please try again later."


class IndexBuildError(SystemError):
    """The spatial index could not be built; nothing was written."""
    error_code = "NC-SYS-4003"
    user_message = "The city index could not be prepared. The service cannot start."
