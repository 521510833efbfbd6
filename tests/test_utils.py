"""
Tests for the NearbyCities utility helpers.
"""

import os
import subprocess
import sys
import unittest
from unittest import mock

from NearbyCities.exceptions import NearbyCitiesError, NoMatchError
from NearbyCities.utils import format_json, handle_exception

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class TestPackageImport(unittest.TestCase):

    def test_import_in_fresh_interpreter(self):
        """The package and its utils import cleanly before anything else is loaded."""
        result = subprocess.run(
            [sys.executable, '-c', 'import NearbyCities; from NearbyCities.utils import handle_exception'],
            cwd=PROJECT_ROOT,
            capture_output=True,
            text=True
        )
        self.assertEqual(result.returncode, 0, result.stderr)


class TestFormatJson(unittest.TestCase):

    def test_keeps_city_names_readable(self):
        self.assertEqual(
            format_json({'name': 'Hải Dương', 'distance': 42.17}, indent=None),
            '{"name": "Hải Dương", "distance": 42.17}'
        )


class TestHandleException(unittest.TestCase):

    def test_nearby_cities_errors_are_returned_unchanged(self):
        logger = mock.Mock()
        error = NoMatchError("No city matches 'Atlantis'")

        self.assertIs(handle_exception(error, logger), error)
        logger.warning.assert_called_once()
        logger.error.assert_not_called()

    def test_foreign_errors_are_wrapped(self):
        logger = mock.Mock()
        cause = KeyError('lat')

        wrapped = handle_exception(cause, logger, user_message="Error searching.")

        self.assertIsInstance(wrapped, NearbyCitiesError)
        self.assertIs(wrapped.cause, cause)
        self.assertEqual(wrapped.user_message, "Error searching.")
        self.assertEqual(wrapped.status_code, 500)
        logger.error.assert_called_once()


if __name__ == "__main__":
    unittest.main()
