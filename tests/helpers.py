"""
Shared fixtures for the NearbyCities tests.
"""

import csv
import os
import shutil
import tempfile
import unittest
from unittest import mock

from NearbyCities.config import get_config

FIXTURES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data')
CITIES_CSV = os.path.join(FIXTURES_DIR, 'worldcities_sample.csv')
IP2LOCATION_CSV = os.path.join(FIXTURES_DIR, 'ip2location_sample.csv')

CITY_HEADER = ['city', 'city_ascii', 'lat', 'lng', 'country', 'iso2', 'iso3',
               'admin_name', 'capital', 'population', 'id']

# Reference point a couple of kilometres west of Hanoi's centre
REFERENCE_POINT = (21.0278, 105.8342)

HANOI_ID = 1704413791
HAI_DUONG_ID = 1704000623
PARIS_FR_ID = 1250015082
PARIS_US_ID = 1840020594


class TempDatabaseTestCase(unittest.TestCase):
    """Base class giving each test a fresh configuration, data directory and SQLite file."""

    def setUp(self):
        # Reset the configuration to defaults before each test
        self.config = get_config()
        self.config._initialize()
        self.config.disable_feature("auto_fetch_data")

        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, 'cities.db')
        self.db_uri = f"sqlite:///{self.db_path}"

        env_patch = mock.patch.dict(os.environ, {'NEARBYCITIES_DATA_DIR': self.temp_dir})
        env_patch.start()
        self.addCleanup(env_patch.stop)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        get_config()._initialize()

    def write_cities_csv(self, rows, name='cities.csv'):
        """Write city rows (dicts keyed like CITY_HEADER) to a CSV in the temp directory."""
        path = os.path.join(self.temp_dir, name)
        with open(path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=CITY_HEADER)
            writer.writeheader()
            for row in rows:
                writer.writerow({column: row.get(column, '') for column in CITY_HEADER})
        return path


def city_row(city_id, name, lat, lng, population='', iso2='XX', country='Testland'):
    """A minimal city row for ad-hoc CSV fixtures."""
    return {
        'id': city_id,
        'city': name,
        'city_ascii': name,
        'lat': lat,
        'lng': lng,
        'country': country,
        'iso2': iso2,
        'population': population,
    }
