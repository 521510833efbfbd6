"""
Tests for the one-time spatial index build.
"""

import unittest

from NearbyCities.data.city_manager import CityData
from NearbyCities.data.database import DatabaseManager
from NearbyCities.data.index_builder import BuildState, SpatialIndexBuilder
from NearbyCities.data.schema import CITIES_MIGRATION, SchemaManager
from NearbyCities.exceptions import DataImportError, IndexBuildError
from NearbyCities.geo.geohash import BASE32, MAX_PRECISION, encode
from tests.helpers import CITIES_CSV, HANOI_ID, IP2LOCATION_CSV, TempDatabaseTestCase, city_row


class TestSpatialIndexBuild(TempDatabaseTestCase):
    """Test cases for building the index through CityData.prepare."""

    def setUp(self):
        super().setUp()
        self.city_data = CityData(self.db_uri)

    def tearDown(self):
        self.city_data.close()
        super().tearDown()

    def test_initial_state(self):
        self.assertEqual(self.city_data.index_builder.refresh_state(), BuildState.NOT_BUILT)
        info = self.city_data.get_table_info()
        self.assertFalse(info['migration_applied'])
        self.assertIsNone(info['tables']['cities'])

    def test_build_indexes_every_city(self):
        indexed = self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)

        self.assertEqual(indexed, 16)
        self.assertEqual(self.city_data.index_builder.state, BuildState.BUILT)

        info = self.city_data.get_table_info()
        self.assertTrue(info['migration_applied'])
        self.assertEqual(info['build_state'], 'built')
        self.assertEqual(info['tables'], {'cities': 16, 'geospatial_index': 16, 'ip2location': 5})

    def test_geohashes_are_full_precision(self):
        self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)

        rows = self.city_data.db_manager.execute("SELECT geohash, city_id FROM geospatial_index")
        self.assertEqual(len(rows), 16)
        for row in rows:
            self.assertEqual(len(row['geohash']), MAX_PRECISION)
            self.assertTrue(set(row['geohash']) <= set(BASE32))

        hanoi = [row['geohash'] for row in rows if row['city_id'] == HANOI_ID]
        self.assertEqual(hanoi, [encode(21.0283, 105.8542)])

    def test_second_build_is_a_no_op(self):
        self.assertEqual(self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV), 16)
        self.assertEqual(self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV), 0)

        # Building directly with other records does not touch the index either
        extra = self.city_data.city_importer.load_records(
            self.write_cities_csv([city_row(1, 'Elsewhere', 1.0, 1.0)])
        )
        self.assertEqual(self.city_data.index_builder.build(extra), 0)
        self.assertEqual(self.city_data.city_repository.count(), 16)

    def test_marker_survives_new_instance(self):
        self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)

        with CityData(self.db_uri) as other:
            self.assertTrue(other.index_builder.is_built())
            self.assertEqual(other.prepare(CITIES_CSV), 0)

    def test_reset_allows_rebuild(self):
        self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)
        self.city_data.reset()

        self.assertEqual(self.city_data.index_builder.state, BuildState.NOT_BUILT)
        self.assertIsNone(self.city_data.get_table_info()['tables']['geospatial_index'])

        path = self.write_cities_csv([
            city_row(1, 'Alpha', 10.0, 10.0),
            city_row(2, 'Beta', 10.1, 10.1),
        ])
        self.assertEqual(self.city_data.prepare(path), 2)

    def test_ip_ranges_skipped_when_lookup_disabled(self):
        self.config.disable_feature("enable_ip_lookup")
        self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)

        self.assertEqual(self.city_data.get_table_info()['tables']['ip2location'], 0)

    def test_countries_filter(self):
        self.config.set("data.countries", "FR,JP")
        self.assertEqual(self.city_data.prepare(CITIES_CSV), 5)

    def test_missing_csv(self):
        with self.assertRaises(DataImportError):
            self.city_data.prepare('/nonexistent/worldcities.csv')
        self.assertFalse(self.city_data.index_builder.is_built())


class TestFailedBuild(TempDatabaseTestCase):
    """A failing build must leave nothing behind."""

    def setUp(self):
        super().setUp()
        self.city_data = CityData(self.db_uri)

    def tearDown(self):
        self.city_data.close()
        super().tearDown()

    def assert_rolled_back(self):
        self.assertEqual(self.city_data.index_builder.state, BuildState.BUILD_FAILED)
        self.assertFalse(self.city_data.schema_manager.is_migration_applied(CITIES_MIGRATION))

        info = self.city_data.get_table_info()
        self.assertEqual(info['build_state'], 'build_failed')
        for table, row_count in info['tables'].items():
            self.assertIsNone(row_count, table)

    def test_latitude_out_of_range(self):
        path = self.write_cities_csv([
            city_row(1, 'Valid', 10.0, 10.0),
            city_row(2, 'Broken', 200, 10.0),
        ])

        with self.assertRaises(IndexBuildError) as cm:
            self.city_data.prepare(path)

        self.assertEqual(cm.exception.error_code, 'NC-SYS-4003')
        self.assert_rolled_back()

    def test_non_numeric_coordinate(self):
        path = self.write_cities_csv([city_row(1, 'Broken', 'abc', 10.0)])

        with self.assertRaises(IndexBuildError):
            self.city_data.prepare(path)

        self.assert_rolled_back()

    def test_rebuild_after_failure(self):
        broken = self.write_cities_csv([city_row(1, 'Broken', 200, 10.0)], name='broken.csv')
        with self.assertRaises(IndexBuildError):
            self.city_data.prepare(broken)

        fixed = self.write_cities_csv([city_row(1, 'Fixed', 20.0, 10.0)], name='fixed.csv')
        self.assertEqual(self.city_data.prepare(fixed), 1)
        self.assertEqual(self.city_data.index_builder.state, BuildState.BUILT)

    def test_queries_require_a_built_index(self):
        with self.assertRaises(IndexBuildError):
            self.city_data.find_nearby(21.0283, 105.8542)


class TestBuilderDirectly(TempDatabaseTestCase):
    """Test cases for SpatialIndexBuilder without the CityData facade."""

    def test_build_with_explicit_components(self):
        with DatabaseManager(self.db_uri) as db_manager:
            schema_manager = SchemaManager(db_manager)
            builder = SpatialIndexBuilder(db_manager, schema_manager=schema_manager, batch_size=3)

            records = builder.city_importer.load_records(CITIES_CSV)
            self.assertEqual(builder.build(records), 16)
            self.assertTrue(schema_manager.is_migration_applied())
            self.assertEqual(schema_manager.get_table_info()['tables']['ip2location'], 0)


if __name__ == "__main__":
    unittest.main()
