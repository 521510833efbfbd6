"""
Tests for proximity queries by point, city name and IP address.
"""

import unittest
from unittest import mock

from NearbyCities.data.city_manager import CityData
from NearbyCities.data.repositories import build_match_query, normalize_query, query_tokens
from NearbyCities.exceptions import NoMatchError, ValidationError
from NearbyCities.geo.geohash import encode
from NearbyCities.services import CityService
from tests.helpers import (
    CITIES_CSV, HAI_DUONG_ID, HANOI_ID, IP2LOCATION_CSV, PARIS_FR_ID, PARIS_US_ID,
    REFERENCE_POINT, TempDatabaseTestCase, city_row
)

BAC_NINH_ID = 1704000201
THANH_HOA_ID = 1704000117

# Cities in geohash cell w7e ordered by distance from REFERENCE_POINT
NEAR_REFERENCE = [
    HANOI_ID,
    1704017580,  # Hung Yen
    HAI_DUONG_ID,
    1704000236,  # Phu Ly
    1704000113,  # Nam Dinh
    1704000099,  # Haiphong
    THANH_HOA_ID,
]


class NearbyTestCase(TempDatabaseTestCase):
    """Builds the sample index before each test."""

    def setUp(self):
        super().setUp()
        self.city_data = CityData(self.db_uri)
        self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)

    def tearDown(self):
        self.city_data.close()
        super().tearDown()


class TestFindNearby(NearbyTestCase):
    """Test cases for queries around a coordinate."""

    def test_reference_point(self):
        cities = self.city_data.find_nearby(*REFERENCE_POINT, radius_km=100)

        self.assertEqual(cities[0]['id'], HANOI_ID)
        self.assertEqual(cities[0]['name'], 'Hanoi')
        self.assertEqual(cities[0]['distance'], 2.08)
        self.assertEqual([city['id'] for city in cities], NEAR_REFERENCE)

    def test_candidates_share_the_prefix(self):
        prefix = encode(*REFERENCE_POINT, 3)
        self.assertEqual(prefix, 'w7e')

        cities = self.city_data.find_nearby(*REFERENCE_POINT)
        for city in cities:
            self.assertTrue(city['geohash'].startswith(prefix), city['name'])

        # Bac Ninh is about 20 km away but lies in the neighbouring cell
        self.assertNotIn(BAC_NINH_ID, [city['id'] for city in cities])

    def test_results_are_sorted_and_rounded(self):
        cities = self.city_data.find_nearby(*REFERENCE_POINT)
        distances = [city['distance'] for city in cities]

        self.assertEqual(distances, sorted(distances))
        for distance in distances:
            self.assertEqual(distance, round(distance, 2))

    def test_result_fields(self):
        hanoi = self.city_data.find_nearby(21.0283, 105.8542)[0]
        self.assertEqual(hanoi['distance'], 0.0)
        self.assertEqual(hanoi['ascii_name'], 'Hanoi')
        self.assertEqual(hanoi['admin_name'], 'Hà Nội')
        self.assertEqual(hanoi['country'], 'Vietnam')
        self.assertEqual(hanoi['iso2'], 'VN')
        self.assertEqual(hanoi['geohash'], encode(21.0283, 105.8542))

    def test_loose_radius_keeps_far_candidates(self):
        cities = self.city_data.find_nearby(*REFERENCE_POINT, radius_km=100, strict=False)
        thanh_hoa = [city for city in cities if city['id'] == THANH_HOA_ID]

        self.assertEqual(len(thanh_hoa), 1)
        self.assertGreater(thanh_hoa[0]['distance'], 100)

    def test_strict_radius(self):
        cities = self.city_data.find_nearby(*REFERENCE_POINT, radius_km=100, strict=True)

        self.assertEqual([city['id'] for city in cities], NEAR_REFERENCE[:-1])
        self.assertTrue(all(city['distance'] <= 100 for city in cities))

    def test_strict_radius_uses_exact_distance(self):
        # 100.004 km rounds to 100.0 but is still beyond a 100 km radius
        with mock.patch('NearbyCities.data.city_manager.haversine', return_value=100.004):
            loose = self.city_data.find_nearby(*REFERENCE_POINT, radius_km=100, strict=False)
            strict = self.city_data.find_nearby(*REFERENCE_POINT, radius_km=100, strict=True)

        self.assertEqual([city['distance'] for city in loose], [100.0] * len(NEAR_REFERENCE))
        self.assertEqual(strict, [])

    def test_strict_radius_from_config(self):
        self.config.set("search.strict_radius", True)
        cities = self.city_data.find_nearby(*REFERENCE_POINT)
        self.assertNotIn(THANH_HOA_ID, [city['id'] for city in cities])

    def test_radius_from_config(self):
        # 15 km maps to precision 4, leaving only the w7er cell
        self.config.set("search.radius_km", 15)
        cities = self.city_data.find_nearby(*REFERENCE_POINT)
        self.assertEqual([city['id'] for city in cities], [HANOI_ID])

    def test_empty_neighbourhood(self):
        self.assertEqual(self.city_data.find_nearby(-45.0, -120.0), [])

    def test_invalid_coordinates(self):
        with self.assertRaises(ValidationError):
            self.city_data.find_nearby(200, 105.8542)
        with self.assertRaises(ValidationError):
            self.city_data.find_nearby(21.0, 'east')

    def test_invalid_radius(self):
        for radius in (0, -10, float('nan')):
            with self.subTest(radius=radius):
                with self.assertRaises(ValidationError):
                    self.city_data.find_nearby(*REFERENCE_POINT, radius_km=radius)

    def test_max_radius(self):
        with self.assertRaises(ValidationError):
            self.city_data.find_nearby(*REFERENCE_POINT, radius_km=501)

        self.config.set("search.max_radius_km", None)
        cities = self.city_data.find_nearby(*REFERENCE_POINT, radius_km=5000)
        self.assertIn(BAC_NINH_ID, [city['id'] for city in cities])


class TestInMemoryDatabase(TempDatabaseTestCase):
    """An in-memory SQLite index lives as long as its CityData."""

    def test_prepare_then_query(self):
        with CityData('sqlite:///:memory:') as city_data:
            self.assertTrue(city_data.persistent)
            self.assertEqual(city_data.prepare(CITIES_CSV, IP2LOCATION_CSV), 16)

            cities = city_data.find_nearby(*REFERENCE_POINT)
            located = city_data.find_nearby_by_ip('14.160.1.1')
            info = city_data.get_table_info()

        self.assertEqual([city['id'] for city in cities], NEAR_REFERENCE)
        self.assertEqual(located['cities'][0]['id'], HANOI_ID)
        self.assertEqual(info['tables']['geospatial_index'], 16)
        self.assertEqual(info['build_state'], 'built')


class TestTieBreak(TempDatabaseTestCase):
    """Cities at the same distance are ordered by id."""

    def test_equal_distances_order_by_id(self):
        path = self.write_cities_csv([
            city_row(30, 'Gamma', 10.0, 10.0),
            city_row(10, 'Alpha', 10.0, 10.0),
            city_row(20, 'Beta', 10.0, 10.0),
            city_row(5, 'Farther', 10.05, 10.0),
        ])

        with CityData(self.db_uri) as city_data:
            city_data.prepare(path)
            cities = city_data.find_nearby(10.0, 10.0, radius_km=100)

        self.assertEqual([city['id'] for city in cities], [10, 20, 30, 5])
        self.assertEqual([city['distance'] for city in cities][:3], [0.0, 0.0, 0.0])

    def test_repeated_queries_are_identical(self):
        path = self.write_cities_csv([
            city_row(2, 'East', 10.0, 10.01),
            city_row(1, 'West', 10.0, 9.99),
        ])

        with CityData(self.db_uri) as city_data:
            city_data.prepare(path)
            first = city_data.find_nearby(10.0, 10.0)
            second = city_data.find_nearby(10.0, 10.0)

        self.assertEqual(first, second)
        self.assertEqual([city['id'] for city in first], [1, 2])


class TestFindNearbyByName(NearbyTestCase):
    """Test cases for name-based queries using full-text search."""

    def setUp(self):
        super().setUp()
        if self.city_data.schema_manager.search_mode != 'fts5':
            self.skipTest("SQLite was built without FTS5")

    def test_hanoi(self):
        result = self.city_data.find_nearby_by_name("Hanoi!")

        self.assertEqual(result['origin']['type'], 'city')
        self.assertEqual(result['origin']['id'], HANOI_ID)
        self.assertEqual(result['origin']['query'], "Hanoi!")
        self.assertEqual(result['origin']['population'], 8053663)
        self.assertEqual(result['radius_km'], 100.0)
        self.assertEqual(result['precision'], 3)
        self.assertEqual(result['prefix'], 'w7e')
        self.assertEqual(result['count'], len(result['cities']))
        self.assertEqual(result['cities'][0]['id'], HANOI_ID)
        self.assertEqual(result['cities'][0]['distance'], 0.0)

    def test_accented_query(self):
        self.assertEqual(self.city_data.resolve_city("Hà Nội!")['id'], HANOI_ID)

    def test_accents_are_optional(self):
        accented = self.city_data.resolve_city("Hải Dương!")
        plain = self.city_data.resolve_city("Hai Duong")

        self.assertEqual(accented['id'], HAI_DUONG_ID)
        self.assertEqual(plain['id'], HAI_DUONG_ID)

    def test_case_insensitive(self):
        self.assertEqual(self.city_data.resolve_city("HANOI")['id'], HANOI_ID)

    def test_ambiguous_name_prefers_population(self):
        self.assertEqual(self.city_data.resolve_city("Paris")['id'], PARIS_FR_ID)

    def test_country_narrows_the_match(self):
        self.assertEqual(self.city_data.resolve_city("Paris United States")['id'], PARIS_US_ID)
        self.assertEqual(self.city_data.resolve_city("Paris, Texas")['id'], PARIS_US_ID)

    def test_hyphenated_name(self):
        city = self.city_data.resolve_city("Boulogne-Billancourt")
        self.assertEqual(city['city'], "Boulogne-Billancourt")

    def test_paris_neighbourhood(self):
        result = self.city_data.find_nearby_by_name("Paris", radius_km=100)
        names = [city['name'] for city in result['cities']]

        self.assertEqual(names[0], 'Paris')
        self.assertIn('Versailles', names)
        self.assertIn('Boulogne-Billancourt', names)
        self.assertNotIn(PARIS_US_ID, [city['id'] for city in result['cities']])

    def test_empty_queries(self):
        for query in ("", "   ", "!!!", "?", "-- --", None):
            with self.subTest(query=query):
                with self.assertRaises(ValidationError):
                    self.city_data.find_nearby_by_name(query)

    def test_unknown_city(self):
        with self.assertRaises(NoMatchError) as cm:
            self.city_data.find_nearby_by_name("Atlantis")

        self.assertEqual(cm.exception.status_code, 404)
        self.assertEqual(cm.exception.error_code, 'NC-DATA-2004')

    def test_symbols_only(self):
        with self.assertRaises(NoMatchError):
            self.city_data.resolve_city("+")

    def test_every_token_must_match(self):
        with self.assertRaises(NoMatchError):
            self.city_data.resolve_city("Hanoi Tokyo")


class TestExactNameSearch(TempDatabaseTestCase):
    """Without FTS5, names are matched exactly and case-insensitively."""

    def setUp(self):
        super().setUp()
        self.config.set("database.sqlite.fts", False)
        self.city_data = CityData(self.db_uri)
        self.city_data.prepare(CITIES_CSV, IP2LOCATION_CSV)

    def tearDown(self):
        self.city_data.close()
        super().tearDown()

    def test_search_mode(self):
        self.assertEqual(self.city_data.schema_manager.search_mode, 'exact')
        self.assertIsNone(self.city_data.get_table_info()['tables'].get('cities_fts'))

    def test_exact_names(self):
        self.assertEqual(self.city_data.resolve_city("Hanoi!")['id'], HANOI_ID)
        self.assertEqual(self.city_data.resolve_city("hai duong")['id'], HAI_DUONG_ID)
        self.assertEqual(self.city_data.resolve_city("Paris")['id'], PARIS_FR_ID)

    def test_partial_names_do_not_match(self):
        with self.assertRaises(NoMatchError):
            self.city_data.resolve_city("Paris United States")


class TestFindNearbyByIP(NearbyTestCase):
    """Test cases for IP-based queries."""

    def test_public_address(self):
        result = self.city_data.find_nearby_by_ip('14.160.1.1')

        self.assertEqual(result['origin'], {
            'type': 'ip',
            'ip': '14.160.1.1',
            'name': 'Hanoi',
            'admin_name': 'Ha Noi',
            'country': 'Viet Nam',
            'iso2': 'VN',
            'lat': 21.0245,
            'lng': 105.84117,
        })
        self.assertEqual(result['prefix'], 'w7e')
        self.assertEqual(result['cities'][0]['id'], HANOI_ID)

    def test_ipv4_mapped_address(self):
        location = self.city_data.resolve_ip('::ffff:14.160.1.1')
        self.assertEqual(location['city'], 'Hanoi')

    def test_range_boundaries(self):
        self.assertEqual(self.city_data.resolve_ip('1.0.0.0')['city'], 'Los Angeles')
        self.assertEqual(self.city_data.resolve_ip('1.0.0.255')['city'], 'Los Angeles')
        self.assertEqual(self.city_data.resolve_ip('2.0.0.0')['city'], 'Paris')

    def test_private_address_is_never_looked_up(self):
        with mock.patch.object(self.city_data.ip_repository, 'find_by_ip_number') as lookup:
            for address in ('192.168.1.1', '10.1.2.3', '172.20.0.5'):
                with self.subTest(address=address):
                    with self.assertRaises(NoMatchError):
                        self.city_data.find_nearby_by_ip(address)
            lookup.assert_not_called()

    def test_unknown_place(self):
        for address in ('127.0.0.1', '0.0.0.1'):
            with self.subTest(address=address):
                with self.assertRaises(NoMatchError):
                    self.city_data.find_nearby_by_ip(address)

    def test_gaps_between_ranges(self):
        for address in ('1.0.1.0', '8.8.8.8', '200.1.1.1'):
            with self.subTest(address=address):
                with self.assertRaises(NoMatchError):
                    self.city_data.resolve_ip(address)

    def test_invalid_address(self):
        with self.assertRaises(ValidationError):
            self.city_data.find_nearby_by_ip('not-an-ip')

    def test_lookup_disabled(self):
        self.config.disable_feature("enable_ip_lookup")
        with self.assertRaises(NoMatchError):
            self.city_data.find_nearby_by_ip('14.160.1.1')


class TestNameNormalization(unittest.TestCase):
    """Test cases for turning free text into name queries."""

    def test_punctuation_becomes_space(self):
        self.assertEqual(normalize_query("Hanoi!"), "Hanoi")
        self.assertEqual(normalize_query("  Hà   Nội! "), "Hà Nội")
        self.assertEqual(normalize_query("Boulogne-Billancourt"), "Boulogne Billancourt")
        self.assertEqual(normalize_query("St. John's"), "St John s")
        self.assertEqual(normalize_query("«Paris»"), "Paris")

    def test_empty_after_normalization(self):
        for query in ("", "...", " ¿? ", None):
            with self.subTest(query=query):
                with self.assertRaises(ValidationError):
                    normalize_query(query)

    def test_tokens_need_a_letter_or_digit(self):
        self.assertEqual(query_tokens("Paris + Texas"), ["Paris", "Texas"])

    def test_match_query_quotes_tokens(self):
        self.assertEqual(build_match_query("Hai Duong"), '"Hai" "Duong"')
        self.assertEqual(build_match_query("AND OR NOT"), '"AND" "OR" "NOT"')


class TestCityService(NearbyTestCase):
    """The service layer passes queries through to CityData."""

    def test_service_queries(self):
        with CityService(self.db_uri) as service:
            self.assertEqual(service.prepare(CITIES_CSV), 0)

            cities = service.nearby_by_coordinates(*REFERENCE_POINT, radius_km=100, strict=True)
            self.assertEqual(len(cities), 6)

            result = service.nearby_by_ip('14.160.1.1')
            self.assertEqual(result['origin']['iso2'], 'VN')

            info = service.get_table_info()
            self.assertEqual(info['build_state'], 'built')

    def test_get_city(self):
        self.assertEqual(self.city_data.get_city(PARIS_US_ID)['admin_name'], 'Texas')
        self.assertIsNone(self.city_data.get_city(1))


if __name__ == "__main__":
    unittest.main()
