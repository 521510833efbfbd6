"""
Data importer module for the NearbyCities package.

Locates (and, when configured, downloads) the two source datasets and loads
them into the database:

- the world cities CSV (``city,city_ascii,lat,lng,country,iso2,iso3,admin_name,capital,population,id``)
- the IP2Location LITE DB5 CSV (headerless IPv4 ranges with a location)

Inserts are written through a cursor supplied by the caller so that the
index builder can keep the whole import in one transaction.
"""

import math
import os
import time
import urllib.error
import urllib.request
import zipfile
from typing import Any, Dict, List, Optional

import pandas as pd

from NearbyCities.config.manager import get_config
from NearbyCities.data.database import DatabaseManager, QueryCursor
from NearbyCities.data.models import CityRecord, CITY_COLUMNS, IP2LOCATION_CSV_COLUMNS
from NearbyCities.data.schema import CITIES_TABLE, IP2LOCATION_TABLE
from NearbyCities.exceptions import DataImportError
from NearbyCities.utils.logging import get_logger

logger = get_logger(__name__, {'component': 'importer'})

DATA_DIR_ENV_VAR = 'NEARBYCITIES_DATA_DIR'

CITIES_FILE_NAME = 'worldcities.csv'
IP2LOCATION_FILE_NAME = 'IP2LOCATION-LITE-DB5.CSV'
IP2LOCATION_ZIP_NAME = 'IP2LOCATION-LITE-DB5.CSV.ZIP'

REQUIRED_CITY_COLUMNS = ('id', 'city', 'lat', 'lng')


def get_data_directory() -> str:
    """
    Get the directory where NearbyCities datasets are stored.

    Uses the NEARBYCITIES_DATA_DIR environment variable when set, otherwise
    ``~/.nearbycities/data``. The directory is created if it doesn't exist.
    """
    data_dir = os.environ.get(DATA_DIR_ENV_VAR) or os.path.join(
        os.path.expanduser('~'), '.nearbycities', 'data'
    )
    os.makedirs(data_dir, exist_ok=True)
    return data_dir


def _download(url: str, destination: str) -> None:
    try:
        urllib.request.urlretrieve(url, destination)
    except (urllib.error.URLError, OSError) as e:
        if os.path.exists(destination):
            os.remove(destination)
        raise DataImportError(
            message=f"Failed to download {url}: {e}",
            user_message="The dataset could not be downloaded.",
            cause=e
        ) from e


def _extract_member(zip_path: str, member_name: str, data_dir: str) -> str:
    """Extract one file from a zip archive into ``data_dir``, matching its name case-insensitively."""
    if not zipfile.is_zipfile(zip_path):
        raise DataImportError(
            message=f"{zip_path} is not a zip archive",
            user_message="The downloaded dataset is not in the expected format."
        )

    with zipfile.ZipFile(zip_path) as archive:
        for info in archive.infolist():
            if os.path.basename(info.filename).lower() == member_name.lower():
                target = os.path.join(data_dir, member_name)
                with archive.open(info) as source, open(target, 'wb') as out:
                    while True:
                        chunk = source.read(1024 * 1024)
                        if not chunk:
                            break
                        out.write(chunk)
                return target

    raise DataImportError(
        message=f"{member_name} not found in {zip_path}",
        user_message="The downloaded dataset is missing its data file."
    )


def download_city_data(force: bool = False, url: Optional[str] = None) -> str:
    """
    Download the world cities CSV into the data directory.

    Args:
        force: Download even if the file already exists
        url: URL of the CSV or of a zip archive containing it; defaults to
            the ``data.cities_url`` setting

    Returns:
        Path to the CSV file

    Raises:
        DataImportError: If no URL is configured or the download fails
    """
    data_dir = get_data_directory()
    csv_path = os.path.join(data_dir, CITIES_FILE_NAME)

    if os.path.exists(csv_path) and not force:
        logger.info(f"Cities data already exists at {csv_path}")
        return csv_path

    url = url or get_config().get("data.cities_url")
    if not url:
        raise DataImportError(
            message="No cities dataset URL configured (data.cities_url)",
            user_message=f"City data not found. Place {CITIES_FILE_NAME} in {data_dir} or set data.cities_url."
        )

    download_path = csv_path + '.download'
    logger.info(f"Downloading cities data from {url}")
    _download(url, download_path)

    if zipfile.is_zipfile(download_path):
        _extract_member(download_path, CITIES_FILE_NAME, data_dir)
        os.remove(download_path)
    else:
        os.replace(download_path, csv_path)

    logger.info(f"Cities data saved to {csv_path}")
    return csv_path


def download_ip2location_data(force: bool = False, token: Optional[str] = None) -> Optional[str]:
    """
    Download and unpack the IP2Location LITE DB5 database.

    Args:
        force: Download even if the CSV already exists
        token: IP2Location download token; defaults to the IP2LOCATION_TOKEN
            environment variable or the ``data.ip2location.token`` setting

    Returns:
        Path to the CSV file, or None when no token is available

    Raises:
        DataImportError: If the download or the extraction fails
    """
    config = get_config()
    data_dir = get_data_directory()
    csv_path = os.path.join(data_dir, IP2LOCATION_FILE_NAME)

    if os.path.exists(csv_path) and not force:
        logger.info(f"IP2Location data already exists at {csv_path}")
        return csv_path

    token = token or config.get_ip2location_token()
    if not token:
        logger.warning("No IP2Location token configured; IP-based lookups will find no match")
        return None

    url = config.get("data.ip2location.url").format(token=token)
    zip_path = os.path.join(data_dir, IP2LOCATION_ZIP_NAME)

    logger.info("Downloading IP2Location LITE DB5")
    _download(url, zip_path)
    try:
        _extract_member(zip_path, IP2LOCATION_FILE_NAME, data_dir)
    finally:
        os.remove(zip_path)

    logger.info(f"IP2Location data saved to {csv_path}")
    return csv_path


def _none_if_missing(value: Any) -> Any:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    return value


def _to_int(value: Any) -> Optional[int]:
    value = _none_if_missing(value)
    if value is None:
        return None
    return int(float(value))


class CityDataImporter:
    """
    Reads the world cities CSV and inserts its rows into ``cities``.
    """

    def __init__(self, db_manager: DatabaseManager, config=None) -> None:
        self.db_manager = db_manager
        self.config = config if config is not None else get_config()
        self.table_name = CITIES_TABLE

    def find_csv(self, csv_path: Optional[str] = None) -> str:
        """
        Resolve the cities CSV path.

        Order: the explicit argument, the ``data.cities_path`` setting, the
        data directory, and finally a download when ``auto_fetch_data`` is on.

        Raises:
            DataImportError: If the file cannot be found or downloaded
        """
        csv_path = csv_path or self.config.get("data.cities_path")
        if csv_path:
            if not os.path.isfile(csv_path):
                raise DataImportError(
                    message=f"City data CSV file not found at {csv_path}",
                    user_message="The configured city data file does not exist.",
                    context={"path": csv_path}
                )
            return csv_path

        default_path = os.path.join(get_data_directory(), CITIES_FILE_NAME)
        if os.path.isfile(default_path):
            return default_path

        if self.config.should_auto_download():
            return download_city_data()

        raise DataImportError(
            message=f"City data CSV file not found at {default_path}",
            user_message="City data is missing and automatic download is disabled."
        )

    def load_records(self, csv_path: str) -> List[CityRecord]:
        """
        Read the cities CSV into records.

        Rows without a city name are skipped. Coordinates are converted but
        not range-checked here; the index builder rejects malformed ones.

        Raises:
            DataImportError: If the file is unreadable, lacks a required
                column or holds a non-numeric id
        """
        start_time = time.time()
        try:
            # keep_default_na=False so that a city called "NA" stays a string
            df = pd.read_csv(csv_path, dtype=str, encoding='utf-8',
                             keep_default_na=False, na_values=[''])
        except UnicodeDecodeError:
            logger.warning("UTF-8 decoding failed, retrying with ISO-8859-1")
            df = pd.read_csv(csv_path, dtype=str, encoding='ISO-8859-1',
                             keep_default_na=False, na_values=[''])
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataImportError(
                message=f"Could not read city data from {csv_path}: {e}",
                context={"path": csv_path},
                cause=e
            ) from e

        df.columns = [str(column).strip().lower() for column in df.columns]

        missing_columns = [col for col in REQUIRED_CITY_COLUMNS if col not in df.columns]
        if missing_columns:
            raise DataImportError(
                message=f"CSV file is missing required columns: {', '.join(missing_columns)}",
                context={"path": csv_path}
            )

        for column in CITY_COLUMNS:
            if column not in df.columns:
                df[column] = None

        original_count = len(df)
        df = df.dropna(subset=['city'])
        if len(df) < original_count:
            logger.warning(f"Skipped {original_count - len(df)} rows without a city name")

        countries = self.config.get_enabled_countries()
        if countries:
            df = df[df['iso2'].fillna('').str.upper().isin(countries)]
            logger.info(f"Keeping {len(df)} cities in {', '.join(countries)}")

        records: List[CityRecord] = []
        for row in df[list(CITY_COLUMNS)].to_dict(orient='records'):
            records.append(self._to_record(row))

        logger.info(
            f"Loaded {len(records)} cities from {csv_path} in {time.time() - start_time:.2f} seconds",
            extra={'city_count': len(records)}
        )
        return records

    def _to_record(self, row: Dict[str, Any]) -> CityRecord:
        try:
            city_id = _to_int(row['id'])
        except ValueError as e:
            raise DataImportError(
                message=f"Invalid city id {row['id']!r} for {row['city']!r}",
                context={"city": row['city']},
                cause=e
            ) from e
        if city_id is None:
            raise DataImportError(message=f"Missing city id for {row['city']!r}")

        try:
            population = _to_int(row['population'])
        except ValueError:
            population = None

        return CityRecord(
            id=city_id,
            city=row['city'],
            city_ascii=_none_if_missing(row['city_ascii']),
            lat=self._to_coordinate(row['lat']),
            lng=self._to_coordinate(row['lng']),
            country=_none_if_missing(row['country']),
            iso2=_none_if_missing(row['iso2']),
            iso3=_none_if_missing(row['iso3']),
            admin_name=_none_if_missing(row['admin_name']),
            capital=_none_if_missing(row['capital']),
            population=population,
        )

    @staticmethod
    def _to_coordinate(value: Any) -> Any:
        # Unparseable values are passed through for the builder to reject
        value = _none_if_missing(value)
        try:
            return float(value)
        except (TypeError, ValueError):
            return value

    def insert_records(self, cursor: QueryCursor, records: List[CityRecord],
                       batch_size: Optional[int] = None) -> int:
        """
        Insert city records in batches using the caller's transaction.

        Returns:
            Number of records inserted
        """
        batch_size = batch_size or self.config.get("data.batch_size", 5000)
        placeholders = ", ".join("?" for _ in CITY_COLUMNS)
        query = f"INSERT INTO {self.table_name} ({', '.join(CITY_COLUMNS)}) VALUES ({placeholders})"

        total = 0
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            cursor.executemany(query, [tuple(record[col] for col in CITY_COLUMNS) for record in batch])
            total += len(batch)
            logger.debug(f"Inserted {total}/{len(records)} cities")

        return total


class IP2LocationImporter:
    """
    Loads the IP2Location LITE DB5 CSV into ``ip2location``.
    """

    def __init__(self, db_manager: DatabaseManager, config=None) -> None:
        self.db_manager = db_manager
        self.config = config if config is not None else get_config()
        self.table_name = IP2LOCATION_TABLE

    def find_csv(self, csv_path: Optional[str] = None) -> Optional[str]:
        """
        Resolve the IP2Location CSV path, downloading it when a token is available.

        Returns:
            The path, or None when the dataset is unavailable
        """
        csv_path = csv_path or self.config.get("data.ip2location.path")
        if csv_path:
            if not os.path.isfile(csv_path):
                raise DataImportError(
                    message=f"IP2Location CSV file not found at {csv_path}",
                    context={"path": csv_path}
                )
            return csv_path

        default_path = os.path.join(get_data_directory(), IP2LOCATION_FILE_NAME)
        if os.path.isfile(default_path):
            return default_path

        if self.config.should_auto_download():
            return download_ip2location_data()

        logger.warning("IP2Location data not found and automatic download is disabled")
        return None

    def import_csv(self, cursor: QueryCursor, csv_path: str, batch_size: Optional[int] = None) -> int:
        """
        Insert every IPv4 range of the CSV using the caller's transaction.

        Returns:
            Number of ranges inserted

        Raises:
            DataImportError: If the file cannot be parsed
        """
        batch_size = batch_size or self.config.get("data.batch_size", 5000)
        query = (
            f"INSERT INTO {self.table_name} (start_ip, end_ip, iso2, country, region, city, lat, lng) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
        )

        start_time = time.time()
        total = 0
        try:
            chunks = pd.read_csv(
                csv_path,
                header=None,
                names=list(IP2LOCATION_CSV_COLUMNS),
                dtype={'country_code': str, 'country_name': str, 'region_name': str, 'city_name': str},
                keep_default_na=False,
                na_values=[''],
                chunksize=batch_size,
            )
            for chunk in chunks:
                rows = [
                    (
                        int(row.ip_from),
                        int(row.ip_to),
                        _none_if_missing(row.country_code),
                        _none_if_missing(row.country_name),
                        _none_if_missing(row.region_name),
                        _none_if_missing(row.city_name),
                        float(row.latitude),
                        float(row.longitude),
                    )
                    for row in chunk.itertuples(index=False)
                ]
                cursor.executemany(query, rows)
                total += len(rows)
        except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataImportError(
                message=f"Could not import IP2Location data from {csv_path}: {e}",
                context={"path": csv_path},
                cause=e
            ) from e

        logger.info(
            f"Imported {total} IP ranges in {time.time() - start_time:.2f} seconds",
            extra={'ip_range_count': total}
        )
        return total
