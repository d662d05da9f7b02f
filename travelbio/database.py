"""
SQLite data store for local development and the demo app.

Mirrors the hosted store's tables (countries, profiles, user_locations)
and adds ``fetch_country_statistics``, which groups and sums in a single
query instead of fetching every country's rows separately.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from travelbio.aggregator import average_from_totals
from travelbio.errors import DataStoreError, NotFoundError
from travelbio.gateway import PROFILE_SEARCH_LIMIT, DataStoreGateway, parse_rows
from travelbio.logging_config import get_logger, log_store_call, metrics
from travelbio.models import (
    CATEGORIES,
    OVERALL,
    RATING_MAX,
    RATING_MIN,
    Country,
    CountryStatistics,
    EntityId,
    Profile,
    RatingRecord,
)

# Logger
logger = get_logger("database")

# Current schema version
SCHEMA_VERSION = 1

RECORD_COLUMNS = (
    "user_id", "country_id", "city_id", "type",
    "transportation_rating", "accommodation_rating", "food_rating",
    "safety_rating", "activities_rating", "value_rating",
    "overall_rating", "comment", "visit_date", "created_at",
)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS countries (
        id INTEGER PRIMARY KEY,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        flag TEXT NOT NULL DEFAULT '',
        description TEXT,
        currency TEXT,
        language TEXT,
        best_time_to_visit TEXT
    );

    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        full_name TEXT,
        avatar_url TEXT,
        bio TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS user_locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        country_id INTEGER NOT NULL,
        city_id INTEGER,
        type TEXT NOT NULL DEFAULT 'visited' CHECK (type IN ('lived', 'visited')),
        transportation_rating REAL,
        accommodation_rating REAL,
        food_rating REAL,
        safety_rating REAL,
        activities_rating REAL,
        value_rating REAL,
        overall_rating REAL,
        comment TEXT,
        visit_date DATE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_locations_country ON user_locations(country_id);
    CREATE INDEX IF NOT EXISTS idx_locations_user ON user_locations(user_id);

    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
"""


# Rating field name -> column, overall first
RATING_COLUMNS = {OVERALL: "overall_rating", **{c: f"{c}_rating" for c in CATEGORIES}}


def _grouped_statistics_sql() -> str:
    """Build the single GROUP BY query behind ``fetch_country_statistics``."""
    # SQLite keeps whatever type was written, so only numeric values are
    # averaged; SUM and COUNT skip the NULLs this CASE leaves behind
    parts = []
    for col in RATING_COLUMNS.values():
        numeric = f"CASE WHEN typeof({col}) IN ('integer', 'real') THEN {col} END"
        parts.append(
            f"SUM({numeric}) AS {col}_sum, COUNT({numeric}) AS {col}_n, "
            f"SUM(CASE WHEN {numeric} NOT BETWEEN {RATING_MIN} AND {RATING_MAX} "
            f"THEN 1 ELSE 0 END) AS {col}_out_of_range, "
            f"COUNT({col}) - COUNT({numeric}) AS {col}_non_numeric"
        )
    columns = ",\n            ".join(parts)
    return f"""
        SELECT
            country_id,
            COUNT(DISTINCT user_id) AS visitor_count,
            COUNT(*) AS trip_count,
            COUNT(DISTINCT CASE WHEN type = 'lived' THEN user_id END) AS lived_count,
            COUNT(DISTINCT CASE WHEN type = 'visited' THEN user_id END) AS visited_count,
            {columns}
        FROM user_locations
        GROUP BY country_id
    """


GROUPED_STATISTICS_SQL = _grouped_statistics_sql()


def _row_to_statistics(row: sqlite3.Row) -> CountryStatistics:
    return CountryStatistics(
        country_id=row["country_id"],
        visitor_count=row["visitor_count"],
        trip_count=row["trip_count"],
        overall=average_from_totals(row["overall_rating_sum"], row["overall_rating_n"]),
        categories={
            c: average_from_totals(row[f"{c}_rating_sum"], row[f"{c}_rating_n"])
            for c in CATEGORIES
        },
        lived_count=row["lived_count"],
        visited_count=row["visited_count"],
    )


def _flag_bad_ratings(row: sqlite3.Row) -> int:
    """
    Log the rating values of one grouped row that were not clean.

    Out-of-range numbers are included in the averages as stored;
    non-numeric values are left out of them.

    Returns:
        Number of values flagged
    """
    flagged = 0
    for field_name, col in RATING_COLUMNS.items():
        out_of_range = row[f"{col}_out_of_range"] or 0
        non_numeric = row[f"{col}_non_numeric"] or 0
        if out_of_range:
            logger.warning(
                f"{out_of_range} out-of-range {field_name} rating(s) included as-is",
                extra={"country_id": row["country_id"], "field": field_name},
            )
        if non_numeric:
            logger.warning(
                f"{non_numeric} non-numeric {field_name} rating(s) left out of the average",
                extra={"country_id": row["country_id"], "field": field_name},
            )
        flagged += out_of_range + non_numeric
    return flagged


class SqliteGateway(DataStoreGateway):
    """Gateway over a local SQLite file."""

    name = "sqlite"
    supports_grouped_statistics = True

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection with row factory.

        A fresh connection per call keeps the gateway usable from the
        fan-out worker threads. SQLite errors surface as DataStoreError.
        """
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise DataStoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error: {e}", extra={"db_path": str(self.db_path)})
            raise DataStoreError(f"Database error: {e}") from e
        finally:
            conn.close()

    def init_database(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)
            conn.execute(
                """
                INSERT OR REPLACE INTO schema_version (id, version, updated_at)
                VALUES (1, ?, CURRENT_TIMESTAMP)
                """,
                (SCHEMA_VERSION,),
            )
        logger.info("Database initialized", extra={"db_path": str(self.db_path)})

    def get_schema_version(self) -> int:
        """Get current schema version, 0 for an uninitialized file."""
        with self.connection() as conn:
            try:
                row = conn.execute("SELECT version FROM schema_version").fetchone()
            except sqlite3.OperationalError:
                return 0
        return row["version"] if row else 0

    # ------------------------------------------------------------------
    # Writes used by seeding and tests
    # ------------------------------------------------------------------

    def insert_countries(self, countries: Iterable[Country]) -> int:
        """Insert or replace countries; returns the number written."""
        rows = [c.model_dump() for c in countries]
        with self.connection() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO countries
                    (id, code, name, flag, description, currency, language, best_time_to_visit)
                VALUES
                    (:id, :code, :name, :flag, :description, :currency, :language, :best_time_to_visit)
                """,
                rows,
            )
        return len(rows)

    def insert_profiles(self, profiles: Iterable[Profile]) -> int:
        """Insert or replace profiles; returns the number written."""
        rows = [p.model_dump() for p in profiles]
        with self.connection() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO profiles (id, username, full_name, avatar_url, bio)
                VALUES (:id, :username, :full_name, :avatar_url, :bio)
                """,
                rows,
            )
        return len(rows)

    @staticmethod
    def _record_params(record: RatingRecord) -> Dict[str, Any]:
        data = record.model_dump(by_alias=True, mode="json")
        return {column: data.get(column) for column in RECORD_COLUMNS}

    @log_store_call("sqlite")
    def add_record(self, record: RatingRecord) -> RatingRecord:
        params = self._record_params(record)
        columns = ", ".join(RECORD_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in RECORD_COLUMNS)
        with self.connection() as conn:
            cursor = conn.execute(
                f"INSERT INTO user_locations ({columns}) VALUES ({placeholders})",
                params,
            )
            new_id = cursor.lastrowid
        return record.model_copy(update={"id": new_id})

    def add_records(self, records: Iterable[RatingRecord]) -> int:
        """Bulk insert records; returns the number written."""
        params = [self._record_params(r) for r in records]
        columns = ", ".join(RECORD_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in RECORD_COLUMNS)
        with self.connection() as conn:
            conn.executemany(
                f"INSERT INTO user_locations ({columns}) VALUES ({placeholders})",
                params,
            )
        return len(params)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _query(self, sql: str, params: Any = ()) -> List[Dict[str, Any]]:
        with self.connection() as conn:
            return [dict(row) for row in conn.execute(sql, params).fetchall()]

    @log_store_call("sqlite")
    def fetch_records_for_country(self, country_id: EntityId) -> List[RatingRecord]:
        rows = self._query(
            "SELECT * FROM user_locations WHERE country_id = ? ORDER BY id",
            (country_id,),
        )
        return parse_rows(RatingRecord, rows)

    @log_store_call("sqlite")
    def fetch_records_for_user(self, user_id: EntityId) -> List[RatingRecord]:
        rows = self._query(
            "SELECT * FROM user_locations WHERE user_id = ? ORDER BY created_at DESC, id",
            (str(user_id),),
        )
        return parse_rows(RatingRecord, rows)

    @log_store_call("sqlite")
    def fetch_all_countries(self) -> List[Country]:
        rows = self._query("SELECT * FROM countries ORDER BY name")
        return parse_rows(Country, rows)

    @log_store_call("sqlite")
    def fetch_profiles_by_ids(self, ids: Iterable[EntityId]) -> List[Profile]:
        ids = [str(i) for i in dict.fromkeys(ids)]
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._query(
            f"SELECT * FROM profiles WHERE id IN ({placeholders})", ids
        )
        return parse_rows(Profile, rows)

    @log_store_call("sqlite")
    def fetch_all_records(self) -> List[RatingRecord]:
        rows = self._query("SELECT * FROM user_locations ORDER BY id")
        return parse_rows(RatingRecord, rows)

    @log_store_call("sqlite")
    def fetch_country_by_code(self, code: str) -> Country:
        rows = self._query(
            "SELECT * FROM countries WHERE code = ? LIMIT 1", (code.upper(),)
        )
        if not rows:
            raise NotFoundError(f"Country not found: {code}")
        return parse_rows(Country, rows)[0]

    @log_store_call("sqlite")
    def fetch_profile_by_username(self, username: str) -> Profile:
        rows = self._query(
            "SELECT * FROM profiles WHERE username = ? LIMIT 1", (username,)
        )
        if not rows:
            raise NotFoundError(f"Profile not found: {username}")
        return parse_rows(Profile, rows)[0]

    @log_store_call("sqlite")
    def search_profiles(
        self,
        query: str,
        limit: int = PROFILE_SEARCH_LIMIT
    ) -> List[Profile]:
        needle = query.strip().lower()
        if not needle:
            return []
        pattern = "%" + needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        rows = self._query(
            """
            SELECT * FROM profiles
            WHERE lower(username) LIKE ? ESCAPE '\\'
               OR lower(coalesce(full_name, '')) LIKE ? ESCAPE '\\'
            ORDER BY rowid
            LIMIT ?
            """,
            (pattern, pattern, limit),
        )
        return parse_rows(Profile, rows)

    @log_store_call("sqlite")
    def fetch_country_statistics(
        self,
        country_ids: Optional[Iterable[EntityId]] = None
    ) -> List[CountryStatistics]:
        """
        Per-country statistics from one grouped query.

        Args:
            country_ids: Countries to report, in output order; countries
                without records get zero statistics. Defaults to every
                country in the countries table, ordered by name.

        Returns:
            List of CountryStatistics equal to ``aggregate_country`` over
            each country's records; non-numeric values are left out of
            the averages and, with out-of-range ones, counted as malformed
        """
        with self.connection() as conn:
            rows = conn.execute(GROUPED_STATISTICS_SQL).fetchall()
            grouped = {row["country_id"]: _row_to_statistics(row) for row in rows}
            flagged = sum(_flag_bad_ratings(row) for row in rows)
            if country_ids is None:
                country_ids = [
                    row["id"]
                    for row in conn.execute("SELECT id FROM countries ORDER BY name")
                ]

        if flagged:
            metrics.record_malformed_rating(flagged)

        return [
            grouped.get(cid, CountryStatistics(country_id=cid))
            for cid in country_ids
        ]
