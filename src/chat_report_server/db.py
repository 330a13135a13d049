"""
Message source layer with read-only enforcement.

``MessageSource`` is the interface the analytics engine consumes. The four
primitive calls are abstract; every aggregate query has a default
implementation that scans ``get_messages`` so that simple sources work out of
the box. ``SQLiteMessageSource`` answers the aggregates with SQL directly and
never loads message bodies it does not need.
"""

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from .models import DayBucket, Message, Session, TextLengthStats, TEXT_MESSAGE
from .scope import filter_messages_by_year

logger = logging.getLogger(__name__)

REQUIRED_TABLES = {"session", "contact", "message"}


class DatabaseError(Exception):
    """Base exception for message source operations."""

    pass


class SourceUnavailableError(DatabaseError):
    """The message source cannot be reached (missing file, not connected)."""

    pass


def empty_histogram() -> List[List[int]]:
    """24 hours x 7 weekdays of zeros."""
    return [[0] * 7 for _ in range(24)]


class MessageSource(ABC):
    """Interface to the message store consumed by the analytics engine."""

    @abstractmethod
    async def list_sessions(self) -> List[Session]:
        """All conversations in the archive."""

    @abstractmethod
    async def get_messages(self, contact_id: str) -> List[Message]:
        """Every message exchanged with one contact, in any order."""

    @abstractmethod
    async def get_display_names(self, contact_ids: Sequence[str]) -> Dict[str, str]:
        """Display names for the contacts that have one."""

    @abstractmethod
    async def last_modified(self) -> int:
        """Freshness token: comparable last-modified time of the source."""

    # Aggregates. Defaults scan the full message list of each contact.

    async def _scoped_messages(self, contact_id: str, year: Optional[int]) -> List[Message]:
        return filter_messages_by_year(year, await self.get_messages(contact_id))

    async def _iter_contact_messages(
        self, contact_ids: Sequence[str], year: Optional[int]
    ) -> AsyncGenerator[Tuple[str, List[Message]], None]:
        """Yield (contact_id, messages), skipping contacts whose read fails."""
        for contact_id in contact_ids:
            try:
                messages = await self._scoped_messages(contact_id, year)
            except SourceUnavailableError:
                raise
            except Exception as e:
                logger.warning(f"Skipping contact {contact_id} in aggregate: {e}")
                continue
            yield contact_id, messages

    async def get_message_counts(
        self, contact_id: str, year: Optional[int] = None
    ) -> Tuple[int, int]:
        """(sent, received) totals for one contact."""
        sent = received = 0
        for msg in await self._scoped_messages(contact_id, year):
            if msg.sender_is_self:
                sent += 1
            else:
                received += 1
        return sent, received

    async def get_messages_by_date(
        self, contact_id: str, year: Optional[int] = None
    ) -> Dict[date, DayBucket]:
        """Per calendar day: message count and whether self sent the first one."""
        messages = sorted(await self._scoped_messages(contact_id, year), key=lambda m: m.timestamp)
        counts: Dict[date, int] = defaultdict(int)
        first_is_self: Dict[date, bool] = {}
        for msg in messages:
            day = msg.sent_at.date()
            counts[day] += 1
            first_is_self.setdefault(day, msg.sender_is_self)
        return {
            day: DayBucket(count=count, first_is_self=first_is_self[day])
            for day, count in counts.items()
        }

    async def get_activity_histogram(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> List[List[int]]:
        """Message counts by hour (rows) x weekday (columns, Monday=0)."""
        histogram = empty_histogram()
        async for _, messages in self._iter_contact_messages(contact_ids, year):
            for msg in messages:
                sent_at = msg.sent_at
                histogram[sent_at.hour][sent_at.weekday()] += 1
        return histogram

    async def get_type_distribution(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> Dict[int, int]:
        distribution: Dict[int, int] = defaultdict(int)
        async for _, messages in self._iter_contact_messages(contact_ids, year):
            for msg in messages:
                distribution[msg.type_code] += 1
        return dict(distribution)

    async def get_text_length_stats(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> TextLengthStats:
        """Length statistics over self-sent text messages, with the longest one."""
        total_length = count = 0
        longest: Optional[Tuple[str, Message]] = None
        async for contact_id, messages in self._iter_contact_messages(contact_ids, year):
            for msg in messages:
                if not (msg.sender_is_self and msg.is_text):
                    continue
                total_length += len(msg.content)
                count += 1
                if longest is None or (len(msg.content), -msg.timestamp) > (
                    len(longest[1].content),
                    -longest[1].timestamp,
                ):
                    longest = (contact_id, msg)

        if count == 0 or longest is None:
            return TextLengthStats()

        return TextLengthStats(
            average_length=total_length / count,
            text_message_count=count,
            longest_length=len(longest[1].content),
            longest_content=longest[1].content,
            longest_contact_id=longest[0],
            longest_timestamp=longest[1].timestamp,
        )

    async def get_midnight_histogram(
        self, contact_id: str, year: Optional[int] = None, hours: range = range(0, 6)
    ) -> Dict[int, int]:
        """Messages per late-night hour for one contact."""
        histogram: Dict[int, int] = defaultdict(int)
        for msg in await self._scoped_messages(contact_id, year):
            hour = msg.sent_at.hour
            if hour in hours:
                histogram[hour] += 1
        return dict(histogram)

    async def get_all_message_dates(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> Dict[str, Set[date]]:
        """Distinct active calendar days per contact."""
        result: Dict[str, Set[date]] = {}
        async for contact_id, messages in self._iter_contact_messages(contact_ids, year):
            days = {msg.sent_at.date() for msg in messages}
            if days:
                result[contact_id] = days
        return result

    async def close(self) -> None:
        """Release resources held by the source."""


class SQLiteMessageSource(MessageSource):
    """Read-only message source backed by a local SQLite archive."""

    def __init__(self, db_path: Union[str, Path], timeout: int = 30):
        """Initialize database connection settings."""
        self.db_path = Path(db_path).expanduser()
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the archive in read-only mode."""
        if not self.db_path.exists():
            raise SourceUnavailableError(f"Database not found: {self.db_path}")

        try:
            self._connection = sqlite3.connect(
                f"file:{self.db_path}?mode=ro",
                uri=True,
                timeout=self.timeout,
                check_same_thread=False,
            )

            # Enable read-only pragma
            self._connection.execute("PRAGMA query_only = ON")

            # Optimize for read performance
            self._connection.execute("PRAGMA cache_size = 10000")
            self._connection.execute("PRAGMA temp_store = MEMORY")

            cursor = self._connection.execute("PRAGMA query_only")
            if cursor.fetchone()[0] != 1:
                raise DatabaseError("Failed to enforce read-only mode")

            logger.info(f"Database initialized in read-only mode: {self.db_path}")

        except sqlite3.Error as e:
            raise SourceUnavailableError(f"Failed to initialize database: {e}")

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[sqlite3.Connection, None]:
        """Get database connection with async context manager."""
        async with self._lock:
            if not self._connection:
                await self.initialize()
            yield self._connection

    async def execute_query(
        self, query: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        """Execute a read-only query and return rows as dictionaries."""
        async with self.get_connection() as conn:
            try:
                cursor = conn.execute(query, tuple(params or ()))
                rows = cursor.fetchall()
                columns = [desc[0] for desc in cursor.description] if cursor.description else []
                return [dict(zip(columns, row)) for row in rows]

            except sqlite3.Error as e:
                logger.error(f"Query execution failed: {e}")
                raise DatabaseError(f"Query failed: {e}")

    async def check_schema(self) -> Dict[str, Any]:
        """Validate archive schema and return available tables."""
        query = """
        SELECT name, type
        FROM sqlite_master
        WHERE type IN ('table', 'view')
        AND name NOT LIKE 'sqlite_%'
        ORDER BY type, name
        """

        tables = await self.execute_query(query)
        table_names = {t["name"] for t in tables if t["type"] == "table"}
        missing = REQUIRED_TABLES - table_names

        return {
            "tables": sorted(table_names),
            "missing_required": sorted(missing),
            "schema_valid": len(missing) == 0,
        }

    # Primitives

    async def list_sessions(self) -> List[Session]:
        rows = await self.execute_query(
            "SELECT username, is_group, display_name FROM session ORDER BY username"
        )
        return [
            Session(id=row["username"], is_group=bool(row["is_group"]), display_name=row["display_name"])
            for row in rows
        ]

    async def get_messages(self, contact_id: str) -> List[Message]:
        rows = await self.execute_query(
            """
            SELECT is_send, create_time, local_type, content
            FROM message
            WHERE talker = ?
            ORDER BY create_time, local_id
            """,
            [contact_id],
        )
        return [
            Message(
                sender_is_self=row["is_send"] == 1,
                timestamp=row["create_time"],
                content=row["content"] or "",
                type_code=row["local_type"],
                is_text=row["local_type"] == TEXT_MESSAGE,
            )
            for row in rows
        ]

    async def get_display_names(self, contact_ids: Sequence[str]) -> Dict[str, str]:
        if not contact_ids:
            return {}
        placeholders = ",".join("?" * len(contact_ids))
        rows = await self.execute_query(
            f"""
            SELECT s.username,
                   COALESCE(NULLIF(c.remark, ''), NULLIF(c.nick_name, ''), s.display_name) AS name
            FROM session s
            LEFT JOIN contact c ON c.username = s.username
            WHERE s.username IN ({placeholders})
            """,
            list(contact_ids),
        )
        return {row["username"]: row["name"] for row in rows if row["name"]}

    async def last_modified(self) -> int:
        """Archive file modification time in milliseconds."""
        try:
            return self.db_path.stat().st_mtime_ns // 1_000_000
        except OSError as e:
            raise SourceUnavailableError(f"Cannot stat database: {e}")

    # SQL aggregates

    @staticmethod
    def _year_clause(year: Optional[int]) -> Tuple[str, List[Any]]:
        if year is None:
            return "", []
        return " AND strftime('%Y', create_time, 'unixepoch', 'localtime') = ?", [f"{year:04d}"]

    @staticmethod
    def _talker_clause(contact_ids: Sequence[str]) -> Tuple[str, List[Any]]:
        placeholders = ",".join("?" * len(contact_ids))
        return f"talker IN ({placeholders})", list(contact_ids)

    async def get_message_counts(
        self, contact_id: str, year: Optional[int] = None
    ) -> Tuple[int, int]:
        year_sql, year_params = self._year_clause(year)
        rows = await self.execute_query(
            f"""
            SELECT
                COALESCE(SUM(CASE WHEN is_send = 1 THEN 1 ELSE 0 END), 0) AS sent,
                COALESCE(SUM(CASE WHEN is_send = 1 THEN 0 ELSE 1 END), 0) AS received
            FROM message
            WHERE talker = ?{year_sql}
            """,
            [contact_id, *year_params],
        )
        return rows[0]["sent"], rows[0]["received"]

    async def get_messages_by_date(
        self, contact_id: str, year: Optional[int] = None
    ) -> Dict[date, DayBucket]:
        year_sql, year_params = self._year_clause(year)
        # The bare is_send column comes from the row holding MIN(create_time)
        rows = await self.execute_query(
            f"""
            SELECT
                date(create_time, 'unixepoch', 'localtime') AS day,
                COUNT(*) AS count,
                MIN(create_time) AS first_time,
                is_send
            FROM message
            WHERE talker = ?{year_sql}
            GROUP BY day
            """,
            [contact_id, *year_params],
        )
        return {
            date.fromisoformat(row["day"]): DayBucket(
                count=row["count"], first_is_self=row["is_send"] == 1
            )
            for row in rows
        }

    async def get_activity_histogram(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> List[List[int]]:
        histogram = empty_histogram()
        if not contact_ids:
            return histogram

        talker_sql, talker_params = self._talker_clause(contact_ids)
        year_sql, year_params = self._year_clause(year)
        rows = await self.execute_query(
            f"""
            SELECT
                CAST(strftime('%H', create_time, 'unixepoch', 'localtime') AS INTEGER) AS hour,
                CAST(strftime('%w', create_time, 'unixepoch', 'localtime') AS INTEGER) AS dow,
                COUNT(*) AS count
            FROM message
            WHERE {talker_sql}{year_sql}
            GROUP BY hour, dow
            """,
            [*talker_params, *year_params],
        )
        for row in rows:
            # strftime('%w') counts from Sunday=0
            histogram[row["hour"]][(row["dow"] + 6) % 7] = row["count"]
        return histogram

    async def get_type_distribution(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> Dict[int, int]:
        if not contact_ids:
            return {}
        talker_sql, talker_params = self._talker_clause(contact_ids)
        year_sql, year_params = self._year_clause(year)
        rows = await self.execute_query(
            f"""
            SELECT local_type, COUNT(*) AS count
            FROM message
            WHERE {talker_sql}{year_sql}
            GROUP BY local_type
            """,
            [*talker_params, *year_params],
        )
        return {row["local_type"]: row["count"] for row in rows}

    async def get_text_length_stats(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> TextLengthStats:
        if not contact_ids:
            return TextLengthStats()
        talker_sql, talker_params = self._talker_clause(contact_ids)
        year_sql, year_params = self._year_clause(year)
        where = f"WHERE {talker_sql}{year_sql} AND is_send = 1 AND local_type = {TEXT_MESSAGE}"
        params = [*talker_params, *year_params]

        summary = await self.execute_query(
            f"SELECT AVG(LENGTH(COALESCE(content, ''))) AS avg_len, COUNT(*) AS count FROM message {where}",
            params,
        )
        count = summary[0]["count"]
        if count == 0:
            return TextLengthStats()

        longest = await self.execute_query(
            f"""
            SELECT talker, content, create_time, LENGTH(COALESCE(content, '')) AS length
            FROM message
            {where}
            ORDER BY length DESC, create_time ASC
            LIMIT 1
            """,
            params,
        )
        top = longest[0]
        return TextLengthStats(
            average_length=summary[0]["avg_len"],
            text_message_count=count,
            longest_length=top["length"],
            longest_content=top["content"] or "",
            longest_contact_id=top["talker"],
            longest_timestamp=top["create_time"],
        )

    async def get_midnight_histogram(
        self, contact_id: str, year: Optional[int] = None, hours: range = range(0, 6)
    ) -> Dict[int, int]:
        year_sql, year_params = self._year_clause(year)
        rows = await self.execute_query(
            f"""
            SELECT hour, COUNT(*) AS count FROM (
                SELECT CAST(strftime('%H', create_time, 'unixepoch', 'localtime') AS INTEGER) AS hour
                FROM message
                WHERE talker = ?{year_sql}
            )
            WHERE hour >= ? AND hour < ?
            GROUP BY hour
            """,
            [contact_id, *year_params, hours.start, hours.stop],
        )
        return {row["hour"]: row["count"] for row in rows}

    async def get_all_message_dates(
        self, contact_ids: Sequence[str], year: Optional[int] = None
    ) -> Dict[str, Set[date]]:
        if not contact_ids:
            return {}
        talker_sql, talker_params = self._talker_clause(contact_ids)
        year_sql, year_params = self._year_clause(year)
        rows = await self.execute_query(
            f"""
            SELECT DISTINCT talker, date(create_time, 'unixepoch', 'localtime') AS day
            FROM message
            WHERE {talker_sql}{year_sql}
            """,
            [*talker_params, *year_params],
        )
        result: Dict[str, Set[date]] = defaultdict(set)
        for row in rows:
            result[row["talker"]].add(date.fromisoformat(row["day"]))
        return dict(result)

    async def get_db_stats(self) -> Dict[str, Any]:
        """Archive statistics for health reporting."""
        stats: Dict[str, Any] = {
            "size_mb": round(self.db_path.stat().st_size / (1024 * 1024), 2)
            if self.db_path.exists()
            else 0
        }

        counts = await self.execute_query(
            "SELECT COUNT(*) AS messages, MIN(create_time) AS first, MAX(create_time) AS last FROM message"
        )
        stats["message_count"] = counts[0]["messages"]
        if counts[0]["first"] is not None:
            stats["date_range"] = {
                "start": datetime.fromtimestamp(counts[0]["first"]).isoformat(),
                "end": datetime.fromtimestamp(counts[0]["last"]).isoformat(),
            }

        sessions = await self.execute_query("SELECT COUNT(*) AS count FROM session")
        stats["session_count"] = sessions[0]["count"]
        return stats


# Global source instance
_source: Optional[SQLiteMessageSource] = None


async def get_source(db_path: Optional[str] = None) -> SQLiteMessageSource:
    """Get or create the message source."""
    global _source

    # If a specific path is provided, create a new instance
    if db_path:
        source = SQLiteMessageSource(db_path, timeout=30)
        await source.initialize()
        return source

    if _source is None:
        from .config import get_config

        config = get_config()
        source = SQLiteMessageSource(
            config.get_db_path(), timeout=config.database.timeout_seconds
        )
        await source.initialize()
        _source = source

    return _source


async def close_source() -> None:
    """Close the global message source."""
    global _source
    if _source:
        await _source.close()
        _source = None
