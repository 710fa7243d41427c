"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, ClassVar, Protocol, runtime_checkable

import aiosqlite

from series_sentinel.core.config import StorageConfig
from series_sentinel.core.exceptions import ConfigError, StorageError
from series_sentinel.core.models import (
    DashboardStats,
    LogEntry,
    LogStatus,
    Observation,
    Series,
    SeriesAction,
    SeriesStats,
    SourceType,
    UpsertCounts,
)

logger = logging.getLogger(__name__)

_RECENT_ERROR_DAYS = 7
_LAST_UPDATES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _ts(value: datetime) -> str:
    """Canonical UTC text form; lexicographic order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


@runtime_checkable
class StorageProtocol(Protocol):
    """Abstract storage interface for series-sentinel data."""

    async def save_series(self, series: Series) -> SeriesAction: ...
    async def get_series(self, slug: str) -> Series | None: ...
    async def list_series(
        self,
        active_only: bool = False,
        source_types: Iterable[SourceType | str] | None = None,
    ) -> list[Series]: ...
    async def delete_series(self, slug: str) -> int: ...
    async def save_observations(
        self, slug: str, observations: Sequence[Observation]
    ) -> UpsertCounts: ...
    async def get_observations(
        self,
        slug: str,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[Observation]: ...
    async def get_stats(self, slug: str) -> SeriesStats: ...
    async def log_action(
        self,
        action: str,
        status: LogStatus | str,
        message: str,
        series_slug: str | None = None,
        source_type: str | None = None,
        created_at: datetime | None = None,
    ) -> None: ...
    async def prune_logs(self, retention_days: int) -> int: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system. Timestamps are stored as
    UTC ISO-8601 text; observation dates as ``YYYY-MM-DD``.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS series (
                    slug TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    source_type TEXT NOT NULL,
                    source_config TEXT NOT NULL DEFAULT '{}',
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_updated TEXT,
                    created_at TEXT NOT NULL
                )""",
                """CREATE TABLE IF NOT EXISTS observations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    series_slug TEXT NOT NULL REFERENCES series(slug),
                    obs_date TEXT NOT NULL,
                    value REAL NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(series_slug, obs_date)
                )""",
                """CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    series_slug TEXT,
                    source_type TEXT,
                    action TEXT NOT NULL,
                    status TEXT NOT NULL,
                    message TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL
                )""",
                # Indexes
                "CREATE INDEX IF NOT EXISTS idx_series_source_type ON series(source_type)",
                "CREATE INDEX IF NOT EXISTS idx_observations_slug_date ON observations(series_slug, obs_date)",
                "CREATE INDEX IF NOT EXISTS idx_logs_created_at ON logs(created_at)",
                "CREATE INDEX IF NOT EXISTS idx_logs_series_slug ON logs(series_slug)",
                "CREATE INDEX IF NOT EXISTS idx_logs_status ON logs(status)",
            ],
        ),
        2: (
            "Persisted options",
            [
                """CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL + FK, run migrations."""
        try:
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA foreign_keys=ON")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except aiosqlite.Error:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Series Operations ---

    async def save_series(self, series: Series) -> SeriesAction:
        """Upsert by slug.

        An existing row keeps its slug, source type and creation time; name,
        configuration and the active flag are replaced. Changing the source
        type of an existing slug is rejected with ``ConfigError``.
        """
        try:
            existing = await self.get_series(series.slug)
            config_json = json.dumps(dict(series.source_config), sort_keys=True)
            if existing is None:
                await self._db.execute(
                    """INSERT INTO series
                       (slug, name, source_type, source_config, is_active, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        series.slug,
                        series.name,
                        str(series.source_type),
                        config_json,
                        int(series.is_active),
                        _ts(series.created_at or _utcnow()),
                    ),
                )
                action = SeriesAction.CREATED
            else:
                if existing.source_type != series.source_type:
                    raise ConfigError(
                        f"Cannot change source type of series '{series.slug}' "
                        f"from {existing.source_type} to {series.source_type}",
                        context={"field": "source_type", "value": str(series.source_type)},
                    )
                await self._db.execute(
                    """UPDATE series SET name = ?, source_config = ?, is_active = ?
                       WHERE slug = ?""",
                    (series.name, config_json, int(series.is_active), series.slug),
                )
                action = SeriesAction.UPDATED
            await self._db.commit()
        except Exception as e:
            if isinstance(e, (StorageError, ConfigError)):
                raise
            raise StorageError(
                f"Failed to save series: {e}",
                context={"operation": "upsert", "table": "series", "slug": series.slug},
            ) from e

        label = "Series created" if action == SeriesAction.CREATED else "Series updated"
        await self.log_action(
            label,
            LogStatus.SUCCESS,
            f"Series '{series.slug}' {action}",
            series_slug=series.slug,
            source_type=str(series.source_type),
        )
        return action

    async def get_series(self, slug: str) -> Series | None:
        try:
            async with self._db.execute(
                "SELECT * FROM series WHERE slug = ?", (slug,)
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_series(row) if row is not None else None
        except Exception as e:
            raise StorageError(
                f"Failed to get series: {e}",
                context={"operation": "query", "table": "series", "slug": slug},
            ) from e

    async def list_series(
        self,
        active_only: bool = False,
        source_types: Iterable[SourceType | str] | None = None,
    ) -> list[Series]:
        try:
            query = "SELECT * FROM series WHERE 1=1"
            params: list = []
            if active_only:
                query += " AND is_active = 1"
            if source_types is not None:
                types = [str(t) for t in source_types]
                if not types:
                    return []
                query += f" AND source_type IN ({', '.join('?' * len(types))})"
                params.extend(types)
            query += " ORDER BY name, slug"
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_series(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list series: {e}",
                context={"operation": "query", "table": "series"},
            ) from e

    async def search_series(
        self, query: str, limit: int | None = 20, active_only: bool = True
    ) -> list[Series]:
        """Case-insensitive substring match on name and slug. ``limit=None`` returns all."""
        try:
            pattern = f"%{query.strip().lower()}%"
            sql = "SELECT * FROM series WHERE (LOWER(name) LIKE ? OR LOWER(slug) LIKE ?)"
            params: list[Any] = [pattern, pattern]
            if active_only:
                sql += " AND is_active = 1"
            sql += " ORDER BY name, slug"
            if limit is not None:
                sql += " LIMIT ?"
                params.append(limit)
            async with self._db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_series(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to search series: {e}",
                context={"operation": "query", "table": "series"},
            ) from e

    async def list_stale_series(self, cutoff: datetime) -> list[Series]:
        """Active series never updated or last updated before ``cutoff``."""
        try:
            async with self._db.execute(
                """SELECT * FROM series
                   WHERE is_active = 1 AND (last_updated IS NULL OR last_updated < ?)
                   ORDER BY name, slug""",
                (_ts(cutoff),),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_series(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list stale series: {e}",
                context={"operation": "query", "table": "series"},
            ) from e

    async def set_series_active(self, slug: str, active: bool) -> bool:
        """Toggle the active flag. Returns False if the slug does not exist."""
        try:
            cursor = await self._db.execute(
                "UPDATE series SET is_active = ? WHERE slug = ?", (int(active), slug)
            )
            await self._db.commit()
            changed = cursor.rowcount > 0
        except Exception as e:
            raise StorageError(
                f"Failed to update series: {e}",
                context={"operation": "update", "table": "series", "slug": slug},
            ) from e
        if changed:
            await self.log_action(
                "Series updated",
                LogStatus.SUCCESS,
                f"Series '{slug}' {'activated' if active else 'deactivated'}",
                series_slug=slug,
            )
        return changed

    async def delete_series(self, slug: str) -> int:
        """Delete a series and its observations atomically.

        Returns the number of observations removed. A missing slug deletes
        nothing and returns 0 without logging.
        """
        try:
            series = await self.get_series(slug)
            if series is None:
                return 0
            try:
                cursor = await self._db.execute(
                    "DELETE FROM observations WHERE series_slug = ?", (slug,)
                )
                deleted = cursor.rowcount
                await self._db.execute("DELETE FROM series WHERE slug = ?", (slug,))
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise
        except Exception as e:
            if isinstance(e, StorageError):
                raise
            raise StorageError(
                f"Failed to delete series: {e}",
                context={"operation": "delete", "table": "series", "slug": slug},
            ) from e

        await self.log_action(
            "Series deleted",
            LogStatus.SUCCESS,
            f"Series '{slug}' and {deleted} observations deleted",
            series_slug=slug,
            source_type=str(series.source_type),
        )
        return deleted

    # --- Observation Operations ---

    async def save_observations(
        self, slug: str, observations: Sequence[Observation]
    ) -> UpsertCounts:
        """Upsert each point by ``(slug, obs_date)``.

        Row-level failures are counted in ``errors`` and do not abort the
        remaining points. ``last_updated`` is bumped when anything was saved.
        """
        inserted = updated = errors = 0
        now = _ts(_utcnow())
        try:
            for obs in observations:
                key = obs.obs_date.isoformat()
                try:
                    async with self._db.execute(
                        "SELECT 1 FROM observations WHERE series_slug = ? AND obs_date = ?",
                        (slug, key),
                    ) as cursor:
                        exists = await cursor.fetchone() is not None
                    await self._db.execute(
                        """INSERT INTO observations (series_slug, obs_date, value, created_at)
                           VALUES (?, ?, ?, ?)
                           ON CONFLICT(series_slug, obs_date)
                           DO UPDATE SET value = excluded.value""",
                        (slug, key, obs.value, now),
                    )
                except aiosqlite.Error as e:
                    errors += 1
                    logger.warning("Failed to save %s @ %s: %s", slug, key, e)
                    continue
                if exists:
                    updated += 1
                else:
                    inserted += 1

            if inserted + updated > 0:
                await self._db.execute(
                    "UPDATE series SET last_updated = ? WHERE slug = ?", (now, slug)
                )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to save observations: {e}",
                context={"operation": "upsert", "table": "observations", "slug": slug},
            ) from e

        counts = UpsertCounts(inserted=inserted, updated=updated, errors=errors)
        if not counts.saved:
            return counts
        series = await self.get_series(slug)
        await self.log_action(
            "Observations saved",
            LogStatus.WARNING if errors else LogStatus.SUCCESS,
            f"{len(observations)} observations processed: "
            f"{inserted} new, {updated} updated, {errors} errors",
            series_slug=slug,
            source_type=str(series.source_type) if series else None,
        )
        return counts

    async def get_observations(
        self,
        slug: str,
        start: date | None = None,
        end: date | None = None,
        limit: int | None = None,
    ) -> list[Observation]:
        """Observations in ascending date order, optionally bounded."""
        try:
            query = "SELECT obs_date, value FROM observations WHERE series_slug = ?"
            params: list = [slug]
            if start is not None:
                query += " AND obs_date >= ?"
                params.append(start.isoformat())
            if end is not None:
                query += " AND obs_date <= ?"
                params.append(end.isoformat())
            query += " ORDER BY obs_date ASC"
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_observation(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to get observations: {e}",
                context={"operation": "query", "table": "observations", "slug": slug},
            ) from e

    async def get_latest_observations(self, slug: str, n: int = 1) -> list[Observation]:
        """The ``n`` most recent observations, newest first."""
        try:
            async with self._db.execute(
                """SELECT obs_date, value FROM observations
                   WHERE series_slug = ? ORDER BY obs_date DESC LIMIT ?""",
                (slug, n),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_observation(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to get latest observations: {e}",
                context={"operation": "query", "table": "observations", "slug": slug},
            ) from e

    async def count_observations(self, slug: str | None = None) -> int:
        try:
            if slug is None:
                sql, params = "SELECT COUNT(*) FROM observations", ()
            else:
                sql, params = "SELECT COUNT(*) FROM observations WHERE series_slug = ?", (slug,)
            async with self._db.execute(sql, params) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            raise StorageError(
                f"Failed to count observations: {e}",
                context={"operation": "query", "table": "observations"},
            ) from e

    async def get_date_range(self, slug: str) -> tuple[date, date] | None:
        """(first, last) observation dates, or None for an empty series."""
        try:
            async with self._db.execute(
                "SELECT MIN(obs_date), MAX(obs_date) FROM observations WHERE series_slug = ?",
                (slug,),
            ) as cursor:
                row = await cursor.fetchone()
            if row[0] is None:
                return None
            return date.fromisoformat(row[0]), date.fromisoformat(row[1])
        except Exception as e:
            raise StorageError(
                f"Failed to get date range: {e}",
                context={"operation": "query", "table": "observations", "slug": slug},
            ) from e

    async def get_stats(self, slug: str) -> SeriesStats:
        try:
            async with self._db.execute(
                """SELECT COUNT(*) AS count, MIN(value) AS min, MAX(value) AS max,
                          AVG(value) AS avg
                   FROM observations WHERE series_slug = ?""",
                (slug,),
            ) as cursor:
                row = await cursor.fetchone()
            return SeriesStats(
                count=row["count"], min=row["min"], max=row["max"], avg=row["avg"]
            )
        except Exception as e:
            raise StorageError(
                f"Failed to get stats: {e}",
                context={"operation": "query", "table": "observations", "slug": slug},
            ) from e

    # --- Log Operations ---

    async def log_action(
        self,
        action: str,
        status: LogStatus | str,
        message: str,
        series_slug: str | None = None,
        source_type: str | None = None,
        created_at: datetime | None = None,
    ) -> None:
        """Append one audit entry.

        An unrecognized status is stored as ``success`` with a process
        warning, so a logging call never fails on bad input.
        """
        try:
            status = LogStatus(status)
        except ValueError:
            logger.warning("Invalid log status %r for %r, recording as success", status, action)
            status = LogStatus.SUCCESS
        try:
            await self._db.execute(
                """INSERT INTO logs
                   (series_slug, source_type, action, status, message, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    series_slug,
                    str(source_type) if source_type is not None else None,
                    action,
                    str(status),
                    message,
                    _ts(created_at or _utcnow()),
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to write log entry: {e}",
                context={"operation": "insert", "table": "logs"},
            ) from e

    @staticmethod
    def _log_filters(
        series_slug: str | None,
        status: LogStatus | str | None,
        days: int | None,
        search: str | None,
    ) -> tuple[str, list]:
        where = " WHERE 1=1"
        params: list = []
        if series_slug is not None:
            where += " AND series_slug = ?"
            params.append(series_slug)
        if status is not None:
            where += " AND status = ?"
            params.append(str(status))
        if days is not None:
            where += " AND created_at >= ?"
            params.append(_ts(_utcnow() - timedelta(days=days)))
        if search:
            pattern = f"%{search.lower()}%"
            where += " AND (LOWER(action) LIKE ? OR LOWER(message) LIKE ?)"
            params.extend([pattern, pattern])
        return where, params

    async def get_logs(
        self,
        limit: int = 50,
        offset: int = 0,
        series_slug: str | None = None,
        status: LogStatus | str | None = None,
        days: int | None = None,
        search: str | None = None,
    ) -> list[LogEntry]:
        """Log entries, newest first."""
        try:
            where, params = self._log_filters(series_slug, status, days, search)
            async with self._db.execute(
                f"SELECT * FROM logs{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_log(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to get logs: {e}",
                context={"operation": "query", "table": "logs"},
            ) from e

    async def count_logs(
        self,
        series_slug: str | None = None,
        status: LogStatus | str | None = None,
        days: int | None = None,
        search: str | None = None,
    ) -> int:
        try:
            where, params = self._log_filters(series_slug, status, days, search)
            async with self._db.execute(f"SELECT COUNT(*) FROM logs{where}", params) as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            raise StorageError(
                f"Failed to count logs: {e}",
                context={"operation": "query", "table": "logs"},
            ) from e

    async def prune_logs(self, retention_days: int) -> int:
        """Delete log entries older than ``now - retention_days``."""
        if retention_days < 1:
            raise ConfigError(
                f"retention_days must be >= 1, got {retention_days}",
                context={"field": "log_retention_days", "value": str(retention_days)},
            )
        cutoff = _ts(_utcnow() - timedelta(days=retention_days))
        try:
            cursor = await self._db.execute("DELETE FROM logs WHERE created_at < ?", (cutoff,))
            await self._db.commit()
            return cursor.rowcount
        except Exception as e:
            raise StorageError(
                f"Failed to prune logs: {e}",
                context={"operation": "delete", "table": "logs"},
            ) from e

    # --- Dashboard ---

    async def dashboard_stats(self) -> DashboardStats:
        try:
            async with self._db.execute(
                "SELECT COUNT(*), COALESCE(SUM(is_active), 0) FROM series"
            ) as cursor:
                total_series, active_series = await cursor.fetchone()
            async with self._db.execute(
                "SELECT COUNT(*), MAX(obs_date) FROM observations"
            ) as cursor:
                total_obs, latest = await cursor.fetchone()
            async with self._db.execute(
                "SELECT COUNT(*) FROM logs WHERE status = ? AND created_at >= ?",
                (str(LogStatus.ERROR), _ts(_utcnow() - timedelta(days=_RECENT_ERROR_DAYS))),
            ) as cursor:
                (recent_errors,) = await cursor.fetchone()
            async with self._db.execute(
                """SELECT * FROM logs
                   WHERE status = ?
                     AND (LOWER(action) LIKE '%fetch%' OR LOWER(action) LIKE '%observations%')
                   ORDER BY created_at DESC, id DESC LIMIT ?""",
                (str(LogStatus.SUCCESS), _LAST_UPDATES),
            ) as cursor:
                recent = await cursor.fetchall()
            return DashboardStats(
                total_series=total_series,
                active_series=active_series,
                total_observations=total_obs,
                latest_observation=date.fromisoformat(latest) if latest else None,
                recent_errors=recent_errors,
                last_updates=[self._row_to_log(r) for r in recent],
            )
        except Exception as e:
            raise StorageError(
                f"Failed to compute dashboard stats: {e}",
                context={"operation": "query", "table": "logs"},
            ) from e

    # --- Persisted Options ---

    async def get_option(self, key: str, default: Any = None) -> Any:
        try:
            async with self._db.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
            return json.loads(row["value"]) if row is not None else default
        except Exception as e:
            raise StorageError(
                f"Failed to read option: {e}",
                context={"operation": "query", "table": "settings", "key": key},
            ) from e

    async def set_option(self, key: str, value: Any) -> None:
        try:
            await self._db.execute(
                """INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value, updated_at = excluded.updated_at""",
                (key, json.dumps(value), _ts(_utcnow())),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to write option: {e}",
                context={"operation": "upsert", "table": "settings", "key": key},
            ) from e

    # --- Row Converters ---

    @staticmethod
    def _row_to_series(row: aiosqlite.Row) -> Series:
        return Series(
            slug=row["slug"],
            name=row["name"],
            source_type=row["source_type"],
            source_config=json.loads(row["source_config"] or "{}"),
            is_active=bool(row["is_active"]),
            last_updated=datetime.fromisoformat(row["last_updated"]) if row["last_updated"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_observation(row: aiosqlite.Row) -> Observation:
        return Observation(obs_date=date.fromisoformat(row["obs_date"]), value=row["value"])

    @staticmethod
    def _row_to_log(row: aiosqlite.Row) -> LogEntry:
        return LogEntry(
            id=row["id"],
            series_slug=row["series_slug"],
            source_type=row["source_type"],
            action=row["action"],
            status=row["status"],
            message=row["message"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize the SQLite store, creating parent directories."""
    if config.sqlite_path != ":memory:":
        Path(config.sqlite_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    store = SqliteStore(config)
    await store.initialize()
    return store
