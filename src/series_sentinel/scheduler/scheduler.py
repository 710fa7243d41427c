"""In-process scheduler for the four cadence buckets.

Each bucket has at most one installed trigger (a next-fire time).
``run_pending`` fires every due trigger once and advances it to the next
slot, so a process that was asleep through several slots catches up with
a single run rather than a burst. All times are UTC.

The ``auto_update`` flag lives in the store, so a daemon and an API
process sharing one database agree on it: ``run_pending`` re-reads the
flag before every poll and installs or drops triggers to match.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from series_sentinel.core.config import NotifyConfig, SchedulerConfig
from series_sentinel.core.exceptions import SchedulerError, StorageError
from series_sentinel.core.models import BatchResult, CadenceBucket, LogStatus, TriggerStatus
from series_sentinel.scheduler.notifier import Notifier, format_failure_summary

if TYPE_CHECKING:
    from series_sentinel.ingestion.collector import Collector
    from series_sentinel.ingestion.store import SqliteStore

logger = logging.getLogger(__name__)

AUTO_UPDATE_OPTION = "auto_update"

BUCKET_LABELS: dict[CadenceBucket, str] = {
    CadenceBucket.HOURLY: "Hourly update",
    CadenceBucket.DAILY: "Daily update",
    CadenceBucket.WEEKLY: "Weekly update",
    CadenceBucket.CLEANUP: "Log cleanup",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def human_time(target: datetime, now: datetime) -> str:
    """Coarse distance between two instants, e.g. ``"3 hours"``."""
    seconds = abs(int((target - now).total_seconds()))
    for unit, size in (("day", 86400), ("hour", 3600), ("min", 60)):
        if seconds >= size:
            n = round(seconds / size)
            return f"{n} {unit}{'s' if n != 1 else ''}"
    return f"{seconds} sec{'s' if seconds != 1 else ''}"


class Scheduler:
    """Owns the trigger table and runs bucket jobs through the collector.

    Parameters
    ----------
    collector : Collector
        Runs the batch refreshes.
    store : SqliteStore
        Audit log, log pruning and the persisted ``auto_update`` option.
    config : SchedulerConfig
        Bucket membership, fire hours and retention.
    notify : NotifyConfig | None
        Failure email settings for the weekly bucket.
    notifier : Notifier | None
        Delivery backend; no email is sent without one.
    clock : Callable[[], datetime] | None
        Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        collector: Collector,
        store: SqliteStore,
        config: SchedulerConfig,
        notify: NotifyConfig | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._collector = collector
        self._store = store
        self._config = config
        self._notify = notify or NotifyConfig()
        self._notifier = notifier
        self._clock = clock or _utcnow
        self._triggers: dict[CadenceBucket, datetime] = {}
        self._auto_update = config.auto_update

    @property
    def auto_update(self) -> bool:
        return self._auto_update

    async def initialize(self) -> None:
        """Load the persisted auto-update flag and install triggers."""
        stored = await self._store.get_option(AUTO_UPDATE_OPTION, self._config.auto_update)
        self._auto_update = bool(stored)
        if self._auto_update:
            self.ensure_scheduled()
        logger.info("Scheduler initialized (auto_update=%s)", self._auto_update)

    # --- Trigger table ---

    def next_fire(self, bucket: CadenceBucket, now: datetime) -> datetime:
        """First slot strictly after ``now`` for ``bucket``."""
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        cfg = self._config
        if bucket == CadenceBucket.HOURLY:
            return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        if bucket == CadenceBucket.WEEKLY:
            days_ahead = (cfg.weekly_weekday - now.weekday()) % 7
            candidate = midnight + timedelta(days=days_ahead, hours=cfg.weekly_hour)
            return candidate if candidate > now else candidate + timedelta(days=7)
        hour = cfg.daily_hour if bucket == CadenceBucket.DAILY else cfg.cleanup_hour
        candidate = midnight + timedelta(hours=hour)
        return candidate if candidate > now else candidate + timedelta(days=1)

    def ensure_scheduled(self, now: datetime | None = None) -> list[CadenceBucket]:
        """Install any missing trigger. Existing triggers are left alone.

        Does nothing while auto-update is disabled. Returns the buckets
        that were newly installed.
        """
        if not self._auto_update:
            return []
        now = now or self._clock()
        installed = []
        for bucket in CadenceBucket:
            if bucket not in self._triggers:
                self._triggers[bucket] = self.next_fire(bucket, now)
                installed.append(bucket)
        if installed:
            logger.debug("Installed triggers: %s", ", ".join(installed))
        return installed

    def clear(self, bucket: CadenceBucket | str | None = None) -> None:
        if bucket is None:
            self._triggers.clear()
        else:
            self._triggers.pop(self._bucket(bucket), None)

    async def sync_auto_update(self, now: datetime | None = None) -> bool:
        """Adopt the persisted flag, which another process may have changed.

        A storage failure keeps the current state. Returns the flag in effect.
        """
        try:
            stored = await self._store.get_option(AUTO_UPDATE_OPTION, self._config.auto_update)
        except StorageError as e:
            logger.error("Could not read auto-update flag: %s", e)
            return self._auto_update
        enabled = bool(stored)
        if enabled != self._auto_update:
            logger.info("Auto-update changed externally (auto_update=%s)", enabled)
        self._auto_update = enabled
        if enabled:
            self.ensure_scheduled(now)
        else:
            self.clear()
        return enabled

    async def set_auto_update(self, enabled: bool) -> str:
        """Persist the flag, then install or remove every trigger."""
        await self._store.set_option(AUTO_UPDATE_OPTION, enabled)
        self._auto_update = enabled
        if enabled:
            self.ensure_scheduled()
            message = "Automatic updates enabled"
        else:
            self.clear()
            message = "Automatic updates disabled"
        await self._store.log_action("Auto-update toggle", LogStatus.SUCCESS, message)
        return message

    async def reschedule(self) -> str:
        """Drop and reinstall every trigger from the current time."""
        self.clear()
        self.ensure_scheduled()
        message = "All scheduled triggers reinstalled"
        await self._store.log_action("Reschedule", LogStatus.SUCCESS, message)
        return message

    def status(self, now: datetime | None = None) -> list[TriggerStatus]:
        now = now or self._clock()
        result = []
        for bucket in CadenceBucket:
            due = self._triggers.get(bucket)
            result.append(
                TriggerStatus(
                    bucket=bucket,
                    scheduled=due is not None,
                    next_run=due,
                    human_time=human_time(due, now) if due is not None else None,
                )
            )
        return result

    # --- Execution ---

    @staticmethod
    def _bucket(name: CadenceBucket | str) -> CadenceBucket:
        try:
            return CadenceBucket(str(name).lower())
        except ValueError:
            raise SchedulerError(
                f"Unknown job: {name}",
                context={"bucket": str(name), "valid": [b.value for b in CadenceBucket]},
            ) from None

    async def run_bucket(self, bucket: CadenceBucket | str) -> BatchResult | int:
        """Run one bucket's job now and append its aggregate log entry.

        Returns the batch result, or the number of pruned log entries for
        the cleanup bucket.
        """
        bucket = self._bucket(bucket)
        label = BUCKET_LABELS[bucket]
        logger.info("Running %s", label.lower())

        if bucket == CadenceBucket.CLEANUP:
            deleted = await self._store.prune_logs(self._config.log_retention_days)
            await self._store.log_action(
                label, LogStatus.SUCCESS, f"Cleaned up {deleted} old log entries"
            )
            return deleted

        if bucket == CadenceBucket.WEEKLY:
            batch = await self._collector.refresh_all()
            await self._store.log_action(
                label,
                batch.status,
                f"Weekly full refresh: {batch.success} successful, {batch.failed} failed",
            )
            if batch.failed:
                await self._send_summary(batch)
            return batch

        sources = (
            self._config.hourly_sources
            if bucket == CadenceBucket.HOURLY
            else self._config.daily_sources
        )
        batch = await self._collector.refresh_by_source_types(sources, label=label)
        await self._store.log_action(
            label,
            batch.status,
            f"{label}: {batch.success} successful, {batch.failed} failed "
            f"out of {batch.total} total",
        )
        return batch

    async def _send_summary(self, batch: BatchResult) -> None:
        if not (self._notify.error_emails and self._notify.admin_email and self._notifier):
            return
        subject = "[Series Sentinel] Weekly Summary"
        try:
            await self._notifier.send(
                self._notify.admin_email, subject, format_failure_summary(batch, self._clock())
            )
        except (OSError, smtplib.SMTPException) as e:
            logger.warning("Failed to send weekly summary: %s", e)
            await self._store.log_action(
                "Email notification", LogStatus.ERROR, f"Failed to send weekly summary: {e}"
            )

    async def manual_trigger(self, name: CadenceBucket | str) -> str:
        """Run a bucket on demand without touching its trigger."""
        bucket = self._bucket(name)
        await self.run_bucket(bucket)
        return f"{BUCKET_LABELS[bucket]} completed manually"

    async def run_pending(self, now: datetime | None = None) -> list[CadenceBucket]:
        """Fire every trigger due at ``now`` and advance it. Returns fired buckets.

        A failing bucket is logged and audited; its trigger still advances
        and the remaining buckets still run.
        """
        now = now or self._clock()
        await self.sync_auto_update(now)
        due = sorted(
            (b for b, at in self._triggers.items() if at <= now),
            key=lambda b: self._triggers[b],
        )
        for bucket in due:
            try:
                await self.run_bucket(bucket)
            except Exception as e:
                await self._record_failure(bucket, e)
            if bucket in self._triggers:
                self._triggers[bucket] = self.next_fire(bucket, now)
        return due

    async def _record_failure(self, bucket: CadenceBucket, error: Exception) -> None:
        label = BUCKET_LABELS[bucket]
        logger.exception("%s failed", label)
        try:
            await self._store.log_action(label, LogStatus.ERROR, f"{label} failed: {error}")
        except StorageError as e:
            logger.error("Could not record %s failure: %s", label.lower(), e)

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """Poll for due triggers until ``stop`` is set."""
        stop = stop or asyncio.Event()
        self.ensure_scheduled()
        logger.info("Scheduler running (poll every %ss)", self._config.poll_interval)
        while not stop.is_set():
            await self.run_pending()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._config.poll_interval)
            except asyncio.TimeoutError:
                continue
