"""Cadence scheduling, per-source pacing, and failure notifications."""

from series_sentinel.scheduler.notifier import SmtpNotifier, format_failure_summary
from series_sentinel.scheduler.pacing import PacingPolicy
from series_sentinel.scheduler.scheduler import BUCKET_LABELS, Scheduler

__all__ = [
    "PacingPolicy",
    "Scheduler",
    "BUCKET_LABELS",
    "SmtpNotifier",
    "format_failure_summary",
]
