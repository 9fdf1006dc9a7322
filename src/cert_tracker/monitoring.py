"""
Monitoring — decide which tracked certificates reached a notification day.

Domain layer — evaluate_certificates() is pure; run_monitoring() chains the
ports via flat_map, like any other railway pipeline:

  load_settings()
    → (disabled? → empty report, nothing recorded)
    → list_all() + history()
      → evaluate_certificates()
        → record_check(report)

Nothing is delivered anywhere: a "notification" is a history entry plus the
certificate's last_notification_sent timestamp.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta

import structlog
from railway import ErrorCode
from railway.result import Result

from cert_tracker.domain.models import (
    MonitoringReport,
    NotificationHistoryEntry,
    NotificationSettings,
    NotificationStatus,
    TrackedCertificate,
)
from cert_tracker.domain.ports import CertificateRepository, MonitoringRepository
from cert_tracker.listing import days_remaining

log = structlog.get_logger()

DEFAULT_REPEAT_AFTER = timedelta(hours=20)
DEFAULT_HISTORY_LIMIT = 100

# Only history entries younger than this can suppress a repeat.
_RECENT_WINDOW = timedelta(hours=24)

# Expired certificates are tracked on this notification day.
_EXPIRED_SLOT = 1


# ─────────────────────── Settings ───────────────────────


def normalize_notification_days(days: str | Iterable[int | str]) -> tuple[int, ...]:
    """
    Positive whole days, de-duplicated and sorted descending.

    Accepts the "30, 7, 1" text form or an iterable; entries that are not
    whole numbers are dropped.
    """
    items = days.split(",") if isinstance(days, str) else days
    parsed: set[int] = set()
    for item in items:
        try:
            value = int(item.strip()) if isinstance(item, str) else int(item)
        except (TypeError, ValueError):
            continue
        if value > 0:
            parsed.add(value)
    return tuple(sorted(parsed, reverse=True))


def build_notification_settings(
    *,
    enabled: bool,
    notification_days: str | Iterable[int | str],
    emails: Iterable[str] | None = None,
    email: str | None = None,
    last_check: datetime | None = None,
) -> Result[NotificationSettings]:
    """
    Validate submitted settings.

    A legacy single `email` is migrated into `emails` when no list is given.
    """
    if emails is None:
        emails = [email] if email else []
    settings = NotificationSettings(
        enabled=enabled,
        emails=tuple(e.strip() for e in emails if e and e.strip()),
        notification_days=normalize_notification_days(notification_days),
        last_check=last_check,
    )
    return Result.success(settings).ensure(
        lambda s: not s.enabled or bool(s.notification_days),
        ErrorCode.VALIDATION_ERROR,
        "At least one notification day is required.",
    )


# ─────────────────────── Evaluation ───────────────────────


def _matching_days(days_left: int, notification_days: Sequence[int]) -> list[int]:
    return [
        day
        for day in notification_days
        if days_left == day or (days_left <= 0 and day == _EXPIRED_SLOT)
    ]


def _tracked_recently(
    certificate: TrackedCertificate,
    day: int,
    history: Sequence[NotificationHistoryEntry],
    now: datetime,
    repeat_after: timedelta,
) -> bool:
    recent = [
        entry.sent_at
        for entry in history
        if entry.certificate_id == certificate.id
        and entry.days_until_expiration == day
        and now - entry.sent_at < _RECENT_WINDOW
    ]
    return bool(recent) and now - max(recent) <= repeat_after


def evaluate_certificates(
    certificates: Iterable[TrackedCertificate],
    settings: NotificationSettings,
    history: Sequence[NotificationHistoryEntry],
    now: datetime,
    repeat_after: timedelta = DEFAULT_REPEAT_AFTER,
) -> list[NotificationHistoryEntry]:
    """
    History entries for every certificate that reached a notification day.

    A day matches when the days left equal it; expired certificates match
    the 1-day slot. A match already tracked within `repeat_after` is skipped,
    and only the most urgent (smallest) day is kept per certificate.
    """
    if not settings.enabled:
        return []

    entries: list[NotificationHistoryEntry] = []
    for certificate in certificates:
        days_left = days_remaining(certificate.expires_at, now)
        due = [
            day
            for day in _matching_days(days_left, settings.notification_days)
            if not _tracked_recently(certificate, day, history, now, repeat_after)
        ]
        if not due:
            continue

        day = min(due)
        log.info(
            "monitoring.tracked",
            certificate_id=str(certificate.id),
            days_left=days_left,
            notification_day=day,
        )
        entries.append(
            NotificationHistoryEntry(
                certificate_id=certificate.id,
                certificate_name=certificate.name,
                sent_at=now,
                days_until_expiration=day,
                status=NotificationStatus.SENT,
                emails=(),
                success_count=1,
                failure_count=0,
            )
        )
    return entries


# ─────────────────────── Orchestration ───────────────────────


def _check(
    settings: NotificationSettings,
    certificate_repo: CertificateRepository,
    monitoring_repo: MonitoringRepository,
    now: datetime,
    repeat_after: timedelta,
    history_limit: int,
) -> Result[MonitoringReport]:
    if not settings.enabled:
        log.info("monitoring.disabled")
        return Result.success(MonitoringReport(checked_at=now, enabled=False))

    def _evaluate(
        certificates: list[TrackedCertificate],
    ) -> Result[MonitoringReport]:
        return monitoring_repo.history(limit=history_limit).map(
            lambda history: MonitoringReport(
                checked_at=now,
                enabled=True,
                certificates_checked=len(certificates),
                entries=tuple(
                    evaluate_certificates(certificates, settings, history, now, repeat_after)
                ),
            )
        )

    return (
        certificate_repo.list_all()
        .flat_map(_evaluate)
        .flat_map(
            lambda report: monitoring_repo.record_check(report, history_limit).map(
                lambda _: report
            )
        )
    )


def run_monitoring(
    certificate_repo: CertificateRepository,
    monitoring_repo: MonitoringRepository,
    now: datetime | None = None,
    repeat_after: timedelta = DEFAULT_REPEAT_AFTER,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> Result[MonitoringReport]:
    """
    Run one monitoring check and record its outcome.

    Disabled monitoring returns an empty report and writes nothing, not even
    last_check. Failures from any port short-circuit the check.
    """
    checked_at = now or datetime.now(UTC)
    return (
        monitoring_repo.load_settings()
        .flat_map(
            lambda settings: _check(
                settings, certificate_repo, monitoring_repo, checked_at, repeat_after, history_limit
            )
        )
        .peek(
            lambda report: log.info(
                "monitoring.complete",
                enabled=report.enabled,
                checked=report.certificates_checked,
                tracked=len(report.entries),
            )
        )
    )
