"""
PostgreSQL repository adapters — tracked certificates, settings and history.

Adapter layer — implements the CertificateRepository and MonitoringRepository
ports using psycopg (v3) for sync PostgreSQL access with parameterized queries.

Table mapping:
  TrackedCertificate        → tracked_certificates (DN details as JSONB)
  NotificationSettings      → notification_settings (single row, id = 1)
  NotificationHistoryEntry  → notification_history (capped, newest first)

A monitoring check is recorded in ONE transaction:
  1. INSERT the new history entries
  2. UPDATE last_notification_sent of the tracked certificates
  3. UPSERT last_check on the settings row
  4. DELETE history beyond the cap
  → COMMIT (or automatic ROLLBACK on failure → nothing recorded)

No ORM — raw parameterized SQL. Connection attempts are retried with
tenacity on transient OperationalError; every other exception is caught at
this boundary via Result.from_computation().
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

import psycopg
import structlog
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from railway import ErrorCode
from railway.result import Result
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cert_tracker.domain.models import (
    DistinguishedName,
    MonitoringReport,
    NotificationHistoryEntry,
    NotificationSettings,
    NotificationStatus,
    TrackedCertificate,
)

log = structlog.get_logger()

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS tracked_certificates (
    id                      UUID PRIMARY KEY,
    name                    TEXT NOT NULL,
    issuer                  TEXT NOT NULL,
    issuer_details          JSONB NOT NULL DEFAULT '{}',
    subject                 JSONB NOT NULL DEFAULT '{}',
    domains                 TEXT[] NOT NULL,
    issued_at               TIMESTAMPTZ NOT NULL,
    expires_at              TIMESTAMPTZ NOT NULL,
    description             TEXT,
    notes                   TEXT,
    serial_number           TEXT,
    signature_algorithm     TEXT,
    last_notification_sent  TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS notification_settings (
    id                 SMALLINT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
    enabled            BOOLEAN NOT NULL DEFAULT FALSE,
    emails             TEXT[] NOT NULL DEFAULT '{}',
    notification_days  INTEGER[] NOT NULL DEFAULT '{30,7,1}',
    last_check         TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS notification_history (
    seq                    BIGSERIAL,
    id                     UUID PRIMARY KEY,
    certificate_id         UUID NOT NULL,
    certificate_name       TEXT NOT NULL,
    sent_at                TIMESTAMPTZ NOT NULL,
    days_until_expiration  INTEGER NOT NULL,
    status                 TEXT NOT NULL,
    emails                 TEXT[] NOT NULL DEFAULT '{}',
    error                  TEXT,
    success_count          INTEGER NOT NULL DEFAULT 0,
    failure_count          INTEGER NOT NULL DEFAULT 0
);
"""

_CERTIFICATE_COLUMNS = (
    "id",
    "name",
    "issuer",
    "issuer_details",
    "subject",
    "domains",
    "issued_at",
    "expires_at",
    "description",
    "notes",
    "serial_number",
    "signature_algorithm",
    "last_notification_sent",
)

_INSERT_CERTIFICATE = sql.SQL("INSERT INTO tracked_certificates ({}) VALUES ({})").format(
    sql.SQL(", ").join(map(sql.Identifier, _CERTIFICATE_COLUMNS)),
    sql.SQL(", ").join(sql.Placeholder() * len(_CERTIFICATE_COLUMNS)),
)

_INSERT_HISTORY = """
INSERT INTO notification_history (
    id, certificate_id, certificate_name, sent_at, days_until_expiration,
    status, emails, error, success_count, failure_count
) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
"""

_UPSERT_SETTINGS = """
INSERT INTO notification_settings (id, enabled, emails, notification_days, last_check)
VALUES (1, %s, %s, %s, %s)
ON CONFLICT (id) DO UPDATE SET
    enabled = EXCLUDED.enabled,
    emails = EXCLUDED.emails,
    notification_days = EXCLUDED.notification_days,
    last_check = EXCLUDED.last_check
"""

_TOUCH_LAST_CHECK = """
INSERT INTO notification_settings (id, last_check) VALUES (1, %s)
ON CONFLICT (id) DO UPDATE SET last_check = EXCLUDED.last_check
"""

_MARK_NOTIFIED = """
UPDATE tracked_certificates SET last_notification_sent = %s WHERE id = ANY(%s)
"""

_TRIM_HISTORY = """
DELETE FROM notification_history WHERE id NOT IN (
    SELECT id FROM notification_history ORDER BY sent_at DESC, seq DESC LIMIT %s
)
"""

_SELECT_HISTORY = """
SELECT * FROM notification_history ORDER BY sent_at DESC, seq DESC LIMIT %s
"""

_DN_FIELDS = frozenset(DistinguishedName.__dataclass_fields__)


# ─────────────────────── Row Mapping ───────────────────────


def _dn_from_json(value: Mapping[str, Any] | None) -> DistinguishedName:
    return DistinguishedName(**{k: v for k, v in (value or {}).items() if k in _DN_FIELDS})


def _certificate_params(cert: TrackedCertificate) -> tuple[Any, ...]:
    return (
        cert.id,
        cert.name,
        cert.issuer,
        Jsonb(cert.issuer_details.as_dict()),
        Jsonb(cert.subject.as_dict()),
        list(cert.domains),
        cert.issued_at,
        cert.expires_at,
        cert.description,
        cert.notes,
        cert.serial_number,
        cert.signature_algorithm,
        cert.last_notification_sent,
    )


def _certificate_from_row(row: Mapping[str, Any]) -> TrackedCertificate:
    return TrackedCertificate(
        id=row["id"],
        name=row["name"],
        issuer=row["issuer"],
        issuer_details=_dn_from_json(row["issuer_details"]),
        subject=_dn_from_json(row["subject"]),
        domains=tuple(row["domains"]),
        issued_at=row["issued_at"],
        expires_at=row["expires_at"],
        description=row["description"],
        notes=row["notes"],
        serial_number=row["serial_number"],
        signature_algorithm=row["signature_algorithm"],
        last_notification_sent=row["last_notification_sent"],
    )


def _column_value(column: str, value: Any) -> Any:
    if column == "domains":
        return list(value)
    if column in ("issuer_details", "subject"):
        return Jsonb(value.as_dict())
    return value


def _history_from_row(row: Mapping[str, Any]) -> NotificationHistoryEntry:
    return NotificationHistoryEntry(
        id=row["id"],
        certificate_id=row["certificate_id"],
        certificate_name=row["certificate_name"],
        sent_at=row["sent_at"],
        days_until_expiration=row["days_until_expiration"],
        status=NotificationStatus(row["status"]),
        emails=tuple(row["emails"]),
        error=row["error"],
        success_count=row["success_count"],
        failure_count=row["failure_count"],
    )


def _settings_from_row(row: Mapping[str, Any] | None) -> NotificationSettings:
    if row is None:
        return NotificationSettings()
    return NotificationSettings(
        enabled=row["enabled"],
        emails=tuple(row["emails"]),
        notification_days=tuple(row["notification_days"]),
        last_check=row["last_check"],
    )


# ─────────────────────── Connection ───────────────────────


class _PsycopgAdapter:
    """Shared connection handling for the PostgreSQL adapters."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=0.1, max=5),
        retry=retry_if_exception_type(psycopg.OperationalError),
        reraise=True,
    )
    def _connect(self) -> psycopg.Connection[dict[str, Any]]:
        """Open a connection, retrying transient failures."""
        return psycopg.connect(self._dsn, row_factory=dict_row)


TABLES = ("tracked_certificates", "notification_settings", "notification_history")


def ensure_schema(dsn: str) -> Result[tuple[str, ...]]:
    """Create the tables when they do not exist yet. Returns the table names."""

    def _apply() -> tuple[str, ...]:
        with psycopg.connect(dsn) as conn:
            conn.execute(SCHEMA_DDL)
        log.info("repository.schema_ready", tables=list(TABLES))
        return TABLES

    return Result.from_computation(
        _apply,
        ErrorCode.DATABASE_ERROR,
        "Failed to create database schema",
    )


# ─────────────────────── Certificates ───────────────────────


class PsycopgCertificateRepository(_PsycopgAdapter):
    """
    Persist tracked certificates to PostgreSQL.

    Implements the CertificateRepository port. Lookups by id that match no
    row fail with NOT_FOUND; database errors fail with DATABASE_ERROR.
    """

    def add(self, certificate: TrackedCertificate) -> Result[TrackedCertificate]:
        def _insert() -> TrackedCertificate:
            with self._connect() as conn:
                conn.execute(_INSERT_CERTIFICATE, _certificate_params(certificate))
            log.info("repository.stored", certificate_id=str(certificate.id))
            return certificate

        return Result.from_computation(
            _insert, ErrorCode.DATABASE_ERROR, "Failed to store certificate"
        )

    def get(self, certificate_id: UUID) -> Result[TrackedCertificate]:
        return Result.from_computation(
            lambda: self._fetch(certificate_id),
            ErrorCode.DATABASE_ERROR,
            "Failed to load certificate",
        ).flat_map(lambda found: _require_found(found, certificate_id))

    def list_all(self) -> Result[list[TrackedCertificate]]:
        def _select() -> list[TrackedCertificate]:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM tracked_certificates ORDER BY expires_at, name"
                ).fetchall()
            return [_certificate_from_row(row) for row in rows]

        return Result.from_computation(
            _select, ErrorCode.DATABASE_ERROR, "Failed to list certificates"
        )

    def update(
        self, certificate_id: UUID, changes: Mapping[str, Any]
    ) -> Result[TrackedCertificate]:
        """
        Apply a partial update and return the stored certificate.

        Only known columns may be changed; `id` never is.
        """
        unknown = sorted(set(changes) - set(_CERTIFICATE_COLUMNS[1:]))
        if unknown:
            return Result.failure(
                ErrorCode.VALIDATION_ERROR, f"Unknown certificate fields: {', '.join(unknown)}"
            )
        if not changes:
            return self.get(certificate_id)

        def _update() -> list[TrackedCertificate]:
            query = sql.SQL("UPDATE tracked_certificates SET {} WHERE id = %s RETURNING *").format(
                sql.SQL(", ").join(
                    sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
                )
            )
            params = [_column_value(column, value) for column, value in changes.items()]
            with self._connect() as conn:
                rows = conn.execute(query, [*params, certificate_id]).fetchall()
            if rows:
                log.info("repository.updated", certificate_id=str(certificate_id), fields=sorted(changes))
            return [_certificate_from_row(row) for row in rows]

        return Result.from_computation(
            _update, ErrorCode.DATABASE_ERROR, "Failed to update certificate"
        ).flat_map(lambda found: _require_found(found, certificate_id))

    def remove(self, certificate_id: UUID) -> Result[UUID]:
        def _delete() -> list[UUID]:
            with self._connect() as conn:
                rows = conn.execute(
                    "DELETE FROM tracked_certificates WHERE id = %s RETURNING id",
                    (certificate_id,),
                ).fetchall()
            if rows:
                log.info("repository.removed", certificate_id=str(certificate_id))
            return [row["id"] for row in rows]

        return Result.from_computation(
            _delete, ErrorCode.DATABASE_ERROR, "Failed to remove certificate"
        ).flat_map(lambda found: _require_found(found, certificate_id))

    def mark_notified(self, certificate_ids: Iterable[UUID], at: datetime) -> Result[int]:
        ids = list(certificate_ids)

        def _mark() -> int:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(_MARK_NOTIFIED, (at, ids))
                return cur.rowcount

        return Result.from_computation(
            _mark, ErrorCode.DATABASE_ERROR, "Failed to mark certificates as notified"
        )

    def _fetch(self, certificate_id: UUID) -> list[TrackedCertificate]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tracked_certificates WHERE id = %s", (certificate_id,)
            ).fetchall()
        return [_certificate_from_row(row) for row in rows]


def _require_found[V](found: list[V], certificate_id: UUID) -> Result[V]:
    return Result.from_optional(found[0] if found else None, f"Certificate {certificate_id} not found")


# ─────────────────────── Monitoring ───────────────────────


class PsycopgMonitoringRepository(_PsycopgAdapter):
    """
    Persist notification settings and monitoring history to PostgreSQL.

    Implements the MonitoringRepository port. A missing settings row reads
    as the default NotificationSettings.
    """

    def load_settings(self) -> Result[NotificationSettings]:
        def _select() -> NotificationSettings:
            with self._connect() as conn:
                row = conn.execute("SELECT * FROM notification_settings WHERE id = 1").fetchone()
            return _settings_from_row(row)

        return Result.from_computation(
            _select, ErrorCode.DATABASE_ERROR, "Failed to load notification settings"
        )

    def save_settings(self, settings: NotificationSettings) -> Result[NotificationSettings]:
        def _upsert() -> NotificationSettings:
            with self._connect() as conn:
                conn.execute(
                    _UPSERT_SETTINGS,
                    (
                        settings.enabled,
                        list(settings.emails),
                        list(settings.notification_days),
                        settings.last_check,
                    ),
                )
            log.info(
                "repository.settings_saved",
                enabled=settings.enabled,
                notification_days=list(settings.notification_days),
            )
            return settings

        return Result.from_computation(
            _upsert, ErrorCode.DATABASE_ERROR, "Failed to save notification settings"
        )

    def history(self, limit: int = 100) -> Result[list[NotificationHistoryEntry]]:
        def _select() -> list[NotificationHistoryEntry]:
            with self._connect() as conn:
                rows = conn.execute(_SELECT_HISTORY, (limit,)).fetchall()
            return [_history_from_row(row) for row in rows]

        return Result.from_computation(
            _select, ErrorCode.DATABASE_ERROR, "Failed to load notification history"
        )

    def record_check(self, report: MonitoringReport, history_limit: int) -> Result[int]:
        """
        Atomically record a monitoring check.

        Returns Result[int] with the number of history entries written.
        """
        return Result.from_computation(
            lambda: self._transactional_record(report, history_limit),
            ErrorCode.DATABASE_ERROR,
            "Failed to record monitoring check",
        )

    def _transactional_record(self, report: MonitoringReport, history_limit: int) -> int:
        with self._connect() as conn, conn.transaction(), conn.cursor() as cur:
            for entry in report.entries:
                cur.execute(
                    _INSERT_HISTORY,
                    (
                        entry.id,
                        entry.certificate_id,
                        entry.certificate_name,
                        entry.sent_at,
                        entry.days_until_expiration,
                        entry.status.value,
                        list(entry.emails),
                        entry.error,
                        entry.success_count,
                        entry.failure_count,
                    ),
                )
            if report.entries:
                cur.execute(_MARK_NOTIFIED, (report.checked_at, report.tracked_certificate_ids))
            cur.execute(_TOUCH_LAST_CHECK, (report.checked_at,))
            cur.execute(_TRIM_HISTORY, (history_limit,))
            log.info(
                "repository.check_recorded",
                entries=len(report.entries),
                trimmed=cur.rowcount,
                checked_at=report.checked_at.isoformat(),
            )
            return len(report.entries)
