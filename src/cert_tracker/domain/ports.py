"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the application needs without specifying HOW:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing), so adapters and test doubles
satisfy the contract simply by implementing the methods.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from railway.result import Result

from cert_tracker.domain.models import (
    CertificateRecord,
    MonitoringReport,
    NotificationHistoryEntry,
    NotificationSettings,
    TrackedCertificate,
)


@runtime_checkable
class CertificateParser(Protocol):
    """
    Port: turn uploaded certificate text into a CertificateRecord.

    Failures carry MALFORMED_INPUT, STRUCTURAL_DECODE or NO_IDENTITY.
    """

    def parse(self, raw: str) -> Result[CertificateRecord]: ...


@runtime_checkable
class CertificateRepository(Protocol):
    """Port: persistent store of tracked certificates."""

    def add(self, certificate: TrackedCertificate) -> Result[TrackedCertificate]: ...

    def get(self, certificate_id: UUID) -> Result[TrackedCertificate]: ...

    def list_all(self) -> Result[list[TrackedCertificate]]: ...

    def update(
        self, certificate_id: UUID, changes: Mapping[str, Any]
    ) -> Result[TrackedCertificate]: ...

    def remove(self, certificate_id: UUID) -> Result[UUID]: ...

    def mark_notified(self, certificate_ids: Iterable[UUID], at: datetime) -> Result[int]: ...


@runtime_checkable
class MonitoringRepository(Protocol):
    """
    Port: notification settings and the history of monitoring checks.

    `record_check` must be atomic: history entries, certificate
    last-notification timestamps and the settings' last_check are written
    together or not at all.
    """

    def load_settings(self) -> Result[NotificationSettings]: ...

    def save_settings(self, settings: NotificationSettings) -> Result[NotificationSettings]: ...

    def history(self, limit: int = 100) -> Result[list[NotificationHistoryEntry]]: ...

    def record_check(self, report: MonitoringReport, history_limit: int) -> Result[int]: ...
