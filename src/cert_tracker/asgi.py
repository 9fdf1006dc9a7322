"""
FastAPI + Uvicorn ASGI application.

Serves the certificate tracker API and runs the monitoring scheduler on a
background thread while Uvicorn listens.

Architecture:
  - FastAPI: upload/parse, tracked-certificate CRUD, settings, history
  - APScheduler: periodic monitoring check in a background thread
  - K8s Probes: liveness (scheduler thread alive) + readiness (after start)

Failures travel as railway Results up to this layer and are mapped to HTTP
statuses here:
  ingestion / validation errors → 422, NOT_FOUND → 404, everything else → 500

Entry point for production: uvicorn cert_tracker.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import FastAPI, File, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import AwareDatetime, BaseModel, Field
from railway import ErrorCode, FailureDescription
from railway.result import Result

from cert_tracker import __version__
from cert_tracker.adapters.repository import ensure_schema
from cert_tracker.config import AppSettings
from cert_tracker.domain.models import DistinguishedName, MonitoringReport, TrackedCertificate
from cert_tracker.domain.ports import CertificateParser, CertificateRepository, MonitoringRepository
from cert_tracker.listing import (
    SortOption,
    StatusFilter,
    available_issuers,
    days_remaining,
    expiration_status,
    filter_certificates,
    sort_certificates,
)
from cert_tracker.main import _create_adapters, build_monitoring_fn, configure_structlog
from cert_tracker.monitoring import DEFAULT_HISTORY_LIMIT, build_notification_settings
from cert_tracker.scheduler import create_scheduler
from cert_tracker.tracking import (
    build_tracked_certificate,
    manual_entry_template,
    validate_changes,
)
from cert_tracker.upload import DEFAULT_MAX_BYTES, read_upload

# ─────────────────────── Global State ───────────────────────
# Set during app startup; read by the health checks and the API endpoints.

_scheduler_thread: threading.Thread | None = None
_scheduler_started = False
_scheduler_ready = False
_error_message: str | None = None
_monitoring_fn: Callable[[], Result[MonitoringReport]] | None = None
_parser: CertificateParser | None = None
_certificate_repo: CertificateRepository | None = None
_monitoring_repo: MonitoringRepository | None = None
_max_upload_bytes = DEFAULT_MAX_BYTES
_history_limit = DEFAULT_HISTORY_LIMIT
log = structlog.get_logger()

_CLIENT_ERRORS = frozenset({
    ErrorCode.MALFORMED_INPUT,
    ErrorCode.STRUCTURAL_DECODE,
    ErrorCode.NO_IDENTITY,
    ErrorCode.VALIDATION_ERROR,
})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: load settings, ensure the schema, wire adapters, start the
    scheduler thread. Shutdown: stop the scheduler and join the thread.
    """
    global _scheduler_thread, _scheduler_started, _scheduler_ready, _error_message
    global _monitoring_fn, _parser, _certificate_repo, _monitoring_repo
    global _max_upload_bytes, _history_limit

    log.info("asgi.startup")

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)
    log.info(
        "asgi.startup_config",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    schema = ensure_schema(settings.database.get_dsn())
    if schema.is_failure():
        _error_message = f"Schema error: {schema.error().message}"
        log.error("asgi.schema_error", failure=str(schema.error()))
        raise RuntimeError(_error_message)

    try:
        _parser, _certificate_repo, _monitoring_repo = _create_adapters(settings)
        _monitoring_fn = build_monitoring_fn(settings, _certificate_repo, _monitoring_repo)
        _max_upload_bytes = settings.upload.max_bytes
        _history_limit = settings.monitoring.history_limit
        scheduler = create_scheduler(
            monitoring_fn=_monitoring_fn,
            cron=settings.scheduler.cron,
            run_on_startup=settings.run_on_startup,
            install_signal_handlers=False,
        )
    except Exception as e:
        _error_message = f"Failed to initialize adapters/scheduler: {e}"
        log.error("asgi.init_error", error=_error_message)
        raise

    def run_scheduler() -> None:
        global _scheduler_started, _error_message
        try:
            _scheduler_started = True
            log.info("asgi.scheduler_thread_started")
            scheduler.start()
        except Exception as e:
            _error_message = f"Scheduler error: {e}"
            log.error("asgi.scheduler_error", error=_error_message)

    _scheduler_thread = threading.Thread(target=run_scheduler, daemon=True)
    _scheduler_thread.start()

    await asyncio.sleep(0.1)
    _scheduler_ready = True
    log.info("asgi.startup_complete")

    yield

    log.info("asgi.shutdown", reason="SIGTERM or server stop")
    try:
        scheduler.shutdown(wait=True)
        log.info("asgi.scheduler_shutdown_complete")
    except Exception as e:
        log.warning("asgi.scheduler_shutdown_error", error=str(e))

    if _scheduler_thread and _scheduler_thread.is_alive():
        _scheduler_thread.join(timeout=5.0)
        if _scheduler_thread.is_alive():
            log.warning("asgi.scheduler_thread_timeout", timeout_seconds=5.0)

    log.info("asgi.shutdown_complete")


app = FastAPI(
    title="cert-tracker",
    description="TLS certificate ingestion and expiry tracking",
    version=__version__,
    lifespan=lifespan,
)


# ─────────────────────── Request Models ───────────────────────


class DistinguishedNameIn(BaseModel):
    common_name: str | None = None
    organization: str | None = None
    organizational_unit: str | None = None
    country: str | None = None
    state: str | None = None
    locality: str | None = None
    email_address: str | None = None

    def to_domain(self) -> DistinguishedName:
        return DistinguishedName(**self.model_dump())


class CertificateIn(BaseModel):
    """
    Manually entered or reviewed certificate details.

    A reviewed parse result sends `subject` and `issuer_details` as returned
    by /certificates/parse; manual entry may send `subject_dn`/`issuer_dn`
    strings instead.
    """

    name: str | None = None
    issuer: str | None = None
    domains: list[str] = Field(default_factory=list)
    issued_at: AwareDatetime | None = None
    expires_at: AwareDatetime | None = None
    description: str | None = None
    notes: str | None = None
    subject: DistinguishedNameIn | None = None
    issuer_details: DistinguishedNameIn | None = None
    subject_dn: str | None = None
    issuer_dn: str | None = None
    serial_number: str | None = None
    signature_algorithm: str | None = None


class CertificatePatch(BaseModel):
    name: str | None = None
    issuer: str | None = None
    domains: list[str] | None = None
    issued_at: AwareDatetime | None = None
    expires_at: AwareDatetime | None = None
    description: str | None = None
    notes: str | None = None


class NotificationSettingsIn(BaseModel):
    """
    Notification settings as submitted.

    `notification_days` accepts "30, 7, 1" or a list. `email` is the legacy
    single-address field and is migrated into `emails`.
    """

    enabled: bool = False
    notification_days: str | list[int] = Field(default_factory=lambda: [30, 7, 1])
    emails: list[str] | None = None
    email: str | None = None


# ─────────────────────── Helpers ───────────────────────


def _now() -> datetime:
    return datetime.now(UTC)


def _failure_response(failure: FailureDescription) -> JSONResponse:
    if failure.code in _CLIENT_ERRORS:
        status_code = 422
    elif failure.code is ErrorCode.NOT_FOUND:
        status_code = 404
    else:
        status_code = 500
    log.warning("api.request_failed", error_code=failure.code.value, message=failure.message)
    return JSONResponse(
        status_code=status_code,
        content={"status": "failed", "error_code": failure.code.value, "message": failure.message},
    )


def _respond(result: Result[Any], status_code: int = 200) -> JSONResponse:
    if result.is_failure():
        return _failure_response(result.error())
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.value()))


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"status": "unavailable", "reason": "Service not initialized"},
    )


def _certificate_view(certificate: TrackedCertificate, now: datetime) -> dict[str, Any]:
    days = days_remaining(certificate.expires_at, now)
    view = jsonable_encoder(certificate)
    view["days_remaining"] = days
    view["status"] = expiration_status(days).value
    return view


def _scheduler_running() -> bool:
    return _scheduler_thread is not None and _scheduler_thread.is_alive()


# ─────────────────────── Probes ───────────────────────


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness check: 200 while the scheduler thread is alive and no fatal
    error was recorded, 503 otherwise.
    """
    if _error_message:
        log.warning("health.check_failed", error=_error_message)
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": _error_message},
        )

    if not _scheduler_running():
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "reason": "scheduler thread not running"},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "healthy", "scheduler_running": True},
    )


@app.get("/ready")
async def ready() -> JSONResponse:
    """Readiness check: 202 while starting, 503 on error, 200 once running."""
    if not _scheduler_ready or not _scheduler_started:
        return JSONResponse(
            status_code=202,
            content={"status": "starting", "scheduler_started": _scheduler_started},
        )

    if _error_message:
        return JSONResponse(
            status_code=503,
            content={"status": "error", "error": _error_message},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "ready", "scheduler_running": _scheduler_running()},
    )


@app.get("/info")
async def info() -> dict[str, Any]:
    return {
        "name": "cert-tracker",
        "version": __version__,
        "scheduler_running": _scheduler_running(),
        "scheduler_started": _scheduler_started,
        "scheduler_ready": _scheduler_ready,
        "has_error": _error_message is not None,
    }


# ─────────────────────── Certificates ───────────────────────


@app.post("/certificates/parse")
async def parse_certificate_upload(file: UploadFile = File(...)) -> JSONResponse:
    """
    Parse an uploaded certificate file without storing it.

    Returns the extracted record for review; 422 when the file is rejected
    or cannot be parsed, so the caller can fall back to manual entry.
    """
    if _parser is None:
        return _unavailable()

    data = await file.read()
    parser = _parser
    log.info("upload.received", filename=file.filename, size=len(data))
    return _respond(
        read_upload(file.filename or "", data, _max_upload_bytes).flat_map(parser.parse)
    )


@app.get("/certificates/template")
async def certificate_template() -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(manual_entry_template(_now())))


@app.get("/certificates")
def list_certificates(
    search: str = "",
    status: StatusFilter = StatusFilter.ALL,
    issuer: str | None = None,
    sort: SortOption = SortOption.EXPIRATION_ASC,
) -> JSONResponse:
    """Tracked certificates, filtered and sorted, with days remaining and status."""
    if _certificate_repo is None:
        return _unavailable()

    now = _now()
    return _respond(
        _certificate_repo.list_all().map(
            lambda certs: [
                _certificate_view(cert, now)
                for cert in sort_certificates(
                    filter_certificates(certs, now, search, status, issuer), sort
                )
            ]
        )
    )


@app.get("/certificates/issuers")
def list_issuers() -> JSONResponse:
    if _certificate_repo is None:
        return _unavailable()
    return _respond(_certificate_repo.list_all().map(available_issuers))


@app.post("/certificates")
def add_certificate(body: CertificateIn) -> JSONResponse:
    """Start tracking a certificate; 422 names the first missing field."""
    if _certificate_repo is None:
        return _unavailable()

    repo = _certificate_repo
    now = _now()
    return _respond(
        build_tracked_certificate(
            **body.model_dump(exclude={"subject", "issuer_details"}),
            subject=body.subject.to_domain() if body.subject is not None else None,
            issuer_details=body.issuer_details.to_domain() if body.issuer_details is not None else None,
        )
        .flat_map(repo.add)
        .map(lambda cert: _certificate_view(cert, now)),
        status_code=201,
    )


@app.get("/certificates/{certificate_id}")
def get_certificate(certificate_id: UUID) -> JSONResponse:
    if _certificate_repo is None:
        return _unavailable()
    now = _now()
    return _respond(
        _certificate_repo.get(certificate_id).map(lambda cert: _certificate_view(cert, now))
    )


@app.patch("/certificates/{certificate_id}")
def update_certificate(certificate_id: UUID, body: CertificatePatch) -> JSONResponse:
    if _certificate_repo is None:
        return _unavailable()

    repo = _certificate_repo
    now = _now()
    return _respond(
        validate_changes(body.model_dump(exclude_unset=True))
        .flat_map(lambda changes: repo.update(certificate_id, changes))
        .map(lambda cert: _certificate_view(cert, now))
    )


@app.delete("/certificates/{certificate_id}")
def remove_certificate(certificate_id: UUID) -> JSONResponse:
    if _certificate_repo is None:
        return _unavailable()
    return _respond(
        _certificate_repo.remove(certificate_id).map(lambda removed: {"id": str(removed)})
    )


# ─────────────────────── Monitoring ───────────────────────


@app.get("/settings/notifications")
def get_notification_settings() -> JSONResponse:
    if _monitoring_repo is None:
        return _unavailable()
    return _respond(_monitoring_repo.load_settings())


@app.put("/settings/notifications")
def save_notification_settings(body: NotificationSettingsIn) -> JSONResponse:
    """Validate and save settings; last_check is kept from the stored settings."""
    if _monitoring_repo is None:
        return _unavailable()

    repo = _monitoring_repo
    return _respond(
        repo.load_settings()
        .flat_map(
            lambda current: build_notification_settings(
                enabled=body.enabled,
                notification_days=body.notification_days,
                emails=body.emails,
                email=body.email,
                last_check=current.last_check,
            )
        )
        .flat_map(repo.save_settings)
    )


@app.get("/history")
def notification_history(limit: int | None = Query(default=None, ge=1)) -> JSONResponse:
    if _monitoring_repo is None:
        return _unavailable()
    return _respond(_monitoring_repo.history(limit=limit or _history_limit))


@app.post("/monitoring/check")
async def run_monitoring_check() -> JSONResponse:
    """
    Run the monitoring check now instead of waiting for the scheduler.

    Runs in a worker thread to keep the event loop free. Returns the report,
    500 on failure, 503 before startup completes.
    """
    if _monitoring_fn is None:
        return _unavailable()

    log.info("monitoring.manual_start", source="REST")

    try:
        result = await asyncio.to_thread(_monitoring_fn)
    except Exception as e:
        log.error("monitoring.manual_exception", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"status": "error", "error": str(e)},
        )

    return _respond(result)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cert_tracker.asgi:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
