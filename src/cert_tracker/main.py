"""
Application entry point — wires dependencies and starts the scheduler.

Composition root: creates concrete adapters, binds them into the monitoring
check, and hands the check to the scheduler. This is the ONLY place where
concrete adapter classes are instantiated; everything else depends on the
Protocol ports.

The HTTP service (cert_tracker.asgi) reuses the same wiring.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from functools import partial

import structlog
from railway.result import Result

from cert_tracker import __version__
from cert_tracker.adapters.repository import (
    PsycopgCertificateRepository,
    PsycopgMonitoringRepository,
    ensure_schema,
)
from cert_tracker.adapters.x509_parser import X509CertificateParser
from cert_tracker.config import AppSettings
from cert_tracker.domain.models import MonitoringReport
from cert_tracker.monitoring import run_monitoring
from cert_tracker.scheduler import create_scheduler


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog for colored console output filtered at `log_level`."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


type _Adapters = tuple[
    X509CertificateParser,
    PsycopgCertificateRepository,
    PsycopgMonitoringRepository,
]


def _create_adapters(settings: AppSettings) -> _Adapters:
    """Instantiate the parser and both PostgreSQL repositories."""
    dsn = settings.database.get_dsn()
    return (
        X509CertificateParser(),
        PsycopgCertificateRepository(dsn=dsn),
        PsycopgMonitoringRepository(dsn=dsn),
    )


def build_monitoring_fn(
    settings: AppSettings,
    certificate_repo: PsycopgCertificateRepository,
    monitoring_repo: PsycopgMonitoringRepository,
) -> Callable[[], Result[MonitoringReport]]:
    """Bind the repositories and tuning settings into a zero-argument check."""
    return partial(
        run_monitoring,
        certificate_repo=certificate_repo,
        monitoring_repo=monitoring_repo,
        repeat_after=settings.monitoring.repeat_after,
        history_limit=settings.monitoring.history_limit,
    )


def main() -> None:
    """Wire dependencies and launch the scheduled monitoring check."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    schema = ensure_schema(settings.database.get_dsn())
    if schema.is_failure():
        log.error("app.schema_failed", failure=str(schema.error()))
        sys.exit(1)

    _, certificate_repo, monitoring_repo = _create_adapters(settings)
    scheduler = create_scheduler(
        monitoring_fn=build_monitoring_fn(settings, certificate_repo, monitoring_repo),
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    log.info("app.scheduler_starting", cron=settings.scheduler.cron)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except SystemExit:
        log.info("app.shutdown", reason="signal received")
        raise
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
