"""
Scheduler — periodic execution of the certificate monitoring check.

Infrastructure layer — uses APScheduler (3.x) for in-process scheduling
driven by a standard 5-field cron expression. Each run is wrapped in a
LoggingExecutionContext for timing and outcome logging.

Graceful shutdown: handles SIGINT/SIGTERM to stop the scheduler cleanly.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from railway import LoggingExecutionContext
from railway.result import Result

from cert_tracker.domain.models import MonitoringReport

log = structlog.get_logger()

JOB_ID = "certificate_monitoring"


def create_scheduler(
    monitoring_fn: Callable[[], Result[MonitoringReport]],
    cron: str = "0 * * * *",
    run_on_startup: bool = False,
    install_signal_handlers: bool = True,
) -> BlockingScheduler:
    """
    Create a BlockingScheduler that runs the monitoring check on a cron schedule.

    Args:
        monitoring_fn: Zero-argument callable running one check.
        cron: Standard 5-field cron expression (minute hour dom month dow).
        run_on_startup: If True, run one check before returning.
        install_signal_handlers: Stop on SIGINT/SIGTERM. Disabled when Uvicorn
            owns the process signals.
    """
    scheduler = BlockingScheduler()
    ctx = LoggingExecutionContext(operation="CertificateMonitoring")

    def _job() -> None:
        result = ctx.execute(monitoring_fn)
        if result.is_success():
            report = result.value()
            log.info(
                "scheduler.job_completed",
                checked=report.certificates_checked,
                tracked=len(report.entries),
            )
        else:
            log.error("scheduler.job_failed", failure=str(result.error()))

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        _job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id=JOB_ID,
        name="Certificate expiry monitoring",
        replace_existing=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run")
        _job()

    if install_signal_handlers:
        _register_shutdown_signals(scheduler)

    return scheduler


def _register_shutdown_signals(scheduler: BlockingScheduler) -> None:
    def _shutdown(signum: int, frame: object) -> None:
        log.info("scheduler.shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
