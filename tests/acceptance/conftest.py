"""
Acceptance test fixtures — PostgreSQL testcontainer wired into the ASGI app.

Reuses the schema and truncation of the integration tests; the app's
module-level adapters are replaced by real repositories on that database.
"""

from __future__ import annotations

from collections.abc import Iterator
from functools import partial

import psycopg
import pytest
from fastapi.testclient import TestClient
from testcontainers.postgres import PostgresContainer

from cert_tracker import asgi
from cert_tracker.adapters.repository import (
    SCHEMA_DDL,
    PsycopgCertificateRepository,
    PsycopgMonitoringRepository,
)
from cert_tracker.adapters.x509_parser import X509CertificateParser
from cert_tracker.monitoring import run_monitoring
from tests.integration.conftest import TRUNCATE_ALL


@pytest.fixture(scope="session")
def acceptance_pg() -> PostgresContainer:
    """Start a PostgreSQL container for the acceptance test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        dsn = pg.get_connection_url().replace("postgresql+psycopg2", "postgresql")
        with psycopg.connect(dsn) as conn:
            conn.execute(SCHEMA_DDL)
            conn.commit()
        yield pg


@pytest.fixture()
def acceptance_dsn(acceptance_pg: PostgresContainer) -> str:
    """Return a psycopg-compatible DSN and truncate all tables before each test."""
    connection_url = acceptance_pg.get_connection_url().replace("postgresql+psycopg2", "postgresql")
    with psycopg.connect(connection_url) as conn:
        conn.execute(TRUNCATE_ALL)
        conn.commit()
    return connection_url


@pytest.fixture()
def api(acceptance_dsn: str) -> Iterator[TestClient]:
    """TestClient over the app with real adapters; lifespan is not run."""
    certificate_repo = PsycopgCertificateRepository(acceptance_dsn)
    monitoring_repo = PsycopgMonitoringRepository(acceptance_dsn)
    asgi._parser = X509CertificateParser()
    asgi._certificate_repo = certificate_repo
    asgi._monitoring_repo = monitoring_repo
    asgi._monitoring_fn = partial(
        run_monitoring, certificate_repo=certificate_repo, monitoring_repo=monitoring_repo
    )
    yield TestClient(asgi.app, raise_server_exceptions=False)
    asgi._parser = None
    asgi._certificate_repo = None
    asgi._monitoring_repo = None
    asgi._monitoring_fn = None
