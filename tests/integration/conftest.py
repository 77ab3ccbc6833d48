"""Integration test fixtures.

Provides an ephemeral PostgreSQL database via pytest-postgresql.  The users
table is not created here; tests that need it use the ``users_table``
fixture, which goes through the same create_table path as the CLI.
"""

from __future__ import annotations

import psycopg
import pytest
from pytest_postgresql import factories

from user_upload.schema import create_table

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Connection fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (autocommit psycopg connection, dsn) on an empty database."""
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        yield conn, dsn
    finally:
        conn.close()


@pytest.fixture
def users_table(db_conn):
    conn, dsn = db_conn
    create_table(conn)
    return conn, dsn
