"""user_upload.schema

Creation and compatibility inspection of the ``users`` table.

Creation uses 255-character columns; the compatibility check only requires
more than 127 characters so that tables created elsewhere with looser
bounds are still accepted.  The unique constraint on ``email`` is not
inspected.
"""

from __future__ import annotations

import enum

import psycopg

TABLE_NAME = "users"
REQUIRED_COLUMNS = ("name", "surname", "email")
MIN_COLUMN_LENGTH = 127
STRING_TYPES = {"character varying", "character", "text"}

CREATE_TABLE_SQL = """
CREATE TABLE users (
  id      SERIAL PRIMARY KEY,
  name    VARCHAR(255),
  surname VARCHAR(255),
  email   VARCHAR(255) UNIQUE
)
"""


class SchemaStatus(enum.Enum):
    MISSING = "missing"
    INCOMPATIBLE = "incompatible"
    COMPATIBLE = "compatible"


def create_table(conn: psycopg.Connection) -> None:
    """Create the users table.  Raises psycopg.errors.DuplicateTable if present."""
    with conn.transaction():
        conn.execute(CREATE_TABLE_SQL)


def inspect_users_table(conn: psycopg.Connection) -> SchemaStatus:
    rows = conn.execute(
        """
        SELECT column_name, data_type, character_maximum_length
        FROM information_schema.columns
        WHERE table_schema = current_schema()
          AND table_name = %s
        """,
        (TABLE_NAME,),
    ).fetchall()
    if not rows:
        return SchemaStatus.MISSING

    columns = {name: (data_type, length) for name, data_type, length in rows}
    for column in REQUIRED_COLUMNS:
        if column not in columns:
            return SchemaStatus.INCOMPATIBLE
        data_type, length = columns[column]
        if data_type not in STRING_TYPES:
            return SchemaStatus.INCOMPATIBLE
        # NULL length means unbounded (text, bare varchar)
        if length is not None and length <= MIN_COLUMN_LENGTH:
            return SchemaStatus.INCOMPATIBLE
    return SchemaStatus.COMPATIBLE


def check_compatible(conn: psycopg.Connection) -> bool:
    return inspect_users_table(conn) is SchemaStatus.COMPATIBLE
