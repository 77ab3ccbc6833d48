"""user_upload.cli

CSV to PostgreSQL user data uploader.

Usage:
    user_upload --create_table -u "$PGUSER" -p "$PGPASSWORD" -h localhost
    user_upload --file users.csv -u "$PGUSER" -p "$PGPASSWORD" -h localhost
    user_upload --file users.csv --dry_run
    user_upload --file users.csv --dry_run --force_connect -h localhost

Exit status is 0 on success (or when only help was shown) and 1 on any
failure.
"""

from __future__ import annotations

import enum
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import click
import psycopg
from click.core import ParameterSource

from user_upload import schema
from user_upload.importer import ImportPipeline, build_conninfo, connect
from user_upload.shared import RejectWriter, Reporter, UploadError, UsageError

DSN_ENVVAR = "USER_UPLOAD_DB_DSN"


# ---------------------------------------------------------------------------
# Option resolution
# ---------------------------------------------------------------------------

class OptionState(enum.Enum):
    ABSENT = "absent"
    FLAG_SET = "flag_set"
    VALUE_SET = "value_set"


@dataclass(frozen=True)
class OptionValue:
    state: OptionState
    value: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> OptionValue:
        if raw is None or raw is False:
            return cls(OptionState.ABSENT)
        if raw is True:
            return cls(OptionState.FLAG_SET)
        return cls(OptionState.VALUE_SET, str(raw))

    @property
    def is_set(self) -> bool:
        return self.state is not OptionState.ABSENT


class Action(enum.Enum):
    SHORT_HELP = "short_help"
    CREATE_TABLE = "create_table"
    IMPORT = "import"
    USAGE_ERROR = "usage_error"
    NO_ACTION = "no_action"


def resolve_action(options: Mapping[str, OptionValue]) -> Action:
    """Pick the single action for this invocation.

    Precedence: no options -> short help, then --create_table, then --file,
    then a stray --dry_run (usage error).
    """
    if not any(opt.is_set for opt in options.values()):
        return Action.SHORT_HELP
    absent = OptionValue(OptionState.ABSENT)
    if options.get("create_table", absent).is_set:
        return Action.CREATE_TABLE
    if options.get("csv_file", absent).state is OptionState.VALUE_SET:
        return Action.IMPORT
    if options.get("dry_run", absent).is_set:
        return Action.USAGE_ERROR
    return Action.NO_ACTION


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

def _run_create_table(conninfo: str, reporter: Reporter) -> int:
    try:
        conn = connect(conninfo)
    except UploadError as exc:
        reporter.error(str(exc))
        return 1
    try:
        schema.create_table(conn)
    except psycopg.Error as exc:
        reporter.error(str(exc).strip())
        reporter.error("No changes are made in the database")
        return 1
    finally:
        conn.close()
    reporter.info("Table 'users' is successfully created")
    return 0


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command(context_settings={"help_option_names": ["--help"]})
@click.option("--file", "csv_file", default=None, type=click.Path(), help="The name of the CSV to be parsed")
@click.option("--create_table", is_flag=True, default=False, help="Build the users table and take no further action")
@click.option("--dry_run", is_flag=True, default=False, help="With --file: validate and print rows without altering the database")
@click.option("--force_connect", is_flag=True, default=False, help="With --dry_run: still connect and verify the users table")
@click.option("-u", "user", default=None, help="User name to connect to PostgreSQL")
@click.option("-p", "password", default=None, help="Password to connect to PostgreSQL")
@click.option("-h", "host", default=None, help="Host address of PostgreSQL server")
@click.option("--dbname", default=None, help="Database name (libpq default when omitted)")
@click.option("--port", default=None, type=int, help="PostgreSQL port")
@click.option("--db-dsn", default=None, envvar=DSN_ENVVAR, help=f"Base PostgreSQL DSN [env: {DSN_ENVVAR}]")
@click.option("--rejects-path", default=None, type=click.Path(), help="Write skipped lines to this CSV")
@click.option("--report-path", default=None, type=click.Path(), help="Write a JSON run report here")
@click.option("--run-id", default=None, help="Identifier prefixed to every message")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Print STATUS messages and debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    csv_file: str | None,
    create_table: bool,
    dry_run: bool,
    force_connect: bool,
    user: str | None,
    password: str | None,
    host: str | None,
    dbname: str | None,
    port: int | None,
    db_dsn: str | None,
    rejects_path: str | None,
    report_path: str | None,
    run_id: str | None,
    verbose: bool,
) -> None:
    """CSV to PostgreSQL user data uploader."""
    # Only options typed on the command line select the action.
    options = {
        name: OptionValue.from_raw(
            value
            if ctx.get_parameter_source(name) is ParameterSource.COMMANDLINE
            else None
        )
        for name, value in ctx.params.items()
    }
    action = resolve_action(options)

    if action is Action.SHORT_HELP:
        click.echo(ctx.get_usage())
        click.echo("Use --help to get the directives details")
        return
    if action is Action.NO_ACTION:
        click.echo(
            "No action is taken. Please run with --help to check the command line options."
        )
        return

    _configure_logging(verbose)
    reporter = Reporter(verbose=verbose or dry_run, run_id=run_id)
    try:
        if action is Action.USAGE_ERROR:
            raise UsageError("The option --dry_run requires --file to be specified")
        conninfo = build_conninfo(db_dsn, user, password, host, dbname, port)
    except psycopg.ProgrammingError as exc:
        reporter.error(f"Invalid connection parameters: {exc}")
        sys.exit(1)
    except UploadError as exc:
        reporter.error(str(exc))
        sys.exit(1)

    if action is Action.CREATE_TABLE:
        sys.exit(_run_create_table(conninfo, reporter))

    pipeline = ImportPipeline(
        reporter,
        connect_fn=lambda: connect(conninfo),
        rejects=RejectWriter(Path(rejects_path) if rejects_path else None),
        report_path=Path(report_path) if report_path else None,
    )
    csv_path = options["csv_file"].value
    sys.exit(pipeline.run(csv_path, dry_run=dry_run, force_connect=force_connect))


if __name__ == "__main__":
    main()
