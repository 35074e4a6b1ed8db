#!/usr/bin/env python
# mssql_copydata/pipeline/copy_data.py

"""
===============================================================================

    Original code copyright (C) 2009-2022 Rudolf Cardinal (rudolf@pobox.com).

    This file is part of mssql_copydata.

    Licensed under the Apache License, Version 2.0 (the "License");
    you may not use this file except in compliance with the License.
    You may obtain a copy of the License at

        https://www.apache.org/licenses/LICENSE-2.0

    Unless required by applicable law or agreed to in writing, software
    distributed under the License is distributed on an "AS IS" BASIS,
    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
    See the License for the specific language governing permissions and
    limitations under the License.

===============================================================================

**Copy all table data from one SQL Server database to another.**

The destination must already have the same schema as the source (or be
cloned from it; see ``clone_db``), and all its tables must be empty.

Steps:

- check the caller and the databases (see
  :mod:`mssql_copydata.pipeline.provisioning`);
- read the source catalogue;
- warn about objects missing from the destination; check it is empty;
- disable CHECK constraints, foreign keys and triggers in the destination;
- copy each table with ``INSERT ... SELECT``;
- re-enable triggers, foreign keys and CHECK constraints;
- count rows in both databases.

There is no transaction around the whole run. If it stops part-way, the
destination may be left partly filled, or with constraints disabled.
BACK UP FIRST.

"""

from typing import List

from sqlalchemy.engine.base import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from mssql_copydata.exceptions import (
    CopyDataError,
    engine_error_text,
    PreconditionError,
)
from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.pipeline.catalog import read_catalog
from mssql_copydata.pipeline.descriptors import (
    build_constraint_descriptors,
    build_table_descriptors,
)
from mssql_copydata.pipeline.integrity import (
    restore_constraints,
    RestorationPolicy,
    suspend_constraints,
)
from mssql_copydata.pipeline.models import (
    ConstraintKind,
    CopyDataReport,
    PhaseResult,
)
from mssql_copydata.pipeline.preflight import (
    check_destination_empty,
    find_missing_objects,
)
from mssql_copydata.pipeline.provisioning import (
    provision,
    validate_database_names,
)
from mssql_copydata.pipeline.transfer import transfer_tables
from mssql_copydata.pipeline.verification import compare_row_counts
from mssql_copydata.sqlalchemy.session import (
    AUTOCOMMIT,
    autocommit_connection,
)
from mssql_copydata.sqlalchemy.sqlserver import SqlServerStatementBuilder

log = get_brace_style_log_with_null_handler(__name__)


def copy_data(connection: Connection,
              source_db: str,
              destination_db: str,
              clone_db: bool = False,
              restoration_policy: RestorationPolicy = None,
              trust_restored_constraints: bool = False,
              skip_provisioning: bool = False) -> CopyDataReport:
    """
    Copies the data in every user table of ``source_db`` into the same table
    of ``destination_db``.

    Args:
        connection:
            SQLAlchemy connection to the server, with no transaction open;
            it is switched to AUTOCOMMIT mode
        source_db:
            source database name
        destination_db:
            destination database name
        clone_db:
            create the destination as a schema-only clone of the source first
        restoration_policy:
            which failures to re-enable constraints/triggers are fatal;
            default is CHECK constraints only
        trust_restored_constraints:
            re-enable constraints ``WITH CHECK``, revalidating every row
        skip_provisioning:
            skip the privilege/database checks and the recovery-model change
            (for callers who have already ensured these)

    Returns:
        a :class:`CopyDataReport`; tables that could not be copied are
        listed in it, not raised

    Raises:
        :exc:`mssql_copydata.exceptions.CopyDataError` for anything that
        stops the run; this is logged before being raised
    """
    try:
        return _copy_data(
            connection=_autocommit(connection),
            source_db=source_db,
            destination_db=destination_db,
            clone_db=clone_db,
            restoration_policy=restoration_policy or RestorationPolicy(),
            trust_restored_constraints=trust_restored_constraints,
            skip_provisioning=skip_provisioning,
        )
    except CopyDataError as e:
        log.error("Terminating: {}", e)
        raise


def _autocommit(connection: Connection) -> Connection:
    """
    Puts the connection in AUTOCOMMIT mode (in place, for an SQLAlchemy 2
    :class:`Connection`), so that each statement commits as it runs and
    nothing is rolled back when the caller closes the connection.

    Raises:
        :exc:`PreconditionError` if the connection already has a transaction
        open, in which case the isolation level can't be changed
    """
    try:
        return connection.execution_options(isolation_level=AUTOCOMMIT)
    except SQLAlchemyError as e:
        raise PreconditionError(
            f"Could not switch connection to {AUTOCOMMIT}: "
            f"{engine_error_text(e)}") from e


def _copy_data(connection: Connection,
               source_db: str,
               destination_db: str,
               clone_db: bool,
               restoration_policy: RestorationPolicy,
               trust_restored_constraints: bool,
               skip_provisioning: bool) -> CopyDataReport:
    builder = SqlServerStatementBuilder(connection)

    log.info("Validating configuration")
    validate_database_names(source_db, destination_db)
    if skip_provisioning:
        log.info("Skipping privilege and database checks")
    else:
        provision(connection, builder, source_db, destination_db,
                  clone_db=clone_db)

    find_missing_objects(connection, builder, source_db, destination_db)
    snapshot = read_catalog(connection, builder, source_db)
    tables = list(snapshot.tables)
    log.info("Tables found: {}", len(tables))
    check_destination_empty(connection, builder, destination_db, tables)

    constraints = build_constraint_descriptors(snapshot)
    log.info("CHECK CONSTRAINTS found: {}",
             len(constraints[ConstraintKind.CHECK]))
    log.info("FOREIGN KEY CONSTRAINTS found: {}",
             len(constraints[ConstraintKind.FOREIGN_KEY]))
    log.info("TRIGGERS found: {}", len(constraints[ConstraintKind.TRIGGER]))
    descriptors = build_table_descriptors(snapshot)
    log.info("Tables with IDENTITY property found: {}",
             sum(1 for d in descriptors.values() if d.has_identity_column))
    log.info("Validation finished - starting process")

    phase_results = []  # type: List[PhaseResult]
    phase_results.extend(
        suspend_constraints(connection, builder, destination_db, constraints))

    failed_tables, transfer_result = transfer_tables(
        connection, builder, source_db, destination_db, descriptors.values())
    phase_results.append(transfer_result)

    phase_results.extend(restore_constraints(
        connection, builder, destination_db, constraints,
        policy=restoration_policy,
        with_check=trust_restored_constraints,
        failed_tables=failed_tables,
    ))

    row_counts = compare_row_counts(connection, builder, source_db,
                                    destination_db, tables)
    return CopyDataReport(failed_tables=failed_tables,
                          row_counts=row_counts,
                          phase_results=phase_results)


def copy_database(engine: Engine,
                  source_db: str,
                  destination_db: str,
                  **kwargs) -> CopyDataReport:
    """
    As :func:`copy_data`, opening a single AUTOCOMMIT connection from
    ``engine`` for the whole run.
    """
    with autocommit_connection(engine) as connection:
        return copy_data(connection, source_db, destination_db, **kwargs)
