#!/usr/bin/env python
# mssql_copydata/pipeline/transfer.py

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

**Copy the rows of each table from source to destination.**

One ``INSERT ... SELECT`` per table, run on the server, so no rows pass
through Python. A failure affects only its own table.

"""

from typing import Iterable, List, Optional, Tuple

from sqlalchemy.engine.base import Connection
from sqlalchemy.exc import SQLAlchemyError

from mssql_copydata.exceptions import engine_error_text
from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.pipeline.models import (
    FailureRecord,
    Outcome,
    PhaseResult,
    TableDescriptor,
)
from mssql_copydata.sqlalchemy.sqlserver import SqlServerStatementBuilder

log = get_brace_style_log_with_null_handler(__name__)

TRANSFER_PHASE = "transfer"


class TableCopyError(Exception):
    """
    A table copy failed, and so did the clean-up after it; the message holds
    both errors.
    """
    pass


def copy_table(connection: Connection,
               builder: SqlServerStatementBuilder,
               source_db: str,
               destination_db: str,
               descriptor: TableDescriptor) -> Optional[int]:
    """
    Copies all rows of one table.

    If the table has an identity column, ``IDENTITY_INSERT`` is switched on
    for the copy so the source's identity values are kept, and switched off
    again afterwards even if the copy failed. If that fails too, both
    errors are reported.

    Returns:
        the number of rows copied, if the driver reports it, or ``None``

    Raises:
        :exc:`sqlalchemy.exc.SQLAlchemyError` if any statement fails
        :exc:`ValueError` if the statement can't be built (e.g. no columns)
        :exc:`TableCopyError` if both the copy and switching
        ``IDENTITY_INSERT`` off again failed
    """
    table = descriptor.table
    statement = builder.insert_select(
        source_db=source_db,
        destination_db=destination_db,
        schema=table.schema,
        table=table.name,
        insert_columns=descriptor.insert_columns,
        select_columns=descriptor.select_columns,
    )
    if not descriptor.has_identity_column:
        return _rowcount(connection.execute(statement).rowcount)

    connection.execute(builder.set_identity_insert(
        destination_db, table.schema, table.name, on=True))
    try:
        rowcount = _rowcount(connection.execute(statement).rowcount)
    except SQLAlchemyError as insert_error:
        try:
            connection.execute(builder.set_identity_insert(
                destination_db, table.schema, table.name, on=False))
        except SQLAlchemyError as off_error:
            raise TableCopyError(
                f"{engine_error_text(insert_error)}\n"
                f"IDENTITY_INSERT could not then be set OFF: "
                f"{engine_error_text(off_error)}") from insert_error
        raise
    connection.execute(builder.set_identity_insert(
        destination_db, table.schema, table.name, on=False))
    return rowcount


def _rowcount(value: Optional[int]) -> Optional[int]:
    # DBAPI drivers report -1 when they don't know
    if value is None or value < 0:
        return None
    return value


def transfer_tables(connection: Connection,
                    builder: SqlServerStatementBuilder,
                    source_db: str,
                    destination_db: str,
                    descriptors: Iterable[TableDescriptor]) \
        -> Tuple[List[FailureRecord], PhaseResult]:
    """
    Copies every table, in order, carrying on past failures.

    Returns:
        tuple: ``failed_tables, phase_result``; a table is in
        ``failed_tables`` if and only if its copy raised an error
    """
    failures = []  # type: List[FailureRecord]
    result = PhaseResult(TRANSFER_PHASE)
    for descriptor in descriptors:
        table = descriptor.table
        log.info("Copy data to table {}", table)
        try:
            rowcount = copy_table(connection, builder, source_db,
                                  destination_db, descriptor)
        except (SQLAlchemyError, TableCopyError, ValueError) as e:
            error = engine_error_text(e)
            log.error("Could not copy data to table {}\n{}", table, error)
            failures.append(FailureRecord(table, error))
            result.add(table, Outcome(error))
            continue
        if rowcount is not None:
            log.info("{} rows copied", rowcount)
        result.add(table, Outcome())
    if failures:
        log.warning("Failed tables count: {}", len(failures))
    else:
        log.info("All tables copied")
    return failures, result
