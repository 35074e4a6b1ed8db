#!/usr/bin/env python
# mssql_copydata/pipeline/preflight.py

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

**Checks made before anything in the destination is changed.**

"""

from typing import List, Sequence

from sqlalchemy.engine.base import Connection
from sqlalchemy.exc import SQLAlchemyError

from mssql_copydata.exceptions import (
    DestinationNotEmptyError,
    engine_error_text,
    RowCountError,
)
from mssql_copydata.logs import (
    format_multiline,
    get_brace_style_log_with_null_handler,
)
from mssql_copydata.pipeline.models import (
    CountOrigin,
    QualifiedName,
    RowCountRecord,
)
from mssql_copydata.sqlalchemy.sqlserver import (
    make_text,
    SqlServerStatementBuilder,
)

log = get_brace_style_log_with_null_handler(__name__)

SQL_MISSING_OBJECTS = """
SELECT name
FROM {src}.sys.objects
WHERE is_ms_shipped = 0
AND name NOT IN (SELECT name FROM {dst}.sys.objects)
ORDER BY name
"""


# =============================================================================
# Object parity
# =============================================================================

def find_missing_objects(connection: Connection,
                         builder: SqlServerStatementBuilder,
                         source_db: str,
                         destination_db: str) -> List[str]:
    """
    Returns the names of user objects in the source that have no namesake in
    the destination, and warns if there are any.

    This is a warning only. Failure to run the comparison is also only a
    warning, and returns an empty list.
    """
    sql = SQL_MISSING_OBJECTS.format(
        src=builder.database_ref(source_db),
        dst=builder.database_ref(destination_db),
    )
    try:
        rows = connection.execute(make_text(sql)).fetchall()
    except SQLAlchemyError as e:
        log.warning("Could not collect objects information: {}",
                    engine_error_text(e))
        return []
    missing = [row[0] for row in rows]
    if missing:
        log.warning(
            "Schema mismatch in source and destination database; objects "
            "missing from destination:\n{}",
            format_multiline(missing))
    return missing


# =============================================================================
# Row counts
# =============================================================================

def count_table_rows(connection: Connection,
                     builder: SqlServerStatementBuilder,
                     database: str,
                     tables: Sequence[QualifiedName],
                     origin: CountOrigin) -> List[RowCountRecord]:
    """
    Counts the rows of each table in one database.

    Raises:
        :exc:`RowCountError` on the first table that can't be counted
    """
    where = "source" if origin == CountOrigin.SOURCE else "destination"
    records = []  # type: List[RowCountRecord]
    for table in tables:
        statement = builder.count_rows(database, table.schema, table.name)
        try:
            count = connection.execute(statement).scalar()
        except SQLAlchemyError as e:
            raise RowCountError(
                f"Could not count rows in {where} table {table}: "
                f"{engine_error_text(e)}"
            ) from e
        records.append(RowCountRecord(table, int(count or 0), origin))
    return records


def check_destination_empty(connection: Connection,
                            builder: SqlServerStatementBuilder,
                            destination_db: str,
                            tables: Sequence[QualifiedName]) \
        -> List[RowCountRecord]:
    """
    Checks that every table in the destination is empty.

    Returns:
        the (all zero) destination row counts

    Raises:
        :exc:`RowCountError` if a table can't be counted
        :exc:`DestinationNotEmptyError` if any table has rows
    """
    records = count_table_rows(connection, builder, destination_db, tables,
                               CountOrigin.DESTINATION)
    total = sum(r.count for r in records)
    if total > 0:
        nonempty = [f"{r.table}: {r.count}" for r in records if r.count > 0]
        log.debug("Non-empty destination tables:\n{}",
                  format_multiline(nonempty))
        raise DestinationNotEmptyError(
            f"Rows found in destination database ({total} rows in "
            f"{len(nonempty)} tables) - destination tables must be empty"
        )
    return records
