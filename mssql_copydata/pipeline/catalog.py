#!/usr/bin/env python
# mssql_copydata/pipeline/catalog.py

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

**Read the source database's catalogue.**

All queries go to the source database's own ``sys`` views, by three-part
name, so the connection can be to any database on the server.

"""

from typing import List, Sequence, Set, Tuple

from sqlalchemy.engine.base import Connection
from sqlalchemy.exc import SQLAlchemyError

from mssql_copydata.exceptions import CatalogReadError, engine_error_text
from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.pipeline.models import CatalogSnapshot, QualifiedName
from mssql_copydata.sqlalchemy.sqlserver import (
    make_text,
    SqlServerStatementBuilder,
)

log = get_brace_style_log_with_null_handler(__name__)


# =============================================================================
# Queries
# =============================================================================
# Each takes the quoted database name as {db}.

SQL_TABLES = """
SELECT s.name, o.name
FROM {db}.sys.objects o
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
WHERE o.type = 'U'
AND o.is_ms_shipped = 0
ORDER BY s.name, o.name
"""

SQL_COLUMNS = """
SELECT s.name, o.name, c.name
FROM {db}.sys.columns c
INNER JOIN {db}.sys.objects o ON c.object_id = o.object_id
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
WHERE o.type = 'U'
AND o.is_ms_shipped = 0
AND c.is_computed = 0
ORDER BY s.name, o.name, c.column_id
"""

SQL_CHECK_CONSTRAINTS = """
SELECT s.name, o.name, cc.name
FROM {db}.sys.check_constraints cc
INNER JOIN {db}.sys.objects o ON cc.parent_object_id = o.object_id
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
WHERE o.is_ms_shipped = 0
AND cc.is_disabled = 0
ORDER BY s.name, o.name, cc.name
"""

SQL_FOREIGN_KEYS = """
SELECT s.name, o.name, fk.name
FROM {db}.sys.foreign_keys fk
INNER JOIN {db}.sys.objects o ON fk.parent_object_id = o.object_id
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
WHERE fk.is_ms_shipped = 0
AND fk.is_disabled = 0
ORDER BY s.name, o.name, fk.name
"""

# parent_class = 1: DML triggers on tables (not database-level DDL triggers)
SQL_TRIGGERS = """
SELECT s.name, o.name, tr.name
FROM {db}.sys.triggers tr
INNER JOIN {db}.sys.objects o ON tr.parent_id = o.object_id
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
WHERE tr.parent_class = 1
AND tr.is_ms_shipped = 0
AND tr.is_disabled = 0
ORDER BY s.name, o.name, tr.name
"""

SQL_IDENTITY_TABLES = """
SELECT DISTINCT s.name, o.name
FROM {db}.sys.objects o
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
INNER JOIN {db}.sys.columns c ON o.object_id = c.object_id
WHERE o.type = 'U'
AND o.is_ms_shipped = 0
AND c.is_identity = 1
"""

# Typed XML (bound to a schema collection) can't be assigned across
# databases without an explicit conversion to untyped XML.
SQL_XML_COLUMNS = """
SELECT s.name, o.name, c.name
FROM {db}.sys.objects o
INNER JOIN {db}.sys.schemas s ON o.schema_id = s.schema_id
INNER JOIN {db}.sys.columns c ON o.object_id = c.object_id
WHERE o.type = 'U'
AND o.is_ms_shipped = 0
AND c.xml_collection_id > 0
"""


# =============================================================================
# Reading
# =============================================================================

def _fetch(connection: Connection, what: str, sql: str) -> List[Sequence]:
    """
    Runs one catalogue query.

    Raises:
        :exc:`CatalogReadError` naming ``what`` on any engine error
    """
    try:
        return list(connection.execute(make_text(sql)).fetchall())
    except SQLAlchemyError as e:
        raise CatalogReadError(
            f"Could not collect {what}: {engine_error_text(e)}"
        ) from e


def _owned_names(rows: Sequence[Sequence],
                 tables: Set[QualifiedName],
                 what: str) -> List[Tuple[QualifiedName, str]]:
    """
    Converts ``(schema, table, name)`` rows, keeping only those whose table
    is one of ``tables``.
    """
    result = []  # type: List[Tuple[QualifiedName, str]]
    for schema, table, name in rows:
        qname = QualifiedName(schema, table)
        if qname not in tables:
            log.debug("Ignoring {} {!r}: table {} is not a user table",
                      what, name, qname)
            continue
        result.append((qname, name))
    return result


def read_catalog(connection: Connection,
                 builder: SqlServerStatementBuilder,
                 source_db: str) -> CatalogSnapshot:
    """
    Reads everything the copy needs to know about the source database.

    The queries run one after another on the same connection. Nothing is
    changed.

    Args:
        connection: SQLAlchemy connection to the server
        builder: statement builder, for quoting the database name
        source_db: name of the source database

    Returns:
        a :class:`CatalogSnapshot`

    Raises:
        :exc:`CatalogReadError` if any query fails; no partial snapshot is
        returned
    """
    db = builder.database_ref(source_db)
    log.debug("Reading catalogue of database {}", db)

    table_rows = _fetch(connection, "table names", SQL_TABLES.format(db=db))
    tables = [QualifiedName(schema, name) for schema, name in table_rows]
    table_set = set(tables)

    columns = _owned_names(
        _fetch(connection, "table INSERT columns",
               SQL_COLUMNS.format(db=db)),
        table_set, "column")
    check_constraints = _owned_names(
        _fetch(connection, "CHECK CONSTRAINTS",
               SQL_CHECK_CONSTRAINTS.format(db=db)),
        table_set, "check constraint")
    foreign_keys = _owned_names(
        _fetch(connection, "FOREIGN KEY CONSTRAINTS",
               SQL_FOREIGN_KEYS.format(db=db)),
        table_set, "foreign key")
    triggers = _owned_names(
        _fetch(connection, "TRIGGERS", SQL_TRIGGERS.format(db=db)),
        table_set, "trigger")
    identity_tables = [
        QualifiedName(schema, name)
        for schema, name in _fetch(connection,
                                   "tables with IDENTITY property",
                                   SQL_IDENTITY_TABLES.format(db=db))
    ]
    xml_columns = _owned_names(
        _fetch(connection, "columns with XML data type",
               SQL_XML_COLUMNS.format(db=db)),
        table_set, "XML column")

    snapshot = CatalogSnapshot(
        tables=tables,
        columns=columns,
        check_constraints=check_constraints,
        foreign_keys=foreign_keys,
        triggers=triggers,
        identity_tables=[t for t in identity_tables if t in table_set],
        xml_columns=xml_columns,
    )
    log.debug("Read {!r}", snapshot)
    return snapshot
