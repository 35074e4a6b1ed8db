#!/usr/bin/env python
# mssql_copydata/sqlalchemy/sqlserver.py

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

**SQL statements specific to Microsoft SQL Server.**

The copy works across two databases on one server, so almost every statement
refers to objects by three-part names (``[database].[schema].[object]``), and
those names are only known at run time, from the catalogue. SQL Server won't
take identifiers as bound parameters, so statements are built as text, here
and only here. The rules:

- Only identifiers are ever interpolated: names of databases, schemas, tables,
  columns, constraints and triggers. Values always go in as bound parameters.
- Every identifier is validated (see :func:`validate_identifier`) and then
  quoted unconditionally by the dialect's identifier preparer, which doubles
  any ``]``.
- Colons are escaped, so that :func:`sqlalchemy.sql.text` does not treat part
  of an identifier as a bind parameter.

See
https://stackoverflow.com/questions/123558/sql-server-2005-t-sql-to-temporarily-disable-a-trigger
for the constraint/trigger statements.

"""

from typing import Optional, Sequence, Tuple

from sqlalchemy.sql import text
from sqlalchemy.sql.elements import TextClause

from mssql_copydata.sqlalchemy.dialect import (
    always_quote_identifier,
    DialectSource,
    get_dialect,
)

# =============================================================================
# Constants
# =============================================================================

MAX_IDENTIFIER_LENGTH = 128  # SQL Server "sysname" is NVARCHAR(128)

XML_TYPE = "XML"
ALLOWED_CONVERSION_TYPES = (XML_TYPE, )

# A column to select, and the type (if any) to convert it to on the way.
SelectColumn = Tuple[str, Optional[str]]


# =============================================================================
# Identifiers
# =============================================================================

def validate_identifier(identifier: str) -> str:
    """
    Checks that a string is usable as an SQL Server identifier (before
    quoting), and returns it.

    Raises:
        :exc:`ValueError` if it is empty, too long, or contains a NUL
    """
    if not isinstance(identifier, str) or not identifier:
        raise ValueError(f"Invalid SQL identifier: {identifier!r}")
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"SQL identifier longer than {MAX_IDENTIFIER_LENGTH} characters: "
            f"{identifier!r}"
        )
    if "\x00" in identifier:
        raise ValueError(f"SQL identifier contains NUL: {identifier!r}")
    return identifier


def make_text(sql: str) -> TextClause:
    """
    Makes a :class:`TextClause` from SQL that may contain quoted identifiers
    with colons in them.
    """
    return text(sql.replace(":", r"\:"))


# =============================================================================
# Statement builder
# =============================================================================

class SqlServerStatementBuilder(object):
    """
    Builds the dynamic statements used to copy data between two databases on
    the same SQL Server instance.
    """

    def __init__(self, mixed: DialectSource) -> None:
        """
        Args:
            mixed:
                an SQLAlchemy engine, connection or dialect; supplies the
                identifier-quoting rules
        """
        self.dialect = get_dialect(mixed)

    # -------------------------------------------------------------------------
    # Names
    # -------------------------------------------------------------------------

    def quote(self, identifier: str) -> str:
        """
        Validates and quotes a single identifier: ``x`` becomes ``[x]``.
        """
        return always_quote_identifier(validate_identifier(identifier),
                                       self.dialect)

    def database_ref(self, database: str) -> str:
        return self.quote(database)

    def table_ref(self, database: Optional[str], schema: str,
                  table: str) -> str:
        """
        Returns ``[database].[schema].[table]``, or ``[schema].[table]`` if
        ``database`` is ``None``.
        """
        parts = [schema, table]
        if database is not None:
            parts.insert(0, database)
        return ".".join(self.quote(p) for p in parts)

    def column_list(self, columns: Sequence[str]) -> str:
        return ", ".join(self.quote(c) for c in columns)

    def select_list(self, columns: Sequence[SelectColumn]) -> str:
        """
        Returns the expression list for a ``SELECT``; a column with a
        conversion type becomes e.g. ``CONVERT(XML, [col])``.
        """
        expressions = []
        for colname, convert_to in columns:
            quoted = self.quote(colname)
            if convert_to is None:
                expressions.append(quoted)
            elif convert_to in ALLOWED_CONVERSION_TYPES:
                expressions.append(f"CONVERT({convert_to}, {quoted})")
            else:
                raise ValueError(
                    f"Unsupported conversion type {convert_to!r} for column "
                    f"{colname!r}"
                )
        return ", ".join(expressions)

    # -------------------------------------------------------------------------
    # Counting
    # -------------------------------------------------------------------------

    def count_rows(self, database: str, schema: str,
                   table: str) -> TextClause:
        """
        ``COUNT_BIG``, not ``COUNT``, so large tables don't overflow an INT.
        """
        ref = self.table_ref(database, schema, table)
        return make_text(f"SELECT COUNT_BIG(*) FROM {ref}")

    # -------------------------------------------------------------------------
    # Constraints and triggers
    # -------------------------------------------------------------------------

    def disable_constraint(self, database: str, schema: str, table: str,
                           constraint: str) -> TextClause:
        """
        Stops a CHECK or FOREIGN KEY constraint being enforced.
        """
        ref = self.table_ref(database, schema, table)
        return make_text(
            f"ALTER TABLE {ref} NOCHECK CONSTRAINT {self.quote(constraint)}"
        )

    def enable_constraint(self, database: str, schema: str, table: str,
                          constraint: str,
                          with_check: bool = False) -> TextClause:
        """
        Re-enables a CHECK or FOREIGN KEY constraint.

        Without ``with_check``, existing rows are not revalidated and SQL
        Server marks the constraint "not trusted". With it, every row is
        checked ("CHECK CHECK" is correct), which fails if any row violates
        the constraint.
        """
        ref = self.table_ref(database, schema, table)
        prefix = "WITH CHECK " if with_check else ""
        return make_text(
            f"ALTER TABLE {ref} {prefix}CHECK CONSTRAINT "
            f"{self.quote(constraint)}"
        )

    def disable_trigger(self, database: str, schema: str, table: str,
                        trigger: str) -> TextClause:
        ref = self.table_ref(database, schema, table)
        return make_text(
            f"ALTER TABLE {ref} DISABLE TRIGGER {self.quote(trigger)}"
        )

    def enable_trigger(self, database: str, schema: str, table: str,
                       trigger: str) -> TextClause:
        ref = self.table_ref(database, schema, table)
        return make_text(
            f"ALTER TABLE {ref} ENABLE TRIGGER {self.quote(trigger)}"
        )

    # -------------------------------------------------------------------------
    # Copying
    # -------------------------------------------------------------------------

    def set_identity_insert(self, database: str, schema: str, table: str,
                            on: bool) -> TextClause:
        """
        ``IDENTITY_INSERT`` is a session setting, and only one table per
        session may have it ON at once.
        """
        ref = self.table_ref(database, schema, table)
        return make_text(
            f"SET IDENTITY_INSERT {ref} {'ON' if on else 'OFF'}"
        )

    def insert_select(self,
                      source_db: str,
                      destination_db: str,
                      schema: str,
                      table: str,
                      insert_columns: Sequence[str],
                      select_columns: Sequence[SelectColumn]) -> TextClause:
        """
        Copies every row of a table from the source database to the same
        table in the destination database.

        Raises:
            :exc:`ValueError` if there are no columns (there is no such thing
            as an ``INSERT`` with an empty column list), or if the two column
            lists differ in length
        """
        if not insert_columns:
            raise ValueError(
                f"No insertable columns for table "
                f"{self.table_ref(None, schema, table)}"
            )
        if len(insert_columns) != len(select_columns):
            raise ValueError(
                f"Column count mismatch: {len(insert_columns)} to insert, "
                f"{len(select_columns)} to select"
            )
        dst = self.table_ref(destination_db, schema, table)
        src = self.table_ref(source_db, schema, table)
        return make_text(
            f"INSERT INTO {dst} ({self.column_list(insert_columns)}) "
            f"SELECT {self.select_list(select_columns)} FROM {src}"
        )

    # -------------------------------------------------------------------------
    # Database-level operations
    # -------------------------------------------------------------------------

    def clone_database(self, source_db: str,
                       destination_db: str) -> TextClause:
        """
        Creates the destination as a schema-only copy of the source.
        """
        return make_text(
            f"DBCC CLONEDATABASE ({self.quote(source_db)}, "
            f"{self.quote(destination_db)}) WITH NO_STATISTICS"
        )

    def set_read_write(self, database: str) -> TextClause:
        """
        ``DBCC CLONEDATABASE`` leaves its clone read-only.
        """
        return make_text(
            f"ALTER DATABASE {self.quote(database)} "
            f"SET READ_WRITE WITH ROLLBACK IMMEDIATE"
        )

    def set_recovery_simple(self, database: str) -> TextClause:
        return make_text(
            f"ALTER DATABASE {self.quote(database)} "
            f"SET RECOVERY SIMPLE WITH NO_WAIT"
        )
