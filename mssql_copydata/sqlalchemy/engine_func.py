#!/usr/bin/env python
# mssql_copydata/sqlalchemy/engine_func.py

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

**Functions to help with SQLAlchemy Engines and Connections.**

"""

from typing import Tuple

from sqlalchemy.engine.base import Connection
from sqlalchemy.sql import text

from mssql_copydata.sqlalchemy.dialect import (
    DialectSource,
    get_dialect_name,
    SqlaDialectName,
)


# =============================================================================
# Helper functions for SQL Server
# =============================================================================

def is_sqlserver(mixed: DialectSource) -> bool:
    """
    Is the SQLAlchemy :class:`Engine` (or connection, or dialect) a Microsoft
    SQL Server database?
    """
    dialect_name = get_dialect_name(mixed)
    return dialect_name == SqlaDialectName.SQLSERVER


def get_sqlserver_product_version(connection: Connection) -> Tuple[int, ...]:
    """
    Gets SQL Server version information, e.g. ``(13, 0, 5026, 0)``.

    ``dialect.server_version_info`` is badly supported by some drivers, so we
    ask the database. The ``pyodbc`` interface will fall over with ``ODBC SQL
    type -150 is not yet supported`` if we select ``SERVERPROPERTY()``
    directly (a ``VARIANT`` comes back), so we ``CAST`` it.
    """
    assert is_sqlserver(connection), (
        "Only call get_sqlserver_product_version() for Microsoft SQL Server "
        "instances."
    )
    sql = text("SELECT CAST(SERVERPROPERTY('ProductVersion') AS VARCHAR(128))")
    dotted_version = connection.execute(sql).scalar()  # e.g. '13.0.5026.0'
    return tuple(int(x) for x in str(dotted_version).split("."))


# https://www.mssqltips.com/sqlservertip/1140/how-to-tell-what-sql-server-version-you-are-running/  # noqa
SQLSERVER_MAJOR_VERSION_2016 = 13  # DBCC CLONEDATABASE needs 2016 SP2+
