#!/usr/bin/env python
# mssql_copydata/pipeline/provisioning.py

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

**Check the caller and the databases, and prepare the destination.**

In order:

1. The login must be a member of the ``sysadmin`` server role.
2. Neither database may be a system database.
3. The two databases must differ.
4. The source must exist.
5. Optionally, the destination is created as a schema-only clone of the
   source (``DBCC CLONEDATABASE``, SQL Server 2016 SP2 or later), and made
   writable.
6. The destination must exist.
7. The destination is switched to the SIMPLE recovery model, to limit log
   growth during the bulk copy. Take a full backup first if that matters.

"""

from typing import Any, Tuple

from sqlalchemy.engine.base import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import text

from mssql_copydata.exceptions import (
    DatabaseNotFoundError,
    engine_error_text,
    InvalidDatabaseNameError,
    PreconditionError,
    PrivilegeError,
    ProvisioningError,
    SameDatabaseError,
    SystemDatabaseError,
)
from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.sqlalchemy.engine_func import (
    get_sqlserver_product_version,
    SQLSERVER_MAJOR_VERSION_2016,
)
from mssql_copydata.sqlalchemy.sqlserver import (
    SqlServerStatementBuilder,
    validate_identifier,
)

log = get_brace_style_log_with_null_handler(__name__)

SYSTEM_DATABASES = ("master", "model", "msdb", "tempdb")
RECOVERY_MODEL_SIMPLE = "SIMPLE"

SQL_IS_SYSADMIN = text("SELECT IS_SRVROLEMEMBER('sysadmin')")
SQL_DATABASE_EXISTS = text(
    "SELECT COUNT(*) FROM master.sys.databases WHERE name = :name"
)
SQL_RECOVERY_MODEL = text(
    "SELECT recovery_model_desc FROM master.sys.databases WHERE name = :name"
)


# =============================================================================
# Checks
# =============================================================================

def _scalar(connection: Connection, what: str, statement: Any,
            **params: Any) -> Any:
    try:
        return connection.execute(statement, params).scalar()
    except SQLAlchemyError as e:
        raise PreconditionError(
            f"Could not check {what}: {engine_error_text(e)}"
        ) from e


def is_system_database(name: str) -> bool:
    return name.lower() in SYSTEM_DATABASES


def check_sysadmin(connection: Connection) -> None:
    if _scalar(connection, "server role", SQL_IS_SYSADMIN) != 1:
        raise PrivilegeError("SYSADMIN privileges required")


def check_database_names(source_db: str, destination_db: str) -> None:
    """
    Raises:
        :exc:`SystemDatabaseError` for a system database
        :exc:`SameDatabaseError` if the names are the same
    """
    if is_system_database(source_db):
        raise SystemDatabaseError(
            "Source database must not be member of system databases")
    if is_system_database(destination_db):
        raise SystemDatabaseError(
            "Destination database must not be member of system databases")
    # Default server collations are case-insensitive
    if source_db.lower() == destination_db.lower():
        raise SameDatabaseError(
            "Source and destination databases must be different")


def validate_database_names(source_db: str, destination_db: str) -> None:
    """
    Checks both names are usable identifiers, before any statement uses
    them.

    Raises:
        :exc:`InvalidDatabaseNameError`
    """
    for role, name in (("Source", source_db),
                       ("Destination", destination_db)):
        try:
            validate_identifier(name)
        except ValueError as e:
            raise InvalidDatabaseNameError(
                f"{role} database name is not valid: {e}") from e


def database_exists(connection: Connection, name: str) -> bool:
    count = _scalar(connection, f"whether database {name!r} exists",
                    SQL_DATABASE_EXISTS, name=name)
    return bool(count)


# =============================================================================
# Provisioning
# =============================================================================

def clone_database(connection: Connection,
                   builder: SqlServerStatementBuilder,
                   source_db: str,
                   destination_db: str) -> None:
    """
    Creates the destination as a schema-only clone of the source, and makes
    it writable.
    """
    version = _scalar_version(connection)
    if version < (SQLSERVER_MAJOR_VERSION_2016, ):
        raise ProvisioningError(
            f"Cloning needs SQL Server 2016 SP2 or later; server is "
            f"{'.'.join(str(x) for x in version)}")
    log.info("Cloning database {} to {}", source_db, destination_db)
    try:
        connection.execute(builder.clone_database(source_db, destination_db))
    except SQLAlchemyError as e:
        raise ProvisioningError(
            f"Could not clone database: {engine_error_text(e)}") from e
    try:
        connection.execute(builder.set_read_write(destination_db))
    except SQLAlchemyError as e:
        raise ProvisioningError(
            f"Could not change destination database to READ_WRITE: "
            f"{engine_error_text(e)}") from e


def _scalar_version(connection: Connection) -> Tuple[int, ...]:
    try:
        return get_sqlserver_product_version(connection)
    except SQLAlchemyError as e:
        raise PreconditionError(
            f"Could not check server version: {engine_error_text(e)}"
        ) from e


def ensure_simple_recovery(connection: Connection,
                           builder: SqlServerStatementBuilder,
                           destination_db: str) -> None:
    model = _scalar(connection, "recovery model", SQL_RECOVERY_MODEL,
                    name=destination_db)
    if model == RECOVERY_MODEL_SIMPLE:
        return
    log.warning("Setting recovery model of destination database to SIMPLE "
                "(was {})", model)
    try:
        connection.execute(builder.set_recovery_simple(destination_db))
    except SQLAlchemyError as e:
        raise ProvisioningError(
            f"Could not set recovery model to simple on database "
            f"{destination_db}: {engine_error_text(e)}") from e


def provision(connection: Connection,
              builder: SqlServerStatementBuilder,
              source_db: str,
              destination_db: str,
              clone_db: bool = False) -> None:
    """
    Runs every check and preparation step, in order.

    Raises:
        :exc:`mssql_copydata.exceptions.PreconditionError` (or a subclass) at
        the first failure
    """
    check_sysadmin(connection)
    check_database_names(source_db, destination_db)
    if not database_exists(connection, source_db):
        raise DatabaseNotFoundError(
            f"Source database not found: {source_db}")
    if clone_db:
        clone_database(connection, builder, source_db, destination_db)
    if not database_exists(connection, destination_db):
        raise DatabaseNotFoundError(
            f"Destination database not found: {destination_db}")
    ensure_simple_recovery(connection, builder, destination_db)
