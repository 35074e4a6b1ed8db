#!/usr/bin/env python
# mssql_copydata/sqlalchemy/dialect.py

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

**Helper functions relating to SQLAlchemy SQL dialects.**

"""

from typing import Union

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.sql.compiler import IdentifierPreparer


# =============================================================================
# Constants
# =============================================================================

class SqlaDialectName(object):
    """
    Dialect names used by SQLAlchemy (only SQL Server matters here).
    """
    MSSQL = "mssql"
    SQLSERVER = MSSQL  # synonym


# ... or anything else with a ``dialect`` attribute
DialectSource = Union[Engine, Connection, Dialect]


# =============================================================================
# Dialect stuff
# =============================================================================

def get_dialect(mixed: DialectSource) -> Dialect:
    """
    Returns ``mixed`` if it is a :class:`Dialect`, or else its ``dialect``
    attribute.

    Raises:
        :exc:`ValueError` if neither is a :class:`Dialect`
    """
    if isinstance(mixed, Dialect):
        return mixed
    dialect = getattr(mixed, "dialect", None)
    if isinstance(dialect, Dialect):
        return dialect
    raise ValueError(f"Can't find an SQLAlchemy dialect in {mixed!r}")


def get_dialect_name(mixed: DialectSource) -> str:
    # noinspection PyUnresolvedReferences
    return get_dialect(mixed).name


def always_quote_identifier(identifier: str, mixed: DialectSource) -> str:
    """
    Quotes an SQL identifier whether or not the dialect thinks it needs it,
    escaping embedded end-quote characters; e.g. for SQL Server, ``a]b``
    becomes ``[a]]b]``.
    """
    dialect = get_dialect(mixed)
    # noinspection PyUnresolvedReferences
    preparer = dialect.preparer(dialect)  # type: IdentifierPreparer
    return preparer.quote_identifier(identifier)
