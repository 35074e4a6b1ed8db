#!/usr/bin/env python
# mssql_copydata/sqlalchemy/session.py

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

**Functions to work with SQLAlchemy engines and connections.**

"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.engine import create_engine
from sqlalchemy.engine.base import Connection, Engine
from sqlalchemy.engine.url import make_url

from mssql_copydata.logs import get_brace_style_log_with_null_handler

log = get_brace_style_log_with_null_handler(__name__)

AUTOCOMMIT = "AUTOCOMMIT"


# =============================================================================
# Database URLs
# =============================================================================

def get_safe_url_from_url(url: str) -> str:
    """
    Converts an SQLAlchemy URL into a safe version that obscures the password.
    """
    return make_url(url).render_as_string(hide_password=True)


def make_engine(url: str) -> Engine:
    """
    Creates an :class:`Engine` for the server. The URL may name any database
    on the server (``master`` is conventional); statements always use
    database-qualified names.
    """
    log.debug("Creating engine for {}", get_safe_url_from_url(url))
    return create_engine(url, future=True)


# =============================================================================
# Connection management
# =============================================================================

@contextmanager
def autocommit_connection(engine: Engine) -> Generator[Connection, None,
                                                       None]:
    """
    Yields a single connection in AUTOCOMMIT mode, so that every statement
    stands alone: an error in one statement does not roll back (or doom)
    work done by earlier ones, and session settings such as
    ``IDENTITY_INSERT`` persist between statements.
    """
    with engine.connect() as connection:
        yield connection.execution_options(isolation_level=AUTOCOMMIT)
