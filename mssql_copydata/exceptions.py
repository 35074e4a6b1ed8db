#!/usr/bin/env python
# mssql_copydata/exceptions.py

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

**Exceptions, and functions for exception handling.**

Only FATAL conditions are exceptions. Everything derived from
:class:`CopyDataError` stops the copy and means that no row-count report is
produced:

- :class:`PreconditionError` and subclasses: something about the databases or
  the caller is wrong; nothing has been changed (except possibly by cloning or
  by setting the recovery model).
- :class:`CatalogReadError`: the source catalogue could not be read.
- :class:`RowCountError`: a table could not be counted.
- :class:`SuspensionError`: a constraint or trigger could not be disabled.
- :class:`RestorationError`: a constraint or trigger could not be re-enabled,
  and the restoration policy says that is fatal.

Failures to copy a table, and (by default) failures to re-enable triggers or
foreign keys, are RECOVERABLE: they are not raised, but returned in the
results (see :mod:`mssql_copydata.pipeline.models`).

"""

import logging
import sys
import traceback
from typing import List, TYPE_CHECKING

from sqlalchemy.exc import DBAPIError

if TYPE_CHECKING:
    from mssql_copydata.pipeline.models import FailureRecord, PhaseResult

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())


# =============================================================================
# Exception classes
# =============================================================================

class CopyDataError(Exception):
    """
    Base class for fatal errors in the copy pipeline.
    """
    pass


class PreconditionError(CopyDataError):
    """
    The databases, or the caller's privileges, are not fit for a copy.
    """
    pass


class PrivilegeError(PreconditionError):
    pass


class SystemDatabaseError(PreconditionError):
    pass


class SameDatabaseError(PreconditionError):
    pass


class InvalidDatabaseNameError(PreconditionError):
    """
    A database name can't be used as an SQL Server identifier.
    """
    pass


class DatabaseNotFoundError(PreconditionError):
    pass


class ProvisioningError(PreconditionError):
    """
    Cloning the source, or changing the destination's settings, failed.
    """
    pass


class DestinationNotEmptyError(PreconditionError):
    """
    At least one destination table already has rows.
    """
    pass


class CatalogReadError(CopyDataError):
    pass


class RowCountError(CopyDataError):
    pass


class SuspensionError(CopyDataError):
    """
    A suspension phase finished with failures. Objects that were disabled
    successfully remain disabled.
    """
    def __init__(self, message: str, phase_result: "PhaseResult") -> None:
        super().__init__(message)
        self.phase_result = phase_result


class RestorationError(CopyDataError):
    """
    A restoration phase that the policy marks as fatal finished with
    failures.
    """
    def __init__(self,
                 message: str,
                 phase_results: List["PhaseResult"],
                 failed_tables: List["FailureRecord"]) -> None:
        super().__init__(message)
        self.phase_results = phase_results
        self.failed_tables = failed_tables


# =============================================================================
# Exception handling
# =============================================================================

def engine_error_text(exc: Exception) -> str:
    """
    Returns the database engine's own message for an exception, if there is
    one (without SQLAlchemy's statement/parameter decoration), or else the
    string form of the exception.
    """
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def die(exc: Exception = None, exit_code: int = 1) -> None:
    """
    It is not clear that Python guarantees to exit with a non-zero exit code
    (errorlevel in DOS/Windows) upon an unhandled exception. So this function
    produces the usual stack trace then dies with the specified exit code.

    See
    http://stackoverflow.com/questions/9555133/e-printstacktrace-equivalent-in-python.
    """  # noqa
    if exc:
        lines = traceback.format_exception(
            None,  # etype: ignored
            exc,
            exc.__traceback__)  # https://www.python.org/dev/peps/pep-3134/
        log.critical("".join(lines))
    log.critical("Exiting with exit code {}".format(exit_code))
    sys.exit(exit_code)
