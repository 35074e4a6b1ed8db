#!/usr/bin/env python
# mssql_copydata/tools/copy_database.py

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

**Command-line tool to copy all table data between two SQL Server
databases.**

"""

import argparse
import logging
import sys
from typing import List

from mssql_copydata.argparse_func import (
    constraint_kind_list,
    RawDescriptionArgumentDefaultsHelpFormatter,
    str2bool,
)
from mssql_copydata.configfiles import CopyDataConfig
from mssql_copydata.exceptions import CopyDataError, die
from mssql_copydata.logs import (
    get_brace_style_log_with_null_handler,
    main_only_quicksetup_rootlogger,
    set_level_for_logger_and_its_handlers,
)
from mssql_copydata.pipeline.copy_data import copy_database
from mssql_copydata.pipeline.integrity import RestorationPolicy
from mssql_copydata.pipeline.models import CopyDataReport
from mssql_copydata.pipeline.verification import (
    failed_tables_table,
    row_counts_table,
)
from mssql_copydata.sqlalchemy.session import (
    get_safe_url_from_url,
    make_engine,
)
from mssql_copydata.version_string import VERSION_STRING

log = get_brace_style_log_with_null_handler(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_TABLES_FAILED = 2

DESCRIPTION = f"""
Copy the data in every user table of one SQL Server database into the same
(empty) tables of another database on the same server. (Version
{VERSION_STRING}.)

CHECK constraints, foreign keys and triggers in the destination are disabled
during the copy, and re-enabled afterwards. Identity values are preserved.

Requires SYSADMIN privileges (unless --skip_provisioning is used). The
destination database will be set to the SIMPLE recovery model. BACK UP FIRST.

Exit codes: {EXIT_SUCCESS} all tables copied; {EXIT_TABLES_FAILED} finished,
but some tables could not be copied; {EXIT_FAILURE} stopped by an error.
"""


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=DESCRIPTION,
        formatter_class=RawDescriptionArgumentDefaultsHelpFormatter)
    parser.add_argument(
        "source_db",
        help="Source database name")
    parser.add_argument(
        "destination_db",
        help="Destination database name")
    parser.add_argument(
        "--url",
        help="SQLAlchemy URL of the server, e.g. "
             "mssql+pyodbc://@myserver/master?driver=ODBC+Driver+17+for+SQL+"
             "Server (overrides 'url' in the config file)")
    parser.add_argument(
        "--config",
        help="Config (.INI) file with a [copydata] section")
    parser.add_argument(
        "--clone_db", type=str2bool, nargs="?", const=True, default=None,
        help="Create the destination as a schema-only clone of the source "
             "first (DBCC CLONEDATABASE; not for production use) "
             "[default: false]")
    parser.add_argument(
        "--fatal_restore_failures", type=constraint_kind_list, default=None,
        help="Comma-separated kinds (check, fk, trigger; or all, none) whose "
             "failure to be re-enabled is a fatal error [default: check]")
    parser.add_argument(
        "--trust_restored_constraints", type=str2bool, nargs="?",
        const=True, default=None,
        help="Re-enable constraints WITH CHECK, so that every row is "
             "revalidated and SQL Server trusts the constraints "
             "[default: false]")
    parser.add_argument(
        "--skip_provisioning", action="store_true",
        help="Skip the privilege and database checks, and don't change the "
             "destination's recovery model")
    parser.add_argument(
        "--echo", action="store_true",
        help="Log SQL statements")
    parser.add_argument(
        "--no_colour", action="store_true",
        help="Don't use coloured log output")
    parser.add_argument(
        "--verbose", action="store_true",
        help="Verbose output")
    return parser


def first_not_none(*values):
    for value in values:
        if value is not None:
            return value
    return None


def print_report(report: CopyDataReport) -> None:
    print(failed_tables_table(report.failed_tables))
    print(row_counts_table(report.row_counts))


def run(args: argparse.Namespace, config: CopyDataConfig) -> int:
    """
    Runs the copy with settings from the command line, falling back to the
    config file. Returns an exit code.
    """
    url = first_not_none(args.url, config.url)
    if not url:
        log.critical("No database URL given; use --url or a config file")
        return EXIT_FAILURE
    fatal_kinds = first_not_none(args.fatal_restore_failures,
                                 config.fatal_restore_failures)
    policy = (RestorationPolicy() if fatal_kinds is None
              else RestorationPolicy(fatal_kinds))
    clone_db = bool(first_not_none(args.clone_db, config.clone_db))
    trust = bool(first_not_none(args.trust_restored_constraints,
                                config.trust_restored_constraints))

    log.info("Copying {} -> {} on {}", args.source_db, args.destination_db,
             get_safe_url_from_url(url))
    log.debug("clone_db={}, trust_restored_constraints={}, {!r}",
              clone_db, trust, policy)
    engine = make_engine(url)
    try:
        report = copy_database(
            engine,
            args.source_db,
            args.destination_db,
            clone_db=clone_db,
            restoration_policy=policy,
            trust_restored_constraints=trust,
            skip_provisioning=args.skip_provisioning,
        )
    except CopyDataError:
        # Already logged.
        return EXIT_FAILURE
    finally:
        engine.dispose()

    print_report(report)
    if report.all_tables_copied:
        return EXIT_SUCCESS
    return EXIT_TABLES_FAILED


def main(argv: List[str] = None) -> None:
    """
    Command-line processor. See ``--help`` for details.
    """
    parser = get_parser()
    args = parser.parse_args(argv)
    main_only_quicksetup_rootlogger(
        level=logging.DEBUG if args.verbose else logging.INFO,
        colour=not args.no_colour)
    if args.echo:
        # Via logging, not create_engine(echo=True), which adds its own
        # handler and so doubles the output.
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    try:
        config = CopyDataConfig.from_file(args.config)
    except (OSError, ValueError) as e:
        log.critical("Bad config: {}", e)
        sys.exit(EXIT_FAILURE)
    if config.loglevel is not None and not args.verbose:
        set_level_for_logger_and_its_handlers(logging.getLogger(),
                                              config.loglevel)

    try:
        exit_code = run(args, config)
    except Exception as e:
        die(e, exit_code=EXIT_FAILURE)
    else:
        sys.exit(exit_code)


if __name__ == '__main__':
    main()
