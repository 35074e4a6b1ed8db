#!/usr/bin/env python
# mssql_copydata/pipeline/verification.py

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

**Report row counts after the copy.**

The report is descriptive. Whether a difference between source and
destination counts matters is for the caller to decide.

"""

from typing import List, Sequence

from prettytable import PrettyTable
from sqlalchemy.engine.base import Connection

from mssql_copydata.pipeline.models import (
    CountOrigin,
    FailureRecord,
    QualifiedName,
    RowCountComparison,
)
from mssql_copydata.pipeline.preflight import count_table_rows
from mssql_copydata.sqlalchemy.sqlserver import SqlServerStatementBuilder


def compare_row_counts(connection: Connection,
                       builder: SqlServerStatementBuilder,
                       source_db: str,
                       destination_db: str,
                       tables: Sequence[QualifiedName]) \
        -> List[RowCountComparison]:
    """
    Counts rows in every table of the destination, then of the source.

    Raises:
        :exc:`mssql_copydata.exceptions.RowCountError` if any table can't be
        counted
    """
    destination = count_table_rows(connection, builder, destination_db,
                                   tables, CountOrigin.DESTINATION)
    source = count_table_rows(connection, builder, source_db,
                              tables, CountOrigin.SOURCE)
    return [
        RowCountComparison(s.table, s.count, d.count)
        for s, d in zip(source, destination)
    ]


def failed_tables_table(failed_tables: Sequence[FailureRecord]) -> PrettyTable:
    table = PrettyTable(["Failed Tables", "Error"])
    table.align["Failed Tables"] = "l"
    table.align["Error"] = "l"
    for failure in failed_tables:
        table.add_row([str(failure.table), failure.error])
    return table


def row_counts_table(row_counts: Sequence[RowCountComparison]) -> PrettyTable:
    table = PrettyTable(["TableName", "RowCount Source",
                         "RowCount Destination"])
    table.align["TableName"] = "l"
    table.align["RowCount Source"] = "r"
    table.align["RowCount Destination"] = "r"
    for comparison in row_counts:
        table.add_row([str(comparison.table), comparison.source_count,
                       comparison.destination_count])
    return table
