#!/usr/bin/env python
# mssql_copydata/pipeline/descriptors.py

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

**Turn a catalogue snapshot into descriptors for the copy.**

"""

from collections import OrderedDict
from typing import Dict, List

from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.pipeline.models import (
    CatalogSnapshot,
    ConstraintDescriptor,
    ConstraintKind,
    QualifiedName,
    SUSPENSION_ORDER,
    TableDescriptor,
)
from mssql_copydata.sqlalchemy.sqlserver import SelectColumn, XML_TYPE

log = get_brace_style_log_with_null_handler(__name__)


def build_table_descriptors(
        snapshot: CatalogSnapshot) -> Dict[QualifiedName, TableDescriptor]:
    """
    Builds a :class:`TableDescriptor` for every table in the snapshot, in the
    order the tables were discovered.

    Columns are matched to the XML-column list by exact name. A table with no
    non-computed columns gets empty column lists; copying it will fail, and
    that is reported by the transfer, not here.
    """
    columns_by_table = OrderedDict(
        (t, []) for t in snapshot.tables
    )  # type: Dict[QualifiedName, List[str]]
    for table, column in snapshot.columns:
        columns_by_table[table].append(column)

    descriptors = OrderedDict()  # type: Dict[QualifiedName, TableDescriptor]
    for table, columns in columns_by_table.items():
        select_columns = []  # type: List[SelectColumn]
        for column in columns:
            if (table, column) in snapshot.xml_columns:
                select_columns.append((column, XML_TYPE))
            else:
                select_columns.append((column, None))
        if not columns:
            log.warning("Table {} has no insertable columns", table)
        descriptors[table] = TableDescriptor(
            table=table,
            insert_columns=columns,
            select_columns=select_columns,
            has_identity_column=table in snapshot.identity_tables,
        )
    return descriptors


def build_constraint_descriptors(
        snapshot: CatalogSnapshot) \
        -> Dict[ConstraintKind, List[ConstraintDescriptor]]:
    """
    Returns the constraints and triggers to suspend, by kind.
    """
    sources = {
        ConstraintKind.CHECK: snapshot.check_constraints,
        ConstraintKind.FOREIGN_KEY: snapshot.foreign_keys,
        ConstraintKind.TRIGGER: snapshot.triggers,
    }
    return OrderedDict(
        (kind, [ConstraintDescriptor(name, table, kind)
                for table, name in sources[kind]])
        for kind in SUSPENSION_ORDER
    )
