#!/usr/bin/env python
# mssql_copydata/pipeline/models.py

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

**Objects passed between the stages of the copy pipeline.**

Nothing here talks to a database. Results are built by one stage and handed
to the next; there is no shared mutable state between stages.

"""

from enum import Enum
from functools import total_ordering
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from mssql_copydata.sqlalchemy.sqlserver import SelectColumn


# =============================================================================
# Enumerations
# =============================================================================

class ConstraintKind(Enum):
    """
    Kinds of object that enforce integrity, and must be suspended during the
    copy.
    """
    CHECK = "CHECK"
    FOREIGN_KEY = "FOREIGN_KEY"
    TRIGGER = "TRIGGER"

    @property
    def description(self) -> str:
        return {
            ConstraintKind.CHECK: "check constraints",
            ConstraintKind.FOREIGN_KEY: "foreign keys",
            ConstraintKind.TRIGGER: "triggers",
        }[self]


SUSPENSION_ORDER = (
    ConstraintKind.CHECK,
    ConstraintKind.FOREIGN_KEY,
    ConstraintKind.TRIGGER,
)
RESTORATION_ORDER = tuple(reversed(SUSPENSION_ORDER))


class CountOrigin(Enum):
    SOURCE = "SOURCE"
    DESTINATION = "DESTINATION"


# =============================================================================
# Names
# =============================================================================

@total_ordering
class QualifiedName(object):
    """
    A schema-qualified object name, e.g. ``dbo.patient``.
    """

    __slots__ = ("_schema", "_name")

    def __init__(self, schema: str, name: str) -> None:
        self._schema = schema
        self._name = name

    @property
    def schema(self) -> str:
        return self._schema

    @property
    def name(self) -> str:
        return self._name

    def _key(self) -> Tuple[str, str]:
        return self._schema, self._name

    def __str__(self) -> str:
        return f"[{self._schema}].[{self._name}]"

    def __repr__(self) -> str:
        return f"QualifiedName({self._schema!r}, {self._name!r})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, QualifiedName):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "QualifiedName") -> bool:
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())


# =============================================================================
# Catalogue contents
# =============================================================================

class CatalogSnapshot(object):
    """
    Everything read from the source database's catalogue.
    """

    def __init__(
            self,
            tables: Sequence[QualifiedName],
            columns: Sequence[Tuple[QualifiedName, str]],
            check_constraints: Sequence[Tuple[QualifiedName, str]],
            foreign_keys: Sequence[Tuple[QualifiedName, str]],
            triggers: Sequence[Tuple[QualifiedName, str]],
            identity_tables: Iterable[QualifiedName],
            xml_columns: Iterable[Tuple[QualifiedName, str]]) -> None:
        """
        Args:
            tables:
                user tables, in schema/name order
            columns:
                ``(table, column)`` for every non-computed column, in
                ``column_id`` order within each table
            check_constraints:
                ``(table, constraint)`` for enabled CHECK constraints
            foreign_keys:
                ``(table, constraint)`` for enabled FOREIGN KEY constraints
            triggers:
                ``(table, trigger)`` for enabled DML triggers
            identity_tables:
                tables with an IDENTITY column
            xml_columns:
                ``(table, column)`` for columns that need ``CONVERT(XML, ...)``
                when read
        """
        self.tables = list(tables)
        self.columns = list(columns)
        self.check_constraints = list(check_constraints)
        self.foreign_keys = list(foreign_keys)
        self.triggers = list(triggers)
        self.identity_tables = frozenset(identity_tables)
        self.xml_columns = frozenset(xml_columns)

    def __repr__(self) -> str:
        return (
            f"<CatalogSnapshot: {len(self.tables)} tables, "
            f"{len(self.columns)} columns, "
            f"{len(self.check_constraints)} check constraints, "
            f"{len(self.foreign_keys)} foreign keys, "
            f"{len(self.triggers)} triggers>"
        )


class TableDescriptor(object):
    """
    How to copy one table. Immutable.
    """

    __slots__ = ("_table", "_insert_columns", "_select_columns",
                 "_has_identity_column")

    def __init__(self,
                 table: QualifiedName,
                 insert_columns: Sequence[str],
                 select_columns: Sequence[SelectColumn],
                 has_identity_column: bool = False) -> None:
        self._table = table
        self._insert_columns = tuple(insert_columns)
        self._select_columns = tuple(select_columns)
        self._has_identity_column = has_identity_column

    @property
    def table(self) -> QualifiedName:
        return self._table

    @property
    def insert_columns(self) -> Tuple[str, ...]:
        """
        Column names to ``INSERT`` into (no conversions, ever).
        """
        return self._insert_columns

    @property
    def select_columns(self) -> Tuple[SelectColumn, ...]:
        """
        ``(column, conversion_type_or_None)`` tuples to ``SELECT``.
        """
        return self._select_columns

    @property
    def has_identity_column(self) -> bool:
        return self._has_identity_column

    def __repr__(self) -> str:
        return (
            f"TableDescriptor({self._table!r}, "
            f"insert_columns={list(self._insert_columns)!r}, "
            f"has_identity_column={self._has_identity_column!r})"
        )


class ConstraintDescriptor(object):
    """
    A constraint or trigger on a table.
    """

    __slots__ = ("_name", "_table", "_kind")

    def __init__(self, name: str, table: QualifiedName,
                 kind: ConstraintKind) -> None:
        self._name = name
        self._table = table
        self._kind = kind

    @property
    def name(self) -> str:
        return self._name

    @property
    def table(self) -> QualifiedName:
        return self._table

    @property
    def kind(self) -> ConstraintKind:
        return self._kind

    def __str__(self) -> str:
        return f"{self._name} on {self._table}"

    def __repr__(self) -> str:
        return (
            f"ConstraintDescriptor({self._name!r}, {self._table!r}, "
            f"{self._kind})"
        )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ConstraintDescriptor):
            return NotImplemented
        return ((self._name, self._table, self._kind) ==
                (other._name, other._table, other._kind))

    def __hash__(self) -> int:
        return hash((self._name, self._table, self._kind))


# =============================================================================
# Results
# =============================================================================

class RowCountRecord(object):
    def __init__(self, table: QualifiedName, count: int,
                 origin: CountOrigin) -> None:
        self.table = table
        self.count = count
        self.origin = origin

    def __repr__(self) -> str:
        return (
            f"RowCountRecord({self.table!r}, {self.count!r}, {self.origin})"
        )


class FailureRecord(object):
    """
    A table whose transfer failed, and why.
    """
    def __init__(self, table: QualifiedName, error: str) -> None:
        self.table = table
        self.error = error

    def __str__(self) -> str:
        return f"{self.table}: {self.error}"

    def __repr__(self) -> str:
        return f"FailureRecord({self.table!r}, {self.error!r})"


class Outcome(object):
    """
    The outcome of one operation within a phase: success, or the engine's
    error text.
    """
    def __init__(self, error: Optional[str] = None) -> None:
        self.error = error

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        if self.succeeded:
            return "Outcome(OK)"
        return f"Outcome(error={self.error!r})"


class PhaseResult(object):
    """
    The result of one phase: each item attempted, with its outcome, in the
    order attempted.
    """

    def __init__(self, phase: str,
                 outcomes: Sequence[Tuple[Any, Outcome]] = ()) -> None:
        self.phase = phase
        self.outcomes = list(outcomes)  # type: List[Tuple[Any, Outcome]]

    def add(self, item: Any, outcome: Outcome) -> None:
        self.outcomes.append((item, outcome))

    @property
    def items(self) -> List[Any]:
        return [item for item, _ in self.outcomes]

    @property
    def failures(self) -> List[Tuple[Any, Outcome]]:
        return [(item, outcome) for item, outcome in self.outcomes
                if not outcome.succeeded]

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> bool:
        return self.failure_count == 0

    def __repr__(self) -> str:
        return (
            f"<PhaseResult {self.phase!r}: {len(self.outcomes)} items, "
            f"{self.failure_count} failed>"
        )


class RowCountComparison(object):
    """
    Source and destination row counts for one table, after the copy. No
    judgement is made about whether they should match.
    """
    def __init__(self, table: QualifiedName, source_count: int,
                 destination_count: int) -> None:
        self.table = table
        self.source_count = source_count
        self.destination_count = destination_count

    def __repr__(self) -> str:
        return (
            f"RowCountComparison({self.table!r}, "
            f"source_count={self.source_count!r}, "
            f"destination_count={self.destination_count!r})"
        )


class CopyDataReport(object):
    """
    Everything a completed run reports.
    """

    def __init__(self,
                 failed_tables: Sequence[FailureRecord],
                 row_counts: Sequence[RowCountComparison],
                 phase_results: Sequence[PhaseResult] = ()) -> None:
        self.failed_tables = list(failed_tables)
        self.row_counts = list(row_counts)
        self.phase_results = list(phase_results)

    @property
    def all_tables_copied(self) -> bool:
        return not self.failed_tables

    def phase(self, name: str) -> Optional[PhaseResult]:
        for result in self.phase_results:
            if result.phase == name:
                return result
        return None

    def __repr__(self) -> str:
        return (
            f"<CopyDataReport: {len(self.row_counts)} tables, "
            f"{len(self.failed_tables)} failed>"
        )
