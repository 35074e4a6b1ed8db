#!/usr/bin/env python
# mssql_copydata/pipeline/integrity.py

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

**Suspend and restore the constraints and triggers of the destination.**

Suspension runs CHECK constraints, then foreign keys, then triggers. Every
object in a phase is attempted; if any failed, the run stops after that phase
(nothing that was disabled is re-enabled).

Restoration runs in the reverse order, and always runs every phase. Which
kinds of failure are then fatal is a :class:`RestorationPolicy`.

"""

from typing import Dict, FrozenSet, Iterable, List, Sequence

from sqlalchemy.engine.base import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from mssql_copydata.exceptions import (
    engine_error_text,
    RestorationError,
    SuspensionError,
)
from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.pipeline.models import (
    ConstraintDescriptor,
    ConstraintKind,
    FailureRecord,
    Outcome,
    PhaseResult,
    RESTORATION_ORDER,
    SUSPENSION_ORDER,
)
from mssql_copydata.sqlalchemy.sqlserver import SqlServerStatementBuilder

log = get_brace_style_log_with_null_handler(__name__)

# Singular names used in messages
KIND_LABELS = {
    ConstraintKind.CHECK: "CHECK CONSTRAINT",
    ConstraintKind.FOREIGN_KEY: "FOREIGN KEY CONSTRAINT",
    ConstraintKind.TRIGGER: "TRIGGER",
}


def suspension_phase_name(kind: ConstraintKind) -> str:
    return f"disable {kind.value}"


def restoration_phase_name(kind: ConstraintKind) -> str:
    return f"enable {kind.value}"


# =============================================================================
# Policy
# =============================================================================

class RestorationPolicy(object):
    """
    Says which kinds of object, if they could not be re-enabled, make the
    whole run fail. Other restoration failures are warnings.
    """

    def __init__(
            self,
            fatal_kinds: Iterable[ConstraintKind] = (ConstraintKind.CHECK, )
    ) -> None:
        self.fatal_kinds = frozenset(fatal_kinds)

    def is_fatal(self, kind: ConstraintKind) -> bool:
        return kind in self.fatal_kinds

    @classmethod
    def strict(cls) -> "RestorationPolicy":
        """
        Every restoration failure is fatal.
        """
        return cls(fatal_kinds=RESTORATION_ORDER)

    @classmethod
    def lenient(cls) -> "RestorationPolicy":
        """
        No restoration failure is fatal.
        """
        return cls(fatal_kinds=())

    def __repr__(self) -> str:
        kinds = [k.value for k in RESTORATION_ORDER if k in self.fatal_kinds]
        return f"RestorationPolicy(fatal_kinds={kinds!r})"


KIND_ALIASES = {
    "check": ConstraintKind.CHECK,
    "fk": ConstraintKind.FOREIGN_KEY,
    "foreign_key": ConstraintKind.FOREIGN_KEY,
    "foreignkey": ConstraintKind.FOREIGN_KEY,
    "trigger": ConstraintKind.TRIGGER,
}
ALL_KINDS = "all"
NO_KINDS = "none"


def parse_constraint_kinds(value: str) -> FrozenSet[ConstraintKind]:
    """
    Parses a comma-separated list of kinds, e.g. ``"check, fk"``.
    Case-insensitive; ``"all"`` and ``"none"`` (or an empty string) are also
    accepted.

    Raises:
        :exc:`ValueError` for an unknown kind
    """
    words = [w.strip().lower() for w in value.split(",") if w.strip()]
    if not words or words == [NO_KINDS]:
        return frozenset()
    if words == [ALL_KINDS]:
        return frozenset(ConstraintKind)
    kinds = set()
    for word in words:
        try:
            kinds.add(KIND_ALIASES[word])
        except KeyError:
            raise ValueError(
                f"Unknown constraint kind {word!r}; use one or more of "
                f"{', '.join(sorted(KIND_ALIASES))}, or {ALL_KINDS!r} or "
                f"{NO_KINDS!r}")
    return frozenset(kinds)


# =============================================================================
# Running a phase
# =============================================================================

def _statement(builder: SqlServerStatementBuilder,
               database: str,
               item: ConstraintDescriptor,
               enable: bool,
               with_check: bool) -> TextClause:
    schema, table = item.table.schema, item.table.name
    if item.kind == ConstraintKind.TRIGGER:
        if enable:
            return builder.enable_trigger(database, schema, table, item.name)
        return builder.disable_trigger(database, schema, table, item.name)
    if enable:
        return builder.enable_constraint(database, schema, table, item.name,
                                         with_check=with_check)
    return builder.disable_constraint(database, schema, table, item.name)


def _run_phase(connection: Connection,
               builder: SqlServerStatementBuilder,
               database: str,
               kind: ConstraintKind,
               items: Sequence[ConstraintDescriptor],
               enable: bool,
               with_check: bool = False) -> PhaseResult:
    """
    Disables or enables each item in turn. A failure is logged and recorded,
    and the next item is attempted.
    """
    label = KIND_LABELS[kind]
    verb = "enable" if enable else "disable"
    phase = (restoration_phase_name(kind) if enable
             else suspension_phase_name(kind))
    log.info("{} {}S", "Enabling" if enable else "Disabling", label)
    result = PhaseResult(phase)
    for item in items:
        try:
            connection.execute(
                _statement(builder, database, item, enable, with_check))
        except (SQLAlchemyError, ValueError) as e:
            error = engine_error_text(e)
            log.error("Could not {} {} {} on table {}\n{}",
                      verb, label, item.name, item.table, error)
            result.add(item, Outcome(error))
        else:
            result.add(item, Outcome())
    return result


# =============================================================================
# Suspension
# =============================================================================

def suspend_constraints(
        connection: Connection,
        builder: SqlServerStatementBuilder,
        destination_db: str,
        constraints: Dict[ConstraintKind, List[ConstraintDescriptor]]) \
        -> List[PhaseResult]:
    """
    Disables CHECK constraints, then foreign keys, then triggers, in the
    destination database.

    Returns:
        one :class:`PhaseResult` per phase, all successful

    Raises:
        :exc:`SuspensionError` after the first phase with any failure; later
        phases are not attempted
    """
    results = []  # type: List[PhaseResult]
    for kind in SUSPENSION_ORDER:
        result = _run_phase(connection, builder, destination_db, kind,
                            constraints.get(kind, []), enable=False)
        results.append(result)
        if not result.succeeded:
            raise SuspensionError(
                f"Could not disable {result.failure_count} "
                f"{KIND_LABELS[kind]}(S)",
                result)
        log.info("All {}S disabled", KIND_LABELS[kind])
    return results


# =============================================================================
# Restoration
# =============================================================================

def restore_constraints(
        connection: Connection,
        builder: SqlServerStatementBuilder,
        destination_db: str,
        constraints: Dict[ConstraintKind, List[ConstraintDescriptor]],
        policy: RestorationPolicy = None,
        with_check: bool = False,
        failed_tables: Sequence[FailureRecord] = ()) -> List[PhaseResult]:
    """
    Re-enables triggers, then foreign keys, then CHECK constraints, in the
    destination database. Every phase is attempted, whatever happened in
    earlier ones.

    Args:
        connection: SQLAlchemy connection
        builder: statement builder
        destination_db: destination database name
        constraints: what to re-enable, by kind
        policy: which kinds of failure are fatal; default
            :class:`RestorationPolicy` (CHECK constraints only)
        with_check: re-enable constraints ``WITH CHECK``, so that SQL Server
            validates existing rows and trusts the constraints again
        failed_tables: tables whose transfer failed (passed through to any
            :exc:`RestorationError`)

    Returns:
        one :class:`PhaseResult` per phase

    Raises:
        :exc:`RestorationError` after all phases, if a phase that the policy
        calls fatal had failures
    """
    policy = policy or RestorationPolicy()
    results = []  # type: List[PhaseResult]
    fatal = []  # type: List[ConstraintKind]
    for kind in RESTORATION_ORDER:
        result = _run_phase(connection, builder, destination_db, kind,
                            constraints.get(kind, []), enable=True,
                            with_check=with_check)
        results.append(result)
        if result.succeeded:
            log.info("All {}S enabled", KIND_LABELS[kind])
            continue
        log.warning("Some or all {}S have not been enabled ({} failed)",
                    KIND_LABELS[kind], result.failure_count)
        if policy.is_fatal(kind):
            fatal.append(kind)
    if fatal:
        raise RestorationError(
            "Could not re-enable: " +
            ", ".join(f"{KIND_LABELS[k]}S" for k in fatal),
            results,
            list(failed_tables))
    return results
