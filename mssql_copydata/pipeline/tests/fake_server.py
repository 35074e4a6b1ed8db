#!/usr/bin/env python
# mssql_copydata/pipeline/tests/fake_server.py

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

**A fake SQL Server connection, for testing the copy pipeline.**

It understands just the statements the pipeline sends: it answers catalogue
and count queries from its own tables, moves rows on ``INSERT ... SELECT``,
and keeps track of disabled constraints/triggers and of ``IDENTITY_INSERT``.
Any statement can be made to fail with :meth:`FakeSqlServer.fail_on`.

"""

from collections import OrderedDict
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy.dialects.mssql.base import MSDialect
from sqlalchemy.exc import InvalidRequestError, OperationalError

SOURCE_DB = "src"
DESTINATION_DB = "dst"

_NAME = r"\[((?:[^\]]|\]\])+)\]"
_TABLE = rf"{_NAME}\.{_NAME}\.{_NAME}"

RE_COUNT = re.compile(rf"^SELECT COUNT_BIG\(\*\) FROM {_TABLE}$")
RE_INSERT = re.compile(
    rf"^INSERT INTO {_TABLE} \((.*?)\) SELECT (.*) FROM {_TABLE}$")
RE_IDENTITY_INSERT = re.compile(rf"^SET IDENTITY_INSERT {_TABLE} (ON|OFF)$")
RE_CONSTRAINT = re.compile(
    rf"^ALTER TABLE {_TABLE} (WITH CHECK )?(NOCHECK|CHECK) CONSTRAINT "
    rf"{_NAME}$")
RE_TRIGGER = re.compile(
    rf"^ALTER TABLE {_TABLE} (DISABLE|ENABLE) TRIGGER {_NAME}$")
RE_CLONE = re.compile(
    rf"^DBCC CLONEDATABASE \({_NAME}, {_NAME}\) WITH NO_STATISTICS$")
RE_ALTER_DATABASE = re.compile(rf"^ALTER DATABASE {_NAME} SET (.*)$")
RE_SELECT_ITEM = re.compile(rf"CONVERT\(XML, {_NAME}\)|{_NAME}")
# Flag predicates in catalogue queries, e.g. "c.is_computed = 0"
RE_FLAG = re.compile(r"\.(is_computed|is_disabled) = ([01])\b")

TableKey = Tuple[str, str]


def _unquote(name: str) -> str:
    return name.replace("]]", "]")


def _flags(sql: str) -> Dict[str, int]:
    """
    The values a catalogue query requires of its flag columns.
    """
    return {flag: int(value) for flag, value in RE_FLAG.findall(sql)}


class FakeResult(object):
    def __init__(self, rows: Iterable[Sequence] = (),
                 rowcount: int = -1) -> None:
        self._rows = [tuple(r) for r in rows]
        self.rowcount = rowcount

    def fetchall(self) -> List[Tuple]:
        return list(self._rows)

    def scalar(self) -> Any:
        return self._rows[0][0] if self._rows else None

    def __iter__(self):
        return iter(self._rows)


class FakeTable(object):
    def __init__(self,
                 columns: Sequence[str],
                 computed_columns: Sequence[str] = (),
                 identity_column: str = None,
                 xml_columns: Sequence[str] = ()) -> None:
        self.columns = list(columns)
        self.computed_columns = list(computed_columns)
        self.identity_column = identity_column
        self.xml_columns = list(xml_columns)

    def all_columns(self) -> List[Tuple[str, int]]:
        """
        ``(name, is_computed)`` in column order; computed columns last.
        """
        return ([(c, 0) for c in self.columns] +
                [(c, 1) for c in self.computed_columns])


class FakeSqlServer(object):
    """
    Stands in for a :class:`sqlalchemy.engine.Connection` to a SQL Server
    instance holding a source and a destination database with the same
    schema.
    """

    def __init__(self) -> None:
        self.dialect = MSDialect()
        self.statements = []  # type: List[str]
        self.schema = OrderedDict()  # type: Dict[TableKey, FakeTable]
        self.rows = {
            SOURCE_DB: {},
            DESTINATION_DB: {},
        }  # type: Dict[str, Dict[TableKey, List[Dict[str, Any]]]]
        self.check_constraints = []  # type: List[Tuple[str, str, str]]
        self.foreign_keys = []  # type: List[Tuple[str, str, str]]
        self.triggers = []  # type: List[Tuple[str, str, str]]
        # Constraints and triggers already disabled in the source database
        self.catalogue_disabled = set()  # type: Set[str]
        self.missing_objects = []  # type: List[str]
        self.disabled = set()  # type: Set[str]
        self.untrusted = set()  # type: Set[str]
        self.identity_insert = None  # type: Optional[Tuple[str, str, str]]
        self.is_sysadmin = 1
        self.recovery_models = {
            SOURCE_DB: "FULL",
            DESTINATION_DB: "FULL",
        }  # type: Dict[str, str]
        self.product_version = "15.0.2000.5"
        self._failures = []  # type: List[Tuple[str, str]]
        self.options = {}  # type: Dict[str, Any]
        self.options_set_at = None  # type: Optional[int]
        self.in_transaction = False

    # -------------------------------------------------------------------------
    # Setting up
    # -------------------------------------------------------------------------

    def add_table(self,
                  schema: str,
                  name: str,
                  columns: Sequence[str],
                  source_rows: Iterable[Dict[str, Any]] = (),
                  destination_rows: Iterable[Dict[str, Any]] = (),
                  computed_columns: Sequence[str] = (),
                  identity_column: str = None,
                  xml_columns: Sequence[str] = ()) -> None:
        key = (schema, name)
        self.schema[key] = FakeTable(columns, computed_columns,
                                     identity_column, xml_columns)
        self.rows[SOURCE_DB][key] = [dict(r) for r in source_rows]
        if DESTINATION_DB in self.rows:
            self.rows[DESTINATION_DB][key] = [dict(r)
                                              for r in destination_rows]

    def drop_database(self, database: str) -> None:
        self.rows.pop(database, None)
        self.recovery_models.pop(database, None)

    def fail_on(self, fragment: str, message: str = "Simulated failure") \
            -> None:
        """
        Any later statement containing ``fragment`` raises an engine error.
        """
        self._failures.append((fragment, message))

    def source_rows(self, schema: str, name: str) -> List[Dict[str, Any]]:
        return self.rows[SOURCE_DB][(schema, name)]

    def destination_rows(self, schema: str,
                         name: str) -> List[Dict[str, Any]]:
        return self.rows[DESTINATION_DB][(schema, name)]

    def statements_containing(self, fragment: str) -> List[str]:
        return [s for s in self.statements if fragment in s]

    # -------------------------------------------------------------------------
    # Connection interface
    # -------------------------------------------------------------------------

    def execution_options(self, **options: Any) -> "FakeSqlServer":
        if self.in_transaction and "isolation_level" in options:
            raise InvalidRequestError(
                "This connection has already initialized a SQLAlchemy "
                "Transaction() object via begin() or autobegin; "
                "isolation_level may not be altered unless rollback() or "
                "commit() is called first.")
        self.options.update(options)
        self.options_set_at = len(self.statements)
        return self

    def execute(self, statement: Any,
                parameters: Dict[str, Any] = None) -> FakeResult:
        sql = " ".join(str(statement).split())
        self.statements.append(sql)
        for fragment, message in self._failures:
            if fragment in sql:
                self._error(sql, parameters, message)
        return self._dispatch(sql, parameters or {})

    @staticmethod
    def _error(sql: str, parameters: Optional[Dict[str, Any]],
               message: str) -> None:
        raise OperationalError(sql, parameters, Exception(message))

    def _dispatch(self, sql: str, params: Dict[str, Any]) -> FakeResult:
        # Provisioning
        if "IS_SRVROLEMEMBER" in sql:
            return FakeResult([(self.is_sysadmin, )])
        if "SERVERPROPERTY" in sql:
            return FakeResult([(self.product_version, )])
        if "recovery_model_desc" in sql:
            model = self.recovery_models.get(params["name"])
            return FakeResult([(model, )] if model else [])
        if "master.sys.databases" in sql:
            return FakeResult([(int(params["name"] in self.rows), )])
        m = RE_CLONE.match(sql)
        if m:
            return self._clone(_unquote(m.group(1)), _unquote(m.group(2)))
        m = RE_ALTER_DATABASE.match(sql)
        if m:
            database = _unquote(m.group(1))
            if m.group(2).startswith("RECOVERY SIMPLE"):
                self.recovery_models[database] = "SIMPLE"
            return FakeResult()

        # Catalogue
        if "is_computed" in sql:
            wanted = _flags(sql).get("is_computed")
            return FakeResult(
                (schema, name, col)
                for (schema, name), t in self._sorted_tables()
                for col, computed in t.all_columns()
                if wanted is None or computed == wanted)
        if "is_identity" in sql:
            return FakeResult(
                (schema, name)
                for (schema, name), t in self._sorted_tables()
                if t.identity_column)
        if "xml_collection_id" in sql:
            return FakeResult(
                (schema, name, col)
                for (schema, name), t in self._sorted_tables()
                for col in t.xml_columns)
        if "sys.check_constraints" in sql:
            return self._catalogue_objects(sql, self.check_constraints)
        if "sys.foreign_keys" in sql:
            return self._catalogue_objects(sql, self.foreign_keys)
        if "sys.triggers" in sql:
            return self._catalogue_objects(sql, self.triggers)
        if "NOT IN" in sql:
            return FakeResult((name, ) for name in self.missing_objects)
        if "sys.objects" in sql:
            return FakeResult(key for key, _ in self._sorted_tables())

        # Data
        m = RE_COUNT.match(sql)
        if m:
            rows = self._table_rows(sql, params, *m.groups())
            return FakeResult([(len(rows), )])
        m = RE_IDENTITY_INSERT.match(sql)
        if m:
            return self._identity_insert(sql, params, m)
        m = RE_INSERT.match(sql)
        if m:
            return self._insert(sql, params, m)
        m = RE_CONSTRAINT.match(sql)
        if m:
            name = _unquote(m.group(6))
            if m.group(5) == "NOCHECK":
                self.disabled.add(name)
            else:
                self.disabled.discard(name)
                if m.group(4):
                    self.untrusted.discard(name)
                else:
                    self.untrusted.add(name)
            return FakeResult()
        m = RE_TRIGGER.match(sql)
        if m:
            name = _unquote(m.group(5))
            if m.group(4) == "DISABLE":
                self.disabled.add(name)
            else:
                self.disabled.discard(name)
            return FakeResult()
        raise AssertionError(f"FakeSqlServer doesn't understand: {sql}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _sorted_tables(self) -> List[Tuple[TableKey, FakeTable]]:
        return sorted(self.schema.items(), key=lambda item: item[0])

    def _catalogue_objects(self, sql: str,
                           objects: List[Tuple[str, str, str]]) -> FakeResult:
        wanted = _flags(sql).get("is_disabled")
        return FakeResult(
            obj for obj in objects
            if wanted is None or
            int(obj[2] in self.catalogue_disabled) == wanted)

    def _table_rows(self, sql: str, params: Dict[str, Any], db: str,
                    schema: str, name: str) -> List[Dict[str, Any]]:
        db, key = _unquote(db), (_unquote(schema), _unquote(name))
        try:
            return self.rows[db][key]
        except KeyError:
            self._error(sql, params,
                        f"Invalid object name '{db}.{key[0]}.{key[1]}'.")

    def _identity_insert(self, sql: str, params: Dict[str, Any],
                         m) -> FakeResult:
        table = tuple(_unquote(x) for x in m.group(1, 2, 3))
        if m.group(4) == "ON":
            if self.identity_insert is not None:
                self._error(
                    sql, params,
                    f"IDENTITY_INSERT is already ON for table "
                    f"'{'.'.join(self.identity_insert)}'.")
            self.identity_insert = table
        elif self.identity_insert == table:
            self.identity_insert = None
        return FakeResult()

    def _insert(self, sql: str, params: Dict[str, Any], m) -> FakeResult:
        dst_db, dst_schema, dst_name = (_unquote(x) for x in m.group(1, 2, 3))
        insert_columns = [_unquote(c) for c in re.findall(_NAME, m.group(4))]
        source = self._table_rows(sql, params, *m.group(6, 7, 8))
        destination = self._table_rows(sql, params, *m.group(1, 2, 3))
        table = self.schema[(dst_schema, dst_name)]

        if (table.identity_column in insert_columns and
                self.identity_insert != (dst_db, dst_schema, dst_name)):
            self._error(
                sql, params,
                f"Cannot insert explicit value for identity column in table "
                f"'{dst_name}' when IDENTITY_INSERT is set to OFF.")
        select_columns = []
        for item in RE_SELECT_ITEM.finditer(m.group(5)):
            converted, plain = item.groups()
            if converted is not None:
                select_columns.append(_unquote(converted))
                continue
            column = _unquote(plain)
            if column in table.xml_columns:
                self._error(
                    sql, params,
                    "Implicit conversion between XML types constrained by "
                    "different XML schema collections is not allowed. Use "
                    "the CONVERT function to run this query.")
            select_columns.append(column)

        new_rows = [
            {dst: row[src] for dst, src in zip(insert_columns,
                                               select_columns)}
            for row in source
        ]
        destination.extend(new_rows)
        return FakeResult(rowcount=len(new_rows))

    def _clone(self, source_db: str, destination_db: str) -> FakeResult:
        self.rows[destination_db] = {key: [] for key in self.schema}
        self.recovery_models[destination_db] = self.recovery_models.get(
            source_db, "FULL")
        return FakeResult()
