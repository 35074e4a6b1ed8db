#!/usr/bin/env python
# mssql_copydata/pipeline/tests/provisioning_tests.py

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

**Unit tests.**

"""

import unittest

from mssql_copydata.exceptions import (
    DatabaseNotFoundError,
    InvalidDatabaseNameError,
    PreconditionError,
    PrivilegeError,
    ProvisioningError,
    SameDatabaseError,
    SystemDatabaseError,
)
from mssql_copydata.pipeline.provisioning import (
    check_database_names,
    is_system_database,
    provision,
    validate_database_names,
)
from mssql_copydata.pipeline.tests.fake_server import (
    DESTINATION_DB,
    FakeSqlServer,
    SOURCE_DB,
)
from mssql_copydata.sqlalchemy.sqlserver import SqlServerStatementBuilder


class ProvisioningTests(unittest.TestCase):
    def setUp(self) -> None:
        self.server = FakeSqlServer()
        self.server.add_table("dbo", "t", ["id"])
        self.builder = SqlServerStatementBuilder(self.server)

    def provision(self, source_db: str = SOURCE_DB,
                  destination_db: str = DESTINATION_DB,
                  clone_db: bool = False) -> None:
        provision(self.server, self.builder, source_db, destination_db,
                  clone_db=clone_db)

    def test_ok_sets_simple_recovery(self) -> None:
        with self.assertLogs("mssql_copydata.pipeline.provisioning",
                             level="WARNING"):
            self.provision()
        self.assertEqual(self.server.recovery_models[DESTINATION_DB],
                         "SIMPLE")
        self.assertEqual(self.server.recovery_models[SOURCE_DB], "FULL")

    def test_already_simple(self) -> None:
        self.server.recovery_models[DESTINATION_DB] = "SIMPLE"
        self.provision()
        self.assertEqual(
            self.server.statements_containing("ALTER DATABASE"), [])

    def test_not_sysadmin(self) -> None:
        self.server.is_sysadmin = 0
        self.assertRaises(PrivilegeError, self.provision)

    def test_sysadmin_checked_first(self) -> None:
        self.server.is_sysadmin = 0
        self.assertRaises(PrivilegeError, self.provision, "master", "msdb")

    def test_system_databases(self) -> None:
        self.assertTrue(is_system_database("TempDB"))
        self.assertFalse(is_system_database("clinical"))
        self.assertRaises(SystemDatabaseError, self.provision,
                          "master", DESTINATION_DB)
        self.assertRaises(SystemDatabaseError, self.provision,
                          SOURCE_DB, "Model")

    def test_same_database(self) -> None:
        self.assertRaises(SameDatabaseError, check_database_names,
                          "clinical", "CLINICAL")

    def test_database_name_syntax(self) -> None:
        validate_database_names("clinical", "clinical ]copy[")
        with self.assertRaises(InvalidDatabaseNameError) as cm:
            validate_database_names("s" * 129, DESTINATION_DB)
        self.assertIn("Source", str(cm.exception))
        self.assertRaises(InvalidDatabaseNameError, validate_database_names,
                          SOURCE_DB, "")

    def test_missing_source(self) -> None:
        self.server.drop_database(SOURCE_DB)
        with self.assertRaises(DatabaseNotFoundError) as cm:
            self.provision()
        self.assertIn("Source", str(cm.exception))

    def test_missing_destination(self) -> None:
        self.server.drop_database(DESTINATION_DB)
        with self.assertRaises(DatabaseNotFoundError) as cm:
            self.provision()
        self.assertIn("Destination", str(cm.exception))

    def test_database_name_is_a_bound_parameter(self) -> None:
        self.provision()
        for sql in self.server.statements_containing("master.sys.databases"):
            self.assertIn(":name", sql)
            self.assertNotIn(SOURCE_DB, sql)

    def test_clone(self) -> None:
        self.server.drop_database(DESTINATION_DB)
        self.provision(clone_db=True)
        self.assertIn(DESTINATION_DB, self.server.rows)
        self.assertEqual(
            self.server.statements_containing("CLONEDATABASE"),
            ["DBCC CLONEDATABASE ([src], [dst]) WITH NO_STATISTICS"])
        self.assertEqual(
            len(self.server.statements_containing("SET READ_WRITE")), 1)

    def test_clone_needs_2016(self) -> None:
        self.server.product_version = "12.0.6024.0"
        with self.assertRaises(ProvisioningError):
            self.provision(clone_db=True)
        self.assertEqual(
            self.server.statements_containing("CLONEDATABASE"), [])

    def test_clone_failure(self) -> None:
        self.server.fail_on("CLONEDATABASE", "Database 'dst' already exists")
        with self.assertRaises(ProvisioningError) as cm:
            self.provision(clone_db=True)
        self.assertIn("already exists", str(cm.exception))

    def test_recovery_change_failure(self) -> None:
        self.server.fail_on("SET RECOVERY", "denied")
        self.assertRaises(ProvisioningError, self.provision)

    def test_check_query_failure(self) -> None:
        self.server.fail_on("IS_SRVROLEMEMBER", "connection lost")
        with self.assertRaises(PreconditionError) as cm:
            self.provision()
        self.assertIn("connection lost", str(cm.exception))
