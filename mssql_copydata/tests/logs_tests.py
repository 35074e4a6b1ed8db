#!/usr/bin/env python
# mssql_copydata/tests/logs_tests.py

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

import io
import logging
import unittest

from mssql_copydata.logs import (
    BraceStyleAdapter,
    format_multiline,
    get_console_handler,
)


class BraceStyleAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.log = BraceStyleAdapter(logging.getLogger("copydata.test"))

    def test_brace_arguments(self) -> None:
        with self.assertLogs("copydata.test", level=logging.INFO) as cm:
            self.log.info("Copy data to table {}", "[dbo].[t]")
            self.log.warning("Failed tables count: {n}", n=2)
        self.assertEqual(cm.records[0].getMessage(),
                         "Copy data to table [dbo].[t]")
        self.assertEqual(cm.records[1].getMessage(), "Failed tables count: 2")
        self.assertEqual(cm.records[1].levelno, logging.WARNING)

    def test_exc_info_passed_through(self) -> None:
        with self.assertLogs("copydata.test", level=logging.ERROR) as cm:
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                self.log.error("Could not copy {}", "t", exc_info=True)
        record = cm.records[0]
        self.assertEqual(record.getMessage(), "Could not copy t")
        self.assertIsNotNone(record.exc_info)

    def test_not_formatted_below_level(self) -> None:
        class Exploding(object):
            def __str__(self) -> str:
                raise AssertionError("formatted")

        with self.assertLogs("copydata.test", level=logging.INFO):
            self.log.debug("{}", Exploding())
            self.log.info("something")


class HandlerTests(unittest.TestCase):
    def emit(self, colour: bool) -> str:
        stream = io.StringIO()
        logger = logging.getLogger(f"copydata.handler.{colour}")
        logger.propagate = False
        handler = get_console_handler(colour=colour, stream=stream)
        logger.addHandler(handler)
        try:
            logger.warning("Schema mismatch")
        finally:
            logger.removeHandler(handler)
        return stream.getvalue()

    def test_monochrome(self) -> None:
        line = self.emit(colour=False)
        self.assertRegex(
            line,
            r"^\d{4}-\d\d-\d\d \d\d:\d\d:\d\d copydata\.handler\.False:"
            r"WARNING: Schema mismatch\n$")

    def test_colour(self) -> None:
        line = self.emit(colour=True)
        self.assertIn("WARNING", line)
        self.assertIn("Schema mismatch", line)


class FormatMultilineTests(unittest.TestCase):
    def test_indent(self) -> None:
        self.assertEqual(format_multiline(["a", "b"]), "    a\n    b")
        self.assertEqual(format_multiline([]), "")
