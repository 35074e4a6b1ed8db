#!/usr/bin/env python
# mssql_copydata/argparse_func.py

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

**Functions to help with argparse.**

"""

from argparse import (
    ArgumentDefaultsHelpFormatter,
    ArgumentTypeError,
    RawDescriptionHelpFormatter,
)
from typing import FrozenSet

from mssql_copydata.pipeline.integrity import parse_constraint_kinds
from mssql_copydata.pipeline.models import ConstraintKind

TRUE_STRINGS = ('yes', 'true', 't', 'y', '1')
FALSE_STRINGS = ('no', 'false', 'f', 'n', '0')


# =============================================================================
# Argparse formatters
# =============================================================================

class RawDescriptionArgumentDefaultsHelpFormatter(
        ArgumentDefaultsHelpFormatter,
        RawDescriptionHelpFormatter):
    """
    Keeps the line breaks of the tool description (which lists the exit
    codes) and shows each option's default.
    """
    pass


# =============================================================================
# Argparse types/checkers
# =============================================================================

def str2bool(v: str) -> bool:
    """
    ``argparse`` type for a yes/no value, case-insensitive: one of
    ``TRUE_STRINGS`` or ``FALSE_STRINGS``.

    Used with ``nargs='?'``, ``const=True`` and ``default=None``, so that
    ``--clone_db`` alone means true, ``--clone_db no`` means false, and
    leaving it out gives ``None`` (and a config file value can apply):

    .. code-block:: python

        parser.add_argument(
            "--clone_db", type=str2bool, nargs='?', const=True, default=None,
            help="Clone the source database first.")

    """
    lv = v.lower()
    if lv in TRUE_STRINGS:
        return True
    if lv in FALSE_STRINGS:
        return False
    raise ArgumentTypeError(
        f"Boolean value expected ({'/'.join(TRUE_STRINGS)} or "
        f"{'/'.join(FALSE_STRINGS)}), not {v!r}")


def constraint_kind_list(value: str) -> FrozenSet[ConstraintKind]:
    """
    ``argparse`` argument type for a comma-separated list of constraint
    kinds, e.g. ``check,fk,trigger``; also ``all`` or ``none``.
    """
    try:
        return parse_constraint_kinds(value)
    except ValueError as e:
        raise ArgumentTypeError(str(e))
