#!/usr/bin/env python
# mssql_copydata/configfiles.py

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

**Support functions for config (.INI) file reading.**

A config file for the copy looks like this; every option is optional.

.. code-block:: ini

    [copydata]
    url = mssql+pyodbc://@myserver/master?driver=ODBC+Driver+17+for+SQL+Server
    clone_db = false
    trust_restored_constraints = false
    fatal_restore_failures = check
    loglevel = info

"""

from configparser import ConfigParser, NoOptionError, NoSectionError
import logging
from typing import Any, Callable, FrozenSet, Optional

from mssql_copydata.logs import get_brace_style_log_with_null_handler
from mssql_copydata.pipeline.integrity import parse_constraint_kinds
from mssql_copydata.pipeline.models import ConstraintKind

log = get_brace_style_log_with_null_handler(__name__)

CONFIG_SECTION = "copydata"


# =============================================================================
# Reading single values
# =============================================================================

LOGLEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def _warn_default(param: str, default: Any) -> None:
    log.warning("Configuration variable {} not found or improper; "
                "using default of {}", param, default)


def get_config_string_option(parser: ConfigParser,
                             section: str,
                             option: str,
                             default: str = None) -> str:
    """
    Returns a string option, or ``default`` if the option is absent.

    Raises:
        ValueError: if the section is absent
    """
    if not parser.has_section(section):
        raise ValueError("config missing section: " + section)
    return parser.get(section, option, fallback=default)


def get_config_parameter(config: ConfigParser,
                         section: str,
                         param: str,
                         fn: Callable[[str], Any],
                         default: Any) -> Any:
    """
    Returns ``fn`` applied to a string option, e.g. with
    ``fn=parse_constraint_kinds``. If the option is absent or ``fn`` rejects
    it (with :exc:`ValueError` or :exc:`TypeError`), warns and returns
    ``fn(default)``, or ``None`` if ``default`` is ``None``.
    """
    try:
        return fn(config.get(section, param))
    except (TypeError, ValueError, NoOptionError, NoSectionError):
        _warn_default(param, default)
        return None if default is None else fn(default)


def get_config_parameter_boolean(config: ConfigParser,
                                 section: str,
                                 param: str,
                                 default: Optional[bool]) -> Optional[bool]:
    """
    As :func:`get_config_parameter`, for the values ``ConfigParser``
    understands as Booleans (``yes``/``no``, ``true``/``false``, ``1``/``0``,
    ``on``/``off``).
    """
    try:
        return config.getboolean(section, param)
    except (TypeError, ValueError, NoOptionError, NoSectionError):
        _warn_default(param, default)
        return default


def get_config_parameter_loglevel(config: ConfigParser,
                                  section: str,
                                  param: str,
                                  default: Optional[int]) -> Optional[int]:
    """
    As :func:`get_config_parameter`, mapping a level name in
    ``LOGLEVEL_NAMES`` (e.g. ``'debug'``) to its :mod:`logging` level.
    """
    try:
        return LOGLEVEL_NAMES[config.get(section, param).lower()]
    except (KeyError, NoOptionError, NoSectionError):
        _warn_default(param, default)
        return default


# =============================================================================
# The copy's own config
# =============================================================================

class CopyDataConfig(object):
    """
    Settings for a copy, as read from the ``[copydata]`` section of a config
    file. Options that are absent from the file are ``None``, so that a
    caller can tell "not set" from "false".
    """

    def __init__(self,
                 url: str = None,
                 clone_db: bool = None,
                 trust_restored_constraints: bool = None,
                 fatal_restore_failures: FrozenSet[ConstraintKind] = None,
                 loglevel: int = None) -> None:
        self.url = url
        self.clone_db = clone_db
        self.trust_restored_constraints = trust_restored_constraints
        self.fatal_restore_failures = fatal_restore_failures
        self.loglevel = loglevel

    def __repr__(self) -> str:
        return (
            f"CopyDataConfig(clone_db={self.clone_db!r}, "
            f"trust_restored_constraints="
            f"{self.trust_restored_constraints!r}, "
            f"fatal_restore_failures={self.fatal_restore_failures!r}, "
            f"loglevel={self.loglevel!r})"
        )

    @classmethod
    def from_parser(cls, parser: ConfigParser,
                    section: str = CONFIG_SECTION) -> "CopyDataConfig":
        """
        Raises:
            ValueError: if the section is absent
        """
        def has(option: str) -> bool:
            return parser.has_option(section, option)

        url = get_config_string_option(parser, section, "url")
        return cls(
            url=url or None,
            clone_db=(
                get_config_parameter_boolean(parser, section, "clone_db",
                                             None)
                if has("clone_db") else None
            ),
            trust_restored_constraints=(
                get_config_parameter_boolean(
                    parser, section, "trust_restored_constraints", None)
                if has("trust_restored_constraints") else None
            ),
            fatal_restore_failures=(
                get_config_parameter(parser, section,
                                     "fatal_restore_failures",
                                     parse_constraint_kinds, None)
                if has("fatal_restore_failures") else None
            ),
            loglevel=(
                get_config_parameter_loglevel(parser, section, "loglevel",
                                              None)
                if has("loglevel") else None
            ),
        )

    @classmethod
    def from_file(cls, filename: Optional[str],
                  section: str = CONFIG_SECTION) -> "CopyDataConfig":
        """
        Reads a config file; with no filename, returns an empty config.

        Raises:
            FileNotFoundError: if the file can't be read
            ValueError: if the section is absent
        """
        if not filename:
            return cls()
        parser = ConfigParser()
        if not parser.read(filename):
            raise FileNotFoundError(f"Can't read config file: {filename}")
        log.debug("Read config file {}", filename)
        return cls.from_parser(parser, section)
