#!/usr/bin/env python
# mssql_copydata/logs.py

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

**Support functions for logging.**

LIBRARY CODE (everything except the command-line tools) should do this:

.. code-block:: python

    from mssql_copydata.logs import get_brace_style_log_with_null_handler
    log = get_brace_style_log_with_null_handler(__name__)

    log.info("Copy data to table {}", tablename)

... and must not add any other handlers. Only the ``main()`` of a
command-line tool should configure output, e.g. via
:func:`main_only_quicksetup_rootlogger`.

Every line of output carries a timestamp and a severity (``INFO``,
``WARNING``, ``ERROR``), which is how progress through the copy is reported.

DO NOT call this module "logging"! Many things may get confused.

"""

from inspect import Parameter, signature
import logging
from typing import Any, Dict, List, TextIO, Tuple

from colorlog import ColoredFormatter

# =============================================================================
# Quick configuration of a specific log format
# =============================================================================

LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

LOG_COLORS = {'DEBUG': 'cyan',
              'INFO': 'green',
              'WARNING': 'bold_yellow',
              'ERROR': 'bold_red',
              'CRITICAL': 'bold_white,bg_red'}

LOG_FORMAT = "%(asctime)s %(name)s:%(levelname)s: %(message)s"
LOG_FORMAT_COLOUR = (
    "%(white)s%(asctime)s %(name)s:%(levelname)s: "
    "%(reset)s%(log_color)s%(message)s"
)


def get_console_handler(colour: bool = True,
                        stream: TextIO = None) -> logging.StreamHandler:
    """
    Gets a handler writing timestamped lines to ``stream`` (default
    ``stderr``), coloured by severity via ``colorlog`` if ``colour`` is set.
    """
    if colour:
        formatter = ColoredFormatter(
            LOG_FORMAT_COLOUR,
            datefmt=LOG_DATEFMT,
            reset=True,
            log_colors=LOG_COLORS,
            style='%')  # type: logging.Formatter
    else:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT,
                                      style='%')
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    return handler


def main_only_quicksetup_rootlogger(level: int = logging.DEBUG,
                                    colour: bool = True) -> None:
    """
    Quick function to set up the root logger, in colour or not, replacing
    any handlers it already has.

    Should ONLY be called from a command-line ``main()``; see
    https://docs.python.org/3/howto/logging.html#configuring-logging-for-a-library.
    """  # noqa
    rootlogger = logging.getLogger()
    for h in list(rootlogger.handlers):
        rootlogger.removeHandler(h)
    rootlogger.addHandler(get_console_handler(colour=colour))
    set_level_for_logger_and_its_handlers(rootlogger, level)


# =============================================================================
# Generic log functions
# =============================================================================

def set_level_for_logger_and_its_handlers(log: logging.Logger,
                                          level: int) -> None:
    """
    Set a log level for a log and all its handlers.
    """
    log.setLevel(level)
    for h in log.handlers:  # type: logging.Handler
        h.setLevel(level)


# =============================================================================
# Brace formatters, for log.info("{}, {}", "hello", "world")
# =============================================================================
# - https://docs.python.org/3/howto/logging-cookbook.html#use-of-alternative-formatting-styles  # noqa

class BraceMessage(object):
    """
    A message containing braces (``{}``) plus its ``args``/``kwargs``; it is
    only formatted (via ``fmt.format(*args, **kwargs)``) if it is actually
    emitted.
    """
    def __init__(self,
                 fmt: str,
                 args: Tuple[Any, ...],
                 kwargs: Dict[str, Any]) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs

    def __str__(self) -> str:
        return self.fmt.format(*self.args, **self.kwargs)


class BraceStyleAdapter(logging.LoggerAdapter):
    def __init__(self, logger: logging.Logger) -> None:
        """
        Wraps a logger so we can use ``{}``-style string formatting.

        Keyword arguments that the underlying logger understands (e.g.
        ``exc_info``) are passed to it as usual; the others are used for
        formatting.

        Specimen use:

        .. code-block:: python

            log = BraceStyleAdapter(logging.getLogger(__name__))
            log.warning("Failed tables count: {}", n_failed)
        """
        super().__init__(logger=logger, extra=None)
        # noinspection PyProtectedMember
        sig = signature(self.logger._log)
        self.logargnames = [p.name for p in sig.parameters.values()
                            if p.kind == Parameter.POSITIONAL_OR_KEYWORD]
        # e.g.: ['level', 'msg', 'args', 'exc_info', 'extra', 'stack_info']

    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(level):
            msg, log_kwargs = self.process(msg, kwargs)
            # noinspection PyProtectedMember
            self.logger._log(level, BraceMessage(msg, args, kwargs), (),
                             **log_kwargs)

    def process(self, msg: str,
                kwargs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        special_param_names = [k for k in kwargs.keys()
                               if k in self.logargnames]
        log_kwargs = {k: kwargs[k] for k in special_param_names}
        return msg, log_kwargs


def get_brace_style_log_with_null_handler(name: str) -> BraceStyleAdapter:
    """
    For use by library functions. Returns a log with the specified name that
    has a null handler attached, and a :class:`BraceStyleAdapter`.
    """
    log = logging.getLogger(name)
    log.addHandler(logging.NullHandler())
    return BraceStyleAdapter(log)


def format_multiline(lines: List[str], indent: str = "    ") -> str:
    """
    Joins lines for a single log message, one per line, indented.
    """
    return "\n".join(indent + line for line in lines)
