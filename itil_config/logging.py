# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Diagnostics for a resolution pass.

Every engine module fetches the process-wide logger with get_global_logger()
and reports through four levels:

- step: progress of a multi-stage command, always shown
- warning: something was ignored (a malformed APP_* name, a shadowed
  variable); always shown, on stderr
- verbose: which files were read and how many layers were merged
- debug: every layer's content and the origin of every merged value

Until a host installs one, the global logger is a SilentLogger, so importing
and calling load_config() from the web process writes nothing. The CLI
installs a DefaultLogger. A backend that already routes its output through
the standard logging module can install a LoggingAdapter instead.

Example:
    From the command line handlers:
        ```python
        from itil_config.logging import get_logger, set_global_logger

        set_global_logger(get_logger(verbose=True))
        ```

    Inside the backend process:
        ```python
        import logging

        from itil_config.logging import LoggingAdapter, set_global_logger

        set_global_logger(LoggingAdapter(logging.getLogger("itil.config")))
        ```
"""

from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO

__all__ = [
    "Logger",
    "DefaultLogger",
    "SilentLogger",
    "LoggingAdapter",
    "get_logger",
    "get_global_logger",
    "set_global_logger",
]


class Logger(Protocol):
    """What the engine needs from a logger."""

    def step(self, step: int, total: int, message: str) -> None:
        """Report progress through a command.

        Args:
            step: Stage being entered, counting from 1.
            total: Number of stages.
            message: What the stage does.
        """
        ...

    def warning(self, prefix: str, message: str) -> None:
        """Report input that was ignored.

        Args:
            prefix: Component tag such as "ENV" or "FILE".
            message: What was ignored and why.
        """
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Report a high-level resolution event.

        Args:
            prefix: Component tag such as "CONFIG" or "MERGE".
            message: Event description.
        """
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Report low-level detail such as a layer dump.

        Args:
            prefix: Component tag.
            message: Detail line.
        """
        ...


class DefaultLogger:
    """Prints diagnostics for the itil-config command.

    Steps and enabled verbose/debug lines go to stdout, warnings to stderr,
    so piping `itil-config show` into a file keeps warnings on the terminal.

    Attributes:
        out: Stream for steps, verbose and debug lines. None means the
            current sys.stdout.
        err: Stream for warnings. None means the current sys.stderr.
    """

    def __init__(
        self,
        verbose: bool = False,
        debug: bool = False,
        *,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        """
        Args:
            verbose: Show verbose lines.
            debug: Show debug lines; turns verbose on as well.
            out: Override for stdout.
            err: Override for stderr.
        """
        self._verbose = verbose or debug
        self._debug = debug
        self.out = out
        self.err = err

    def _write(self, line: str, *, error: bool = False) -> None:
        if error:
            stream = self.err if self.err is not None else sys.stderr
        else:
            stream = self.out if self.out is not None else sys.stdout
        print(line, file=stream)

    def step(self, step: int, total: int, message: str) -> None:
        self._write(f"[{step}/{total}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        self._write(f"[{prefix}] WARNING: {message}", error=True)

    def verbose(self, prefix: str, message: str) -> None:
        if self._verbose:
            self._write(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        if self._debug:
            self._write(f"[{prefix}] {message}")


class SilentLogger:
    """Discards everything. Installed until a host configures a logger."""

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass


class LoggingAdapter:
    """Forwards diagnostics to a standard library logger.

    Steps and verbose lines are logged at INFO, warnings at WARNING and
    debug lines at DEBUG. The host's handlers and levels decide what is
    shown.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def step(self, step: int, total: int, message: str) -> None:
        self.logger.info("[%d/%d] %s", step, total, message)

    def warning(self, prefix: str, message: str) -> None:
        self.logger.warning("[%s] %s", prefix, message)

    def verbose(self, prefix: str, message: str) -> None:
        self.logger.info("[%s] %s", prefix, message)

    def debug(self, prefix: str, message: str) -> None:
        self.logger.debug("[%s] %s", prefix, message)


_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Builds the printing logger the CLI uses.

    Args:
        verbose: Show verbose lines.
        debug: Show debug lines as well (implies verbose).

    Returns:
        A DefaultLogger writing to the current stdout and stderr.
    """
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Returns the logger every engine module reports through."""
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Installs logger for all subsequent resolution passes.

    Args:
        logger: Any object with step/warning/verbose/debug methods.

    Note:
        The setting is process-wide. Tests that record diagnostics put the
        previous logger back when they finish.
    """
    global _global_logger
    _global_logger = logger
