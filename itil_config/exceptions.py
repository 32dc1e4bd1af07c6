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

"""Exception hierarchy for itil-config.

This module defines the errors raised while resolving configuration, split
into the two phases of a resolution pass:

- ConfigLoadError: a settings file exists but could not be read or parsed
- ConfigError: the merged tree does not satisfy the schema

Field-level problems (MissingFieldError, InvalidTypeError) are collected
during a decode pass and raised together inside a single
ConfigValidationError, so one run reports every misconfiguration.

All exceptions inherit from ItilConfigError, allowing callers to catch every
configuration failure with a single except clause.

Example:
    Reporting every broken key at startup:
        ```python
        from itil_config import load_config
        from itil_config.exceptions import ConfigLoadError, ConfigValidationError

        try:
            config = load_config("config")
        except ConfigLoadError as e:
            print(f"Cannot load {e.path}: {e}")
        except ConfigValidationError as e:
            for error in e.errors:
                print(f"{error.dotted}: {error}")
        ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

__all__ = [
    "ItilConfigError",
    "ConfigLoadError",
    "MalformedFileError",
    "UnreadableFileError",
    "ConfigError",
    "FieldError",
    "MissingFieldError",
    "InvalidTypeError",
    "ConfigValidationError",
]


class ItilConfigError(Exception):
    """Base exception for all itil-config errors."""

    pass


# -------------------------------
# Load errors
# -------------------------------


class ConfigLoadError(ItilConfigError):
    """Raised when a settings file cannot be turned into a tree.

    Attributes:
        path: The file that failed to load.
        detail: Parser or I/O detail for the operator.
    """

    def __init__(self, path: Path | str, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(f"{self.path}: {detail}")


class MalformedFileError(ConfigLoadError):
    """Raised when a settings file exists but is not parseable.

    Also raised when the document parses but its top level is not a table,
    or when the file extension is not a supported format.
    """

    pass


class UnreadableFileError(ConfigLoadError):
    """Raised when a settings file exists but cannot be opened or read.

    Covers permission errors, I/O errors, and a required file that is
    missing.
    """

    pass


# -------------------------------
# Schema errors
# -------------------------------


class ConfigError(ItilConfigError):
    """Raised when the merged configuration does not satisfy the schema."""

    pass


class FieldError(ConfigError):
    """A problem with one configuration key.

    Attributes:
        path: Field path as a tuple of segments, e.g. ("server", "port").
        origin: Layer that supplied the offending value ("environment",
            a file path, "defaults"), or None when the value is absent.
    """

    def __init__(
        self, path: Iterable[str], message: str, origin: str | None = None
    ) -> None:
        self.path: tuple[str, ...] = tuple(path)
        self.origin = origin
        self.message = message
        text = f"{self.dotted}: {message}"
        if origin:
            text += f" (from {origin})"
        super().__init__(text)

    @property
    def dotted(self) -> str:
        """The field path joined with dots."""
        return ".".join(self.path)


class MissingFieldError(FieldError):
    """A required field has no value after merging all layers."""

    def __init__(self, path: Iterable[str]) -> None:
        super().__init__(path, "required field is missing")


class InvalidTypeError(FieldError):
    """A present value cannot be coerced to the declared kind.

    Attributes:
        expected: Name of the expected kind, e.g. "integer" or "url".
        got: The offending raw value.
    """

    def __init__(
        self,
        path: Iterable[str],
        expected: str,
        got: Any,
        origin: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.expected = expected
        self.got = got
        message = f"expected {expected}, got {got!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(path, message, origin)


class ConfigValidationError(ConfigError):
    """All field errors found during one decode pass.

    Attributes:
        errors: Every FieldError, in schema order.
    """

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        lines = "\n".join(f"  - {error}" for error in self.errors)
        super().__init__(
            f"Configuration is invalid ({len(self.errors)} error(s)):\n{lines}"
        )

    @property
    def paths(self) -> list[str]:
        """Dotted paths of every failing field."""
        return [error.dotted for error in self.errors]
