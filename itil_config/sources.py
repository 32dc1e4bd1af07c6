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

"""Configuration source layers.

A source yields a partial, possibly sparse configuration tree (a nested
dict) and names its origin so errors can point at the file or variable to
fix. Three kinds are provided:

- DefaultsSource: compiled-in values with sane out-of-the-box settings
- FileSource: a TOML or YAML settings file
- EnvironmentSource: APP_* process environment variables

Sources are Protocol-based (structural subtyping), so an application can add
its own layer by implementing name, origin, load() and describe().

Tree Conventions:
    - Keys are lower-case strings; files and variables share this casing
    - Values from files keep the parser's types (int, bool, list, ...)
    - Values from the environment are always strings; typing happens in
      the decoder

Environment Variable Naming:
    APP_<SEGMENT>(__<SEGMENT>)* maps to the lower-cased segments, e.g.
    APP_SERVER__PORT -> ("server", "port"). The prefix is matched
    case-insensitively. APP_ENVIRONMENT is the environment selector and is
    never turned into a tree value.

    Names that cannot be mapped are dropped with a warning and listed in
    EnvironmentSource.rejected:

    - empty remainder (APP_)
    - an empty or malformed segment (APP_SERVER__, APP__SERVER,
      APP_SERVER____PORT)
    - a leaf that collides with a section (APP_SERVER next to
      APP_SERVER__PORT); the deeper variable wins

Example:
    Loading each layer by hand:
        ```python
        from pathlib import Path
        from itil_config.sources import (
            DefaultsSource, EnvironmentSource, FileSource,
        )

        defaults = DefaultsSource().load()
        base = FileSource(Path("config/app.toml")).load()
        env = EnvironmentSource(environ={"APP_SERVER__PORT": "8080"}).load()
        print(env)  # {'server': {'port': '8080'}}
        ```
"""

from __future__ import annotations

import copy
import os
import re
import tomllib
from pathlib import Path
from typing import Any, Mapping, Protocol

import yaml

from itil_config.environment import ENVIRONMENT_VAR
from itil_config.exceptions import MalformedFileError, UnreadableFileError
from itil_config.schema import FieldPath, format_path

__all__ = [
    "DEFAULTS",
    "ConfigSource",
    "DefaultsSource",
    "FileSource",
    "EnvironmentSource",
    "SUPPORTED_SUFFIXES",
]

DEFAULTS: dict[str, Any] = {
    "server": {
        "port": 3000,
    },
}

SUPPORTED_SUFFIXES = (".toml", ".yaml", ".yml")

_SEGMENT_RE = re.compile(r"^[a-z0-9](?:[a-z0-9_]*[a-z0-9])?$")


# -------------------------------
# Source protocol
# -------------------------------


class ConfigSource(Protocol):
    """Protocol for configuration layers.

    Attributes:
        name: Short layer label used in logs, e.g. "base file".
        origin: Human-readable origin used in error messages, e.g. the file
            path or "environment".
    """

    name: str
    origin: str

    def load(self) -> dict[str, Any]:
        """Produce this layer's configuration tree.

        Returns:
            A nested dict. May be empty.

        Raises:
            ConfigLoadError: Only file-backed sources raise, when a present
                file cannot be read or parsed.
        """
        ...

    def describe(self, path: FieldPath) -> str:
        """Return the origin of the value this layer supplied at path."""
        ...


def _normalize_keys(node: Any) -> Any:
    """Return a copy of node with every mapping key lower-cased."""
    if isinstance(node, dict):
        return {str(k).lower(): _normalize_keys(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_normalize_keys(item) for item in node]
    return node


# -------------------------------
# Defaults
# -------------------------------


class DefaultsSource:
    """Compiled-in defaults.

    Only fields with a sane out-of-the-box value belong here. The database
    url deliberately has none.
    """

    name = "defaults"
    origin = "defaults"

    def __init__(self, tree: Mapping[str, Any] | None = None) -> None:
        self._tree = DEFAULTS if tree is None else tree

    def load(self) -> dict[str, Any]:
        # Deep copy so merging can never mutate the module-level defaults.
        return _normalize_keys(copy.deepcopy(dict(self._tree)))

    def describe(self, path: FieldPath) -> str:
        return self.origin


# -------------------------------
# Files
# -------------------------------


class FileSource:
    """A TOML or YAML settings file.

    A missing file yields an empty tree unless required is set. A present
    file must parse to a table (mapping) at the top level.

    Attributes:
        path: The settings file.
        required: Whether a missing file is an error.
        found: Set by load(); whether the file existed.
    """

    def __init__(
        self, path: Path | str, *, required: bool = False, name: str = "file"
    ) -> None:
        self.path = Path(path)
        self.required = required
        self.name = name
        self.origin = str(self.path)
        self.found: bool | None = None

    def load(self) -> dict[str, Any]:
        """Read and parse the file.

        Returns:
            The parsed tree with lower-cased keys, or {} when the file is
            absent and optional, or when the document is empty.

        Raises:
            UnreadableFileError: The file exists but cannot be opened or read,
                or it is required and missing.
            MalformedFileError: The file cannot be parsed, is not a mapping at
                the top level, or has an unsupported extension.
        """
        from itil_config.logging import get_global_logger

        logger = get_global_logger()

        suffix = self.path.suffix.lower()
        if suffix not in SUPPORTED_SUFFIXES:
            raise MalformedFileError(
                self.path,
                f"unsupported settings format {suffix or '(none)'!r}; "
                f"expected one of {', '.join(SUPPORTED_SUFFIXES)}",
            )

        try:
            raw = self.path.read_bytes()
        except FileNotFoundError as err:
            self.found = False
            if self.required:
                raise UnreadableFileError(self.path, "file not found") from err
            logger.debug("FILE", f"Skipping missing optional file: {self.path}")
            return {}
        except OSError as err:
            self.found = True
            raise UnreadableFileError(
                self.path, err.strerror or type(err).__name__
            ) from err

        self.found = True
        logger.verbose("FILE", f"Loading: {self.path}")

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise MalformedFileError(self.path, f"not valid UTF-8: {err}") from err

        if suffix == ".toml":
            try:
                data: Any = tomllib.loads(text)
            except tomllib.TOMLDecodeError as err:
                raise MalformedFileError(self.path, str(err)) from err
        else:
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as err:
                raise MalformedFileError(self.path, str(err)) from err

        if data is None:
            logger.debug("FILE", f"File is empty: {self.path}")
            return {}
        if not isinstance(data, dict):
            raise MalformedFileError(
                self.path,
                f"top level must be a table, got {type(data).__name__}",
            )
        return _normalize_keys(data)

    def describe(self, path: FieldPath) -> str:
        return self.origin


# -------------------------------
# Environment variables
# -------------------------------


class EnvironmentSource:
    """Process environment variables with a prefix and nested delimiter.

    Attributes:
        prefix: Variable prefix without the trailing underscore, e.g. "APP".
        delimiter: Separator between nested segments, "__".
        rejected: Names dropped by the last load(), with the reason.
    """

    name = "environment"
    origin = "environment"

    def __init__(
        self,
        prefix: str = "APP",
        delimiter: str = "__",
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.prefix = prefix
        self.delimiter = delimiter
        self._environ = environ
        self.rejected: dict[str, str] = {}
        self._variables: dict[FieldPath, str] = {}

    def _split(self, name: str) -> FieldPath | None:
        """Map a variable name to a field path, or None if it does not match."""
        head = f"{self.prefix}_".upper()
        if not name.upper().startswith(head):
            return None
        remainder = name[len(head):]
        if not remainder:
            self.rejected[name] = "no segments after prefix"
            return None
        segments = tuple(s.lower() for s in remainder.split(self.delimiter))
        for segment in segments:
            if not _SEGMENT_RE.match(segment):
                self.rejected[name] = (
                    f"empty or malformed segment {segment!r} "
                    f"(segments are separated by {self.delimiter!r})"
                )
                return None
        return segments

    def load(self) -> dict[str, Any]:
        """Build a tree from matching variables.

        Returns:
            Nested dict whose leaves are the raw string values.
        """
        from itil_config.logging import get_global_logger

        logger = get_global_logger()
        environ = os.environ if self._environ is None else self._environ

        self.rejected = {}
        self._variables = {}

        matched: list[tuple[FieldPath, str, str]] = []
        for name in sorted(environ):
            if name.upper() == ENVIRONMENT_VAR:
                continue
            path = self._split(name)
            if path is not None:
                matched.append((path, name, environ[name]))

        # Deeper paths first, so a section always wins over a colliding leaf.
        matched.sort(key=lambda item: (-len(item[0]), item[1]))

        tree: dict[str, Any] = {}
        for path, name, value in matched:
            conflict = self._insert(tree, path, value)
            if conflict:
                self.rejected[name] = conflict
                continue
            previous = self._variables.get(path)
            if previous is not None:
                logger.warning(
                    "ENV",
                    f"{name} and {previous} both set {format_path(path)}; "
                    f"using {name}",
                )
            self._variables[path] = name
            logger.debug("ENV", f"{name} -> {format_path(path)}")

        for name, reason in sorted(self.rejected.items()):
            logger.warning("ENV", f"Ignoring {name}: {reason}")

        if self._variables:
            logger.verbose(
                "ENV",
                f"Read {len(self._variables)} variable(s) with prefix {self.prefix}_",
            )
        return tree

    @staticmethod
    def _insert(tree: dict[str, Any], path: FieldPath, value: str) -> str | None:
        """Set value at path in tree. Returns a conflict reason on failure."""
        node = tree
        for depth, segment in enumerate(path[:-1]):
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                return (
                    f"{format_path(path[: depth + 1])} is already set as a value"
                )
            node = child
        if isinstance(node.get(path[-1]), dict):
            return f"{format_path(path)} is a section set by other variables"
        node[path[-1]] = value
        return None

    def describe(self, path: FieldPath) -> str:
        name = self._variables.get(tuple(path))
        if name is None:
            return self.origin
        return f"environment variable {name}"
