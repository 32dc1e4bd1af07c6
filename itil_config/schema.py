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

"""Schema model for configuration trees.

A schema is a tree of named sections. Each section declares scalar fields
and may nest further sections. The decoder walks a schema against a merged
configuration tree to produce typed values.

The two built-in sections every deployment needs are declared here:

- server: bind address (ip) and port
- database: connection url

Application-defined sections are declared with the same Section type and
registered by name, see itil_config.decoder.SectionRegistry.

Example:
    Declaring an extension section:
        ```python
        from itil_config.schema import Field, Kind, Section

        MAILER = Section(
            "mailer",
            fields=[
                Field("host", Kind.STRING),
                Field("port", Kind.INTEGER, default=25, minimum=1, maximum=65535),
                Field("tls", Kind.BOOLEAN, default=False),
            ],
        )
        ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

__all__ = [
    "MISSING",
    "Kind",
    "NUMERIC_KINDS",
    "Field",
    "Section",
    "Schema",
    "FieldPath",
    "format_path",
    "SERVER_SECTION",
    "DATABASE_SECTION",
    "CORE_SCHEMA",
]

FieldPath = tuple[str, ...]


class _Missing:
    """Sentinel for "no default declared"."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class Kind(Enum):
    """Scalar kinds a field can be coerced to."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    URL = "url"
    IP_ADDRESS = "ip address"
    LIST = "list"


NUMERIC_KINDS = frozenset({Kind.INTEGER, Kind.FLOAT})


@dataclass(frozen=True)
class Field:
    """A scalar leaf in the schema.

    Attributes:
        name: Segment name, lower-case.
        kind: Kind the raw value is coerced to.
        required: Whether absence is an error. Ignored when a default is set.
        default: Value used when the field is absent. Defaults are used as
            given and are not coerced.
        minimum: Inclusive lower bound for numeric kinds.
        maximum: Inclusive upper bound for numeric kinds.
        choices: Allowed values after coercion.
    """

    name: str
    kind: Kind = Kind.STRING
    required: bool = True
    default: Any = MISSING
    minimum: float | None = None
    maximum: float | None = None
    choices: tuple[Any, ...] | None = None

    def __post_init__(self) -> None:
        if self.kind not in NUMERIC_KINDS and (
            self.minimum is not None or self.maximum is not None
        ):
            raise ValueError(
                f"Field {self.name!r}: minimum/maximum need a numeric kind, "
                f"not {self.kind.value}"
            )

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True)
class Section:
    """A named group of fields and nested sections."""

    name: str
    fields: tuple[Field, ...] = ()
    sections: tuple[Section, ...] = ()

    def __init__(
        self,
        name: str,
        fields: Iterable[Field] = (),
        sections: Iterable[Section] = (),
    ) -> None:
        # Stored as tuples; Section is hashable.
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "fields", tuple(fields))
        object.__setattr__(self, "sections", tuple(sections))
        names = [f.name for f in self.fields] + [s.name for s in self.sections]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(
                f"Section {name!r} declares duplicate names: {', '.join(duplicates)}"
            )


@dataclass(frozen=True)
class Schema:
    """Top-level sections the decoder always decodes."""

    sections: tuple[Section, ...] = field(default_factory=tuple)

    def section_names(self) -> list[str]:
        return [s.name for s in self.sections]


def format_path(path: Iterable[str]) -> str:
    """Join path segments with dots: ("server", "ip") -> "server.ip"."""
    return ".".join(path)


# -------------------------------
# Built-in sections
# -------------------------------

SERVER_SECTION = Section(
    "server",
    fields=[
        Field("ip", Kind.IP_ADDRESS),
        Field("port", Kind.INTEGER, minimum=1, maximum=65535),
    ],
)

DATABASE_SECTION = Section(
    "database",
    fields=[
        Field("url", Kind.URL),
    ],
)

CORE_SCHEMA = Schema(sections=(SERVER_SECTION, DATABASE_SECTION))
