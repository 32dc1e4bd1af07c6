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

"""Decoding and validation of merged configuration trees.

The decoder turns the untyped merged tree into a typed Config. It walks every
field the schema declares, coerces present values to the declared kind and
collects every failure. Errors are raised together in one
ConfigValidationError at the end of the pass, so a single boot attempt
reports every broken key.

Coercion Rules:
    - string: str; ints and floats are stringified
    - integer: int, or a base-10 string; bools are rejected
    - float: int, float, or a numeric string
    - boolean: bool, or true/false/yes/no/on/off/1/0 (any casing)
    - url: string with a scheme and a host; file, sqlite and unix URLs
      may give a path instead
    - ip address: IPv4 or IPv6 literal
    - list: list, or a comma-separated string (environment variables)

Extension Sections:
    Application-defined sections are registered by name against a
    SectionRegistry. A registration is either:

    - a Section: decoded with the same rules, producing a read-only mapping
    - a callable (subtree, path) -> value: called with the section's subtree.
      It may raise FieldError or ConfigValidationError; those errors join the
      aggregate.

    Top-level branches nobody registered are ignored.

Example:
    Registering an extension section:
        ```python
        from itil_config.decoder import register_section
        from itil_config.schema import Field, Kind, Section

        register_section(
            "mailer",
            Section("mailer", fields=[Field("host"), Field("port", Kind.INTEGER)]),
        )
        ```
"""

from __future__ import annotations

import ipaddress
from types import MappingProxyType
from typing import Any, Callable, Mapping, Union
from urllib.parse import urlsplit

from itil_config.exceptions import (
    ConfigError,
    ConfigValidationError,
    FieldError,
    InvalidTypeError,
    MissingFieldError,
)
from itil_config.schema import (
    CORE_SCHEMA,
    Field,
    FieldPath,
    Kind,
    Schema,
    Section,
)
from itil_config.settings import Config, DatabaseConfig, ServerConfig

__all__ = [
    "SectionDecoder",
    "SectionRegistry",
    "coerce",
    "decode",
    "decode_section",
    "default_registry",
    "get_section_decoder",
    "register_section",
]

SectionDecoder = Union[Section, Callable[[dict[str, Any], FieldPath], Any]]

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}

# Schemes that address a local path and need no host.
_PATH_SCHEMES = {"file", "sqlite", "sqlite3", "unix"}


class _CoercionError(ValueError):
    """Internal: raised by coercers, turned into InvalidTypeError."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason or "")


# -------------------------------
# Coercion
# -------------------------------


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise _CoercionError()


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise _CoercionError()
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            raise _CoercionError() from None
    raise _CoercionError()


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise _CoercionError()
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise _CoercionError() from None
    raise _CoercionError()


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise _CoercionError()


def _to_url(value: Any) -> str:
    if not isinstance(value, str):
        raise _CoercionError()
    text = value.strip()
    try:
        parts = urlsplit(text)
    except ValueError as err:
        raise _CoercionError(str(err)) from None
    if not parts.scheme:
        raise _CoercionError("missing scheme")
    if parts.netloc:
        return text
    if parts.scheme.lower() not in _PATH_SCHEMES:
        # "localhost:5432" splits into scheme "localhost" and path "5432".
        raise _CoercionError("missing host")
    if not parts.path:
        raise _CoercionError("missing path")
    return text


def _to_ip_address(value: Any) -> str:
    if not isinstance(value, str):
        raise _CoercionError()
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        raise _CoercionError() from None


def _to_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(value)
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    raise _CoercionError()


_COERCERS: dict[Kind, Callable[[Any], Any]] = {
    Kind.STRING: _to_string,
    Kind.INTEGER: _to_integer,
    Kind.FLOAT: _to_float,
    Kind.BOOLEAN: _to_boolean,
    Kind.URL: _to_url,
    Kind.IP_ADDRESS: _to_ip_address,
    Kind.LIST: _to_list,
}


def coerce(
    value: Any, field_def: Field, path: FieldPath, origin: str | None = None
) -> Any:
    """Coerces a raw value to the kind field_def declares.

    Args:
        value: Raw value from the merged tree.
        field_def: Field declaration.
        path: Full path of the field, for errors.
        origin: Where the value came from, for errors.

    Returns:
        The typed value.

    Raises:
        InvalidTypeError: If the value cannot be coerced or violates the
            field's bounds or choices.
    """
    expected = field_def.kind.value
    try:
        result = _COERCERS[field_def.kind](value)
    except _CoercionError as err:
        raise InvalidTypeError(path, expected, value, origin, err.reason) from None

    if field_def.minimum is not None and result < field_def.minimum:
        raise InvalidTypeError(
            path, expected, value, origin, f"must be >= {field_def.minimum:g}"
        )
    if field_def.maximum is not None and result > field_def.maximum:
        raise InvalidTypeError(
            path, expected, value, origin, f"must be <= {field_def.maximum:g}"
        )
    if field_def.choices is not None and result not in field_def.choices:
        allowed = ", ".join(repr(c) for c in field_def.choices)
        raise InvalidTypeError(
            path, expected, value, origin, f"must be one of {allowed}"
        )
    return result


# -------------------------------
# Section decoding
# -------------------------------


def _decode_into(
    subtree: Any,
    section: Section,
    path: FieldPath,
    origins: Mapping[FieldPath, str],
    errors: list[FieldError],
) -> dict[str, Any] | None:
    """Decode one section, appending failures to errors.

    Returns the decoded values, or None if subtree is not a mapping.
    """
    if subtree is None:
        subtree = {}
    if not isinstance(subtree, dict):
        errors.append(InvalidTypeError(path, "section", subtree, origins.get(path)))
        return None

    values: dict[str, Any] = {}
    for field_def in section.fields:
        field_path = path + (field_def.name,)
        if field_def.name not in subtree:
            if field_def.has_default:
                values[field_def.name] = field_def.default
            elif field_def.required:
                errors.append(MissingFieldError(field_path))
            else:
                values[field_def.name] = None
            continue
        try:
            values[field_def.name] = coerce(
                subtree[field_def.name],
                field_def,
                field_path,
                origins.get(field_path),
            )
        except InvalidTypeError as err:
            errors.append(err)

    for child in section.sections:
        decoded = _decode_into(
            subtree.get(child.name), child, path + (child.name,), origins, errors
        )
        if decoded is not None:
            values[child.name] = MappingProxyType(decoded)
    return values


def decode_section(
    subtree: Any,
    section: Section,
    path: FieldPath | None = None,
    origins: Mapping[FieldPath, str] | None = None,
) -> Mapping[str, Any]:
    """Decodes a subtree against a declarative Section.

    Useful inside a callable extension decoder that wants the standard rules
    for part of its subtree.

    Args:
        subtree: The section's part of the merged tree.
        section: Declaration to decode against.
        path: Path of the section in the full tree. Defaults to
            (section.name,).
        origins: Leaf origins, for error messages.

    Returns:
        A read-only mapping of decoded values.

    Raises:
        ConfigValidationError: With every field error in the section.
    """
    errors: list[FieldError] = []
    values = _decode_into(
        subtree,
        section,
        path if path is not None else (section.name,),
        origins or {},
        errors,
    )
    if errors:
        raise ConfigValidationError(errors)
    return MappingProxyType(values or {})


# -------------------------------
# Extension registry
# -------------------------------


class SectionRegistry:
    """Named decoders for application-defined sections."""

    def __init__(self) -> None:
        self._decoders: dict[str, SectionDecoder] = {}

    def register(self, name: str, decoder: SectionDecoder) -> None:
        """Registers decoder for the top-level section name.

        Registering the same name twice overwrites the previous registration.

        Raises:
            ConfigError: If name is a built-in section.
        """
        key = name.lower()
        if key in CORE_SCHEMA.section_names():
            raise ConfigError(f"Cannot register built-in section {key!r}")
        self._decoders[key] = decoder

    def unregister(self, name: str) -> None:
        self._decoders.pop(name.lower(), None)

    def get(self, name: str) -> SectionDecoder:
        """Returns the decoder registered for name.

        Raises:
            ConfigError: If name is not registered. The message lists the
                registered sections.
        """
        key = name.lower()
        if key not in self._decoders:
            available = ", ".join(sorted(self._decoders))
            raise ConfigError(
                f"Unknown configuration section: {name!r}. "
                f"Available: {available or '(none)'}"
            )
        return self._decoders[key]

    def names(self) -> list[str]:
        return list(self._decoders)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._decoders

    def __len__(self) -> int:
        return len(self._decoders)


_DEFAULT_REGISTRY = SectionRegistry()


def default_registry() -> SectionRegistry:
    """Returns the process-wide registry used when none is passed."""
    return _DEFAULT_REGISTRY


def register_section(name: str, decoder: SectionDecoder) -> None:
    """Registers decoder in the process-wide registry.

    Typically called at import time by the module that owns the section.
    """
    _DEFAULT_REGISTRY.register(name, decoder)


def get_section_decoder(name: str) -> SectionDecoder:
    """Looks up name in the process-wide registry."""
    return _DEFAULT_REGISTRY.get(name)


def _decode_extension(
    name: str,
    decoder: SectionDecoder,
    subtree: Any,
    origins: Mapping[FieldPath, str],
    errors: list[FieldError],
) -> tuple[bool, Any]:
    path: FieldPath = (name,)
    if isinstance(decoder, Section):
        decoded = _decode_into(subtree, decoder, path, origins, errors)
        if decoded is None:
            return False, None
        return True, MappingProxyType(decoded)

    if subtree is None:
        subtree = {}
    if not isinstance(subtree, dict):
        errors.append(InvalidTypeError(path, "section", subtree, origins.get(path)))
        return False, None
    try:
        return True, decoder(subtree, path)
    except ConfigValidationError as err:
        errors.extend(err.errors)
    except FieldError as err:
        errors.append(err)
    return False, None


def _check_builtin_sections(schema: Schema) -> None:
    """Ensure schema can always produce ServerConfig and DatabaseConfig.

    A schema may replace the server or database section, for example to add
    fields, but every built-in field must stay declared with its kind and be
    required or defaulted.

    Raises:
        ConfigError: If a built-in section or field is missing or weakened.
    """
    declared = {section.name: section for section in schema.sections}
    problems: list[str] = []
    for builtin in CORE_SCHEMA.sections:
        section = declared.get(builtin.name)
        if section is None:
            problems.append(f"section {builtin.name!r} is not declared")
            continue
        fields = {f.name: f for f in section.fields}
        for expected in builtin.fields:
            dotted = f"{builtin.name}.{expected.name}"
            actual = fields.get(expected.name)
            if actual is None:
                problems.append(f"{dotted} is not declared")
            elif actual.kind is not expected.kind:
                problems.append(
                    f"{dotted} must be {expected.kind.value}, "
                    f"not {actual.kind.value}"
                )
            elif not (actual.required or actual.has_default):
                problems.append(f"{dotted} must be required or have a default")
            elif actual.has_default and actual.default is None:
                problems.append(f"{dotted} cannot default to None")
    if problems:
        raise ConfigError(
            f"Schema does not satisfy the built-in sections: {'; '.join(problems)}"
        )


# -------------------------------
# Public API
# -------------------------------


def decode(
    tree: Mapping[str, Any],
    schema: Schema | None = None,
    *,
    registry: SectionRegistry | None = None,
    origins: Mapping[FieldPath, str] | None = None,
    environment: str | None = None,
) -> Config:
    """Decodes a merged tree into a validated Config.

    Args:
        tree: The merged configuration tree.
        schema: Built-in sections to decode. Defaults to CORE_SCHEMA (server
            and database). Any extra sections declared here are decoded like
            registered Section extensions.
        registry: Extension decoders. Defaults to the process-wide registry.
        origins: Leaf origins from merge_layers(), for error messages.
        environment: Active environment name recorded on the result.

    Returns:
        The immutable, fully valid Config.

    Raises:
        ConfigValidationError: With every missing or invalid field found.
    """
    from itil_config.logging import get_global_logger

    logger = get_global_logger()
    schema = schema or CORE_SCHEMA
    registry = registry if registry is not None else _DEFAULT_REGISTRY
    origins = origins or {}

    _check_builtin_sections(schema)

    errors: list[FieldError] = []
    sections: dict[str, dict[str, Any] | None] = {}
    for section in schema.sections:
        sections[section.name] = _decode_into(
            tree.get(section.name), section, (section.name,), origins, errors
        )

    extensions: dict[str, Any] = {}
    for section in schema.sections:
        if section.name in CORE_SCHEMA.section_names():
            continue
        if sections[section.name] is not None:
            extensions[section.name] = MappingProxyType(sections[section.name])

    for name in registry.names():
        ok, value = _decode_extension(
            name, registry.get(name), tree.get(name), origins, errors
        )
        if ok:
            extensions[name] = value

    known = set(schema.section_names()) | set(registry.names())
    for name in tree:
        if name not in known:
            logger.debug("DECODE", f"Ignoring unregistered section: {name}")

    if errors:
        logger.verbose("DECODE", f"{len(errors)} invalid field(s)")
        raise ConfigValidationError(errors)

    server = sections.get("server") or {}
    database = sections.get("database") or {}
    logger.verbose(
        "DECODE",
        f"Decoded {len(schema.sections)} built-in and {len(extensions)} "
        f"extension section(s)",
    )
    return Config(
        server=ServerConfig(ip=server["ip"], port=server["port"]),
        database=DatabaseConfig(url=database["url"]),
        extensions=extensions,
        environment=environment,
    )

