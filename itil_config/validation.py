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

"""Configuration validation module.

This module resolves a configuration directory the same way the backend does
at boot and turns every failure into a report instead of an exception. It is
meant for CI/CD pre-deploy checks and for the `itil-config validate`
command.

Validation Checks:

- Settings files that exist are readable and parse as TOML/YAML tables
- Every required field has a value after merging all layers
- Every present value coerces to its declared kind
- Registered extension sections decode

Warnings:

- Environment variables that were ignored because their names are malformed
- Base file or environment file not found

Example:
    Validate the production configuration:
        ```python
        from itil_config.validation import validate_config

        result = validate_config("config", environment="production")
        if result.is_valid:
            print(f"OK for {result.environment}")
        else:
            for error in result.errors:
                print(f"Error: {error}")
        ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from itil_config.decoder import SectionRegistry, decode
from itil_config.environment import normalize_environment, select_environment
from itil_config.exceptions import ConfigLoadError, ConfigValidationError
from itil_config.loader import resolve_tree
from itil_config.results import ValidationResult
from itil_config.schema import Schema

__all__ = ["validate_config"]


def validate_config(
    config_dir: Path | str = "config",
    *,
    environment: str | None = None,
    environ: Mapping[str, str] | None = None,
    schema: Schema | None = None,
    registry: SectionRegistry | None = None,
    defaults: Mapping[str, Any] | None = None,
    extension: str = "toml",
    require_base: bool = False,
) -> ValidationResult:
    """Validates a configuration directory without raising.

    Args:
        config_dir: Directory holding the settings files.
        environment: Explicit environment name; skips APP_ENVIRONMENT.
        environ: Variable table. Defaults to os.environ.
        schema: Built-in schema. Defaults to server + database.
        registry: Extension section decoders.
        defaults: Replacement for the compiled-in defaults tree.
        extension: Settings file extension.
        require_base: Whether a missing base file is an error.

    Returns:
        The validation report. On success it carries the resolved Config.
    """
    from itil_config.logging import get_global_logger

    logger = get_global_logger()

    if environment is None:
        environment = select_environment(environ)
    else:
        environment = normalize_environment(environment)

    logger.step(1, 2, "Loading configuration layers...")
    try:
        merged, context = resolve_tree(
            config_dir,
            environment=environment,
            environ=environ,
            defaults=defaults,
            extension=extension,
            require_base=require_base,
        )
    except ConfigLoadError as err:
        logger.verbose("CONFIG", f"Load failed: {err}")
        return ValidationResult(
            status="invalid",
            environment=environment,
            errors=[f"Cannot load {err.path}: {err.detail}"],
        )

    warnings = [
        f"Ignored environment variable {name}: {reason}"
        for name, reason in sorted(context.rejected_variables.items())
    ]
    for layer in context.layers:
        if layer.found is False:
            warnings.append(f"{layer.name.capitalize()} not found: {layer.origin}")

    logger.step(2, 2, "Decoding configuration...")
    try:
        config = decode(
            merged.tree,
            schema,
            registry=registry,
            origins=merged.origins,
            environment=environment,
        )
    except ConfigValidationError as err:
        return ValidationResult(
            status="invalid",
            environment=environment,
            errors=[str(e) for e in err.errors],
            warnings=warnings,
            layers=context.layers,
        )

    return ValidationResult(
        status="valid",
        environment=environment,
        warnings=warnings,
        layers=context.layers,
        config=config,
    )
