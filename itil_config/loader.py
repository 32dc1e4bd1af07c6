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

"""Configuration resolution for the service-desk backend.

This module runs one resolution pass: it picks the active environment,
loads four layers in a fixed order, deep-merges them and decodes the result
into an immutable Config.

Configuration Layers:
    1. **Defaults** (compiled in)
       - Only values with a sane out-of-the-box setting (server.port)

    2. **Base file** (config/app.toml)
       - Settings shared by every environment
       - Optional unless require_base=True

    3. **Environment file** (config/app.<environment>.toml)
       - Policy for one environment, e.g. app.production.toml
       - Always attempted; a missing file is not an error

    4. **Environment variables** (APP_SERVER__PORT, APP_DATABASE__URL, ...)
       - Deployment-time overrides; always win

    Later layers override earlier ones field by field. The order is fixed by
    build_layers() and does not depend on how callers invoke the loader.

Error Handling:
    - ConfigLoadError: A present file cannot be read or parsed (fatal)
    - ConfigValidationError: Every missing or mistyped field, reported
      together
    - All errors are chained with "from err" for better debugging

Example:
    Basic usage at process start:
        ```python
        from itil_config import load_config

        config = load_config("config")
        print(config.server.address)
        ```

    Resolving for the test suite:
        ```python
        config = load_config("config", environment="test")
        ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from itil_config.decoder import SectionRegistry, decode
from itil_config.environment import normalize_environment, select_environment
from itil_config.merge import MergedTree, merge_layers
from itil_config.schema import Schema
from itil_config.settings import Config
from itil_config.sources import (
    ConfigSource,
    DefaultsSource,
    EnvironmentSource,
    FileSource,
)

__all__ = [
    "BASE_NAME",
    "ENV_PREFIX",
    "LayerInfo",
    "LoadContext",
    "build_layers",
    "resolve_tree",
    "load_config",
]

BASE_NAME = "app"
ENV_PREFIX = "APP"

# -------------------------------
# Data types
# -------------------------------


@dataclass(frozen=True)
class LayerInfo:
    """One layer as it was used in a resolution pass.

    Attributes:
        name: Layer label ("defaults", "base file", ...).
        origin: File path or "defaults"/"environment".
        found: For file layers, whether the file existed. None otherwise.
    """

    name: str
    origin: str
    found: bool | None = None


@dataclass(frozen=True)
class LoadContext:
    """Metadata describing how the config was resolved.
    Useful for debugging and logging.
    """

    environment: str
    config_dir: Path
    layers: tuple[LayerInfo, ...] = field(default_factory=tuple)
    rejected_variables: Mapping[str, str] = field(default_factory=dict)


# -------------------------------
# Layer assembly
# -------------------------------


def build_layers(
    config_dir: Path,
    environment: str,
    *,
    environ: Mapping[str, str] | None = None,
    defaults: Mapping[str, Any] | None = None,
    extension: str = "toml",
    require_base: bool = False,
) -> list[ConfigSource]:
    """Returns the layers of one resolution pass, lowest precedence first.

    Args:
        config_dir: Directory holding the settings files.
        environment: Active environment name.
        environ: Variable table for the environment layer. Defaults to
            os.environ.
        defaults: Replacement for the compiled-in defaults tree.
        extension: Settings file extension without the dot.
        require_base: Whether a missing base file is an error.

    Returns:
        [defaults, base file, environment file, environment variables].
    """
    ext = extension.lstrip(".")
    return [
        DefaultsSource(defaults),
        FileSource(
            config_dir / f"{BASE_NAME}.{ext}",
            required=require_base,
            name="base file",
        ),
        FileSource(
            config_dir / f"{BASE_NAME}.{environment}.{ext}",
            required=False,
            name="environment file",
        ),
        EnvironmentSource(prefix=ENV_PREFIX, environ=environ),
    ]


def _layer_info(layer: ConfigSource) -> LayerInfo:
    return LayerInfo(
        name=layer.name,
        origin=layer.origin,
        found=getattr(layer, "found", None),
    )


# -------------------------------
# Public API
# -------------------------------


def resolve_tree(
    config_dir: Path | str = "config",
    *,
    environment: str | None = None,
    environ: Mapping[str, str] | None = None,
    defaults: Mapping[str, Any] | None = None,
    extension: str = "toml",
    require_base: bool = False,
) -> tuple[MergedTree, LoadContext]:
    """Loads and merges every layer without decoding.

    Performs the following operations:

    1. Select the environment (argument > APP_ENVIRONMENT > "development")
    2. Build the ordered layer list
    3. Load each layer and deep-merge left to right

    Args:
        config_dir: Directory holding app.<ext> and app.<environment>.<ext>.
        environment: Explicit environment name; skips APP_ENVIRONMENT.
        environ: Variable table for selector and environment layer.
            Defaults to os.environ.
        defaults: Replacement for the compiled-in defaults tree.
        extension: Settings file extension ("toml", "yaml" or "yml").
        require_base: Whether a missing base file is an error.

    Returns:
        A tuple (merged, context), where merged holds the tree and leaf
            origins and context records which layers were used.

    Raises:
        ConfigLoadError: If a present settings file cannot be read or parsed,
            or the base file is required and missing.
    """
    from itil_config.logging import get_global_logger

    logger = get_global_logger()
    config_dir = Path(config_dir)

    if environment is None:
        environment = select_environment(environ)
    else:
        environment = normalize_environment(environment)

    logger.verbose("CONFIG", f"Resolving configuration for {environment!r}")
    logger.verbose("CONFIG", f"Config directory: {config_dir}")

    layers = build_layers(
        config_dir,
        environment,
        environ=environ,
        defaults=defaults,
        extension=extension,
        require_base=require_base,
    )
    merged = merge_layers(layers)

    env_layer = layers[-1]
    context = LoadContext(
        environment=environment,
        config_dir=config_dir,
        layers=tuple(_layer_info(layer) for layer in layers),
        rejected_variables=dict(getattr(env_layer, "rejected", {})),
    )
    return merged, context


def load_config(
    config_dir: Path | str = "config",
    *,
    environment: str | None = None,
    environ: Mapping[str, str] | None = None,
    schema: Schema | None = None,
    registry: SectionRegistry | None = None,
    defaults: Mapping[str, Any] | None = None,
    extension: str = "toml",
    require_base: bool = False,
) -> Config:
    """Resolves the process configuration.

    Args:
        config_dir: Directory holding the settings files.
        environment: Explicit environment name; skips APP_ENVIRONMENT.
        environ: Variable table. Defaults to os.environ.
        schema: Built-in schema. Defaults to server + database.
        registry: Extension section decoders. Defaults to the process-wide
            registry.
        defaults: Replacement for the compiled-in defaults tree.
        extension: Settings file extension ("toml", "yaml" or "yml").
        require_base: Whether a missing base file is an error.

    Returns:
        The immutable, fully validated Config.

    Raises:
        ConfigLoadError: If a present settings file cannot be read or parsed.
        ConfigValidationError: With every missing or invalid field.
    """
    merged, context = resolve_tree(
        config_dir,
        environment=environment,
        environ=environ,
        defaults=defaults,
        extension=extension,
        require_base=require_base,
    )
    return decode(
        merged.tree,
        schema,
        registry=registry,
        origins=merged.origins,
        environment=context.environment,
    )
