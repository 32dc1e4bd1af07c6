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

"""Active environment selection.

The deployment context (development, test, production) decides which
environment-specific settings file is layered over the base file. It is read
from a single variable, APP_ENVIRONMENT; absence selects "development".

Selection never fails. Common short names are normalized (dev, prod,
testing) and any other name is passed through, so a deployment can add its
own environment such as "staging" just by shipping app.staging.toml.
"""

from __future__ import annotations

import os
from typing import Mapping

__all__ = [
    "ENVIRONMENT_VAR",
    "DEFAULT_ENVIRONMENT",
    "normalize_environment",
    "select_environment",
]

ENVIRONMENT_VAR = "APP_ENVIRONMENT"
DEFAULT_ENVIRONMENT = "development"

_ALIASES = {
    "dev": "development",
    "prod": "production",
    "testing": "test",
}


def normalize_environment(name: str) -> str:
    """Returns the canonical environment name for name.

    Args:
        name: Raw environment name, any casing, surrounding whitespace allowed.

    Returns:
        The lower-cased name with aliases resolved, or DEFAULT_ENVIRONMENT
        if name is blank.
    """
    cleaned = name.strip().lower()
    if not cleaned:
        return DEFAULT_ENVIRONMENT
    return _ALIASES.get(cleaned, cleaned)


def select_environment(environ: Mapping[str, str] | None = None) -> str:
    """Determines the active environment name.

    Args:
        environ: Variable table to read. Defaults to os.environ.

    Returns:
        The active environment name, "development" when APP_ENVIRONMENT is
        unset or blank.
    """
    from itil_config.logging import get_global_logger

    logger = get_global_logger()
    env = os.environ if environ is None else environ

    # Case-insensitive, as for the APP_* variables.
    raw = next(
        (value for key, value in env.items() if key.upper() == ENVIRONMENT_VAR),
        None,
    )
    if raw is None:
        logger.verbose(
            "CONFIG",
            f"{ENVIRONMENT_VAR} not set, using {DEFAULT_ENVIRONMENT!r}",
        )
        return DEFAULT_ENVIRONMENT

    name = normalize_environment(raw)
    logger.verbose("CONFIG", f"Active environment: {name}")
    return name
