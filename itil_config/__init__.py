"""itil-config - configuration resolution for the service-desk backend

Resolves the typed, immutable configuration of the ITIL backend (incidents,
problems, configuration items, change requests) from layered sources:

- Compiled-in defaults
- A base settings file (config/app.toml)
- An environment-specific settings file (config/app.<environment>.toml)
- APP_* environment variables (APP_SERVER__PORT, APP_DATABASE__URL, ...)

Layers are deep-merged field by field with a fixed precedence and the result
is decoded against a schema that reports every broken key at once.

Quick Start:
Check a deployment before it boots:

    $ itil-config validate --environment production

Show the resolved values and where each one came from:

    $ itil-config show --origins

Resolve at process start:

    from itil_config import load_config

    config = load_config("config")
    bind = config.server.address

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Layered configuration resolution for the ITIL backend"

from itil_config.decoder import SectionRegistry, decode, register_section
from itil_config.environment import select_environment
from itil_config.exceptions import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    FieldError,
    InvalidTypeError,
    ItilConfigError,
    MalformedFileError,
    MissingFieldError,
    UnreadableFileError,
)
from itil_config.loader import load_config, resolve_tree
from itil_config.merge import deep_merge, merge
from itil_config.results import ValidationResult
from itil_config.schema import Field, Kind, Schema, Section
from itil_config.settings import Config, DatabaseConfig, ServerConfig
from itil_config.validation import validate_config

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "load_config",
    "resolve_tree",
    "validate_config",
    "select_environment",
    "decode",
    "deep_merge",
    "merge",
    "register_section",
    "SectionRegistry",
    "Field",
    "Kind",
    "Schema",
    "Section",
    "Config",
    "DatabaseConfig",
    "ServerConfig",
    "ValidationResult",
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
