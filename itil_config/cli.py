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

"""Command-line interface for itil-config.

This module provides the `itil-config` entry point for checking a
deployment's configuration before the backend boots.

Commands:

    validate: Resolve the configuration and report every broken key
    show: Print the resolved configuration (secrets masked)

Example:
    Validate the production configuration:
        ```bash
        $ itil-config validate --config-dir config --environment production
        ```

    Show where every value came from:
        ```bash
        $ APP_SERVER__PORT=8080 itil-config show --origins
        ```

Exit Codes:

- 0: Success
- 1: Error (unreadable file, malformed file, or invalid configuration)

Note:
    Commands are argparse subparsers.
    Each command has its own handler function (cmd_<command>). Verbose mode
    shows tracebacks on errors; debug mode also dumps every layer.
"""

from __future__ import annotations

import argparse
from importlib.metadata import PackageNotFoundError, version
import sys

import yaml

from itil_config.exceptions import (
    ConfigLoadError,
    ConfigValidationError,
    ItilConfigError,
)
from itil_config.loader import load_config, resolve_tree
from itil_config.logging import get_logger, set_global_logger
from itil_config.merge import iter_leaves
from itil_config.schema import format_path
from itil_config.settings import encode, mask_url
from itil_config.validation import validate_config


def _version() -> str:
    try:
        return version("itil-config")
    except PackageNotFoundError:
        from itil_config import __version__

        return __version__


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'itil-config validate' command.

    Resolves the configuration exactly as the backend would at boot and
    prints every error and warning.

    Args:
        args: Parsed command-line arguments containing the config directory,
            environment override, and verbose flag.

    Returns:
        Exit code (0 for valid configuration, 1 for invalid).
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    print(f"Validating configuration in: {args.config_dir}")
    print()

    result = validate_config(
        args.config_dir,
        environment=args.environment,
        extension=args.extension,
        require_base=args.require_base,
    )

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Environment: {result.environment}")
    print(f"Status:      {result.status.upper()}")
    for layer in result.layers:
        marker = "" if layer.found is not False else " (not found)"
        print(f"Layer:       {layer.name}: {layer.origin}{marker}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.is_valid:
        print()
        print("[SUCCESS] Configuration is valid!")
        return 0
    print()
    print(f"[FAILED] Configuration is invalid with {len(result.errors)} error(s).")
    return 1


def cmd_show(args: argparse.Namespace) -> int:
    """Handler for 'itil-config show' command.

    Prints the decoded configuration as YAML with the database password
    masked. With --origins, prints the merged tree's leaves and the layer
    each one came from instead.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    try:
        if args.origins:
            merged, context = resolve_tree(
                args.config_dir,
                environment=args.environment,
                extension=args.extension,
                require_base=args.require_base,
            )
            print(f"# environment: {context.environment}")
            for path, value in iter_leaves(merged.tree):
                if path == ("database", "url") and isinstance(value, str):
                    value = mask_url(value)
                origin = merged.origin_of(path) or "?"
                print(f"{format_path(path)} = {value!r}  # {origin}")
            return 0

        config = load_config(
            args.config_dir,
            environment=args.environment,
            extension=args.extension,
            require_base=args.require_base,
        )
    except ConfigLoadError as err:
        print(f"Error: cannot load {err.path}: {err.detail}")
        if args.verbose or args.debug:
            import traceback

            traceback.print_exc()
        return 1
    except ConfigValidationError as err:
        print(f"Error: {err}")
        return 1
    except ItilConfigError as err:
        # Registry or schema misuse
        print(f"Error: {err}")
        if args.verbose or args.debug:
            import traceback

            traceback.print_exc()
        return 1

    print(f"# environment: {config.environment}")
    print(
        yaml.safe_dump(
            encode(config, mask_secrets=True),
            default_flow_style=False,
            sort_keys=False,
        ),
        end="",
    )
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config-dir",
        default="config",
        help="Directory holding app.toml and app.<environment>.toml (default: ./config)",
    )
    parser.add_argument(
        "-e",
        "--environment",
        default=None,
        help="Environment to resolve (default: $APP_ENVIRONMENT or development)",
    )
    parser.add_argument(
        "--extension",
        default="toml",
        choices=["toml", "yaml", "yml"],
        help="Settings file extension (default: toml)",
    )
    parser.add_argument(
        "--require-base",
        action="store_true",
        help="Fail if the base settings file is missing",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser with all subcommands registered."""
    parser = argparse.ArgumentParser(
        prog="itil-config",
        description="Resolve and check the service-desk backend configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"itil-config {_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Resolve the configuration and report every error",
        description="Load all layers, decode, and list every missing or invalid key.",
    )
    _add_common_arguments(parser_validate)
    parser_validate.set_defaults(func=cmd_validate)

    # 'show' command
    parser_show = subparsers.add_parser(
        "show",
        help="Print the resolved configuration",
        description="Print the resolved configuration as YAML with secrets masked.",
    )
    _add_common_arguments(parser_show)
    parser_show.add_argument(
        "--origins",
        action="store_true",
        help="Print each merged value with the layer it came from",
    )
    parser_show.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Dump every layer while resolving (implies --verbose)",
    )
    parser_show.set_defaults(func=cmd_show)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the itil-config CLI.

    This function is registered as the 'itil-config' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
