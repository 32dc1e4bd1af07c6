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

"""Deep merging of configuration layers.

Merge Behavior:
    Layers are folded left to right with "last wins" semantics:

    - **Dicts**: Recursively merged (keys from overlay override base)
    - **Lists**: Completely replaced (NOT appended/extended)
    - **Scalars**: Overwritten (strings, numbers, booleans)

    Setting server.port in a later layer therefore leaves a server.ip from
    an earlier layer in place.

Provenance:
    merge_layers() also records, for every leaf in the result, the origin of
    the layer that supplied it. The decoder attaches that origin to type
    errors so the operator knows which file or variable to fix.

Example:
    ```python
    from itil_config.merge import merge

    merged = merge([
        {"server": {"ip": "127.0.0.1", "port": 3000}},
        {"server": {"port": "8080"}},
    ])
    print(merged)  # {'server': {'ip': '127.0.0.1', 'port': '8080'}}
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Iterator

import yaml

from itil_config.schema import FieldPath, format_path
from itil_config.settings import mask_url

if TYPE_CHECKING:
    from itil_config.sources import ConfigSource

__all__ = [
    "MergedTree",
    "deep_merge",
    "merge",
    "merge_layers",
    "iter_leaves",
]


@dataclass
class MergedTree:
    """Result of folding all layers.

    Attributes:
        tree: The merged configuration tree.
        origins: Origin of each leaf path in tree.
    """

    tree: dict[str, Any] = field(default_factory=dict)
    origins: dict[FieldPath, str] = field(default_factory=dict)

    def origin_of(self, path: Iterable[str]) -> str | None:
        return self.origins.get(tuple(path))


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep-merges two dicts with "overlay wins" semantics.

    This function does not mutate inputs; returns a new dict. Nested dicts
    from overlay are copied, so the result never aliases overlay.

    Args:
        base: The base dictionary.
        overlay: The overlay dictionary that takes precedence.

    Returns:
        A new dictionary with the merged contents.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = deep_merge(result[k], v)
        elif isinstance(v, dict):
            result[k] = deep_merge({}, v)
        else:
            # Replace lists and scalars entirely
            result[k] = v
    return result


def merge(trees: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Folds trees left to right; later trees win at the leaf level."""
    merged: dict[str, Any] = {}
    for tree in trees:
        merged = deep_merge(merged, tree)
    return merged


def iter_leaves(
    tree: dict[str, Any], prefix: FieldPath = ()
) -> Iterator[tuple[FieldPath, Any]]:
    """Yields (path, value) for every non-dict value in tree."""
    for key, value in tree.items():
        path = prefix + (key,)
        if isinstance(value, dict):
            yield from iter_leaves(value, path)
        else:
            yield path, value


def _masked(tree: dict[str, Any]) -> dict[str, Any]:
    """Copy of tree with passwords in URL values hidden."""
    masked: dict[str, Any] = {}
    for k, v in tree.items():
        if isinstance(v, dict):
            masked[k] = _masked(v)
        elif isinstance(v, str) and "://" in v:
            masked[k] = mask_url(v)
        else:
            masked[k] = v
    return masked


def _log_tree(title: str, tree: dict[str, Any]) -> None:
    """Dump a tree as YAML at debug level."""
    from itil_config.logging import get_global_logger

    logger = get_global_logger()
    logger.debug("MERGE", f"--- {title} ---")
    if not tree:
        logger.debug("MERGE", "(empty)")
        return
    dumped = yaml.safe_dump(_masked(tree), default_flow_style=False, sort_keys=False)
    for line in dumped.split("\n"):
        if line.strip():
            logger.debug("MERGE", line)


def merge_layers(layers: Iterable[ConfigSource]) -> MergedTree:
    """Loads every layer in order and folds them into one tree.

    Args:
        layers: Sources in precedence order, lowest first.

    Returns:
        The merged tree with the origin of every leaf.

    Raises:
        ConfigLoadError: Propagated from a file layer that cannot be loaded.
    """
    from itil_config.logging import get_global_logger

    logger = get_global_logger()

    merged: dict[str, Any] = {}
    origins: dict[FieldPath, str] = {}
    count = 0
    for layer in layers:
        tree = layer.load()
        count += 1
        _log_tree(f"Content from {layer.name} ({layer.origin})", tree)
        for path, _ in iter_leaves(tree):
            origins[path] = layer.describe(path)
        merged = deep_merge(merged, tree)

    # Drop origins of leaves a later layer replaced with a section or scalar.
    leaves = {path for path, _ in iter_leaves(merged)}
    origins = {path: origin for path, origin in origins.items() if path in leaves}

    logger.verbose("MERGE", f"Deep merged {count} layer(s)")
    logger.verbose(
        "MERGE",
        f"Final tree has {len(merged)} top-level key(s): {', '.join(merged) or '(none)'}",
    )
    _log_tree("Final merged configuration", merged)
    for path in sorted(origins):
        logger.debug("MERGE", f"{format_path(path)} <- {origins[path]}")

    return MergedTree(tree=merged, origins=origins)
