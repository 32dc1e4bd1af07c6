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

"""Public API return types for itil-config.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Note:
    Only public API return types belong in this module. The resolved
    configuration itself lives in itil_config.settings, and internal types
    (like LoadContext) stay co-located with their related logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from itil_config.loader import LayerInfo
from itil_config.settings import Config


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a configuration directory.

    Attributes:
        status: Validation status ("valid" or "invalid").
        environment: Environment the configuration was resolved for.
        errors: Error messages, one per broken key or file (empty if valid).
        warnings: Warning messages (ignored variables, missing files).
        layers: The layers that took part, in precedence order.
        config: The resolved configuration when valid, else None.
    """

    status: str
    environment: str
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    layers: tuple[LayerInfo, ...] = ()
    config: Config | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"
