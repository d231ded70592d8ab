# Copyright 2026 Google LLC
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
#
# SPDX-License-Identifier: Apache-2.0

"""Shared leaf-level types used across corepackages.

This module must have **zero** imports from other ``corepackages``
modules to avoid circular-import chains.  It is safe to import
from any module in the project.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    'ScriptLicense',
]


@dataclass(frozen=True, order=True)
class ScriptLicense:
    """License verdict for a single script file.

    Attributes:
        name: The matched license name (e.g. ``"MIT"``).
            Empty string if the script is unlicensed.
    """

    name: str = ''

    @classmethod
    def licensed(cls, name: str) -> ScriptLicense:
        """Return a verdict crediting the script to *name*."""
        if not name:
            msg = 'A licensed verdict needs a license name'
            raise ValueError(msg)
        return cls(name=name)

    @classmethod
    def unlicensed(cls) -> ScriptLicense:
        """Return the verdict for a script with no creditable license."""
        return cls()

    @property
    def is_licensed(self) -> bool:
        """``True`` if a license was matched."""
        return bool(self.name)

    def __str__(self) -> str:
        return self.name or 'Unlicensed'
