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

"""Package rewrite (alias) resolution.

Some upstream packages are unlicensed or obsolete and must be silently
redirected to a licensed, actively-maintained replacement without
changing the code that consumes them. The rewrite table records, per
rule, the replacement and every original ``(name, version)`` pin it
stands in for.

Usage::

    from corepackages.rewrite import RewriteTable

    table = RewriteTable.load()  # built-in data
    table.resolve('promise', '8c520dea')
    # ResolvedPackage(rewritten=True, name='evaera/promise', version='4.0.0')
"""

from __future__ import annotations

import sys
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NamedTuple

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from corepackages.errors import ConfigError
from corepackages.identity import PackageVersion
from corepackages.logging import get_logger

__all__ = [
    'OriginalPackage',
    'ResolvedPackage',
    'RewriteRule',
    'RewriteTable',
]

logger = get_logger(__name__)

_DATA_DIR = Path(__file__).resolve().parent / 'data'
_REWRITES_TOML = _DATA_DIR / 'package_rewrites.toml'


@dataclass(frozen=True)
class OriginalPackage:
    """One pinned package a rule replaces.

    Attributes:
        name: Registry name of the original package.
        version: Exact pinned version (SemVer or commit hash).
        description: Why the package is replaced.
    """

    name: str
    version: str
    description: str = ''


@dataclass(frozen=True)
class RewriteRule:
    """A configured substitution.

    Attributes:
        rule_id: Table key in the rewrite configuration.
        new_source: Replacement package, including its own scope
            (e.g. ``evaera/promise``).
        new_version: Replacement SemVer version.
        originals: Pins this rule replaces.
    """

    rule_id: str
    new_source: str
    new_version: str
    originals: tuple[OriginalPackage, ...]

    def matches(self, name: str, version: str) -> bool:
        """Return ``True`` if ``(name, version)`` is one of the originals."""
        return any(o.name == name and o.version == version for o in self.originals)


class ResolvedPackage(NamedTuple):
    """Result of :meth:`RewriteTable.resolve`."""

    rewritten: bool
    name: str
    version: str


def _parse_rule(rule_id: str, raw: object, errors: list[str]) -> RewriteRule | None:
    """Validate one rule table, appending problems to *errors*."""
    if not isinstance(raw, Mapping):
        errors.append(f'[{rule_id}]: expected a table, got {type(raw).__name__}')
        return None
    start = len(errors)
    unknown = sorted(set(raw) - {'new_source', 'new_version', 'originals'})
    if unknown:
        errors.append(f'[{rule_id}]: Unknown key(s): {", ".join(unknown)}')
    new_source = raw.get('new_source')
    if not isinstance(new_source, str) or not new_source.strip():
        errors.append(f'[{rule_id}].new_source: expected a non-empty string')
    new_version = raw.get('new_version')
    if not isinstance(new_version, str):
        errors.append(f'[{rule_id}].new_version: expected a string')
    elif not new_version.strip() or not PackageVersion.parse(new_version).is_semver:
        errors.append(f'[{rule_id}].new_version: {new_version!r} is not a SemVer version')
    raw_originals = raw.get('originals', [])
    originals: list[OriginalPackage] = []
    if not isinstance(raw_originals, list) or not raw_originals:
        errors.append(f'[{rule_id}].originals: expected a non-empty array of tables')
    else:
        for i, orig in enumerate(raw_originals):
            if not isinstance(orig, Mapping):
                errors.append(f'[{rule_id}].originals[{i}]: expected a table')
                continue
            name = orig.get('name')
            version = orig.get('version')
            description = orig.get('description', '')
            if not isinstance(name, str) or not name:
                errors.append(f'[{rule_id}].originals[{i}].name: expected a non-empty string')
            if not isinstance(version, str) or not version:
                errors.append(f'[{rule_id}].originals[{i}].version: expected a non-empty string')
            if not isinstance(description, str):
                errors.append(f'[{rule_id}].originals[{i}].description: expected a string')
            if isinstance(name, str) and isinstance(version, str) and isinstance(description, str):
                originals.append(OriginalPackage(name=name, version=version, description=description))
    if len(errors) > start:
        return None
    return RewriteRule(
        rule_id=rule_id,
        new_source=str(new_source).strip(),
        new_version=str(new_version),
        originals=tuple(originals),
    )


class RewriteTable:
    """Ordered, read-only table of rewrite rules.

    Args:
        rules: Rules in declaration order. The first matching rule wins.
    """

    def __init__(self, rules: tuple[RewriteRule, ...] | list[RewriteRule] = ()) -> None:
        self._rules: tuple[RewriteRule, ...] = tuple(rules)
        for name, version in self.find_duplicate_originals():
            logger.warning('rewrite_original_claimed_twice', name=name, version=version)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, source: Path | None = None) -> RewriteTable:
        """Build a table from a ``{rule_id: {...}}`` mapping.

        Raises:
            ConfigError: Listing every malformed rule.
        """
        errors: list[str] = []
        rules = [_parse_rule(rule_id, raw, errors) for rule_id, raw in data.items()]
        if errors:
            raise ConfigError(errors, source=source)
        return cls([r for r in rules if r is not None])

    @classmethod
    def load(cls, path: Path | None = None) -> RewriteTable:
        """Load the rewrite table from TOML.

        Args:
            path: Rewrite table to read. Defaults to the built-in
                ``data/package_rewrites.toml``.

        Raises:
            ConfigError: If the file is missing, unparsable or invalid.
        """
        toml_path = path or _REWRITES_TOML
        try:
            with toml_path.open('rb') as f:
                data = tomllib.load(f)
        except OSError as exc:
            raise ConfigError([f'cannot read rewrite table: {exc.strerror or exc}'], source=toml_path) from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError([f'invalid TOML: {exc}'], source=toml_path) from exc
        table = cls.from_dict(data, source=toml_path)
        logger.debug('loaded_rewrite_table', path=str(toml_path), rules=len(table))
        return table

    @property
    def rules(self) -> tuple[RewriteRule, ...]:
        """Rules in declaration order."""
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def resolve(self, name: str, version: str) -> ResolvedPackage:
        """Return the substitute for ``(name, version)``, if any.

        Matching is exact: lock entries are pinned, so no range logic
        applies. Inputs that match no rule are echoed back unchanged.
        """
        for rule in self._rules:
            if rule.matches(name, version):
                return ResolvedPackage(True, rule.new_source, rule.new_version)
        return ResolvedPackage(False, name, version)

    def is_rewritten(self, name: str, version: str) -> bool:
        """Return ``True`` if ``(name, version)`` is replaced by some rule."""
        return self.resolve(name, version).rewritten

    def find_duplicate_originals(self) -> list[tuple[str, str]]:
        """Return ``(name, version)`` pins claimed by more than one rule."""
        counts: Counter[tuple[str, str]] = Counter()
        for rule in self._rules:
            for pin in {(o.name, o.version) for o in rule.originals}:
                counts[pin] += 1
        return sorted(pin for pin, n in counts.items() if n > 1)
