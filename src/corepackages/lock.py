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

"""Parse Rotriever ``lock.toml`` files and their dependency strings.

Each package in the index carries a lock manifest::

    name = "Emittery"
    version = "3.2.1"
    commit = "792ffec6ca98a6d725d25d678d693f486c1d2c75"
    source = "url+https://github.com/roblox/jest-roblox"
    dependencies = [
        "LuauPolyfill LuauPolyfill 1.1.0 url+https://github.com/roblox/luau-polyfill",
        "Promise <patched> Promise 8c520dea git+https://github.com/roblox/promise-upgrade#v0.1.0",
    ]

A dependency string is ``path_name [<patched>] registry_name version
[source...]``. The path name is how Lua code requires the dependency;
the registry name (after normalization and rewrite resolution) is how
the registry finds it.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from corepackages.errors import InvalidIdentityError, LockParseError
from corepackages.identity import PackageVersion, format_registry_name
from corepackages.rewrite import RewriteTable

__all__ = [
    'LOCK_FILE_NAME',
    'DependencyReference',
    'PackageLock',
    'parse_dependency_line',
]

LOCK_FILE_NAME = 'lock.toml'

_PATCHED_MARKER = '<patched>'


@dataclass(frozen=True)
class DependencyReference:
    """One declared dependency of a package.

    Attributes:
        registry_name: Registry name of the dependency; the substitute's
            name when rewritten.
        path_name: Name the dependency is required by from Lua. It is the
            key in the Wally manifest: ``PATH_NAME = "SCOPE/REGISTRY_NAME@VERSION"``.
        version: Pinned version; the substitute's when rewritten.
        is_rewritten: The original dependency was replaced by a rewrite rule.
    """

    registry_name: str
    path_name: str
    version: PackageVersion
    is_rewritten: bool = False


def parse_dependency_line(line: str, resolver: RewriteTable) -> DependencyReference:
    """Parse one lock dependency string.

    Args:
        line: ``path_name [<patched>] registry_name version [source...]``.
        resolver: Rewrite table applied to the normalized name/version.

    Raises:
        LockParseError: If a required token is missing or the registry
            name cannot be normalized.
    """
    tokens = iter(line.split())

    path_name = next(tokens, None)
    if path_name is None:
        raise LockParseError('Expected path name', line=line)
    registry_token = next(tokens, None)
    if registry_token == _PATCHED_MARKER:
        registry_token = next(tokens, None)
        if registry_token is None:
            raise LockParseError(f'Expected registry name after {_PATCHED_MARKER}', line=line)
    if registry_token is None:
        raise LockParseError('Expected registry name', line=line)
    raw_version = next(tokens, None)
    if raw_version is None:
        raise LockParseError('Expected version', line=line)

    try:
        registry_name = format_registry_name(registry_token)
    except InvalidIdentityError as exc:
        raise LockParseError(exc.message, line=line) from exc

    resolved = resolver.resolve(registry_name, raw_version)
    return DependencyReference(
        registry_name=resolved.name,
        path_name=path_name,
        version=PackageVersion.parse(resolved.version),
        is_rewritten=resolved.rewritten,
    )


@dataclass(frozen=True)
class PackageLock:
    """Raw Rotriever lock manifest.

    Attributes:
        name: Package name as written (may be ``scope/Name``).
        version: Package version.
        commit: Commit the package was built from.
        source: Source locator (``url+https://...``).
        dependencies: Raw dependency strings, or ``None`` when the lock
            declares no ``dependencies`` key.
        path: File the lock was loaded from, if any.
    """

    name: str
    version: PackageVersion
    commit: str
    source: str
    dependencies: tuple[str, ...] | None = None
    path: Path | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, path: Path | None = None) -> PackageLock:
        """Validate and build a lock from parsed TOML.

        Raises:
            LockParseError: Listing every invalid field.
        """
        errors: list[str] = []
        for key in ('name', 'version', 'commit', 'source'):
            value = data.get(key)
            if value is None:
                errors.append(f'missing required field "{key}"')
            elif not isinstance(value, str) or not value.strip():
                errors.append(f'{key}: expected a non-empty string, got {value!r}')
        version: PackageVersion | None = None
        if isinstance(data.get('version'), str) and data['version'].strip():
            version = PackageVersion.parse(data['version'])
            if not version.is_semver:
                errors.append(f'version: {data["version"]!r} is not a SemVer version')

        raw_deps = data.get('dependencies')
        dependencies: tuple[str, ...] | None = None
        if raw_deps is not None:
            if not isinstance(raw_deps, list) or not all(isinstance(d, str) for d in raw_deps):
                errors.append('dependencies: expected a list of strings')
            else:
                dependencies = tuple(raw_deps)

        if errors or version is None:
            raise LockParseError('Invalid lock manifest:\n' + '\n'.join(f'  - {e}' for e in errors), path=path)
        return cls(
            name=data['name'].strip(),
            version=version,
            commit=data['commit'].strip(),
            source=data['source'].strip(),
            dependencies=dependencies,
            path=path,
        )

    @classmethod
    def load(cls, lock_path: Path) -> PackageLock:
        """Read and validate a ``lock.toml`` file.

        Raises:
            LockParseError: If the file is missing, unparsable or invalid.
        """
        try:
            with lock_path.open('rb') as f:
                data = tomllib.load(f)
        except FileNotFoundError as exc:
            raise LockParseError('Lock does not exist', path=lock_path) from exc
        except OSError as exc:
            raise LockParseError(f'Failed to read lock: {exc.strerror or exc}', path=lock_path) from exc
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            raise LockParseError(f'Failed to parse lock as TOML: {exc}', path=lock_path) from exc
        return cls.from_dict(data, path=lock_path)

    @property
    def has_dependencies(self) -> bool:
        """``True`` if the lock declares a ``dependencies`` key."""
        return self.dependencies is not None

    def parse_dependencies(self, resolver: RewriteTable) -> list[DependencyReference] | None:
        """Parse every dependency string into a :class:`DependencyReference`.

        Returns:
            The references in lock order, or ``None`` when the lock has
            no ``dependencies`` key. Callers must not treat ``None`` as a
            parse failure.

        Raises:
            LockParseError: If any dependency string is malformed.
        """
        if self.dependencies is None:
            return None
        try:
            return [parse_dependency_line(line, resolver) for line in self.dependencies]
        except LockParseError as exc:
            if exc.path is None and self.path is not None:
                raise LockParseError(exc.detail, path=self.path, line=exc.line) from exc
            raise
