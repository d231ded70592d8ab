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

"""Error taxonomy for corepackages.

Every error raised by the core derives from :class:`CorePackagesError`
so callers can catch the whole family at the reporting layer::

    ┌──────────────────────────────┬────────────────────────────────────────┐
    │ Error                        │ When                                   │
    ├──────────────────────────────┼────────────────────────────────────────┤
    │ ConfigError                  │ Rewrite table, license data or user    │
    │                              │ config is malformed. Fatal at start.   │
    ├──────────────────────────────┼────────────────────────────────────────┤
    │ MalformedInputError          │ A lock line, lock file, identity or    │
    │   InvalidIdentityError       │ source file cannot be used. Fatal for  │
    │   LockParseError             │ the affected package only.             │
    │   SourceReadError            │                                        │
    ├──────────────────────────────┼────────────────────────────────────────┤
    │ PackageDiscoveryError        │ Wraps a failure with the package path. │
    ├──────────────────────────────┼────────────────────────────────────────┤
    │ UnresolvedDependencyError    │ A declared dependency is not in the    │
    │                              │ registry under any lookup strategy.    │
    └──────────────────────────────┴────────────────────────────────────────┘

License ambiguity is never an error: it is represented as an
``Unlicensed`` verdict and flows through the licensing queries.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    'ConfigError',
    'CorePackagesError',
    'GraphNotBuiltError',
    'InvalidIdentityError',
    'LockParseError',
    'MalformedInputError',
    'PackageDiscoveryError',
    'PackageNotFoundError',
    'SourceReadError',
    'UnresolvedDependencyError',
]


class CorePackagesError(Exception):
    """Base class for all corepackages errors.

    Attributes:
        message: Human-readable description of the problem.
        hint: Optional actionable suggestion, rendered after the message.
    """

    def __init__(self, message: str, *, hint: str = '') -> None:
        self.message = message
        self.hint = hint
        text = f'{message}\n  hint: {hint}' if hint else message
        super().__init__(text)


class ConfigError(CorePackagesError):
    """Raised when static configuration or user config fails validation.

    Attributes:
        errors: List of human-readable error strings.
        source: File the configuration was read from, if any.
    """

    def __init__(self, errors: list[str], *, source: Path | None = None, hint: str = '') -> None:
        self.errors = errors
        self.source = source
        where = f' in {source}' if source else ''
        bullet_list = '\n'.join(f'  - {e}' for e in errors)
        super().__init__(f'Configuration has {len(errors)} error(s){where}:\n{bullet_list}', hint=hint)


class MalformedInputError(CorePackagesError):
    """Base class for unusable upstream input."""


class InvalidIdentityError(MalformedInputError):
    """Raised when a raw package name cannot be normalized.

    Attributes:
        raw_name: The offending name string.
    """

    def __init__(self, raw_name: str, detail: str) -> None:
        self.raw_name = raw_name
        super().__init__(
            f'Invalid package name {raw_name!r}: {detail}',
            hint='Names must be "name" or "scope/name"; a corrupt bundle is the usual cause.',
        )


class LockParseError(MalformedInputError):
    """Raised when a lock manifest or one of its dependency lines is malformed.

    Attributes:
        detail: The problem, without location context.
        path: The lock file, when known.
        line: The offending dependency line, when the failure is line-level.
    """

    def __init__(self, message: str, *, path: Path | None = None, line: str = '') -> None:
        self.detail = message
        self.path = path
        self.line = line
        parts = [message]
        if line:
            parts.append(f'  line: {line!r}')
        if path is not None:
            parts.append(f'  --> {path}')
        super().__init__('\n'.join(parts))


class SourceReadError(MalformedInputError):
    """Raised when a script source file cannot be read as UTF-8 text."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f'Failed to read script source {path}: {reason}')


class PackageDiscoveryError(CorePackagesError):
    """Raised when a package directory cannot be turned into a package.

    The underlying error is available as ``__cause__``.

    Attributes:
        path: The package directory.
        reason: Why the package could not be created.
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f'Failed to create package from {path}: {reason}')


class UnresolvedDependencyError(CorePackagesError):
    """Raised when a declared dependency cannot be found in the registry.

    Attributes:
        dependant: Registry name of the package declaring the dependency.
        dependency: Registry name of the missing dependency.
        version: The pinned version that was requested.
    """

    def __init__(self, dependant: str, dependency: str, version: str) -> None:
        self.dependant = dependant
        self.dependency = dependency
        self.version = version
        super().__init__(
            f'Dependency {dependency} (v{version}) of package {dependant} does not exist in the registry',
            hint='Check that the dependency was extracted into the index, or add a rewrite rule for it.',
        )


class PackageNotFoundError(CorePackagesError):
    """Raised when a query names a package the registry does not know."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'Package {name!r} does not exist in the registry')


class GraphNotBuiltError(CorePackagesError):
    """Raised when graph edges are queried before they are constructed."""

    def __init__(self) -> None:
        super().__init__(
            'Dependency graph has not been constructed',
            hint='Call PackageRegistry.construct_graph_edges() after discovery.',
        )
