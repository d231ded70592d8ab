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

r"""Package identity and version modeling.

A single package is known under several names, depending on who is
asking::

    ┌──────────────────┬──────────────────────────────┬──────────────────────────┐
    │ Name             │ Example                      │ Used by                  │
    ├──────────────────┼──────────────────────────────┼──────────────────────────┤
    │ path name        │ ChalkLua-198f600a-0.1.3      │ the package index on disk│
    ├──────────────────┼──────────────────────────────┼──────────────────────────┤
    │ unprocessed name │ roblox/Emittery              │ lock.toml ``name``       │
    ├──────────────────┼──────────────────────────────┼──────────────────────────┤
    │ registry name    │ roblox-emittery              │ cross-package lookups,   │
    │                  │                              │ the Wally manifest       │
    ├──────────────────┼──────────────────────────────┼──────────────────────────┤
    │ scope / scoped   │ roblox / emittery            │ locating package sources │
    └──────────────────┴──────────────────────────────┴──────────────────────────┘

Wally only supports one scope (used for the publishing scope), so a
lock scope is flattened into a prefix of the registry name.

Versions in lock files are either SemVer (``1.1.0``) or an opaque
commit hash (``8c520dea``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePath

from corepackages.errors import InvalidIdentityError

__all__ = [
    'PackageIdentity',
    'PackageVersion',
    'format_registry_name',
    'to_kebab_case',
]

# Word boundaries: acronym runs (``UI`` in ``UIBlox``), capitalized and
# lowercase words, bare uppercase runs and digit runs. Anything else
# (``_``, ``-``, whitespace, punctuation) separates words.
_WORD_RE = re.compile(r'[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|[0-9]+')

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
_SEMVER_RE = re.compile(
    r'^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)'
    r'(?:-(?P<pre>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?'
    r'(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$'
)


def to_kebab_case(name: str) -> str:
    """Convert *name* to kebab-case, preserving any ``/`` scope separator.

    Examples::

        to_kebab_case('LuauPolyfill')       # 'luau-polyfill'
        to_kebab_case('UIBlox')             # 'ui-blox'
        to_kebab_case('Roact17UpgradeFlag') # 'roact-17-upgrade-flag'
        to_kebab_case('roblox/Emittery')    # 'roblox/emittery'
    """
    return '/'.join('-'.join(w.lower() for w in _WORD_RE.findall(segment)) for segment in name.split('/'))


def _split_scope(raw_name: str) -> tuple[str | None, str]:
    """Return ``(scope, name)`` in kebab-case for a raw name."""
    if raw_name.count('/') > 1:
        raise InvalidIdentityError(raw_name, 'expected at most one "/" between scope and name')
    kebab = to_kebab_case(raw_name.strip())
    if '/' not in kebab:
        if not kebab:
            raise InvalidIdentityError(raw_name, 'name is empty')
        return None, kebab
    scope, name = kebab.split('/')
    if not scope or not name:
        raise InvalidIdentityError(raw_name, 'scope and name must both be non-empty')
    return scope, name


def format_registry_name(raw_name: str) -> str:
    """Return the flattened, kebab-cased registry name for *raw_name*.

    ``roblox/Lumberyak`` becomes ``roblox-lumberyak``.

    Raises:
        InvalidIdentityError: If the name is empty or has more than one ``/``.
    """
    scope, name = _split_scope(raw_name)
    return f'{scope}-{name}' if scope else name


@dataclass(frozen=True)
class PackageIdentity:
    """All names a package is known by.

    Attributes:
        path_name: Directory name in the package index,
            e.g. ``Emittery-edcba0e9-2.4.1``.
        registry_name: Kebab-cased, scope-flattened name,
            e.g. ``roblox-emittery``.
        unprocessed_name: The name exactly as written in ``lock.toml``.
        scope: Kebab-cased scope for scoped packages, else ``None``.
        scoped_name: Kebab-cased name after the scope, else ``None``.
    """

    path_name: str
    registry_name: str
    unprocessed_name: str
    scope: str | None = None
    scoped_name: str | None = None

    @classmethod
    def from_name(cls, raw_name: str, package_path: str | PurePath) -> PackageIdentity:
        """Build an identity from a lock name and the package directory.

        Args:
            raw_name: Name from ``lock.toml``, optionally ``scope/name``.
            package_path: Package directory; only its last component is used.

        Raises:
            InvalidIdentityError: If either name cannot be normalized.
        """
        path_name = PurePath(package_path).name
        if not path_name:
            raise InvalidIdentityError(str(package_path), 'package path has no final component')
        scope, name = _split_scope(raw_name)
        return cls(
            path_name=path_name,
            registry_name=f'{scope}-{name}' if scope else name,
            unprocessed_name=raw_name,
            scope=scope,
            scoped_name=name if scope else None,
        )

    @property
    def is_scoped(self) -> bool:
        """``True`` if the lock name carried a scope."""
        return self.scope is not None

    def wally_name(self, scope: str) -> str:
        """Return the published name under the Wally *scope*."""
        return f'{scope}/{self.registry_name}'

    @property
    def source_dir_names(self) -> tuple[str, ...]:
        """Candidate directory names holding the package sources.

        Some packages keep their sources in ``<Name>/<Name>`` rather than
        ``<Name>/src``. The lock name (without scope) is tried as written,
        then in its kebab-cased form.
        """
        bare = self.unprocessed_name.split('/')[-1].strip()
        candidates = [bare]
        if self.scoped_name and self.scoped_name != bare:
            candidates.append(self.scoped_name)
        return tuple(candidates)


@dataclass(frozen=True)
class PackageVersion:
    """A pinned version: either SemVer or an opaque commit hash.

    Attributes:
        raw: The version text as written in the lock.
        is_semver: ``True`` for SemVer, ``False`` for a commit hash.
    """

    raw: str
    is_semver: bool

    @classmethod
    def parse(cls, raw: str) -> PackageVersion:
        """Parse *raw* into a :class:`PackageVersion`.

        Anything that is not strict SemVer 2.0 is treated as a commit hash.

        Raises:
            InvalidIdentityError: If *raw* is empty.
        """
        text = raw.strip()
        if not text:
            raise InvalidIdentityError(raw, 'version is empty')
        return cls(raw=text, is_semver=_SEMVER_RE.match(text) is not None)

    @property
    def is_commit(self) -> bool:
        """``True`` if this version is a commit hash."""
        return not self.is_semver

    @property
    def semver(self) -> tuple[int, int, int] | None:
        """``(major, minor, patch)`` for SemVer versions, else ``None``."""
        m = _SEMVER_RE.match(self.raw)
        if m is None:
            return None
        return int(m['major']), int(m['minor']), int(m['patch'])

    def matches_commit(self, commit: str) -> bool:
        """Return ``True`` if this is a commit version and *commit* starts with it."""
        return self.is_commit and bool(commit) and commit.lower().startswith(self.raw.lower())

    def __str__(self) -> str:
        return self.raw
