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

"""User configuration loaded from ``corepackages.toml``.

Every key is optional. The file is validated section by section; all
problems are collected and reported together in one
:class:`~corepackages.errors.ConfigError`.

Example::

    scope = "core-packages"
    check_licenses = true
    banned_packages = ["LuauPolyfill-2fca3173-0.3.4"]
    min_similarity = 0.95

    [manifest]
    authors = ["Roblox Corporation"]
    realm = "shared"

    [source_replacements]
    "Scheduler/getJestMatchers.roblox.lua" = "replacements/getJestMatchers.roblox.lua"

Priority order (highest wins):

1. ``COREPACKAGES_CHECK_LICENSES`` env var (``0``/``false``/``no``
   disables license checking).
2. ``corepackages.toml``.
3. Built-in defaults.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from corepackages.errors import ConfigError
from corepackages.license_classifier import LicenseClassifier, SourceReader
from corepackages.logging import get_logger
from corepackages.registry import PackageRegistry
from corepackages.rewrite import RewriteTable

__all__ = [
    'CONFIG_FILENAME',
    'DEFAULT_SCOPE',
    'ExtractorConfig',
    'ManifestConfig',
    'build_registry',
    'load_registry',
]

logger = get_logger(__name__)

CONFIG_FILENAME = 'corepackages.toml'
DEFAULT_SCOPE = 'core-packages'

_TOP_LEVEL_KEYS = frozenset({
    'scope',
    'check_licenses',
    'banned_packages',
    'rewrites',
    'licenses',
    'min_similarity',
    'manifest',
    'source_replacements',
})
_MANIFEST_KEYS = frozenset({'authors', 'registry', 'realm', 'description'})
_REALMS = frozenset({'shared', 'server'})
_FALSY = ('0', 'false', 'no', 'off')


@dataclass(frozen=True)
class ManifestConfig:
    """``[package]`` defaults for emitted Wally manifests."""

    authors: tuple[str, ...] = ('Roblox Corporation',)
    registry: str = 'https://github.com/UpliftGames/wally-index'
    realm: str = 'shared'
    description: str = 'https://github.com/grilme99/CorePackages'


@dataclass(frozen=True)
class ExtractorConfig:
    """Resolved configuration.

    Attributes:
        scope: Wally scope every core package is published under.
        check_licenses: Classify scripts and exclude unlicensed packages.
        banned_packages: Index path names skipped during discovery.
        rewrites: Alternate rewrite table, or ``None`` for the built-in.
        licenses: Alternate license data, or ``None`` for the built-in.
        min_similarity: Overrides the corpus similarity threshold.
        manifest: Manifest ``[package]`` defaults.
        source_replacements: Path fragment → file whose content replaces
            any matching script.
        source: The file this config was read from, if any.
    """

    scope: str = DEFAULT_SCOPE
    check_licenses: bool = True
    banned_packages: tuple[str, ...] = ()
    rewrites: Path | None = None
    licenses: Path | None = None
    min_similarity: float | None = None
    manifest: ManifestConfig = field(default_factory=ManifestConfig)
    source_replacements: dict[str, Path] = field(default_factory=dict)
    source: Path | None = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        *,
        base_dir: Path | None = None,
        source: Path | None = None,
    ) -> ExtractorConfig:
        """Validate a parsed config table.

        Relative paths are resolved against *base_dir*.

        Raises:
            ConfigError: Listing every invalid key.
        """
        errors: list[str] = []
        base = base_dir or Path.cwd()

        unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
        if unknown:
            errors.append(f'Unknown key(s): {", ".join(unknown)}')

        scope = data.get('scope', DEFAULT_SCOPE)
        if not isinstance(scope, str) or not scope or '/' in scope:
            errors.append('scope must be a non-empty string without "/"')

        check_licenses = data.get('check_licenses', True)
        if not isinstance(check_licenses, bool):
            errors.append('check_licenses must be a boolean')

        banned = _parse_string_list(data.get('banned_packages', []), 'banned_packages', errors)

        rewrites = _parse_path(data.get('rewrites'), 'rewrites', base, errors)
        licenses = _parse_path(data.get('licenses'), 'licenses', base, errors)

        min_similarity = data.get('min_similarity')
        if min_similarity is not None:
            if isinstance(min_similarity, bool) or not isinstance(min_similarity, (int, float)):
                errors.append('min_similarity must be a number')
            elif not 0.0 <= min_similarity <= 1.0:
                errors.append('min_similarity must be between 0.0 and 1.0')

        manifest = _parse_manifest(data.get('manifest', {}), errors)
        replacements = _parse_source_replacements(data.get('source_replacements', {}), base, errors)

        if errors:
            raise ConfigError(errors, source=source)
        return cls(
            scope=scope,
            check_licenses=check_licenses,
            banned_packages=tuple(banned),
            rewrites=rewrites,
            licenses=licenses,
            min_similarity=float(min_similarity) if min_similarity is not None else None,
            manifest=manifest,
            source_replacements=replacements,
            source=source,
        )

    @classmethod
    def load(cls, path: Path | None = None) -> ExtractorConfig:
        """Load configuration and apply environment overrides.

        Args:
            path: Config file. When ``None``, ``corepackages.toml`` in the
                current directory is used if it exists; otherwise the
                defaults apply.

        Raises:
            ConfigError: If the file is unreadable or invalid.
        """
        if path is None:
            candidate = Path.cwd() / CONFIG_FILENAME
            path = candidate if candidate.is_file() else None

        if path is None:
            config = cls()
        else:
            try:
                with path.open('rb') as f:
                    data = tomllib.load(f)
            except OSError as exc:
                raise ConfigError([f'cannot read config: {exc.strerror or exc}'], source=path) from exc
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError([f'invalid TOML: {exc}'], source=path) from exc
            config = cls.from_dict(data, base_dir=path.parent, source=path)

        env_check = os.environ.get('COREPACKAGES_CHECK_LICENSES', '').strip().lower()
        if env_check in _FALSY:
            config = replace(config, check_licenses=False)

        logger.debug(
            'loaded_config',
            source=str(config.source) if config.source else None,
            scope=config.scope,
            check_licenses=config.check_licenses,
        )
        return config


def _parse_string_list(value: object, key: str, errors: list[str]) -> list[str]:
    if not isinstance(value, list):
        errors.append(f'{key} must be a list of strings')
        return []
    for i, item in enumerate(value):
        if not isinstance(item, str) or not item:
            errors.append(f'{key}[{i}] must be a non-empty string')
    return [item for item in value if isinstance(item, str)]


def _parse_path(value: object, key: str, base: Path, errors: list[str]) -> Path | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        errors.append(f'{key} must be a path string')
        return None
    path = Path(value)
    return path if path.is_absolute() else base / path


def _parse_manifest(value: object, errors: list[str]) -> ManifestConfig:
    if not isinstance(value, Mapping):
        errors.append('manifest must be a table')
        return ManifestConfig()
    unknown = sorted(set(value) - _MANIFEST_KEYS)
    if unknown:
        errors.append(f'Unknown key(s) in manifest: {", ".join(unknown)}')

    defaults = ManifestConfig()
    authors = defaults.authors
    if 'authors' in value:
        authors = tuple(_parse_string_list(value['authors'], 'manifest.authors', errors))

    fields: dict[str, str] = {}
    for key in ('registry', 'realm', 'description'):
        if key not in value:
            continue
        item = value[key]
        if not isinstance(item, str) or not item:
            errors.append(f'manifest.{key} must be a non-empty string')
            continue
        fields[key] = item
    realm = fields.get('realm', defaults.realm)
    if realm not in _REALMS:
        errors.append(f'manifest.realm must be one of {", ".join(sorted(_REALMS))}, got {realm!r}')

    return replace(defaults, authors=authors, **fields)


def _parse_source_replacements(value: object, base: Path, errors: list[str]) -> dict[str, Path]:
    if not isinstance(value, Mapping):
        errors.append('source_replacements must be a table')
        return {}
    result: dict[str, Path] = {}
    for fragment, target in value.items():
        path = _parse_path(target, f'source_replacements.{fragment!r}', base, errors)
        if path is not None:
            result[fragment] = path
    return result


def build_registry(config: ExtractorConfig) -> PackageRegistry:
    """Wire the resolver, classifier and source reader for *config*.

    Raises:
        ConfigError: If any data file or replacement cannot be loaded.
    """
    resolver = RewriteTable.load(config.rewrites)

    replacements: dict[str, str] = {}
    errors: list[str] = []
    for fragment, path in config.source_replacements.items():
        try:
            replacements[fragment] = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as exc:
            errors.append(f'source_replacements.{fragment!r}: cannot read {path}: {exc}')
    if errors:
        raise ConfigError(errors, source=config.source)

    classifier: LicenseClassifier | None = None
    allowed_modules: tuple[str, ...] = ()
    if config.check_licenses:
        classifier = LicenseClassifier.load(config.licenses, min_similarity=config.min_similarity)
        allowed_modules = classifier.allowed_modules
    else:
        logger.warning('license_checking_disabled')

    reader = SourceReader(replacements, allowed_modules)
    return PackageRegistry(resolver, classifier=classifier, reader=reader)


def load_registry(config: ExtractorConfig, index_path: Path, *, skip_invalid: bool = False) -> PackageRegistry:
    """Build a registry, discover *index_path* and construct the graph.

    Raises:
        ConfigError: If any data file cannot be loaded.
        PackageDiscoveryError: If a package fails and *skip_invalid* is
            ``False``.
        UnresolvedDependencyError: If a dependency is not in the index.
    """
    registry = build_registry(config)
    registry.discover_packages_at_index(index_path, skip_invalid=skip_invalid, banned=config.banned_packages)
    registry.construct_graph_edges()
    return registry
