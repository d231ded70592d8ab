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

"""Wally manifest tables for emitted packages.

Each emitted package gets a ``wally.toml``::

    [package]
    name = "core-packages/jest-circus"
    version = "3.2.1"
    license = "MIT + Apache-2.0"
    authors = ["Roblox Corporation"]
    registry = "https://github.com/UpliftGames/wally-index"
    realm = "shared"
    description = "https://github.com/grilme99/CorePackages"

    [dependencies]
    DiffSequences = "core-packages/diff-sequences@3.2.1"
    Promise = "evaera/promise@4.0.0"

Dependency keys are the names scripts ``require`` the dependency by;
rewritten dependencies point at their external replacement.
"""

from __future__ import annotations

from typing import Any

import tomlkit

from corepackages.config import ExtractorConfig
from corepackages.package import Package
from corepackages.registry import PackageRef, PackageRegistry

__all__ = [
    'render_wally_manifest',
    'wally_dependencies',
    'wally_manifest',
]


def _resolve(package: Package | str | PackageRef, registry: PackageRegistry) -> tuple[PackageRef, Package]:
    if isinstance(package, Package):
        found = registry.find_by_path_name(package.identity.path_name)
        if found is None:
            return registry.lookup(package.name)
        return found
    return registry.lookup(package)


def wally_dependencies(
    package: Package | str | PackageRef,
    registry: PackageRegistry,
    *,
    scope: str = 'core-packages',
) -> dict[str, str]:
    """Map each dependency's require name to its Wally reference.

    Core dependencies become ``scope/registry-name@version`` with the
    version of the package the reference resolved to.

    Raises:
        UnresolvedDependencyError: If a dependency is not in the registry.
    """
    ref, _ = _resolve(package, registry)
    deps: dict[str, str] = {}
    for dep, dep_ref in registry.resolved_dependencies(ref):
        if dep_ref is None:
            deps[dep.path_name] = f'{dep.registry_name}@{dep.version}'
            continue
        target = registry.get(dep_ref)
        deps[dep.path_name] = f'{target.identity.wally_name(scope)}@{target.version}'
    return dict(sorted(deps.items()))


def wally_manifest(
    package: Package | str | PackageRef,
    registry: PackageRegistry,
    *,
    config: ExtractorConfig | None = None,
) -> dict[str, Any]:
    """Build the ``wally.toml`` contents for *package* as plain dicts."""
    config = config or ExtractorConfig()
    ref, pkg = _resolve(package, registry)
    meta = config.manifest
    return {
        'package': {
            'name': pkg.identity.wally_name(config.scope),
            'version': pkg.version,
            'license': ' + '.join(pkg.licenses_in_use),
            'authors': list(meta.authors),
            'registry': meta.registry,
            'realm': meta.realm,
            'description': meta.description,
        },
        'dependencies': wally_dependencies(ref, registry, scope=config.scope),
    }


def render_wally_manifest(
    package: Package | str | PackageRef,
    registry: PackageRegistry,
    *,
    config: ExtractorConfig | None = None,
) -> str:
    """Serialize :func:`wally_manifest` to TOML."""
    manifest = wally_manifest(package, registry, config=config)
    doc = tomlkit.document()

    package_table = tomlkit.table()
    for key, value in manifest['package'].items():
        package_table.add(key, value)
    doc.add('package', package_table)

    deps_table = tomlkit.table()
    for key, value in manifest['dependencies'].items():
        deps_table.add(key, value)
    doc.add('dependencies', deps_table)

    return tomlkit.dumps(doc)
