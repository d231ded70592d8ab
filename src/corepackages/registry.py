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

r"""Package registry: discovery, lookups, dependency graph and licensing.

The registry owns every discovered :class:`Package` under an opaque
numeric :data:`PackageRef`. The dependency graph references packages
by the same integers, so the graph and the package map never share
ownership of a package object.

Passes::

    discover_packages_at_index()   one Package per index directory
            │
            ▼
    construct_graph_edges()        package → resolved dependency edges
            │
            ▼
    queries                        find_by_*, is_package_licensed,
                                   include_in_emit, tree rendering

The graph may contain cycles (nothing upstream forbids circular
declarations). Every walk in this module terminates on them.

Usage::

    from corepackages.registry import PackageRegistry
    from corepackages.rewrite import RewriteTable

    registry = PackageRegistry(RewriteTable.load(), classifier=LicenseClassifier.load())
    registry.discover_packages_at_index(Path('Packages/_Index'))
    registry.construct_graph_edges()
    licensed, blocking = registry.is_package_licensed('jest-circus')
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, NewType

from corepackages.errors import (
    GraphNotBuiltError,
    PackageDiscoveryError,
    PackageNotFoundError,
    UnresolvedDependencyError,
)
from corepackages.identity import PackageVersion
from corepackages.license_classifier import LicenseClassifier, SourceReader
from corepackages.lock import LOCK_FILE_NAME, DependencyReference
from corepackages.logging import get_logger
from corepackages.package import Package
from corepackages.rewrite import RewriteTable

__all__ = [
    'EmitDecision',
    'ExclusionReason',
    'LicenseCheck',
    'PackageRef',
    'PackageRegistry',
]

logger = get_logger(__name__)

PackageRef = NewType('PackageRef', int)


class LicenseCheck(NamedTuple):
    """Result of :meth:`PackageRegistry.is_package_licensed`.

    Attributes:
        licensed: The package and its non-rewritten dependency subtree
            contain no unlicensed scripts.
        unlicensed_files: Every blocking script found in the subtree,
            in discovery order, without duplicates.
    """

    licensed: bool
    unlicensed_files: list[Path]


class ExclusionReason(enum.Enum):
    """Why a package is left out of the emitted set."""

    REWRITTEN = 'rewritten'
    UNLICENSED = 'unlicensed'


@dataclass(frozen=True)
class EmitDecision:
    """Whether a package may be emitted.

    Attributes:
        included: ``True`` if the package may be emitted.
        reason: Why it was excluded, when it was.
        unlicensed_files: Blocking scripts for ``UNLICENSED`` exclusions.
    """

    included: bool
    reason: ExclusionReason | None = None
    unlicensed_files: tuple[Path, ...] = ()


class PackageRegistry:
    """Source of truth for the packages found in an index.

    Args:
        resolver: Rewrite table applied to every lock dependency.
        classifier: License classifier; ``None`` disables license
            checking (every package then counts as licensed).
        reader: Source reader used during classification.
    """

    def __init__(
        self,
        resolver: RewriteTable,
        *,
        classifier: LicenseClassifier | None = None,
        reader: SourceReader | None = None,
    ) -> None:
        self.resolver = resolver
        self.classifier = classifier
        self.reader = reader
        self.packages: dict[PackageRef, Package] = {}
        self.graph: dict[PackageRef, list[PackageRef]] = {}
        self.discovery_errors: list[PackageDiscoveryError] = []
        self._last_ref = 0
        self._graph_built = False

    # ── Population ───────────────────────────────────────────────────

    @property
    def check_licenses(self) -> bool:
        """``True`` if packages were classified during discovery."""
        return self.classifier is not None

    @property
    def package_count(self) -> int:
        """Number of packages currently in the registry."""
        return len(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def __iter__(self) -> Iterator[tuple[PackageRef, Package]]:
        return iter(self.packages.items())

    def get(self, ref: PackageRef) -> Package:
        """Return the package for *ref*.

        Raises:
            PackageNotFoundError: If *ref* is unknown.
        """
        try:
            return self.packages[ref]
        except KeyError:
            raise PackageNotFoundError(f'#{ref}') from None

    def add_package(self, package: Package) -> PackageRef:
        """Insert *package* under a fresh reference.

        A package with the same path name replaces the earlier one; the
        old reference is retired, never reused.
        """
        existing = self.find_by_path_name(package.identity.path_name)
        if existing is not None:
            old_ref, _ = existing
            logger.warning('package_overwritten', path_name=package.identity.path_name, old_ref=old_ref)
            del self.packages[old_ref]
        self._last_ref += 1
        ref = PackageRef(self._last_ref)
        self.packages[ref] = package
        self._graph_built = False
        self.graph.clear()
        return ref

    def discover_packages_at_index(
        self,
        index_path: Path,
        *,
        skip_invalid: bool = False,
        banned: Iterable[str] = (),
    ) -> int:
        """Search an ``_Index`` directory for packages.

        Every immediate subdirectory holding a ``lock.toml`` becomes a
        package. Directories without one are logged and skipped.

        Args:
            index_path: The index directory.
            skip_invalid: Record failing packages in
                :attr:`discovery_errors` and continue instead of raising.
            banned: Path names to skip (known-unlicensed or obsolete
                versions).

        Returns:
            Number of packages discovered by this call.

        Raises:
            PackageDiscoveryError: If the index cannot be read, or a
                package fails and *skip_invalid* is ``False``.
        """
        try:
            entries = sorted(index_path.iterdir())
        except OSError as exc:
            raise PackageDiscoveryError(index_path, f'failed to read index: {exc.strerror or exc}') from exc

        banned_names = frozenset(banned)
        discovered = 0
        for path in entries:
            if not path.is_dir():
                continue
            if path.name in banned_names:
                logger.warning('skipping_banned_package', path_name=path.name)
                continue
            if not (path / LOCK_FILE_NAME).is_file():
                logger.warning('missing_lock_file', path=str(path))
                continue
            try:
                package = Package.load(path, classifier=self.classifier, reader=self.reader)
            except PackageDiscoveryError as exc:
                if not skip_invalid:
                    raise
                logger.error('package_discovery_failed', path=str(path), error=exc.message)
                self.discovery_errors.append(exc)
                continue
            ref = self.add_package(package)
            discovered += 1
            logger.debug('discovered_package', path_name=package.identity.path_name, ref=ref)

        logger.info('discovered_packages', count=discovered, index=str(index_path))
        return discovered

    # ── Lookups ──────────────────────────────────────────────────────

    def _find(self, predicate: Callable[[Package], bool]) -> tuple[PackageRef, Package] | None:
        return next(((ref, pkg) for ref, pkg in self.packages.items() if predicate(pkg)), None)

    def find_by_path_name(self, path_name: str) -> tuple[PackageRef, Package] | None:
        """Find a package by its index directory name."""
        return self._find(lambda pkg: pkg.identity.path_name == path_name)

    def find_by_registry_name(self, registry_name: str) -> tuple[PackageRef, Package] | None:
        """Find the first package with *registry_name*, any version."""
        return self._find(lambda pkg: pkg.identity.registry_name == registry_name)

    def find_by_registry_name_and_version(
        self,
        registry_name: str,
        version: PackageVersion | str,
    ) -> tuple[PackageRef, Package] | None:
        """Find a package by registry name and pinned version.

        A commit-hash version matches a package whose lock commit starts
        with that hash.
        """
        if isinstance(version, str):
            version = PackageVersion.parse(version)
        return self._find(
            lambda pkg: (
                pkg.identity.registry_name == registry_name
                and (pkg.lock.version == version or version.matches_commit(pkg.lock.commit))
            )
        )

    def find_by_commit(self, commit_prefix: str) -> tuple[PackageRef, Package] | None:
        """Find a package whose lock commit starts with *commit_prefix*."""
        prefix = commit_prefix.strip().lower()
        if not prefix:
            return None
        return self._find(lambda pkg: pkg.lock.commit.lower().startswith(prefix))

    def lookup(self, package: str | PackageRef) -> tuple[PackageRef, Package]:
        """Resolve a registry name (or reference) to ``(ref, package)``.

        Raises:
            PackageNotFoundError: If nothing matches.
        """
        if isinstance(package, int):
            return PackageRef(package), self.get(PackageRef(package))
        found = self.find_by_registry_name(package) or self.find_by_path_name(package)
        if found is None:
            raise PackageNotFoundError(package)
        return found

    def resolve_dependency_to_package(self, dependency: DependencyReference) -> tuple[PackageRef, Package] | None:
        """Find the package a dependency reference points at.

        Exact ``(registry name, version)`` first. On a miss, fall back to
        the registry name alone: commit-pinned dependencies cannot always
        be matched to a recorded version.
        """
        exact = self.find_by_registry_name_and_version(dependency.registry_name, dependency.version)
        if exact is not None:
            return exact
        fallback = self.find_by_registry_name(dependency.registry_name)
        if fallback is not None:
            logger.debug(
                'dependency_version_skew',
                dependency=dependency.registry_name,
                wanted=str(dependency.version),
                found=fallback[1].version,
            )
        return fallback

    # ── Graph ────────────────────────────────────────────────────────

    def resolved_dependencies(self, ref: PackageRef) -> list[tuple[DependencyReference, PackageRef | None]]:
        """Parse *ref*'s lock dependencies and resolve each to a package.

        Rewritten dependencies name external replacements and resolve to
        ``None``.

        Raises:
            LockParseError: If the lock's dependency strings are malformed.
            UnresolvedDependencyError: If a dependency is not in the registry.
        """
        package = self.get(ref)
        resolved: list[tuple[DependencyReference, PackageRef | None]] = []
        for dep in package.lock.parse_dependencies(self.resolver) or []:
            if dep.is_rewritten:
                resolved.append((dep, None))
                continue
            found = self.resolve_dependency_to_package(dep)
            if found is None:
                raise UnresolvedDependencyError(package.name, dep.registry_name, str(dep.version))
            resolved.append((dep, found[0]))
        return resolved

    def construct_graph_edges(self) -> None:
        """Add an edge from every package to each of its resolved dependencies.

        Runs after discovery, once every package is known, because
        dependencies may forward-reference.

        Raises:
            UnresolvedDependencyError: If any declared dependency is missing.
        """
        graph: dict[PackageRef, list[PackageRef]] = {}
        edge_count = 0
        for ref in self.packages:
            edges = [dep_ref for _, dep_ref in self.resolved_dependencies(ref) if dep_ref is not None]
            graph[ref] = edges
            edge_count += len(edges)
        self.graph = graph
        self._graph_built = True
        logger.info('constructed_dependency_graph', packages=len(graph), edges=edge_count)

    @property
    def graph_built(self) -> bool:
        """``True`` once :meth:`construct_graph_edges` has run."""
        return self._graph_built

    def dependencies_of(self, package: str | PackageRef) -> list[PackageRef]:
        """Return the graph edges leaving *package*.

        Raises:
            GraphNotBuiltError: If the graph has not been constructed.
        """
        if not self._graph_built:
            raise GraphNotBuiltError
        ref, _ = self.lookup(package)
        return list(self.graph.get(ref, []))

    def _edges(self, ref: PackageRef) -> list[PackageRef]:
        if self._graph_built:
            return self.graph.get(ref, [])
        return [dep_ref for _, dep_ref in self.resolved_dependencies(ref) if dep_ref is not None]

    # ── Licensing ────────────────────────────────────────────────────

    def is_package_licensed(self, package: str | PackageRef) -> LicenseCheck:
        """Check a package and its dependency subtree for unlicensed scripts.

        A package is licensed iff none of its scripts is unlicensed and
        every non-rewritten dependency is licensed. Rewritten
        dependencies are replaced by licensed packages and are skipped.

        All dependencies are walked even after a failure so the result
        lists every blocking script in the subtree.

        Each package is visited once per call. A revisited package (a
        shared dependency or a cycle) counts as licensed there because
        its scripts were already collected on the first visit. Results
        are never cached between calls.

        Raises:
            PackageNotFoundError: If *package* is unknown.
            UnresolvedDependencyError: If a dependency is not in the registry.
        """
        ref, _ = self.lookup(package)
        files: list[Path] = []
        visited: set[PackageRef] = set()
        stack = [ref]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            files.extend(self.packages[current].unlicensed_files)
            # Reversed so dependencies are walked in declaration order.
            stack.extend(reversed(self._edges(current)))
        blocking = list(dict.fromkeys(files))
        return LicenseCheck(not blocking, blocking)

    def licenses_in_use(self, package: str | PackageRef) -> list[str]:
        """License names credited to *package*'s own scripts."""
        _, pkg = self.lookup(package)
        return pkg.licenses_in_use

    def include_in_emit(self, package: str | PackageRef) -> EmitDecision:
        """Decide whether *package* may be emitted.

        Rewritten packages are never emitted: dependants receive the
        replacement instead. With license checking enabled, packages
        whose subtree contains unlicensed scripts are excluded too.
        """
        ref, pkg = self.lookup(package)
        if pkg.is_rewritten(self.resolver):
            return EmitDecision(False, ExclusionReason.REWRITTEN)
        if self.check_licenses:
            licensed, blocking = self.is_package_licensed(ref)
            if not licensed:
                return EmitDecision(False, ExclusionReason.UNLICENSED, tuple(blocking))
        return EmitDecision(True)

    def emittable_packages(self) -> list[tuple[PackageRef, Package]]:
        """Packages that pass :meth:`include_in_emit`, in reference order."""
        return [(ref, pkg) for ref, pkg in self.packages.items() if self.include_in_emit(ref).included]
