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

"""Tests for corepackages.registry."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import patch

import pytest
from corepackages.errors import (
    GraphNotBuiltError,
    PackageDiscoveryError,
    PackageNotFoundError,
    UnresolvedDependencyError,
)
from corepackages.identity import PackageVersion
from corepackages.lock import DependencyReference
from corepackages.registry import EmitDecision, ExclusionReason, LicenseCheck, PackageRegistry
from corepackages.rewrite import RewriteTable

_UNLICENSED_SOURCE = 'local M = {}\nreturn M\n'

_MakePackage = Callable[..., Path]

_PROMISE_DEP = 'Promise <patched> Promise 8c520dea git+https://github.com/roblox/promise-upgrade#v0.1.0'


def _dep(name: str, version: str = '1.0.0', *, path_name: str | None = None, patched: bool = False) -> str:
    """Build a lock dependency string for *name*."""
    marker = ' <patched>' if patched else ''
    return f'{path_name or name}{marker} {name} {version} url+https://github.com/roblox/{name.lower()}#v{version}'


@pytest.fixture
def jest_index(make_package: _MakePackage) -> dict[str, Path]:
    """diff-sequences has one unlicensed script; jest-circus depends on it."""
    return {
        'diff-sequences': make_package(
            'DiffSequences-edcba0e9-3.2.1',
            'DiffSequences',
            '3.2.1',
            files={'init.lua': _UNLICENSED_SOURCE},
        ),
        'luau-polyfill': make_package('LuauPolyfill-2fca3173-1.1.0', 'LuauPolyfill', '1.1.0', dependencies=[]),
        'jest-circus': make_package(
            'JestCircus-edcba0e9-3.2.1',
            'JestCircus',
            '3.2.1',
            dependencies=[_dep('DiffSequences', '3.2.1'), _PROMISE_DEP],
        ),
    }


class TestDiscovery:
    """Tests for PackageRegistry.discover_packages_at_index()."""

    def test_discovers_every_package(
        self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]
    ) -> None:
        """One package per index directory with a lock."""
        assert registry.discover_packages_at_index(index_path) == 3
        assert len(registry) == 3
        assert registry.package_count == 3
        assert sorted(pkg.name for _, pkg in registry) == sorted(jest_index)

    def test_refs_follow_sorted_directory_order(
        self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]
    ) -> None:
        """References are assigned in sorted directory order."""
        registry.discover_packages_at_index(index_path)
        assert [pkg.identity.path_name for _, pkg in registry] == [
            'DiffSequences-edcba0e9-3.2.1',
            'JestCircus-edcba0e9-3.2.1',
            'LuauPolyfill-2fca3173-1.1.0',
        ]
        refs = [ref for ref, _ in registry]
        assert refs == sorted(refs)

    def test_directory_without_lock_is_skipped(self, registry: PackageRegistry, index_path: Path) -> None:
        """Directories without lock.toml and stray files are ignored."""
        (index_path / 'NotAPackage').mkdir()
        (index_path / 'README.md').write_text('hi', encoding='utf-8')
        assert registry.discover_packages_at_index(index_path) == 0

    def test_banned_packages_are_skipped(
        self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]
    ) -> None:
        """Banned path names never enter the registry."""
        count = registry.discover_packages_at_index(index_path, banned=['LuauPolyfill-2fca3173-1.1.0'])
        assert count == 2
        assert registry.find_by_registry_name('luau-polyfill') is None

    def test_invalid_package_raises(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """A broken package aborts discovery by default."""
        broken = make_package('Broken-1.0.0', 'Broken')
        (broken / 'lock.toml').write_text('name = "Broken"\n', encoding='utf-8')
        with pytest.raises(PackageDiscoveryError) as exc_info:
            registry.discover_packages_at_index(index_path)
        assert exc_info.value.path == broken

    def test_skip_invalid_records_errors(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """With skip_invalid, failures are recorded and discovery continues."""
        broken = make_package('Broken-1.0.0', 'Broken')
        (broken / 'lock.toml').write_text('name = "Broken"\n', encoding='utf-8')
        make_package('Leaf-1.0.0', 'Leaf')
        assert registry.discover_packages_at_index(index_path, skip_invalid=True) == 1
        assert [e.path for e in registry.discovery_errors] == [broken]

    def test_unreadable_index(self, registry: PackageRegistry, tmp_path: Path) -> None:
        """A missing index directory is a discovery error."""
        with pytest.raises(PackageDiscoveryError, match='failed to read index'):
            registry.discover_packages_at_index(tmp_path / 'missing')

    def test_duplicate_path_name_overwrites(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """Rediscovering a path name replaces the package under a fresh ref."""
        make_package('Leaf-1.0.0', 'Leaf')
        registry.discover_packages_at_index(index_path)
        first_ref, _ = registry.find_by_path_name('Leaf-1.0.0') or (None, None)
        registry.discover_packages_at_index(index_path)
        second_ref, _ = registry.find_by_path_name('Leaf-1.0.0') or (None, None)
        assert len(registry) == 1
        assert first_ref is not None and second_ref is not None
        assert second_ref > first_ref
        with pytest.raises(PackageNotFoundError):
            registry.get(first_ref)


class TestLookups:
    """Tests for the find_by_* lookups."""

    @pytest.fixture(autouse=True)
    def _discover(self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]) -> None:
        registry.discover_packages_at_index(index_path)

    def test_find_by_path_name(self, registry: PackageRegistry) -> None:
        """Index directory names identify packages."""
        found = registry.find_by_path_name('LuauPolyfill-2fca3173-1.1.0')
        assert found is not None
        assert found[1].name == 'luau-polyfill'

    def test_find_by_registry_name(self, registry: PackageRegistry) -> None:
        """Registry names identify packages."""
        found = registry.find_by_registry_name('jest-circus')
        assert found is not None
        assert found[1].identity.path_name == 'JestCircus-edcba0e9-3.2.1'

    def test_find_by_registry_name_and_version(self, registry: PackageRegistry) -> None:
        """Both the name and the version must match."""
        assert registry.find_by_registry_name_and_version('luau-polyfill', '1.1.0') is not None
        assert registry.find_by_registry_name_and_version('luau-polyfill', '1.2.0') is None

    def test_find_by_commit_version(self, registry: PackageRegistry) -> None:
        """A commit-hash version matches a package whose lock commit it prefixes."""
        found = registry.find_by_registry_name_and_version('luau-polyfill', PackageVersion.parse('01234567'))
        assert found is not None

    def test_find_by_commit(self, registry: PackageRegistry) -> None:
        """Commit prefixes find packages."""
        assert registry.find_by_commit('0123456789') is not None
        assert registry.find_by_commit('ffff') is None
        assert registry.find_by_commit('') is None

    def test_unknown_names(self, registry: PackageRegistry) -> None:
        """Lookups of unknown packages return None."""
        assert registry.find_by_path_name('Nope') is None
        assert registry.find_by_registry_name('nope') is None

    def test_lookup_raises_for_unknown(self, registry: PackageRegistry) -> None:
        """lookup() raises for unknown packages."""
        with pytest.raises(PackageNotFoundError, match='nope'):
            registry.lookup('nope')

    def test_resolve_exact(self, registry: PackageRegistry) -> None:
        """Dependencies resolve by name and version."""
        ref = DependencyReference('luau-polyfill', 'LuauPolyfill', PackageVersion.parse('1.1.0'))
        found = registry.resolve_dependency_to_package(ref)
        assert found is not None
        assert found[1].version == '1.1.0'

    def test_resolve_falls_back_to_name(self, registry: PackageRegistry) -> None:
        """On a version miss, resolution falls back to the registry name."""
        ref = DependencyReference('luau-polyfill', 'LuauPolyfill', PackageVersion.parse('deadbeef'))
        found = registry.resolve_dependency_to_package(ref)
        assert found is not None
        assert found[1].name == 'luau-polyfill'

    def test_resolve_miss(self, registry: PackageRegistry) -> None:
        """Unknown dependencies resolve to None."""
        ref = DependencyReference('missing', 'Missing', PackageVersion.parse('1.0.0'))
        assert registry.resolve_dependency_to_package(ref) is None


class TestGraph:
    """Tests for graph construction."""

    def test_edges(self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]) -> None:
        """Edges point at resolved, non-rewritten dependencies."""
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()
        diff_ref, _ = registry.lookup('diff-sequences')
        assert registry.dependencies_of('jest-circus') == [diff_ref]
        assert registry.dependencies_of('luau-polyfill') == []
        assert registry.graph_built

    def test_graph_not_built(self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]) -> None:
        """Edges cannot be queried before construction."""
        registry.discover_packages_at_index(index_path)
        with pytest.raises(GraphNotBuiltError):
            registry.dependencies_of('jest-circus')

    def test_unresolved_dependency(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """A dependency missing from the index is reported with both names."""
        make_package('App-1.0.0', 'App', dependencies=[_dep('Missing', '2.0.0')])
        registry.discover_packages_at_index(index_path)
        with pytest.raises(UnresolvedDependencyError) as exc_info:
            registry.construct_graph_edges()
        assert exc_info.value.dependant == 'app'
        assert exc_info.value.dependency == 'missing'
        assert exc_info.value.version == '2.0.0'

    def test_forward_references(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """Dependencies on packages discovered later still resolve."""
        make_package('Aaa-1.0.0', 'Aaa', dependencies=[_dep('Zzz')])
        make_package('Zzz-1.0.0', 'Zzz')
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()
        zzz_ref, _ = registry.lookup('zzz')
        assert registry.dependencies_of('aaa') == [zzz_ref]


class TestIsPackageLicensed:
    """Tests for PackageRegistry.is_package_licensed()."""

    @pytest.fixture(autouse=True)
    def _discover(self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]) -> None:
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()

    def test_licensed_leaf(self, registry: PackageRegistry) -> None:
        """A fully licensed package without dependencies is licensed."""
        assert registry.is_package_licensed('luau-polyfill') == LicenseCheck(True, [])

    def test_unlicensed_leaf(self, registry: PackageRegistry, jest_index: dict[str, Path]) -> None:
        """A package with an unlicensed script is not licensed."""
        blocking = jest_index['diff-sequences'] / 'src' / 'init.lua'
        assert registry.is_package_licensed('diff-sequences') == LicenseCheck(False, [blocking])

    def test_unlicensed_dependency_propagates(self, registry: PackageRegistry, jest_index: dict[str, Path]) -> None:
        """A dependency's unlicensed scripts make the dependant unlicensed."""
        blocking = jest_index['diff-sequences'] / 'src' / 'init.lua'
        assert registry.is_package_licensed('jest-circus') == LicenseCheck(False, [blocking])

    def test_accepts_refs(self, registry: PackageRegistry) -> None:
        """References work as well as names."""
        ref, _ = registry.lookup('luau-polyfill')
        assert registry.is_package_licensed(ref).licensed

    def test_unknown_package(self, registry: PackageRegistry) -> None:
        """Unknown names raise."""
        with pytest.raises(PackageNotFoundError):
            registry.is_package_licensed('nope')


class TestLicensePropagation:
    """Union of blocking files and cycle handling."""

    def test_union_of_blocking_files(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """Every blocking file in the subtree is reported, each once."""
        own = make_package('App-1.0.0', 'App', dependencies=[_dep('Left'), _dep('Right')], files={
            'init.lua': _UNLICENSED_SOURCE,
        })
        make_package('Left-1.0.0', 'Left', dependencies=[_dep('Shared')])
        right = make_package('Right-1.0.0', 'Right', dependencies=[_dep('Shared')], files={
            'a.lua': _UNLICENSED_SOURCE,
            'b.lua': _UNLICENSED_SOURCE,
        })
        shared = make_package('Shared-1.0.0', 'Shared', files={'init.lua': _UNLICENSED_SOURCE})
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()

        licensed, files = registry.is_package_licensed('app')

        assert not licensed
        assert files == [
            own / 'src' / 'init.lua',
            shared / 'src' / 'init.lua',
            right / 'src' / 'a.lua',
            right / 'src' / 'b.lua',
        ]

    def test_two_node_cycle_terminates(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """A → B → A terminates and both are licensed when their scripts are."""
        make_package('A-1.0.0', 'A', dependencies=[_dep('B')])
        make_package('B-1.0.0', 'B', dependencies=[_dep('A')])
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()
        assert registry.is_package_licensed('a') == LicenseCheck(True, [])
        assert registry.is_package_licensed('b') == LicenseCheck(True, [])

    def test_unlicensed_cycle_member_seen_from_every_entry(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """The cycle break never hides a real unlicensed script, whatever the entry point."""
        make_package('A-1.0.0', 'A', dependencies=[_dep('B')])
        b = make_package('B-1.0.0', 'B', dependencies=[_dep('C')], files={'init.lua': _UNLICENSED_SOURCE})
        make_package('C-1.0.0', 'C', dependencies=[_dep('A')])
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()
        blocking = [b / 'src' / 'init.lua']
        for name in ('c', 'a', 'b'):
            assert registry.is_package_licensed(name) == LicenseCheck(False, blocking)

    def test_diamond_ladder_with_back_edge_expands_each_package_once(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """Shared dependencies below a cycle are walked once per call, not once per path."""
        levels = 22
        for level in range(levels):
            below = [_dep(f'L{level + 1}A'), _dep(f'L{level + 1}B')] if level + 1 < levels else [_dep('Bottom')]
            make_package(f'L{level}A-1.0.0', f'L{level}A', dependencies=below)
            make_package(f'L{level}B-1.0.0', f'L{level}B', dependencies=below)
        bottom = make_package('Bottom-1.0.0', 'Bottom', dependencies=[_dep('Peer')], files={
            'init.lua': _UNLICENSED_SOURCE,
        })
        make_package('Peer-1.0.0', 'Peer', dependencies=[_dep('Bottom')])
        make_package('Root-1.0.0', 'Root', dependencies=[_dep('L0A'), _dep('L0B')])
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()

        with patch.object(registry, '_edges', wraps=registry._edges) as edges:
            result = registry.is_package_licensed('Root-1.0.0')

        assert result == LicenseCheck(False, [bottom / 'src' / 'init.lua'])
        assert edges.call_count == len(registry)

    def test_self_dependency(self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage) -> None:
        """A package depending on itself terminates."""
        make_package('Loop-1.0.0', 'Loop', dependencies=[_dep('Loop')])
        registry.discover_packages_at_index(index_path)
        assert registry.is_package_licensed('loop').licensed

    def test_rewritten_dependencies_skipped(
        self, registry: PackageRegistry, index_path: Path, make_package: _MakePackage
    ) -> None:
        """Rewritten dependencies are external and never checked."""
        make_package('App-1.0.0', 'App', dependencies=[_PROMISE_DEP])
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()
        assert registry.is_package_licensed('app') == LicenseCheck(True, [])

    def test_without_license_checking(self, index_path: Path, jest_index: dict[str, Path]) -> None:
        """With license checking disabled every package is licensed."""
        registry = PackageRegistry(RewriteTable.load())
        registry.discover_packages_at_index(index_path)
        assert registry.is_package_licensed('jest-circus') == LicenseCheck(True, [])


class TestIncludeInEmit:
    """Tests for emit decisions."""

    def test_decisions(self, registry: PackageRegistry, index_path: Path, jest_index: dict[str, Path]) -> None:
        """Unlicensed packages are excluded with their blocking files."""
        registry.discover_packages_at_index(index_path)
        registry.construct_graph_edges()
        assert registry.include_in_emit('luau-polyfill') == EmitDecision(True)
        decision = registry.include_in_emit('jest-circus')
        assert decision.reason is ExclusionReason.UNLICENSED
        assert decision.unlicensed_files == (jest_index['diff-sequences'] / 'src' / 'init.lua',)
        assert [pkg.name for _, pkg in registry.emittable_packages()] == ['luau-polyfill']

    def test_rewritten_package_excluded(self, index_path: Path, make_package: _MakePackage) -> None:
        """Packages replaced by a rewrite are never emitted."""
        make_package('Promise-3.1.0', 'Promise', '3.1.0')
        table = RewriteTable.from_dict({
            'Promise': {
                'new_source': 'evaera/promise',
                'new_version': '4.0.0',
                'originals': [{'name': 'promise', 'version': '3.1.0'}],
            }
        })
        registry = PackageRegistry(table)
        registry.discover_packages_at_index(index_path)
        assert registry.include_in_emit('promise') == EmitDecision(False, ExclusionReason.REWRITTEN)
        assert registry.emittable_packages() == []
