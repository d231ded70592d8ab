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

"""Shared fixtures: on-disk package indexes built under ``tmp_path``."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest
from corepackages.license_classifier import LicenseClassifier
from corepackages.registry import PackageRegistry
from corepackages.rewrite import RewriteTable

_MIT_SOURCE = '-- licensed under the MIT license\nlocal M = {}\nreturn M\n'


@pytest.fixture
def index_path(tmp_path: Path) -> Path:
    """An empty ``_Index`` directory."""
    path = tmp_path / '_Index'
    path.mkdir()
    return path


@pytest.fixture
def make_package(index_path: Path) -> Callable[..., Path]:
    """Return a builder that writes one package directory into the index."""

    def _make(
        path_name: str,
        name: str,
        version: str = '1.0.0',
        *,
        dependencies: Sequence[str] | None = None,
        files: Mapping[str, str] | None = None,
        commit: str = '0123456789abcdef0123456789abcdef01234567',
        src_dir: str = 'src',
    ) -> Path:
        package_dir = index_path / path_name
        (package_dir / src_dir).mkdir(parents=True)
        lines = [
            f'name = "{name}"',
            f'version = "{version}"',
            f'commit = "{commit}"',
            f'source = "url+https://github.com/roblox/{path_name.lower()}"',
        ]
        if dependencies is not None:
            lines.append('dependencies = [' + ', '.join(f'"{d}"' for d in dependencies) + ']')
        (package_dir / 'lock.toml').write_text('\n'.join(lines) + '\n', encoding='utf-8')
        for rel, text in (files if files is not None else {'init.lua': _MIT_SOURCE}).items():
            script = package_dir / src_dir / rel
            script.parent.mkdir(parents=True, exist_ok=True)
            script.write_text(text, encoding='utf-8')
        return package_dir

    return _make


@pytest.fixture
def classifier() -> LicenseClassifier:
    """The built-in license classifier."""
    return LicenseClassifier.load()


@pytest.fixture
def registry(classifier: LicenseClassifier) -> PackageRegistry:
    """An empty registry with the built-in rewrites and license checking on."""
    return PackageRegistry(RewriteTable.load(), classifier=classifier)
