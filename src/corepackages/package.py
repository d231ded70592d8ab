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

"""A single package from the index: identity, lock and license verdicts."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from corepackages._types import ScriptLicense
from corepackages.errors import CorePackagesError, PackageDiscoveryError
from corepackages.identity import PackageIdentity
from corepackages.license_classifier import LicenseClassifier, SourceReader
from corepackages.lock import LOCK_FILE_NAME, PackageLock
from corepackages.logging import get_logger
from corepackages.rewrite import RewriteTable

__all__ = [
    'Package',
    'find_source_path',
]

logger = get_logger(__name__)


def find_source_path(package_path: Path, identity: PackageIdentity) -> Path:
    """Locate the directory holding a package's scripts.

    Most packages keep sources in ``src/``; some use ``<Name>/<Name>``.

    Raises:
        PackageDiscoveryError: If no candidate directory exists.
    """
    for name in ('src', *identity.source_dir_names):
        candidate = package_path / name
        if candidate.is_dir():
            return candidate
    raise PackageDiscoveryError(package_path, "package doesn't contain a src/ directory")


@dataclass
class Package:
    """A package discovered in the index.

    Attributes:
        path: Package directory in the index.
        identity: Normalized names.
        lock: Parsed lock manifest.
        src_path: Directory holding the package's scripts.
        licenses: License verdict → script paths with that verdict.
            Empty when license checking is disabled.
    """

    path: Path
    identity: PackageIdentity
    lock: PackageLock
    src_path: Path
    licenses: dict[ScriptLicense, list[Path]] = field(default_factory=dict)

    @classmethod
    def load(
        cls,
        package_path: Path,
        *,
        classifier: LicenseClassifier | None = None,
        reader: SourceReader | None = None,
    ) -> Package:
        """Build a package from its index directory.

        Args:
            package_path: Directory containing ``lock.toml`` and sources.
            classifier: Computes per-script verdicts; ``None`` skips
                license checking.
            reader: Source reader honouring content replacements.

        Raises:
            PackageDiscoveryError: Wrapping any malformed input.
        """
        lock_path = package_path / LOCK_FILE_NAME
        if not lock_path.is_file():
            raise PackageDiscoveryError(package_path, f'lock does not exist at {lock_path}')
        try:
            lock = PackageLock.load(lock_path)
            identity = PackageIdentity.from_name(lock.name, package_path)
            src_path = find_source_path(package_path, identity)
            licenses: dict[ScriptLicense, list[Path]] = {}
            if classifier is not None:
                logger.debug('computing_licenses', package=identity.path_name)
                licenses = classifier.compute_license_information(src_path, reader)
        except PackageDiscoveryError:
            raise
        except CorePackagesError as exc:
            raise PackageDiscoveryError(package_path, exc.message) from exc
        return cls(path=package_path, identity=identity, lock=lock, src_path=src_path, licenses=licenses)

    @property
    def name(self) -> str:
        """Registry name, the key used for cross-package lookups."""
        return self.identity.registry_name

    @property
    def version(self) -> str:
        """Lock version as text."""
        return str(self.lock.version)

    @property
    def unlicensed_files(self) -> list[Path]:
        """Scripts without a creditable license, in sorted order."""
        return list(self.licenses.get(ScriptLicense.unlicensed(), []))

    @property
    def contains_unlicensed_code(self) -> bool:
        """``True`` if any script is unlicensed."""
        return bool(self.unlicensed_files)

    @property
    def licenses_in_use(self) -> list[str]:
        """Names of the licenses credited to this package's scripts."""
        return [lic.name for lic in self.licenses if lic.is_licensed]

    def is_rewritten(self, resolver: RewriteTable) -> bool:
        """``True`` if dependants see this package replaced by another.

        Rewritten packages must not be emitted themselves.
        """
        return resolver.is_rewritten(self.identity.registry_name, self.version)
