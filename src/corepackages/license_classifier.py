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

r"""License classification of Luau script sources.

Classification runs in two steps:

    1. **Header extraction** — scan the leading lines of the script,
       stripping comment noise, and collect the first comment block
       that is not an ``upstream`` reference. A code line (``local``
       or ``type``) before any header means the script is unlicensed.
    2. **Scoring** — credit the header to a license when it contains a
       known literal phrase (fast path), or when its trigram similarity
       to a reference license text reaches ``min_similarity``.

False negatives (licensed code reported as unlicensed) are tolerable;
false positives are not. Ambiguous headers are never credited.

Key Concepts (ELI5)::

    ┌─────────────────────┬──────────────────────────────────────────────┐
    │ Concept             │ Plain-English                                │
    ├─────────────────────┼──────────────────────────────────────────────┤
    │ Header              │ The comment block a script starts with.      │
    ├─────────────────────┼──────────────────────────────────────────────┤
    │ Phrase              │ A sentence that only appears in a license    │
    │                     │ notice, e.g. "licensed under the MIT         │
    │                     │ license".                                    │
    ├─────────────────────┼──────────────────────────────────────────────┤
    │ Corpus              │ Full reference license texts to compare      │
    │                     │ against when no phrase matches.              │
    ├─────────────────────┼──────────────────────────────────────────────┤
    │ Allow-list          │ Files too small to rewrite; always credited. │
    └─────────────────────┴──────────────────────────────────────────────┘

Usage::

    from corepackages.license_classifier import LicenseClassifier

    classifier = LicenseClassifier.load()
    classifier.classify(source)  # ScriptLicense(name='MIT')
    classifier.compute_license_information(Path('ChalkLua/src'))
"""

from __future__ import annotations

import re
import sys
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from corepackages._types import ScriptLicense
from corepackages.errors import ConfigError, SourceReadError
from corepackages.logging import get_logger

__all__ = [
    'LicenseClassifier',
    'LicenseMatch',
    'SourceReader',
    'extract_license_header',
    'trim_comment_padding',
]

logger = get_logger(__name__)

_DATA_DIR = Path(__file__).resolve().parent / 'data'
_LICENSES_TOML = _DATA_DIR / 'licenses.toml'

# Corpus matches below this similarity are not credited.
DEFAULT_MIN_SIMILARITY = 0.95

SCRIPT_SUFFIXES = frozenset({'.lua', '.luau'})

ALLOWED_MODULE_NOTE = (
    '-- NOTE: This file is too small and/or simple to be sufficiently rewritten under a new license. Assume MIT.\n'
)

# Order matters: single characters first, then the Lua block opener.
_COMMENT_NOISE: tuple[str, ...] = ('*', '/', '\\', '--[[', '--')
_CODE_PREFIXES: tuple[str, ...] = ('local', 'type')
_BLOCK_END = ']]'

_COPYRIGHT_RE = re.compile(r'^\s*(copyright|\(c\)|©)', re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r'[^a-z0-9]+')


def trim_comment_padding(line: str) -> str:
    """Strip comment delimiters and surrounding whitespace from *line*."""
    for noise in _COMMENT_NOISE:
        line = line.replace(noise, '')
    return line.strip()


def extract_license_header(source: str) -> str:
    """Make a best effort to extract a script's license header.

    Returns:
        The header lines joined with ``\\n`` and trimmed, or ``""`` if
        the script has no header before its first code line.
    """
    parts: list[str] = []
    found_start = False
    for raw_line in source.splitlines():
        line = trim_comment_padding(raw_line)
        # Nearly every module starts with `local` or `type` declarations.
        is_code = line.startswith(_CODE_PREFIXES)

        if not found_start:
            if is_code:
                break
            if line and 'upstream' not in line.lower():
                found_start = True
                parts.append(line)
        elif _BLOCK_END in line or is_code:
            break
        else:
            parts.append(line)

    return '\n'.join(parts).strip()


def _normalize_text(text: str) -> str:
    """Lowercase, drop copyright lines, keep alphanumerics, collapse spaces."""
    kept = [line for line in text.splitlines() if not _COPYRIGHT_RE.match(line)]
    return ' '.join(_NON_ALNUM_RE.sub(' ', ' '.join(kept).lower()).split())


def _trigrams(s: str) -> frozenset[str]:
    """Return the set of character trigrams for *s*."""
    if len(s) < 3:
        return frozenset({s}) if s else frozenset()
    return frozenset(s[i : i + 3] for i in range(len(s) - 2))


def _trigram_similarity(a_tri: frozenset[str], b_tri: frozenset[str]) -> float:
    """Sørensen–Dice coefficient over trigram sets. Returns 0.0–1.0."""
    if not a_tri or not b_tri:
        return 0.0
    return 2.0 * len(a_tri & b_tri) / (len(a_tri) + len(b_tri))


def _posix(path: str | PurePath) -> str:
    """Return *path* with ``/`` separators for fragment matching."""
    return str(path).replace('\\', '/')


@dataclass(frozen=True)
class LicenseMatch:
    """Detailed classification result for one script.

    Attributes:
        license: The verdict.
        score: Similarity score from 0.0 to 1.0 (1.0 for phrase and
            allow-list matches).
        method: ``"allow-list"``, ``"phrase"``, ``"corpus"``,
            ``"no-header"`` or ``"below-threshold"``.
        header: The extracted header text.
        closest: Best corpus candidate for ``"below-threshold"`` results.
    """

    license: ScriptLicense
    score: float
    method: str
    header: str = ''
    closest: str = ''


class SourceReader:
    """Reads script sources, honouring configured content replacements.

    Args:
        replacements: Path fragment → replacement source text. A file
            whose path contains the fragment is read as the replacement.
        allowed_modules: Allow-listed path fragments; these get a note
            prepended when read for emission.
    """

    def __init__(
        self,
        replacements: Mapping[str, str] | None = None,
        allowed_modules: Iterable[str] = (),
    ) -> None:
        self._replacements = dict(replacements or {})
        self._allowed = tuple(allowed_modules)

    def read(self, path: Path) -> str:
        """Return the source of *path*.

        Raises:
            SourceReadError: If the file cannot be read as UTF-8.
        """
        posix = _posix(path)
        for fragment, content in self._replacements.items():
            if fragment in posix:
                return content
        try:
            return path.read_text(encoding='utf-8')
        except UnicodeDecodeError as exc:
            raise SourceReadError(path, f'not valid UTF-8 ({exc.reason})') from exc
        except OSError as exc:
            raise SourceReadError(path, exc.strerror or str(exc)) from exc

    def read_for_emit(self, path: Path) -> str:
        """Return the source of *path* as it should be written out."""
        source = self.read(path)
        posix = _posix(path)
        if any(fragment in posix for fragment in self._allowed):
            return ALLOWED_MODULE_NOTE + source
        return source


class LicenseClassifier:
    """Classifies script sources into license verdicts.

    Args:
        phrases: License name → literal phrases (case-insensitive).
        corpus: License name → reference license text.
        allowed_modules: Path fragments that bypass classification.
        min_similarity: Minimum corpus similarity to credit a license.
        allowed_license: License credited to allow-listed modules.
    """

    def __init__(
        self,
        *,
        phrases: Mapping[str, Iterable[str]] | None = None,
        corpus: Mapping[str, str] | None = None,
        allowed_modules: Iterable[str] = (),
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        allowed_license: str = 'MIT',
    ) -> None:
        self._phrases: tuple[tuple[str, str], ...] = tuple(
            (name, phrase.lower()) for name, items in (phrases or {}).items() for phrase in items
        )
        self._corpus: tuple[tuple[str, frozenset[str]], ...] = tuple(
            (name, _trigrams(_normalize_text(text))) for name, text in (corpus or {}).items()
        )
        self.allowed_modules: tuple[str, ...] = tuple(allowed_modules)
        self.min_similarity = min_similarity
        self.allowed_license = allowed_license

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, source: Path | None = None) -> LicenseClassifier:
        """Build a classifier from parsed license data.

        Raises:
            ConfigError: Listing every malformed entry.
        """
        errors: list[str] = []
        unknown = sorted(set(data) - {'phrases', 'corpus', 'allowed_modules', 'min_similarity', 'allowed_license'})
        if unknown:
            errors.append(f'Unknown key(s): {", ".join(unknown)}')

        phrases = data.get('phrases', {})
        if not isinstance(phrases, Mapping):
            errors.append('phrases: expected a table')
            phrases = {}
        for name, items in phrases.items():
            if not isinstance(items, list) or not all(isinstance(p, str) and p for p in items):
                errors.append(f'phrases.{name}: expected a list of non-empty strings')

        corpus = data.get('corpus', {})
        if not isinstance(corpus, Mapping):
            errors.append('corpus: expected a table')
            corpus = {}
        for name, text in corpus.items():
            if not isinstance(text, str) or not text.strip():
                errors.append(f'corpus.{name}: expected a non-empty string')

        allowed = data.get('allowed_modules', [])
        if not isinstance(allowed, list) or not all(isinstance(a, str) and a for a in allowed):
            errors.append('allowed_modules: expected a list of non-empty strings')

        threshold = data.get('min_similarity', DEFAULT_MIN_SIMILARITY)
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
            errors.append('min_similarity: expected a number between 0.0 and 1.0')

        allowed_license = data.get('allowed_license', 'MIT')
        if not isinstance(allowed_license, str) or not allowed_license:
            errors.append('allowed_license: expected a non-empty string')

        if errors:
            raise ConfigError(errors, source=source)
        return cls(
            phrases=phrases,
            corpus=corpus,
            allowed_modules=allowed,
            min_similarity=float(threshold),
            allowed_license=allowed_license,
        )

    @classmethod
    def load(cls, path: Path | None = None, *, min_similarity: float | None = None) -> LicenseClassifier:
        """Load classification data from TOML.

        Args:
            path: License data to read. Defaults to the built-in
                ``data/licenses.toml``.
            min_similarity: Overrides the threshold in the data file.

        Raises:
            ConfigError: If the file is missing, unparsable or invalid.
        """
        toml_path = path or _LICENSES_TOML
        try:
            with toml_path.open('rb') as f:
                data = tomllib.load(f)
        except OSError as exc:
            raise ConfigError([f'cannot read license data: {exc.strerror or exc}'], source=toml_path) from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError([f'invalid TOML: {exc}'], source=toml_path) from exc
        if min_similarity is not None:
            data['min_similarity'] = min_similarity
        classifier = cls.from_dict(data, source=toml_path)
        logger.debug(
            'loaded_license_data',
            path=str(toml_path),
            phrases=len(classifier._phrases),
            corpus=len(classifier._corpus),
        )
        return classifier

    def is_allowed_module(self, path: str | PurePath) -> bool:
        """Return ``True`` if *path* is on the allow-list."""
        posix = _posix(path)
        return any(fragment in posix for fragment in self.allowed_modules)

    def match(self, source: str, path: str | PurePath | None = None) -> LicenseMatch:
        """Classify *source* and explain how the verdict was reached."""
        if path is not None and self.is_allowed_module(path):
            return LicenseMatch(ScriptLicense.licensed(self.allowed_license), 1.0, 'allow-list')

        header = extract_license_header(source)
        if not header:
            return LicenseMatch(ScriptLicense.unlicensed(), 0.0, 'no-header')

        lowered = header.lower()
        for name, phrase in self._phrases:
            if phrase in lowered:
                return LicenseMatch(ScriptLicense.licensed(name), 1.0, 'phrase', header=header)

        header_tri = _trigrams(_normalize_text(header))
        best_name, best_score = '', 0.0
        for name, ref_tri in self._corpus:
            score = _trigram_similarity(header_tri, ref_tri)
            if score > best_score:
                best_name, best_score = name, score
        if best_name and best_score >= self.min_similarity:
            return LicenseMatch(ScriptLicense.licensed(best_name), best_score, 'corpus', header=header)
        return LicenseMatch(
            ScriptLicense.unlicensed(),
            best_score,
            'below-threshold',
            header=header,
            closest=best_name,
        )

    def classify(self, source: str, path: str | PurePath | None = None) -> ScriptLicense:
        """Return the license verdict for *source*."""
        return self.match(source, path).license

    def compute_license_information(
        self,
        src_path: Path,
        reader: SourceReader | None = None,
    ) -> dict[ScriptLicense, list[Path]]:
        """Classify every ``.lua``/``.luau`` file under *src_path*.

        Files are visited in sorted order, so the result does not depend
        on filesystem enumeration order.

        Returns:
            Verdict → files with that verdict, keys sorted.

        Raises:
            SourceReadError: If a script cannot be read.
        """
        reader = reader or SourceReader()
        licenses: defaultdict[ScriptLicense, list[Path]] = defaultdict(list)
        for path in sorted(src_path.rglob('*')):
            if path.suffix not in SCRIPT_SUFFIXES or not path.is_file():
                continue
            result = self.match(reader.read(path), path)
            if result.method == 'below-threshold':
                logger.debug('license_header_not_credited', path=str(path), closest=result.closest, score=result.score)
            licenses[result.license].append(path)
        return dict(sorted(licenses.items()))
