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

"""ASCII dependency trees for diagnostics.

Example::

    core-packages/jest-circus (v3.2.1) ✗
    ├── core-packages/diff-sequences (v3.2.1) ✗
    │   └── core-packages/luau-polyfill (v1.1.0) ✓
    ├── evaera/promise (v4.0.0) (rewritten)
    └── core-packages/jest-circus (v3.2.1) (cycle)

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ TreeStream          │ A notepad that remembers, for every depth,     │
    │                     │ whether that level still has siblings coming.  │
    │                     │ That decides between "│   " and "    ".        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ (rewritten) leaf    │ A dependency swapped for an outside package.   │
    │                     │ We don't own it, so we can't look inside.      │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ (cycle) leaf        │ A package already above us on this branch.     │
    │                     │ Printed once more and never opened again.      │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import os
import sys

from corepackages.registry import PackageRef, PackageRegistry

__all__ = [
    'TreeStream',
    'render_package_tree',
    'should_use_color',
]

TEE = '\u251c\u2500\u2500 '  # ├──
ELL = '\u2514\u2500\u2500 '  # └──
DOWN = '\u2502   '  # │
BLANK = '    '


class _Ansi:
    """ANSI escape code constants."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BOLD_RED = '\033[1;31m'


def _c(text: str, code: str, *, color: bool) -> str:
    """Wrap *text* in ANSI *code* if *color* is True."""
    if not color:
        return text
    return f'{code}{text}{_Ansi.RESET}'


def should_use_color(*, force: bool | None = None) -> bool:
    """Determine whether to emit ANSI colors.

    Resolution order:
        1. Explicit *force* argument.
        2. ``NO_COLOR`` env var (https://no-color.org/) → disable.
        3. ``FORCE_COLOR`` env var → enable.
        4. ``sys.stdout.isatty()`` → enable if TTY.
    """
    if force is not None:
        return force
    if os.environ.get('NO_COLOR', '') != '':
        return False
    if os.environ.get('FORCE_COLOR', '') != '':
        return True
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


class TreeStream:
    """Line accumulator for box-drawing trees.

    ``_more`` holds one flag per open depth: ``True`` when that level
    still has siblings to print below the current line.
    """

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._more: list[bool] = []

    @property
    def depth(self) -> int:
        return len(self._more)

    def write_root(self, text: str) -> None:
        self.lines.append(text)

    def write_child(self, text: str, *, last: bool) -> None:
        """Write a child of the current depth."""
        prefix = ''.join(DOWN if more else BLANK for more in self._more)
        self.lines.append(f'{prefix}{ELL if last else TEE}{text}')

    def push(self, *, last: bool) -> None:
        """Descend into the child just written."""
        self._more.append(not last)

    def pop(self) -> None:
        self._more.pop()

    def render(self) -> str:
        return '\n'.join(self.lines)


def _status(registry: PackageRegistry, ref: PackageRef, *, color: bool) -> str:
    licensed, _ = registry.is_package_licensed(ref)
    if licensed:
        return ' ' + _c('\u2713', _Ansi.GREEN, color=color)  # ✓
    return ' ' + _c('\u2717', _Ansi.BOLD_RED, color=color)  # ✗


def render_package_tree(
    package: str | PackageRef,
    registry: PackageRegistry,
    *,
    scope: str = 'core-packages',
    color: bool = False,
    show_licenses: bool = False,
) -> str:
    """Render *package* and its resolved dependencies as a tree.

    Children follow lock order. Rewritten dependencies and packages
    already on the current branch are printed as leaves, so rendering
    terminates on cycles.

    Args:
        package: Registry name or reference of the root.
        registry: Registry holding the root and its dependencies.
        scope: Scope printed before every core package name.
        color: Emit ANSI color codes.
        show_licenses: Suffix each package with ✓ or ✗.

    Raises:
        PackageNotFoundError: If *package* is unknown.
        UnresolvedDependencyError: If a dependency is not in the registry.
    """
    root_ref, root = registry.lookup(package)
    stream = TreeStream()

    def label(ref: PackageRef) -> str:
        pkg = registry.get(ref)
        text = _c(f'{scope}/{pkg.name}', _Ansi.BOLD, color=color) + f' (v{pkg.version})'
        if pkg.is_rewritten(registry.resolver):
            text += _c(' (rewritten)', _Ansi.DIM, color=color)
        return text

    def walk(ref: PackageRef, on_path: list[PackageRef]) -> None:
        children = registry.resolved_dependencies(ref)
        for index, (dep, dep_ref) in enumerate(children):
            last = index == len(children) - 1
            if dep_ref is None:
                text = f'{dep.registry_name} (v{dep.version})' + _c(' (rewritten)', _Ansi.DIM, color=color)
                stream.write_child(text, last=last)
                continue
            text = label(dep_ref)
            if dep_ref in on_path:
                stream.write_child(text + _c(' (cycle)', _Ansi.YELLOW, color=color), last=last)
                continue
            if show_licenses:
                text += _status(registry, dep_ref, color=color)
            stream.write_child(text, last=last)
            stream.push(last=last)
            on_path.append(dep_ref)
            walk(dep_ref, on_path)
            on_path.pop()
            stream.pop()

    root_text = label(root_ref)
    if show_licenses and not root.is_rewritten(registry.resolver):
        root_text += _status(registry, root_ref, color=color)
    stream.write_root(root_text)
    walk(root_ref, [root_ref])
    return stream.render()
