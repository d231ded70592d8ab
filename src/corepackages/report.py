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

"""Registry summary table with Rust-style diagnostics.

Example (no color)::

    Path name                    Registry name    Version  Licenses  Status
    ──────────────────────────────────────────────────────────────────────────
    DiffSequences-edcba0e9-3.2.1 diff-sequences   3.2.1    MIT       ✗ unlicensed
    JestCircus-edcba0e9-3.2.1    jest-circus      3.2.1    MIT       ✗ unlicensed
    LuauPolyfill-2fca3173-1.1.0  luau-polyfill    1.1.0    MIT       ✓ ok

    1/3 packages can be emitted.

    error[unlicensed]: diff-sequences (v3.2.1) cannot be emitted
      --> DiffSequences-edcba0e9-3.2.1/DiffSequences/src/init.lua
       = help: add a license header or allow-list the module
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from corepackages.registry import EmitDecision, ExclusionReason, PackageRegistry

__all__ = [
    'format_registry_report',
    'print_registry_report',
]

_STATUS_STYLE: dict[ExclusionReason | None, tuple[str, str, str]] = {
    None: ('\u2713', 'ok', 'green'),  # ✓
    ExclusionReason.REWRITTEN: ('\u21aa', 'rewritten', 'dim'),  # ↪
    ExclusionReason.UNLICENSED: ('\u2717', 'unlicensed', 'bold red'),  # ✗
}


def print_registry_report(registry: PackageRegistry, console: Console | None = None) -> None:
    """Print every package with its emit status.

    Outputs a Rich table, then one diagnostic block per package that
    cannot be emitted and per index entry skipped during discovery.

    Args:
        registry: A populated registry.
        console: Rich :class:`Console` to print to. When ``None``,
            a default ``Console()`` is created (auto-detects TTY).
    """
    if console is None:
        console = Console()

    table = Table(
        show_header=True,
        header_style='bold',
        show_edge=False,
        pad_edge=False,
        expand=True,
    )
    table.add_column('Path name', min_width=20, style='bold')
    table.add_column('Registry name', min_width=16)
    table.add_column('Version', min_width=8)
    table.add_column('Licenses', ratio=2, style='dim')
    table.add_column('Status', min_width=12)

    decisions: list[tuple[str, str, EmitDecision]] = []
    for ref, pkg in sorted(registry, key=lambda item: item[1].identity.path_name):
        decision = registry.include_in_emit(ref)
        decisions.append((pkg.name, pkg.version, decision))
        icon, label, style = _STATUS_STYLE[decision.reason]
        licenses = ', '.join(pkg.licenses_in_use) if registry.check_licenses else 'unchecked'
        table.add_row(
            pkg.identity.path_name,
            pkg.name,
            pkg.version,
            licenses or '-',
            Text(f'{icon} {label}', style=style),
        )

    console.print(table)

    emittable = sum(1 for _, _, d in decisions if d.included)
    if emittable == len(decisions):
        console.print(f'\n[bold green]{emittable}/{len(decisions)} packages can be emitted.[/]')
    else:
        console.print(f'\n{emittable}/{len(decisions)} packages can be emitted.')

    unlicensed = [(n, v, d) for n, v, d in decisions if d.reason is ExclusionReason.UNLICENSED]
    if not unlicensed and not registry.discovery_errors:
        return

    console.print()
    for name, version, decision in unlicensed:
        console.print(f'[bold red]error\\[unlicensed][/][bold]: {escape(name)} (v{escape(version)}) cannot be emitted[/]')
        for path in decision.unlicensed_files:
            console.print(f'  [cyan]-->[/] {escape(str(path))}')
        console.print('   [cyan]=[/] [green]help[/]: add a license header or allow-list the module')
        console.print()

    for exc in registry.discovery_errors:
        console.print('[bold yellow]warning\\[discovery][/][bold]: package skipped[/]')
        console.print(f'  [cyan]-->[/] {escape(str(exc.path))}')
        console.print(f'   [cyan]=[/] [bold]note[/]: {escape(exc.reason)}')
        console.print()

    parts: list[str] = []
    if unlicensed:
        parts.append(f'[bold red]{len(unlicensed)} error(s)[/]')
    if registry.discovery_errors:
        parts.append(f'[bold yellow]{len(registry.discovery_errors)} warning(s)[/]')
    console.print(f'Found {", ".join(parts)}.')


def format_registry_report(registry: PackageRegistry, *, color: bool = False) -> str:
    """Format the registry report as a string.

    Thin wrapper around :func:`print_registry_report` that captures the
    Rich output. Useful for tests and non-interactive callers.
    """
    buf = StringIO()
    console = Console(file=buf, force_terminal=color, width=120)
    print_registry_report(registry, console=console)
    return buf.getvalue().rstrip('\n')
