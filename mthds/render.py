"""
Rendering functions for mthds output.

This module handles all pretty-printing and table formatting.
Core functions return data, this module makes it human-readable.
"""

from rich.table import Table
from rich.console import Console
from rich import box
from typing import List, Optional, Sequence, Tuple

from .domain import Manifest
from .lock_file import LockFile
from .services.dependency_resolver import ResolvedDependency
from .visibility import VisibilityError

console = Console()


def render_table(headers: List[str], rows: List[List[str]], title: Optional[str] = None) -> None:
    """
    Render a generic table with the given headers and rows.

    Args:
        headers: List of column headers
        rows: List of rows, where each row is a list of values
        title: Optional table title
    """
    if not rows:
        console.print("[yellow]No data to display.[/yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta"
    )
    for header in headers:
        table.add_column(header)
    for row in rows:
        table.add_row(*[str(val) for val in row])

    console.print(table)


def render_manifest(manifest: Manifest) -> None:
    """Package summary followed by its declared dependencies."""
    overview = Table(title=manifest.display_name or manifest.address, box=box.ROUNDED)
    overview.add_column("Field", style="bold cyan")
    overview.add_column("Value")
    overview.add_row("Address", manifest.address)
    overview.add_row("Version", manifest.version)
    overview.add_row("Description", manifest.description)
    if manifest.main_pipe:
        overview.add_row("Main pipe", manifest.main_pipe)
    if manifest.exports:
        overview.add_row("Exported domains", str(len(manifest.exports)))
    console.print(overview)

    if not manifest.dependencies:
        console.print("[dim]No dependencies declared.[/dim]")
        return

    deps = Table(title="Dependencies", box=box.SIMPLE)
    deps.add_column("Alias", style="bold")
    deps.add_column("Address")
    deps.add_column("Constraint / Path")
    for alias in sorted(manifest.dependencies):
        dep = manifest.dependencies[alias]
        source = f"[cyan]{dep.path}[/cyan]" if dep.is_local else dep.version
        deps.add_row(alias, dep.address, source)
    console.print(deps)


def render_resolved_table(resolved: Sequence[ResolvedDependency]) -> None:
    if not resolved:
        console.print("[yellow]No dependencies to resolve.[/yellow]")
        return

    table = Table(title="Resolved Dependencies", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Address", style="bold")
    table.add_column("Version", justify="right")
    table.add_column("Source")
    table.add_column("Bundles", justify="right")
    for dep in resolved:
        source = "[cyan]local[/cyan]" if dep.is_local else "remote"
        table.add_row(dep.address, dep.version or "-", source, str(len(dep.files)))
    console.print(table)


def render_lock_table(lock_file: LockFile) -> None:
    if not lock_file.packages:
        console.print("[yellow]Lock file is empty.[/yellow]")
        return

    table = Table(title="methods.lock", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Address", style="bold")
    table.add_column("Version", justify="right")
    table.add_column("Hash")
    for address in sorted(lock_file.packages):
        locked = lock_file.packages[address]
        table.add_row(address, locked.version, f"{locked.hash[:19]}...")
    console.print(table)


def render_cache_table(entries: Sequence[Tuple[str, str]], cache_root: str) -> None:
    if not entries:
        console.print(f"[yellow]Cache at {cache_root} is empty.[/yellow]")
        return

    table = Table(title=f"Package Cache ({cache_root})", box=box.ROUNDED)
    table.add_column("Address", style="bold")
    table.add_column("Version", justify="right")
    for address, version in entries:
        table.add_row(address, version)
    console.print(table)


def render_visibility_errors(errors: Sequence[VisibilityError]) -> None:
    if not errors:
        console.print("[green]✓ All pipe references are visible.[/green]")
        return

    console.print(f"[red]✗ {len(errors)} visibility violation(s):[/red]")
    for error in errors:
        console.print(f"  [red]•[/red] {error.message}")


def render_discovery(result) -> None:
    """Packages found in a repository, then the skipped directories."""
    visibility = "public" if result.is_public else "private"
    rows = [
        [p.name, p.manifest.version, p.manifest.description, str(len(p.files))]
        for p in result.packages
    ]
    render_table(
        ["Name", "Version", "Description", "Bundles"],
        rows,
        title=f"{result.repo_name} ({visibility})",
    )
    for skipped in result.skipped:
        console.print(f"[yellow]Skipped {skipped.dir_name}:[/yellow] {'; '.join(skipped.errors)}")
