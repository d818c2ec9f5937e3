"""
Package commands for mthds.

Work on the package in the current directory (or PATH):
- validate: manifest, bundles and pipe visibility
- install: resolve dependencies into the cache, check or create methods.lock
- lock: resolve dependencies and rewrite methods.lock
- verify: re-hash every locked package in the cache
- list: show the manifest and its declared dependencies
- discover: list installable packages of a GitHub repository
"""

from pathlib import Path
from typing import Any, Dict

import click

from ..bundle_scanner import load_bundles
from ..cli_utils import handle_errors, json_option, output_result
from ..discovery import discover_remote_packages
from ..domain import MANIFEST_FILENAME, Manifest
from ..exceptions import LockFileError
from ..exit_codes import DATA_ERROR, NOT_FOUND, CommandError
from ..infra.git_client import GitClient
from ..infra.github_client import GitHubClient
from ..lock_file import (
    LOCK_FILENAME,
    LockFile,
    generate_lock_file,
    read_lock_file,
    verify_lock_file,
    write_lock_file,
)
from ..manifest import load_manifest
from ..package_cache import PackageCache
from ..render import (
    console,
    render_discovery,
    render_lock_table,
    render_manifest,
    render_resolved_table,
    render_visibility_errors,
)
from ..services.dependency_resolver import DependencyResolver, collect_mthds_files
from ..vcs_resolver import VCSResolver
from ..visibility import check_visibility

path_argument = click.argument(
    'path',
    type=click.Path(file_okay=False, path_type=Path),
    default='.',
    required=False,
)


def load_root_manifest(package_root: Path) -> Manifest:
    manifest_path = package_root / MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise CommandError(f"No {MANIFEST_FILENAME} found in {package_root}", NOT_FOUND)
    return load_manifest(manifest_path)


def make_cache(obj: Dict[str, Any]) -> PackageCache:
    """Cache at --cache-root, else at cache.root from configuration."""
    cache_root = obj.get('cache_root') or obj['config']['cache']['root']
    return PackageCache(cache_root)


def make_resolver(obj: Dict[str, Any], cache: PackageCache) -> DependencyResolver:
    config = obj['config']
    git = GitClient(
        ls_remote_timeout=config['git']['ls_remote_timeout'],
        clone_timeout=config['git']['clone_timeout'],
    )
    return DependencyResolver(
        vcs=VCSResolver(git),
        cache=cache,
        max_workers=config['resolution']['max_workers'],
    )


def _stale_lock_entries(existing: LockFile, fresh: LockFile):
    """Addresses whose resolved version is not the locked one."""
    stale = []
    for address, locked in fresh.packages.items():
        current = existing.packages.get(address)
        if current is None or current.version != locked.version:
            stale.append(address)
    return sorted(stale)


@click.command('validate')
@path_argument
@json_option
@click.pass_obj
@handle_errors
def validate_cmd(obj, path: Path, output_json: bool):
    """Validate METHODS.toml and the pipe visibility of every bundle.

    \b
    Examples:
        mthds validate
        mthds validate ./my-package --json
    """
    package_root = path.resolve()
    manifest = load_root_manifest(package_root)
    bundles, bundle_errors = load_bundles(collect_mthds_files(package_root))
    violations = check_visibility(manifest, bundles)

    if output_json:
        output_result({
            'valid': not violations and not bundle_errors,
            'address': manifest.address,
            'version': manifest.version,
            'bundles': len(bundles),
            'bundle_errors': bundle_errors,
            'violations': [v.to_dict() for v in violations],
        })
    else:
        console.print(f"[bold]{manifest.address}[/bold] {manifest.version}: {len(bundles)} bundle(s)")
        for error in bundle_errors:
            console.print(f"  [red]•[/red] {error}")
        render_visibility_errors(violations)

    if violations or bundle_errors:
        raise CommandError(
            f"{len(violations)} visibility violation(s), {len(bundle_errors)} unreadable bundle(s)",
            DATA_ERROR,
        )


@click.command('install')
@path_argument
@json_option
@click.pass_obj
@handle_errors
def install_cmd(obj, path: Path, output_json: bool):
    """Fetch dependencies into the cache.

    Writes methods.lock when there is none. When there is one, the
    resolution must match it and every locked package must hash to its
    locked value.
    """
    package_root = path.resolve()
    manifest = load_root_manifest(package_root)
    cache = make_cache(obj)
    resolved = make_resolver(obj, cache).resolve_all(manifest, package_root)
    fresh = generate_lock_file(manifest, resolved)

    lock_path = package_root / LOCK_FILENAME
    if lock_path.exists():
        existing = read_lock_file(lock_path)
        stale = _stale_lock_entries(existing, fresh)
        if stale:
            raise LockFileError(
                f"{LOCK_FILENAME} is out of date for: {', '.join(stale)}. Run 'mthds lock' to update it."
            )
        verify_lock_file(existing, cache)
    else:
        write_lock_file(lock_path, fresh)

    if output_json:
        output_result([dep.to_dict() for dep in resolved])
    else:
        render_resolved_table(resolved)


@click.command('lock')
@path_argument
@json_option
@click.pass_obj
@handle_errors
def lock_cmd(obj, path: Path, output_json: bool):
    """Resolve dependencies and rewrite methods.lock."""
    package_root = path.resolve()
    manifest = load_root_manifest(package_root)
    cache = make_cache(obj)
    resolved = make_resolver(obj, cache).resolve_all(manifest, package_root)
    lock_file = generate_lock_file(manifest, resolved)
    write_lock_file(package_root / LOCK_FILENAME, lock_file)

    if output_json:
        output_result([
            {'address': address, **lock_file.packages[address].to_dict()}
            for address in sorted(lock_file.packages)
        ])
    else:
        render_lock_table(lock_file)


@click.command('verify')
@path_argument
@json_option
@click.pass_obj
@handle_errors
def verify_cmd(obj, path: Path, output_json: bool):
    """Check every package of methods.lock against the cache."""
    lock_path = path.resolve() / LOCK_FILENAME
    if not lock_path.is_file():
        raise CommandError(f"No {LOCK_FILENAME} found in {path}", NOT_FOUND)

    lock_file = read_lock_file(lock_path)
    verify_lock_file(lock_file, make_cache(obj))

    if output_json:
        output_result({'verified': len(lock_file), 'lock_file': str(lock_path)})
    else:
        console.print(f"[green]✓ {len(lock_file)} locked package(s) verified.[/green]")


@click.command('list')
@path_argument
@json_option
@click.pass_obj
@handle_errors
def list_cmd(obj, path: Path, output_json: bool):
    """Show the package manifest and its declared dependencies."""
    manifest = load_root_manifest(path.resolve())
    if output_json:
        output_result(manifest.to_dict())
    else:
        render_manifest(manifest)


@click.command('discover')
@click.argument('address')
@json_option
@click.pass_obj
@handle_errors
def discover_cmd(obj, address: str, output_json: bool):
    """List installable packages under methods/ of a GitHub repository.

    \b
    Examples:
        mthds discover pipelex/cookbook
        mthds discover org/repo/sub/dir --json
    """
    config = obj['config']
    client = GitHubClient(token=config['github'].get('token') or None)
    result = discover_remote_packages(address, client, max_workers=config['discovery']['max_workers'])

    if output_json:
        output_result(result.to_dict())
    else:
        render_discovery(result)
