"""
Cache command group for mthds.
"""

import click

from ..cli_utils import handle_errors, json_option, output_result
from ..exit_codes import NOT_FOUND, CommandError
from ..render import console, render_cache_table
from .package import make_cache


@click.group('cache')
def cache_cmd():
    """Inspect and prune the local package cache.

    \b
    Examples:
        mthds cache list
        mthds cache evict github.com/org/scoring 1.0.0
    """
    pass


@cache_cmd.command('list')
@json_option
@click.pass_obj
@handle_errors
def cache_list(obj, output_json: bool):
    """List cached package versions."""
    cache = make_cache(obj)
    entries = cache.list_cached()

    if output_json:
        output_result([
            {'address': address, 'version': version, 'path': str(cache.path(address, version))}
            for address, version in entries
        ])
    else:
        render_cache_table(entries, str(cache.cache_root))


@cache_cmd.command('evict')
@click.argument('address')
@click.argument('version')
@json_option
@click.pass_obj
@handle_errors
def cache_evict(obj, address: str, version: str, output_json: bool):
    """Remove one cached package version."""
    if not make_cache(obj).evict(address, version):
        raise CommandError(f"{address}@{version} is not in the cache", NOT_FOUND)

    if output_json:
        output_result({'address': address, 'version': version, 'evicted': True})
    else:
        console.print(f"[green]✓ Evicted {address}@{version}[/green]")
