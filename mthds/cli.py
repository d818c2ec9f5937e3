#!/usr/bin/env python3

import click
from pathlib import Path

from mthds import __version__
from mthds.config import configure_logging, load_config
from mthds.commands.package import (
    discover_cmd,
    install_cmd,
    list_cmd,
    lock_cmd,
    validate_cmd,
    verify_cmd,
)
from mthds.commands.cache import cache_cmd


@click.group()
@click.version_option(version=__version__, prog_name='mthds')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging on stderr')
@click.option('--cache-root', type=click.Path(file_okay=False, path_type=Path),
              help='Package cache directory (overrides cache.root)')
@click.pass_context
def cli(ctx, verbose, cache_root):
    """mthds - Package manager for mthds pipeline packages.

    Resolves the dependencies declared in METHODS.toml, caches them under
    ~/.mthds/packages and pins them in methods.lock.
    """
    config = load_config()
    configure_logging(config, verbose=verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['cache_root'] = cache_root


cli.add_command(validate_cmd)
cli.add_command(install_cmd)
cli.add_command(lock_cmd)
cli.add_command(verify_cmd)
cli.add_command(list_cmd)
cli.add_command(discover_cmd)
cli.add_command(cache_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
