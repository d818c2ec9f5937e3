"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import sys
import click
from functools import wraps
from typing import Any, Generator
import logging

from .exit_codes import INTERRUPTED, get_exit_code_for_exception, CommandError
from .exceptions import IntegrityError, ManifestValidationError, MthdsPackageError

logger = logging.getLogger(__name__)


def _error_object(e: BaseException, exit_code: int) -> dict:
    error_obj = {
        "error": str(e),
        "type": type(e).__name__,
        "exit_code": exit_code,
    }
    # Collected failures travel with the error
    if isinstance(e, ManifestValidationError) and e.errors:
        error_obj['errors'] = list(e.errors)
    if isinstance(e, IntegrityError) and e.failures:
        error_obj['failures'] = list(e.failures)
    return error_obj


def handle_errors(func):
    """
    Decorator that gives every command the same failure behavior:
    - Human-readable message on stderr
    - With --json, an error object on stdout as well
    - Exit code chosen from the exception type

    The wrapped command must accept an ``output_json`` keyword.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        output_json = kwargs.get('output_json', False)
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except KeyboardInterrupt:
            click.echo("Interrupted by user", err=True)
            sys.exit(INTERRUPTED)
        except (CommandError, MthdsPackageError, LookupError, ValueError, OSError) as e:
            exit_code = get_exit_code_for_exception(e)
            logger.debug(f"{type(e).__name__}: {e}")
            click.echo(f"Error: {e}", err=True)
            if output_json:
                print(json.dumps(_error_object(e, exit_code), ensure_ascii=False), flush=True)
            sys.exit(exit_code)

    return wrapper


def output_result(result: Any):
    """
    Print results as JSONL.

    Args:
        result: A dict, or a list/generator of dicts
    """
    if isinstance(result, (Generator, list, tuple)):
        for item in result:
            print(json.dumps(item, ensure_ascii=False), flush=True)
    elif isinstance(result, dict):
        print(json.dumps(result, ensure_ascii=False), flush=True)


json_option = click.option('--json', 'output_json', is_flag=True, help='Output as JSONL')
