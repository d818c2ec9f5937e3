"""
Read .mthds bundles for the domain and pipe information packaging needs.

A bundle is a TOML file:

    domain = "legal.contracts"
    main_pipe = "review"

    [pipe.review]
    type = "PipeSequence"
    steps = [{ pipe = "extract_clause" }, { pipe = "scoring.compute_score" }]

Pipe definitions name other pipes under ``pipe``, ``branch_pipe_code`` and
``default_pipe_code`` keys, and as values of ``outcomes`` tables.
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set, Tuple, Union
import logging

from .domain import BundleMetadata, DomainExports

logger = logging.getLogger(__name__)

PIPE_REFERENCE_KEYS = ('pipe', 'branch_pipe_code', 'default_pipe_code')
OUTCOMES_KEY = 'outcomes'


def _read_bundle(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, 'rb') as f:
        return tomllib.load(f)


def scan_bundles_for_domain_info(
    files: Iterable[Union[str, Path]],
) -> Tuple[Dict[str, Set[str]], Dict[str, str], List[str]]:
    """
    Collect the pipes and main pipe of every domain found in bundles.

    Unreadable bundles, bundles without a domain and conflicting main
    pipes are reported in the error list; the first main pipe is kept.

    Returns:
        (domain -> pipe codes, domain -> main pipe, errors)
    """
    domain_pipes: Dict[str, Set[str]] = {}
    domain_main_pipes: Dict[str, str] = {}
    errors: List[str] = []

    for file_path in files:
        try:
            data = _read_bundle(file_path)
        except (OSError, tomllib.TOMLDecodeError) as e:
            errors.append(f"{file_path}: {e}")
            continue

        domain = data.get('domain')
        if not isinstance(domain, str) or not domain:
            errors.append(f"{file_path}: missing or invalid 'domain' field")
            continue

        pipes = data.get('pipe')
        codes = set(pipes) if isinstance(pipes, dict) else set()
        domain_pipes.setdefault(domain, set()).update(codes)

        main_pipe = data.get('main_pipe')
        if isinstance(main_pipe, str) and main_pipe:
            existing = domain_main_pipes.get(domain)
            if existing is None:
                domain_main_pipes[domain] = main_pipe
            elif existing != main_pipe:
                errors.append(
                    f"{file_path}: conflicting main_pipe for domain '{domain}': "
                    f"'{existing}' vs '{main_pipe}' (keeping '{existing}')"
                )

    return domain_pipes, domain_main_pipes, errors


def build_domain_exports_from_scan(
    domain_pipes: Dict[str, Set[str]],
    domain_main_pipes: Dict[str, str],
) -> Dict[str, DomainExports]:
    """Exports listing every scanned pipe (main pipes included), sorted."""
    exports = {}
    for domain in sorted(domain_pipes):
        pipes = set(domain_pipes[domain])
        main_pipe = domain_main_pipes.get(domain)
        if main_pipe:
            pipes.add(main_pipe)
        exports[domain] = DomainExports(pipes=tuple(sorted(pipes)))
    return exports


def _collect_references(node: Any, context: str, refs: List[Tuple[str, str]]) -> None:
    if isinstance(node, dict):
        for key, value in node.items():
            if key in PIPE_REFERENCE_KEYS and isinstance(value, str):
                refs.append((value, context))
            elif key == OUTCOMES_KEY and isinstance(value, dict):
                for outcome, target in value.items():
                    if isinstance(target, str):
                        refs.append((target, f"{context} outcome '{outcome}'"))
            else:
                _collect_references(value, context, refs)
    elif isinstance(node, list):
        for index, item in enumerate(node, start=1):
            _collect_references(item, f"{context} step {index}", refs)


def load_bundle_metadata(path: Union[str, Path]) -> BundleMetadata:
    """
    Read one bundle into the metadata the visibility checker consumes.

    Raises:
        OSError, tomllib.TOMLDecodeError: unreadable bundle
        ValueError: no domain declared
    """
    data = _read_bundle(path)
    domain = data.get('domain')
    if not isinstance(domain, str) or not domain:
        raise ValueError("missing or invalid 'domain' field")

    main_pipe = data.get('main_pipe')
    refs: List[Tuple[str, str]] = []
    pipes = data.get('pipe')
    if isinstance(pipes, dict):
        for code, definition in pipes.items():
            _collect_references(definition, f"pipe '{code}'", refs)

    return BundleMetadata(
        domain=domain,
        main_pipe=main_pipe if isinstance(main_pipe, str) and main_pipe else None,
        pipe_references=refs,
    )


def load_bundles(files: Iterable[Union[str, Path]]) -> Tuple[List[BundleMetadata], List[str]]:
    """Load metadata for many bundles, collecting per-file errors."""
    bundles = []
    errors = []
    for file_path in files:
        try:
            bundles.append(load_bundle_metadata(file_path))
        except (OSError, ValueError) as e:
            # TOMLDecodeError is a ValueError
            logger.debug(f"Skipping bundle {file_path}: {e}")
            errors.append(f"{file_path}: {e}")
    return bundles, errors
