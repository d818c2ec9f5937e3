"""
METHODS.toml parsing, validation and serialization.

Parsing runs in two passes over the decoded TOML table:

1. Structural: the schema is closed. Unknown sections, unknown keys in
   [package] or a dependency table, missing required keys and wrong value
   types are all reported.
2. Semantic: address shape, semver version, naming rules, export domains,
   dependency constraints.

Each pass returns a list of error strings; a non-empty list raises
ManifestValidationError carrying every error. A partial manifest is never
returned.

Example:
    manifest = parse_manifest(Path("METHODS.toml").read_text())
    text = serialize_manifest(manifest)
    assert parse_manifest(text) == manifest
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union
import logging

import tomli_w

from .domain.manifest import (
    DISPLAY_NAME_MAX_LENGTH,
    MANIFEST_FILENAME,
    RESERVED_DOMAINS,
    DomainExports,
    Manifest,
    ManifestSchema,
    PackageDependency,
    is_domain_code_valid,
    is_pipe_code_valid,
    is_reserved_domain_path,
    is_snake_case,
    is_valid_address,
    is_valid_method_name,
)
from .exceptions import ManifestError, ManifestParseError, ManifestValidationError
from .semver import is_valid_semver, is_valid_version_constraint
from .utils import write_text_atomic

logger = logging.getLogger(__name__)

# Key -> expected python type after TOML decoding
PACKAGE_KEYS: Dict[str, type] = {
    'name': str,
    'address': str,
    'version': str,
    'description': str,
    'display_name': str,
    'authors': list,
    'license': str,
    'mthds_version': str,
    'main_pipe': str,
}
REQUIRED_PACKAGE_KEYS = ('address', 'version', 'description')
DEPENDENCY_KEYS = ('address', 'version', 'path')


def _allowed_sections(schema: ManifestSchema) -> Tuple[str, ...]:
    if schema is ManifestSchema.WITH_DEPENDENCIES:
        return ('package', 'dependencies', 'exports')
    return ('package', 'exports')


# =============================================================================
# EXPORTS FLATTENING
# =============================================================================

def _walk_exports(
    table: Dict[str, Any],
    prefix: str,
    errors: List[str],
) -> Dict[str, DomainExports]:
    """
    Flatten nested export tables into dotted domain paths.

    {"legal": {"contracts": {"pipes": ["extract_clause"]}}}
        -> {"legal.contracts": DomainExports(pipes=("extract_clause",))}
    """
    result: Dict[str, DomainExports] = {}

    for key, value in table.items():
        current_path = f"{prefix}.{key}" if prefix else key

        if not isinstance(value, dict):
            where = f"[exports.{prefix}]" if prefix else "[exports]"
            errors.append(
                f"Unknown key '{key}' in {where}. "
                f"Only 'pipes' and sub-domain tables are allowed."
            )
            continue

        if 'pipes' in value:
            unknown = sorted(
                k for k, v in value.items() if k != 'pipes' and not isinstance(v, dict)
            )
            if unknown:
                errors.append(f"Unknown keys in [exports.{current_path}]: {', '.join(unknown)}")

            pipes = value['pipes']
            if not isinstance(pipes, list):
                errors.append(
                    f"'pipes' in domain '{current_path}' must be a list, "
                    f"got {type(pipes).__name__}"
                )
            elif not all(isinstance(p, str) for p in pipes):
                errors.append(f"'pipes' in domain '{current_path}' must contain only strings")
            else:
                result[current_path] = DomainExports(pipes=tuple(pipes))

        sub_tables = {k: v for k, v in value.items() if isinstance(v, dict)}
        if 'pipes' not in value:
            for sub_key, sub_value in value.items():
                if not isinstance(sub_value, dict):
                    errors.append(
                        f"Unknown key '{sub_key}' in [exports.{current_path}]. "
                        f"Only 'pipes' and sub-domain tables are allowed."
                    )
        result.update(_walk_exports(sub_tables, current_path, errors))

    return result


# =============================================================================
# PASS 1: STRUCTURE
# =============================================================================

def _type_name(expected: type) -> str:
    return 'an array of strings' if expected is list else 'a string'


def check_structure(raw: Dict[str, Any], schema: ManifestSchema) -> List[str]:
    """Closed-schema check of the decoded TOML table."""
    errors: List[str] = []
    allowed = _allowed_sections(schema)

    unknown_sections = sorted(set(raw) - set(allowed))
    if 'dependencies' in unknown_sections:
        unknown_sections.remove('dependencies')
        errors.append(
            "[dependencies] section is not supported by the declarative manifest schema"
        )
    if unknown_sections:
        errors.append(f"Unknown sections in {MANIFEST_FILENAME}: {', '.join(unknown_sections)}")

    package = raw.get('package')
    if package is None:
        errors.append("[package] section is required")
    elif not isinstance(package, dict):
        errors.append("[package] must be a table")
    else:
        unknown_keys = sorted(set(package) - set(PACKAGE_KEYS))
        if unknown_keys:
            errors.append(f"Unknown keys in [package]: {', '.join(unknown_keys)}")
        for key in REQUIRED_PACKAGE_KEYS:
            if key not in package:
                errors.append(f"[package.{key}] is required")
        for key, expected in PACKAGE_KEYS.items():
            if key not in package:
                continue
            value = package[key]
            if not isinstance(value, expected):
                errors.append(f"[package.{key}] must be {_type_name(expected)}")
            elif expected is list and not all(isinstance(v, str) for v in value):
                errors.append(f"[package.{key}] must contain only strings")

    exports = raw.get('exports')
    if exports is not None:
        if isinstance(exports, dict):
            _walk_exports(exports, "", errors)
        else:
            errors.append("[exports] must be a table")

    dependencies = raw.get('dependencies')
    if dependencies is not None and 'dependencies' in allowed:
        if not isinstance(dependencies, dict):
            errors.append("[dependencies] must be a table")
        else:
            for alias, entry in dependencies.items():
                if not isinstance(entry, dict):
                    errors.append(f"[dependencies.{alias}] must be a table")
                    continue
                unknown_keys = sorted(set(entry) - set(DEPENDENCY_KEYS))
                if unknown_keys:
                    errors.append(
                        f"Unknown keys in [dependencies.{alias}]: {', '.join(unknown_keys)}"
                    )
                if 'address' not in entry:
                    errors.append(f"[dependencies.{alias}.address] is required")
                for key in DEPENDENCY_KEYS:
                    if key in entry and not isinstance(entry[key], str):
                        errors.append(f"[dependencies.{alias}.{key}] must be a string")

    return errors


# =============================================================================
# PASS 2: SEMANTICS
# =============================================================================

def _check_package_fields(package: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    address = package['address']
    if not is_valid_address(address):
        errors.append(
            f"Invalid package address '{address}'. Address must follow hostname/path "
            f"pattern with a dot in the hostname (e.g. 'github.com/org/repo')."
        )

    version = package['version']
    if not is_valid_semver(version):
        errors.append(
            f"Invalid version '{version}'. Must be valid semver (e.g. '1.0.0', '2.1.3-beta.1')."
        )

    if not package['description'].strip():
        errors.append("[package.description] is required and must be a non-empty string")

    if 'display_name' in package:
        display_name = package['display_name'].strip()
        if not display_name:
            errors.append("Display name must not be empty or whitespace when provided")
        elif len(display_name) > DISPLAY_NAME_MAX_LENGTH:
            errors.append(
                f"Display name must not exceed {DISPLAY_NAME_MAX_LENGTH} characters "
                f"(got {len(display_name)})"
            )

    for idx, author in enumerate(package.get('authors', [])):
        if not author.strip():
            errors.append(f"Author at index {idx} must not be empty or whitespace")

    if 'license' in package and not package['license'].strip():
        errors.append("License must not be empty or whitespace when provided")

    if 'mthds_version' in package and not is_valid_version_constraint(package['mthds_version']):
        errors.append(
            f"Invalid mthds_version constraint '{package['mthds_version']}'. "
            f"Must be a valid version constraint."
        )

    if 'name' in package and not is_valid_method_name(package['name']):
        errors.append(
            f"Invalid method name '{package['name']}'. Must be 2-25 lowercase chars "
            f"(letters, digits, hyphens, underscores), starting with a letter."
        )

    if 'main_pipe' in package and not is_pipe_code_valid(package['main_pipe']):
        errors.append(
            f"Invalid main_pipe '{package['main_pipe']}'. Must be a valid snake_case pipe code."
        )

    return errors


def _check_exports(exports: Dict[str, DomainExports]) -> List[str]:
    errors: List[str] = []
    for domain_path, domain_exports in exports.items():
        if not is_domain_code_valid(domain_path) or '->' in domain_path:
            errors.append(
                f"Invalid domain path '{domain_path}' in [exports]. "
                f"Domain paths must be dot-separated snake_case segments."
            )
            continue
        if is_reserved_domain_path(domain_path):
            first_segment = domain_path.split('.')[0]
            errors.append(
                f"Domain path '{domain_path}' uses reserved domain '{first_segment}'. "
                f"Reserved domains ({', '.join(sorted(RESERVED_DOMAINS))}) "
                f"cannot be used in package exports."
            )
        for pipe in domain_exports.pipes:
            if not is_pipe_code_valid(pipe):
                errors.append(
                    f"Invalid pipe name '{pipe}' in [exports.{domain_path}]. "
                    f"Pipe names must be in snake_case."
                )
    return errors


def _check_dependencies(dependencies: Dict[str, Dict[str, str]]) -> List[str]:
    errors: List[str] = []
    for alias, entry in dependencies.items():
        if not is_snake_case(alias):
            errors.append(f"Invalid dependency alias '{alias}'. Aliases must be snake_case.")

        address = entry['address']
        if not is_valid_address(address):
            errors.append(
                f"Invalid address '{address}' for dependency '{alias}'. "
                f"Address must follow hostname/path pattern (e.g. 'github.com/org/repo')."
            )

        has_path = 'path' in entry
        has_version = 'version' in entry
        if has_path == has_version:
            errors.append(
                f"Dependency '{alias}' must declare exactly one of 'path' (local) "
                f"or 'version' (remote)"
            )
        if has_path and not entry['path'].strip():
            errors.append(f"Dependency '{alias}' has an empty 'path'")
        if has_version and not is_valid_version_constraint(entry['version']):
            errors.append(
                f"Invalid version constraint '{entry['version']}' for dependency '{alias}'"
            )
    return errors


def check_semantics(raw: Dict[str, Any]) -> List[str]:
    """Semantic rules; assumes check_structure() reported nothing."""
    errors = _check_package_fields(raw['package'])
    errors.extend(_check_exports(_walk_exports(raw.get('exports', {}), "", [])))
    errors.extend(_check_dependencies(raw.get('dependencies', {})))
    return errors


# =============================================================================
# PARSE / SERIALIZE
# =============================================================================

def _build_manifest(raw: Dict[str, Any]) -> Manifest:
    package = raw['package']
    display_name = package.get('display_name')
    dependencies = {
        alias: PackageDependency(
            alias=alias,
            address=entry['address'],
            version=entry.get('version'),
            path=entry.get('path'),
        )
        for alias, entry in raw.get('dependencies', {}).items()
    }
    return Manifest(
        address=package['address'],
        version=package['version'],
        description=package['description'].strip(),
        authors=tuple(package.get('authors', [])),
        name=package.get('name'),
        display_name=display_name.strip() if display_name is not None else None,
        license=package.get('license'),
        mthds_version=package.get('mthds_version'),
        main_pipe=package.get('main_pipe'),
        dependencies=dependencies,
        exports=_walk_exports(raw.get('exports', {}), "", []),
    )


def parse_manifest(
    content: str,
    schema: ManifestSchema = ManifestSchema.WITH_DEPENDENCIES,
) -> Manifest:
    """
    Parse METHODS.toml content into a Manifest.

    Args:
        content: TOML text
        schema: Which manifest variant to accept

    Raises:
        ManifestParseError: invalid TOML syntax
        ManifestValidationError: structural or semantic violations (all of them)
    """
    try:
        raw = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ManifestParseError(f"Invalid TOML syntax in {MANIFEST_FILENAME}: {e}") from e

    errors = check_structure(raw, schema)
    if errors:
        raise ManifestValidationError.from_errors(errors)

    errors = check_semantics(raw)
    if errors:
        raise ManifestValidationError.from_errors(errors)

    return _build_manifest(raw)


def serialize_manifest(manifest: Manifest) -> str:
    """Serialize a Manifest to TOML text that parses back to an equal Manifest."""
    package: Dict[str, Any] = {}
    if manifest.name is not None:
        package['name'] = manifest.name
    package['address'] = manifest.address
    if manifest.display_name is not None:
        package['display_name'] = manifest.display_name
    package['version'] = manifest.version
    package['description'] = manifest.description
    if manifest.authors:
        package['authors'] = list(manifest.authors)
    if manifest.license is not None:
        package['license'] = manifest.license
    if manifest.mthds_version is not None:
        package['mthds_version'] = manifest.mthds_version
    if manifest.main_pipe is not None:
        package['main_pipe'] = manifest.main_pipe

    doc: Dict[str, Any] = {'package': package}

    if manifest.dependencies:
        doc['dependencies'] = {
            alias: dep.to_dict() for alias, dep in manifest.dependencies.items()
        }

    if manifest.exports:
        exports_root: Dict[str, Any] = {}
        for domain_path in sorted(manifest.exports):
            current = exports_root
            for segment in domain_path.split('.'):
                current = current.setdefault(segment, {})
            current['pipes'] = list(manifest.exports[domain_path].pipes)
        doc['exports'] = exports_root

    return tomli_w.dumps(doc)


def load_manifest(
    path: Union[str, Path],
    schema: ManifestSchema = ManifestSchema.WITH_DEPENDENCIES,
) -> Manifest:
    """Read and parse a manifest file."""
    manifest_path = Path(path)
    try:
        content = manifest_path.read_text(encoding='utf-8')
    except OSError as e:
        raise ManifestParseError(f"Cannot read {manifest_path}: {e}") from e
    return parse_manifest(content, schema)


def write_manifest(path: Union[str, Path], manifest: Manifest) -> Path:
    return write_text_atomic(path, serialize_manifest(manifest))


def find_manifest_in_dir(directory: Union[str, Path]) -> Optional[Manifest]:
    """
    Load the manifest at the root of a package directory.

    Returns None when there is no manifest or it does not validate, which
    callers treat as "no restrictions".
    """
    manifest_path = Path(directory) / MANIFEST_FILENAME
    if not manifest_path.is_file():
        return None
    try:
        return load_manifest(manifest_path)
    except ManifestError as e:
        logger.warning(f"Ignoring invalid manifest {manifest_path}: {e}")
        return None
