"""
Pipe visibility rules across domains of one package.

A bundle may always call pipes of its own domain and bare (unqualified)
pipes. A qualified reference into another domain is allowed only when that
domain exports the pipe in METHODS.toml, or the pipe is the domain's
main_pipe. Without a manifest everything is public.

Every check returns the full list of violations.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set
import logging

from .domain import BundleMetadata, Manifest, QualifiedRef, RESERVED_DOMAINS, is_reserved_domain_path
from .domain.qualified_ref import has_cross_package_prefix, split_cross_package_ref
from .exceptions import QualifiedRefError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisibilityError:
    """One visibility violation."""
    pipe_ref: str
    source_domain: str
    target_domain: str
    context: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'pipe_ref': self.pipe_ref,
            'source_domain': self.source_domain,
            'target_domain': self.target_domain,
            'context': self.context,
            'message': self.message,
        }


class PackageVisibilityChecker:
    """
    Checks the pipe references of a package's bundles against its exports.

    Example:
        checker = PackageVisibilityChecker(manifest, bundles)
        for error in checker.validate_all_pipe_references():
            print(error.message)
    """

    def __init__(self, manifest: Optional[Manifest], bundles: Sequence[BundleMetadata]):
        self.manifest = manifest
        self.bundles = list(bundles)

        self.exported_pipes: Dict[str, Set[str]] = {}
        if manifest is not None:
            for domain_path, domain_exports in manifest.exports.items():
                self.exported_pipes[domain_path] = set(domain_exports.pipes)

        # Conflicting main_pipe for one domain: first bundle wins
        self.main_pipes: Dict[str, str] = {}
        for bundle in self.bundles:
            if bundle.main_pipe and bundle.domain not in self.main_pipes:
                self.main_pipes[bundle.domain] = bundle.main_pipe

    def is_pipe_accessible_from(self, ref: QualifiedRef, source_domain: str) -> bool:
        if self.manifest is None:
            return True
        if ref.is_local_to(source_domain):
            return True

        target = ref.domain_path
        if ref.local_code in self.exported_pipes.get(target, set()):
            return True
        return self.main_pipes.get(target) == ref.local_code

    def validate_all_pipe_references(self) -> List[VisibilityError]:
        """Domain-qualified references that reach non-exported pipes, plus malformed ones."""
        if self.manifest is None:
            return []

        errors = []
        for bundle in self.bundles:
            for raw_ref, context in bundle.pipe_references:
                if has_cross_package_prefix(raw_ref):
                    continue

                try:
                    ref = QualifiedRef.parse_pipe_ref(raw_ref)
                except QualifiedRefError as e:
                    errors.append(VisibilityError(
                        pipe_ref=raw_ref,
                        source_domain=bundle.domain,
                        target_domain="",
                        context=context,
                        message=f"Invalid pipe reference '{raw_ref}' in {context} "
                                f"(domain '{bundle.domain}'): {e}",
                    ))
                    continue

                if not self.is_pipe_accessible_from(ref, bundle.domain):
                    target = ref.domain_path or ""
                    errors.append(VisibilityError(
                        pipe_ref=raw_ref,
                        source_domain=bundle.domain,
                        target_domain=target,
                        context=context,
                        message=f"Pipe '{raw_ref}' referenced in {context} (domain '{bundle.domain}') "
                                f"is not exported by domain '{target}'. "
                                f"Add it to [exports.{target}] pipes in METHODS.toml.",
                    ))
        return errors

    def validate_cross_package_references(self) -> List[VisibilityError]:
        """References of the form alias->domain.pipe, which are not supported yet."""
        if self.manifest is None:
            return []

        known_aliases = set(self.manifest.dependencies)
        errors = []
        for bundle in self.bundles:
            for raw_ref, context in bundle.pipe_references:
                if not has_cross_package_prefix(raw_ref):
                    continue

                alias, _ = split_cross_package_ref(raw_ref)
                if alias not in known_aliases:
                    message = (
                        f"Cross-package reference '{raw_ref}' in {context} (domain '{bundle.domain}'): "
                        f"alias '{alias}' is not declared in [dependencies] of METHODS.toml."
                    )
                else:
                    message = (
                        f"Cross-package reference '{raw_ref}' in {context} (domain '{bundle.domain}'): "
                        f"calling pipes of dependency '{alias}' is not supported yet."
                    )
                errors.append(VisibilityError(
                    pipe_ref=raw_ref,
                    source_domain=bundle.domain,
                    target_domain=alias,
                    context=context,
                    message=message,
                ))
        return errors

    def validate_reserved_domains(self) -> List[VisibilityError]:
        """Bundles declaring a domain under native, mthds or pipelex."""
        errors = []
        reserved = ", ".join(sorted(RESERVED_DOMAINS))
        for bundle in self.bundles:
            if is_reserved_domain_path(bundle.domain):
                first_segment = bundle.domain.split('.')[0]
                errors.append(VisibilityError(
                    pipe_ref="",
                    source_domain=bundle.domain,
                    target_domain=first_segment,
                    context="bundle domain declaration",
                    message=f"Bundle domain '{bundle.domain}' uses reserved domain '{first_segment}'. "
                            f"Reserved domains ({reserved}) cannot be used in user packages.",
                ))
        return errors


def check_visibility(manifest: Optional[Manifest], bundles: Sequence[BundleMetadata]) -> List[VisibilityError]:
    """Reserved-domain, intra-package and cross-package violations, in that order."""
    checker = PackageVisibilityChecker(manifest, bundles)
    errors = checker.validate_reserved_domains()
    errors.extend(checker.validate_all_pipe_references())
    errors.extend(checker.validate_cross_package_references())
    if errors:
        logger.debug(f"{len(errors)} visibility violations")
    return errors
