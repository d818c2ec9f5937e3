"""
Domain-qualified references.

A reference names a pipe or concept, optionally prefixed by the dotted
domain path it lives in:

    QualifiedRef.parse("extract_clause")             -> bare reference
    QualifiedRef.parse("legal.contracts.extract")    -> domain "legal.contracts"

Cross-package references put a dependency alias in front with ``->``
(``scoring_lib->scoring.compute_score``).
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from ..exceptions import QualifiedRefError
from .manifest import is_pascal_case, is_snake_case

CROSS_PACKAGE_SEPARATOR = '->'


@dataclass(frozen=True)
class QualifiedRef:
    """A reference split on its last dot into domain path and local code."""

    domain_path: Optional[str]
    local_code: str

    @classmethod
    def parse(cls, raw: str) -> 'QualifiedRef':
        """Split on the last dot. No naming-convention check on the code."""
        if not raw:
            raise QualifiedRefError("Qualified reference cannot be empty")
        if raw.startswith('.') or raw.endswith('.'):
            raise QualifiedRefError(
                f"Qualified reference '{raw}' must not start or end with a dot"
            )
        if '..' in raw:
            raise QualifiedRefError(
                f"Qualified reference '{raw}' must not contain consecutive dots"
            )
        if '.' not in raw:
            return cls(domain_path=None, local_code=raw)
        domain_path, local_code = raw.rsplit('.', 1)
        return cls(domain_path=domain_path, local_code=local_code)

    @classmethod
    def parse_pipe_ref(cls, raw: str) -> 'QualifiedRef':
        """Parse a pipe reference: snake_case domain segments and pipe code."""
        ref = cls.parse(raw)
        if not is_snake_case(ref.local_code):
            raise QualifiedRefError(
                f"Pipe code '{ref.local_code}' in reference '{raw}' must be snake_case"
            )
        ref._check_domain_segments(raw)
        return ref

    @classmethod
    def parse_concept_ref(cls, raw: str) -> 'QualifiedRef':
        """Parse a concept reference: snake_case domain segments, PascalCase code."""
        ref = cls.parse(raw)
        if not is_pascal_case(ref.local_code):
            raise QualifiedRefError(
                f"Concept code '{ref.local_code}' in reference '{raw}' must be PascalCase"
            )
        ref._check_domain_segments(raw)
        return ref

    def _check_domain_segments(self, raw: str) -> None:
        if self.domain_path is None:
            return
        for segment in self.domain_path.split('.'):
            if not is_snake_case(segment):
                raise QualifiedRefError(
                    f"Domain segment '{segment}' in reference '{raw}' must be snake_case"
                )

    @property
    def is_qualified(self) -> bool:
        return self.domain_path is not None

    @property
    def full_ref(self) -> str:
        if self.domain_path is not None:
            return f"{self.domain_path}.{self.local_code}"
        return self.local_code

    def is_local_to(self, domain: str) -> bool:
        """True for bare references and references into the same domain."""
        return self.domain_path is None or self.domain_path == domain

    def is_external_to(self, domain: str) -> bool:
        return self.domain_path is not None and self.domain_path != domain

    def __str__(self) -> str:
        return self.full_ref


def has_cross_package_prefix(raw: str) -> bool:
    return CROSS_PACKAGE_SEPARATOR in raw


def split_cross_package_ref(raw: str) -> Tuple[str, str]:
    """Split ``alias->domain.pipe`` into ``("alias", "domain.pipe")``."""
    if CROSS_PACKAGE_SEPARATOR not in raw:
        raise QualifiedRefError(
            f"Reference '{raw}' is not a cross-package reference (no '->' found)"
        )
    alias, remainder = raw.split(CROSS_PACKAGE_SEPARATOR, 1)
    return alias, remainder
