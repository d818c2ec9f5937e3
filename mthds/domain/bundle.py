"""Bundle metadata needed for visibility checking."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class BundleMetadata:
    """
    What the visibility checker needs to know about one .mthds bundle.

    Attributes:
        domain: Dotted domain path the bundle declares
        main_pipe: The domain's default pipe, implicitly exported
        pipe_references: (reference, context) pairs, e.g.
            ("legal.extract_clause", "pipe 'review' step 1")
    """
    domain: str
    main_pipe: Optional[str] = None
    pipe_references: List[Tuple[str, str]] = field(default_factory=list)
