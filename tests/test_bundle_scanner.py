"""Tests for reading domain and pipe information out of .mthds bundles."""

import pytest

from mthds.bundle_scanner import (
    build_domain_exports_from_scan,
    load_bundle_metadata,
    load_bundles,
    scan_bundles_for_domain_info,
)
from mthds.domain import DomainExports

REVIEW_BUNDLE = """
domain = "legal.contracts"
main_pipe = "review"

[pipe.review]
type = "PipeSequence"
steps = [
    { pipe = "extract_clause" },
    { pipe = "scoring.compute_score" },
]

[pipe.route]
type = "PipeCondition"
default_pipe_code = "fallback"

[pipe.route.outcomes]
high = "legal.escalate"

[pipe.pick]
type = "PipeBatch"
branch_pipe_code = "summarize"
"""


@pytest.fixture
def bundle_file(tmp_path):
    path = tmp_path / "review.mthds"
    path.write_text(REVIEW_BUNDLE)
    return path


class TestLoadBundleMetadata:
    """Tests for load_bundle_metadata."""

    def test_references_with_context(self, bundle_file):
        """Test every kind of pipe reference."""
        metadata = load_bundle_metadata(bundle_file)
        assert metadata.domain == "legal.contracts"
        assert metadata.main_pipe == "review"
        assert metadata.pipe_references == [
            ("extract_clause", "pipe 'review' step 1"),
            ("scoring.compute_score", "pipe 'review' step 2"),
            ("fallback", "pipe 'route'"),
            ("legal.escalate", "pipe 'route' outcome 'high'"),
            ("summarize", "pipe 'pick'"),
        ]

    def test_missing_domain(self, tmp_path):
        """Test a bundle without a domain."""
        path = tmp_path / "bad.mthds"
        path.write_text('[pipe.a]\ntype = "PipeLLM"\n')
        with pytest.raises(ValueError, match="domain"):
            load_bundle_metadata(path)

    def test_load_bundles_collects_errors(self, tmp_path, bundle_file):
        """Test that bad bundles are reported and good ones kept."""
        broken = tmp_path / "broken.mthds"
        broken.write_text("domain = \n")
        bundles, errors = load_bundles([bundle_file, broken, tmp_path / "missing.mthds"])
        assert [b.domain for b in bundles] == ["legal.contracts"]
        assert len(errors) == 2
        assert errors[0].startswith(str(broken))


class TestScanBundles:
    """Tests for domain scanning and export generation."""

    def test_scan_and_build_exports(self, tmp_path, bundle_file):
        """Test merged pipes per domain with the main pipe included."""
        other = tmp_path / "more.mthds"
        other.write_text('domain = "legal.contracts"\n\n[pipe.extract_clause]\ntype = "PipeLLM"\n')

        domain_pipes, main_pipes, errors = scan_bundles_for_domain_info([bundle_file, other])

        assert errors == []
        assert domain_pipes == {"legal.contracts": {"review", "route", "pick", "extract_clause"}}
        assert main_pipes == {"legal.contracts": "review"}
        assert build_domain_exports_from_scan(domain_pipes, main_pipes) == {
            "legal.contracts": DomainExports(pipes=("extract_clause", "pick", "review", "route")),
        }

    def test_conflicting_main_pipe(self, tmp_path, bundle_file):
        """Test that the first main pipe is kept and the conflict reported."""
        other = tmp_path / "z.mthds"
        other.write_text('domain = "legal.contracts"\nmain_pipe = "other"\n')
        _, main_pipes, errors = scan_bundles_for_domain_info([bundle_file, other])
        assert main_pipes["legal.contracts"] == "review"
        assert len(errors) == 1 and "keeping 'review'" in errors[0]

    def test_main_pipe_without_definitions(self):
        """Test that a main pipe is exported even with no pipe tables."""
        exports = build_domain_exports_from_scan({"scoring": set()}, {"scoring": "compute"})
        assert exports == {"scoring": DomainExports(pipes=("compute",))}
