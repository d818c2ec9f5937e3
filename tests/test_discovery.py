"""Tests for local manifest lookup and remote package discovery."""

import pytest

from mthds.discovery import (
    RepoAddress,
    discover_remote_packages,
    find_package_manifest,
    parse_repo_address,
)
from mthds.exceptions import ManifestValidationError

from conftest import FakeGitHub, manifest_toml, write_tree


class TestFindPackageManifest:
    """Tests for find_package_manifest."""

    def test_nearest_manifest_above_bundle(self, tmp_path):
        """Test walking up from a nested bundle."""
        write_tree(tmp_path / "pkg", {
            "METHODS.toml": manifest_toml("github.com/org/pkg"),
            "legal/contracts/review.mthds": 'domain = "legal.contracts"\n',
        })
        manifest = find_package_manifest(tmp_path / "pkg" / "legal" / "contracts" / "review.mthds")
        assert manifest.address == "github.com/org/pkg"

    def test_stops_at_git_boundary(self, tmp_path):
        """Test that the search does not leave the repository."""
        write_tree(tmp_path, {"METHODS.toml": manifest_toml("github.com/org/outer")})
        write_tree(tmp_path / "repo", {".git/HEAD": "x", "b/bundle.mthds": ""})
        assert find_package_manifest(tmp_path / "repo" / "b" / "bundle.mthds") is None

    def test_invalid_manifest_raises(self, tmp_path):
        """Test that a broken manifest is an error rather than 'no package'."""
        write_tree(tmp_path, {"METHODS.toml": "[package]\n", ".git/HEAD": "x", "x.mthds": ""})
        with pytest.raises(ManifestValidationError):
            find_package_manifest(tmp_path / "x.mthds")


class TestParseRepoAddress:
    """Tests for parse_repo_address."""

    def test_org_repo(self):
        """Test the short form."""
        assert parse_repo_address("pipelex/cookbook") == RepoAddress("pipelex", "cookbook")

    def test_subpath_and_prefix(self):
        """Test a github.com prefix and a nested path."""
        address = parse_repo_address("github.com/org/repo/sub/dir/")
        assert address == RepoAddress("org", "repo", "sub/dir")
        assert address.methods_path == "sub/dir/methods"
        assert str(address) == "org/repo/sub/dir"

    @pytest.mark.parametrize("text", ["cookbook", "org/re po", "org/repo$"])
    def test_invalid(self, text):
        """Test malformed addresses."""
        with pytest.raises(ValueError):
            parse_repo_address(text)


class TestDiscoverRemotePackages:
    """Tests for discover_remote_packages."""

    def test_packages_and_skipped(self):
        """Test valid, manifest-less and invalid package directories."""
        client = FakeGitHub({
            "methods/contract_review/METHODS.toml": manifest_toml(
                "github.com/org/contract-review", extra_package='name = "contract-review"'
            ),
            "methods/contract_review/review.mthds": 'domain = "legal"\n',
            "methods/contract_review/sub/extra.mthds": 'domain = "legal.extra"\n',
            "methods/contract_review/README.md": "docs",
            "methods/no_manifest/x.mthds": 'domain = "x"\n',
            "methods/with_deps/METHODS.toml": manifest_toml("github.com/org/with-deps", dependencies={
                "dep": {"address": "github.com/org/dep", "version": "^1.0.0"},
            }),
            "README.md": "root",
        })

        result = discover_remote_packages("org/repo", client, max_workers=2)

        assert result.repo_name == "org/repo"
        assert result.is_public
        assert [p.name for p in result.packages] == ["contract-review"]
        package = result.packages[0]
        assert [path for path, _ in package.files] == ["review.mthds", "sub/extra.mthds"]
        assert package.to_dict()["address"] == "github.com/org/contract-review"

        skipped = {s.dir_name: s.errors for s in result.skipped}
        assert skipped["no_manifest"] == ["No METHODS.toml found at methods/no_manifest/METHODS.toml"]
        assert "declarative" in skipped["with_deps"][0]

    def test_name_defaults_to_directory(self):
        """Test a manifest without a name."""
        client = FakeGitHub({"tools/methods/scoring/METHODS.toml": manifest_toml("github.com/org/scoring")}, private=True)
        result = discover_remote_packages("org/repo/tools", client)
        assert [p.name for p in result.packages] == ["scoring"]
        assert not result.is_public
        assert result.to_dict()["packages"][0]["files"] == []

    def test_undecodable_package_is_skipped(self):
        """Test that a package failing with an unexpected error does not stop the scan."""
        client = FakeGitHub({
            "methods/good/METHODS.toml": manifest_toml("github.com/org/good"),
            "methods/broken/METHODS.toml": b"\xff\xfe",
        })

        result = discover_remote_packages("org/repo", client, max_workers=2)

        assert [p.name for p in result.packages] == ["good"]
        assert [s.dir_name for s in result.skipped] == ["broken"]
        assert result.skipped[0].errors[0].startswith("UnicodeDecodeError")

    def test_repository_not_found(self):
        """Test a missing repository."""
        with pytest.raises(LookupError, match="not found"):
            discover_remote_packages("org/repo", FakeGitHub({}, exists=False))

    def test_no_methods_directory(self):
        """Test a repository without package directories."""
        with pytest.raises(LookupError, match="No packages found in methods/"):
            discover_remote_packages("org/repo", FakeGitHub({"README.md": "x"}))
