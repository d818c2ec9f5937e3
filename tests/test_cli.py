"""
CLI tests for mthds commands, run through click's CliRunner.

Git and GitHub are replaced by in-memory stand-ins; every command gets its
own cache directory through --cache-root.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from mthds import __version__
from mthds.cli import cli
from mthds.exit_codes import DATA_ERROR, INTEGRITY_ERROR, NOT_FOUND, USAGE_ERROR
from mthds.lock_file import read_lock_file

from conftest import FakeGitHub, FakeVCS, manifest_toml, package_files, write_tree

APP = "github.com/org/app"
DEP = "github.com/org/dep"


def json_lines(output):
    return [json.loads(line) for line in output.splitlines() if line.startswith(("{", "["))]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr('mthds.config.CONFIG_DIR', tmp_path / 'home' / '.mthds')
    for key in list(os.environ):
        if key.startswith('MTHDS_'):
            monkeypatch.delenv(key)
    yield
    mthds_logger = logging.getLogger('mthds')
    mthds_logger.handlers.clear()
    mthds_logger.setLevel(logging.NOTSET)


@pytest.fixture
def package(tmp_path):
    return write_tree(tmp_path / "app", {
        "METHODS.toml": manifest_toml(
            APP,
            dependencies={"dep": {"address": DEP, "version": "^1.0.0"}},
            exports={"legal": ["review"]},
        ),
        "legal.mthds": 'domain = "legal"\n\n[pipe.review]\ntype = "PipeLLM"\n',
        "scoring.mthds": (
            'domain = "scoring"\n\n[pipe.score]\ntype = "PipeSequence"\n'
            'steps = [{ pipe = "legal.review" }]\n'
        ),
    })


@pytest.fixture
def vcs():
    return FakeVCS({DEP: {
        "v0.9.0": package_files(DEP, "0.9.0"),
        "v1.0.0": package_files(DEP, "1.0.0", bundles={"dep.mthds": 'domain = "dep"\n'}),
        "v1.2.0": package_files(DEP, "1.2.0"),
    }})


class CLIRunnerMixin:
    """Shared invoke helper."""

    def run(self, tmp_path, *args, vcs=None):
        runner = CliRunner()
        full_args = ['--cache-root', str(tmp_path / 'cache')] + list(args)
        if vcs is None:
            return runner.invoke(cli, full_args)
        with patch('mthds.commands.package.VCSResolver', return_value=vcs):
            return runner.invoke(cli, full_args)


class TestBasics(CLIRunnerMixin):
    """Tests for the group and read-only commands."""

    def test_version(self):
        """Test --version."""
        result = CliRunner().invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        """Test that every command is registered."""
        result = CliRunner().invoke(cli, ['--help'])
        for command in ('validate', 'install', 'lock', 'verify', 'list', 'discover', 'cache'):
            assert command in result.output

    def test_list_json(self, tmp_path, package):
        """Test the manifest as JSON."""
        result = self.run(tmp_path, 'list', str(package), '--json')
        assert result.exit_code == 0
        data = json_lines(result.output)[0]
        assert data['address'] == APP
        assert data['dependencies'] == {'dep': {'address': DEP, 'version': '^1.0.0'}}

    def test_list_table(self, tmp_path, package):
        """Test the rich rendering."""
        result = self.run(tmp_path, 'list', str(package))
        assert result.exit_code == 0
        assert APP in result.output

    def test_missing_manifest(self, tmp_path):
        """Test a directory that is not a package."""
        (tmp_path / 'empty').mkdir()
        result = self.run(tmp_path, 'list', str(tmp_path / 'empty'), '--json')
        assert result.exit_code == NOT_FOUND
        assert json_lines(result.output)[-1]['exit_code'] == NOT_FOUND

    def test_invalid_manifest_reports_errors(self, tmp_path):
        """Test that validation errors are listed in JSON output."""
        write_tree(tmp_path / 'bad', {'METHODS.toml': '[package]\nversion = "x"\n'})
        result = self.run(tmp_path, 'list', str(tmp_path / 'bad'), '--json')
        assert result.exit_code == DATA_ERROR
        error = json_lines(result.output)[-1]
        assert error['type'] == 'ManifestValidationError'
        assert len(error['errors']) >= 2


class TestValidate(CLIRunnerMixin):
    """Tests for mthds validate."""

    def test_valid_package(self, tmp_path, package):
        """Test a package whose references are all exported."""
        result = self.run(tmp_path, 'validate', str(package), '--json')
        assert result.exit_code == 0
        data = json_lines(result.output)[0]
        assert data['valid'] is True
        assert data['bundles'] == 2

    def test_violation(self, tmp_path, package):
        """Test a reference to a pipe that is not exported."""
        (package / 'scoring.mthds').write_text(
            'domain = "scoring"\n\n[pipe.score]\ntype = "PipeSequence"\n'
            'steps = [{ pipe = "legal.hidden" }]\n'
        )
        result = self.run(tmp_path, 'validate', str(package), '--json')
        assert result.exit_code == DATA_ERROR
        data = json_lines(result.output)[0]
        assert data['valid'] is False
        assert data['violations'][0]['pipe_ref'] == 'legal.hidden'


class TestLockAndInstall(CLIRunnerMixin):
    """Tests for lock, install and verify."""

    def test_lock_writes_lock_file(self, tmp_path, package, vcs):
        """Test that the minimum satisfying version is locked."""
        result = self.run(tmp_path, 'lock', str(package), '--json', vcs=vcs)
        assert result.exit_code == 0, result.output
        assert json_lines(result.output) == [{
            'address': DEP,
            'version': '1.0.0',
            'hash': read_lock_file(package / 'methods.lock').packages[DEP].hash,
            'source': 'https://github.com/org/dep',
        }]
        assert (tmp_path / 'cache' / 'github.com' / 'org' / 'dep' / '1.0.0' / 'dep.mthds').is_file()

    def test_install_then_verify(self, tmp_path, package, vcs):
        """Test install creating the lock, then verify and install against it."""
        result = self.run(tmp_path, 'install', str(package), '--json', vcs=vcs)
        assert result.exit_code == 0, result.output
        assert json_lines(result.output)[0]['version'] == '1.0.0'
        assert len(read_lock_file(package / 'methods.lock')) == 1

        result = self.run(tmp_path, 'verify', str(package), '--json')
        assert result.exit_code == 0
        assert json_lines(result.output)[0]['verified'] == 1

        result = self.run(tmp_path, 'install', str(package), vcs=vcs)
        assert result.exit_code == 0
        assert vcs.fetch_calls == [(DEP, 'v1.0.0')]

    def test_tampered_cache_fails_verification(self, tmp_path, package, vcs):
        """Test an integrity failure after the cache was modified."""
        assert self.run(tmp_path, 'lock', str(package), vcs=vcs).exit_code == 0
        (tmp_path / 'cache' / DEP / '1.0.0' / 'dep.mthds').write_text('domain = "evil"\n')

        result = self.run(tmp_path, 'verify', str(package), '--json')
        assert result.exit_code == INTEGRITY_ERROR
        error = json_lines(result.output)[-1]
        assert len(error['failures']) == 1

        result = self.run(tmp_path, 'install', str(package), vcs=vcs)
        assert result.exit_code == INTEGRITY_ERROR

    def test_out_of_date_lock(self, tmp_path, package, vcs):
        """Test install refusing a lock pinned to another version."""
        assert self.run(tmp_path, 'lock', str(package), vcs=vcs).exit_code == 0
        manifest_path = package / 'METHODS.toml'
        manifest_path.write_text(manifest_path.read_text().replace('^1.0.0', '>=1.1.0'))

        result = self.run(tmp_path, 'install', str(package), vcs=vcs)
        assert result.exit_code == DATA_ERROR
        assert "mthds lock" in result.output

    def test_verify_without_lock(self, tmp_path, package):
        """Test verify in a package that was never locked."""
        result = self.run(tmp_path, 'verify', str(package))
        assert result.exit_code == NOT_FOUND


class TestCacheCommands(CLIRunnerMixin):
    """Tests for mthds cache."""

    def test_list_and_evict(self, tmp_path, package, vcs):
        """Test listing and evicting a cached version."""
        assert self.run(tmp_path, 'lock', str(package), vcs=vcs).exit_code == 0

        result = self.run(tmp_path, 'cache', 'list', '--json')
        assert [(e['address'], e['version']) for e in json_lines(result.output)] == [(DEP, '1.0.0')]

        result = self.run(tmp_path, 'cache', 'evict', DEP, '1.0.0', '--json')
        assert result.exit_code == 0
        assert json_lines(result.output)[0]['evicted'] is True

        result = self.run(tmp_path, 'cache', 'evict', DEP, '1.0.0')
        assert result.exit_code == NOT_FOUND

    def test_list_empty_cache(self, tmp_path):
        """Test the table output with nothing cached."""
        result = self.run(tmp_path, 'cache', 'list')
        assert result.exit_code == 0


class TestDiscover(CLIRunnerMixin):
    """Tests for mthds discover."""

    def test_discover_json(self, tmp_path):
        """Test discovered packages as JSON."""
        client = FakeGitHub({
            "methods/scoring/METHODS.toml": manifest_toml("github.com/org/scoring"),
            "methods/scoring/score.mthds": 'domain = "scoring"\n',
        })
        with patch('mthds.commands.package.GitHubClient', return_value=client):
            result = self.run(tmp_path, 'discover', 'org/repo', '--json')
        assert result.exit_code == 0, result.output
        data = json_lines(result.output)[0]
        assert data['repo_name'] == 'org/repo'
        assert data['packages'][0]['files'] == ['score.mthds']

    def test_discover_invalid_address(self, tmp_path):
        """Test a malformed repository address."""
        with patch('mthds.commands.package.GitHubClient', return_value=FakeGitHub({})):
            result = self.run(tmp_path, 'discover', 'just-a-name')
        assert result.exit_code == USAGE_ERROR
