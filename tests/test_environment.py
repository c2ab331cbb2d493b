"""Tests for the environment check, rpm key loading and source downloads."""

from pathlib import Path

import pytest
import requests

from eext.build.mock_cfg import MockCfgTemplate
from eext.common.download import download
from eext.common.environment import RpmKeyLoader, check_env
from eext.common.errors import ConfigError, EnvironmentCheckError, ResourceError
from eext.common.shell_executor import MockedExecutor, RecordedCall, Response

from conftest import ok_responses


class TestCheckEnv:

    def test_valid_environment(self, settings):
        template = MockCfgTemplate(settings.mock_cfg_template)
        check_env(settings, template)
        assert template.loaded

    def test_problems_are_aggregated(self, make_settings, tmp_path):
        settings = make_settings(working_dir=str(tmp_path / "nope"),
                                 dnf_config_file=str(tmp_path / "dnfconfig.yaml"))
        with pytest.raises(EnvironmentCheckError) as excinfo:
            check_env(settings, MockCfgTemplate(settings.mock_cfg_template))

        problems = excinfo.value.problems
        assert len(problems) == 2
        assert problems[0].startswith("trouble with WorkingDir")
        assert problems[1].startswith("trouble with DnfConfigFile")

    def test_bad_template_is_reported(self, make_settings, tmp_path):
        bad = tmp_path / "mock.cfg.template"
        bad.write_text("$root $unknown")
        settings = make_settings(mock_cfg_template=str(bad))

        with pytest.raises(EnvironmentCheckError, match="trouble with MockCfgTemplate"):
            check_env(settings, MockCfgTemplate(bad))

    def test_no_src_dir_needs_local_manifest(self, make_settings, tmp_path, monkeypatch):
        settings = make_settings(src_dir="")
        monkeypatch.chdir(tmp_path)
        with pytest.raises(EnvironmentCheckError, match="No eext.yaml in current directory"):
            check_env(settings, MockCfgTemplate(settings.mock_cfg_template))

        (tmp_path / "eext.yaml").write_text("package: []\n")
        check_env(settings, MockCfgTemplate(settings.mock_cfg_template))


class TestRpmKeyLoader:

    @pytest.fixture
    def keys(self, settings):
        keys_dir = settings.rpm_keys_dir
        keys_dir.mkdir(parents=True)
        for name in ("b.pem", "a.pem", "notes.txt"):
            (keys_dir / name).write_text("key")
        return keys_dir

    def test_loads_keys_once(self, settings, keys):
        not_installed = Response(return_code=1, output="error: package gpg-pubkey is not installed")
        executor = MockedExecutor([not_installed] + ok_responses(2))
        loader = RpmKeyLoader(executor, settings)

        loader.load()
        loader.load()

        assert executor.has_exact_calls([
            RecordedCall("", "rpm", ["-e", "gpg-pubkey", "--allmatches"]),
            RecordedCall("", "rpm", ["--import", str(keys / "a.pem")]),
            RecordedCall("", "rpm", ["--import", str(keys / "b.pem")]),
        ])

    def test_other_erase_failure(self, settings, keys):
        executor = MockedExecutor([Response(return_code=1, output="error: rpmdb locked")])
        with pytest.raises(ConfigError, match="clearing gpg-pubkey"):
            RpmKeyLoader(executor, settings).load()

    def test_import_failure(self, settings, keys):
        executor = MockedExecutor([Response(), Response(return_code=1)])
        loader = RpmKeyLoader(executor, settings)
        with pytest.raises(ConfigError, match="a.pem to rpmdb"):
            loader.load()
        assert not loader.loaded


class FakeResponse:

    def __init__(self, status_code=200, chunks=(), reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self.chunks = chunks

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def iter_content(self, chunk_size=1):
        return iter(self.chunks)


class TestDownload:

    def test_file_url(self, tmp_path):
        repo = tmp_path / "repo"
        (repo / "upstream").mkdir(parents=True)
        (repo / "upstream" / "foo.tar.gz").write_text("tarball")
        target = tmp_path / "dl"
        target.mkdir()

        assert download("file:///upstream/foo.tar.gz", target, repo) == "foo.tar.gz"
        assert (target / "foo.tar.gz").read_text() == "tarball"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ResourceError, match="not found in repo"):
            download("file:///nope.tar.gz", tmp_path, tmp_path)

    def test_unsupported_scheme(self, tmp_path):
        with pytest.raises(ConfigError, match="Unsupported URL scheme"):
            download("ftp://example.org/foo.tar.gz", tmp_path, tmp_path)

    def test_http(self, tmp_path, monkeypatch):
        requested = []

        def fake_get(url, stream, timeout):
            requested.append((url, stream, timeout))
            return FakeResponse(chunks=[b"up", b"stream"])

        monkeypatch.setattr(requests, "get", fake_get)
        assert download("https://example.org/src/foo.tar.gz", tmp_path, tmp_path, timeout=5) == "foo.tar.gz"
        assert (tmp_path / "foo.tar.gz").read_bytes() == b"upstream"
        assert requested == [("https://example.org/src/foo.tar.gz", True, 5)]

    def test_http_default_has_no_timeout(self, tmp_path, monkeypatch):
        requested = []

        def fake_get(url, stream, timeout):
            requested.append(timeout)
            return FakeResponse(chunks=[b"data"])

        monkeypatch.setattr(requests, "get", fake_get)
        download("https://example.org/src/foo.tar.gz", tmp_path, tmp_path)
        assert requested == [None]

    def test_http_status(self, tmp_path, monkeypatch):
        monkeypatch.setattr(requests, "get", lambda url, **kwargs: FakeResponse(404, reason="Not Found"))
        with pytest.raises(ResourceError, match="returned 404 Not Found"):
            download("https://example.org/foo.tar.gz", tmp_path, tmp_path)
        assert not Path(tmp_path / "foo.tar.gz").exists()

    def test_http_connection_error(self, tmp_path, monkeypatch):
        def fail(url, **kwargs):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(requests, "get", fail)
        with pytest.raises(ResourceError, match="failed: refused"):
            download("https://example.org/foo.tar.gz", tmp_path, tmp_path)
