"""Tests for settings loading and the release macro helpers."""

import pytest

from eext import config
from eext.common.config_loader import ConfigLoader, Settings
from eext.common.errors import ConfigError
from eext.common.release import eext_signature, rpm_release_macro


@pytest.fixture(autouse=True)
def no_default_settings_files(monkeypatch):
    monkeypatch.setattr(config, "SETTINGS_SEARCH_PATHS", [])


class TestConfigLoader:

    def test_defaults(self):
        settings = ConfigLoader.load(environ={})
        assert settings == Settings()
        assert settings.working_dir == config.WORKING_DIR

    def test_settings_file(self, tmp_path):
        cfg = tmp_path / "eext-config.yaml"
        cfg.write_text("working-dir: /tmp/work\nquiet: true\n")
        settings = ConfigLoader.load(str(cfg), environ={})
        assert settings.working_dir == "/tmp/work"
        assert settings.quiet is True

    def test_unknown_setting_rejected(self, tmp_path):
        cfg = tmp_path / "eext-config.yaml"
        cfg.write_text("wroking-dir: /tmp/work\n")
        with pytest.raises(ConfigError, match="Unknown setting 'wroking-dir'"):
            ConfigLoader.load(str(cfg), environ={})

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="doesn't exist"):
            ConfigLoader.load(str(tmp_path / "nope.yaml"), environ={})

    def test_precedence(self, tmp_path):
        cfg = tmp_path / "eext-config.yaml"
        cfg.write_text("working-dir: /from/file\ndest-dir: /from/file\nsrc-dir: /from/file\n")
        environ = {"EEXT_DEST_DIR": "/from/env", "EEXT_SRC_DIR": "/from/env"}
        settings = ConfigLoader.load(str(cfg), overrides={"src_dir": "/from/cli", "quiet": None},
                                     environ=environ)
        assert settings.working_dir == "/from/file"
        assert settings.dest_dir == "/from/env"
        assert settings.src_dir == "/from/cli"
        assert settings.quiet is False

    def test_bool_from_environment(self):
        settings = ConfigLoader.load(environ={"EEXT_DRY_RUN": "yes", "EEXT_QUIET": "0"})
        assert settings.dry_run is True
        assert settings.quiet is False


class TestSettings:

    def test_repo_dir(self):
        settings = Settings(src_dir="/src")
        assert str(settings.repo_dir("repo1")) == "/src/repo1"
        assert str(settings.repo_dir()) == "."

    def test_srpms_dirs(self):
        assert [str(p) for p in Settings(dest_dir="/dest").srpms_dirs()] == ["/dest/SRPMS"]
        settings = Settings(srpms_dir="/a:/b")
        assert [str(p) for p in settings.srpms_dirs()] == ["/a", "/b"]

    def test_pki_dirs(self):
        settings = Settings(pki_path="/pki")
        assert str(settings.rpm_keys_dir) == "/pki/rpmkeys"
        assert str(settings.detached_sig_dir) == "/pki/trustedDetachedSigners"


class TestReleaseMacro:

    ENVIRON = {
        "SRC_0": "foo#deadbeef1234",
        "SRC_1": "bar#beefdeadabcd",
        "SRC_2": "baz#abcddcba0000",
    }

    def test_short_hashes_joined(self):
        assert rpm_release_macro("", "SRC_", self.ENVIRON) == "deadbee_beefdea_abcddcb"

    def test_manifest_release_wins(self):
        assert rpm_release_macro("Ar.1", "SRC_", self.ENVIRON) == "Ar.1"

    def test_no_env(self):
        assert rpm_release_macro("", "SRC_", {}) == ""

    def test_stops_at_first_gap(self):
        environ = {"SRC_0": "foo#1234567890", "SRC_2": "baz#abcdef0123"}
        assert rpm_release_macro("", "SRC_", environ) == "1234567"

    def test_bad_format(self):
        with pytest.raises(ConfigError, match="Env SRC_0 has bad format nohash"):
            rpm_release_macro("", "SRC_", {"SRC_0": "nohash"})

    def test_signature(self):
        assert eext_signature("SRC_", self.ENVIRON) == \
            "foo#deadbeef1234,bar#beefdeadabcd,baz#abcddcba0000"
        assert eext_signature("SRC_", {}) == ""
