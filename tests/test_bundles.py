"""Tests for source-bundle and dnf repo-bundle URL resolution."""

import pytest

from eext.bundles.dnf_config import DnfConfig, DnfRepoParamsOverride, base_arch
from eext.bundles.src_config import SrcConfig, SrcRepoParamsOverride
from eext.bundles.templating import template_fields, validate_template
from eext.common.errors import ConfigError


class TestTemplating:

    def test_template_fields(self):
        assert template_fields("{host}/{repo_name}/{arch}") == {"host", "repo_name", "arch"}

    def test_positional_placeholder_rejected(self):
        with pytest.raises(ConfigError, match="positional"):
            template_fields("{host}/{}")

    def test_unbalanced_brace_rejected(self):
        with pytest.raises(ConfigError):
            template_fields("{host/x")

    def test_unknown_placeholder_rejected(self):
        with pytest.raises(ConfigError, match="unknown placeholder"):
            validate_template("{host}/{nope}", ("host",), "test")


class TestSrcConfig:

    @pytest.fixture
    def src_config(self, settings):
        return SrcConfig.load(settings)

    def test_srpm_bundle_defaults(self, src_config):
        params = src_config.get_src_params("pkg", bundle_name="srpm")
        assert params.src_url == "http://foo.org/foo/pkg/pkg-1.0.src.rpm"
        assert params.signature_url == ""

    def test_tarball_bundle_with_signature(self, src_config):
        params = src_config.get_src_params("pkg", bundle_name="tarball")
        assert params.src_url == "http://foo.org/foo/tarballs/pkg/1.1/pkg.tar.gz"
        assert params.signature_url == "http://foo.org/foo/tarballs/pkg/1.1/pkg.tar.gz.sig"

    def test_overrides_and_uncompressed_signature(self, src_config):
        override = SrcRepoParamsOverride(version="2.2", src_suffix=".tar.bz2", sig_suffix=".asc")
        params = src_config.get_src_params("pkg", bundle_name="tarball", override=override,
                                           on_uncompressed=True)
        assert params.src_url == "http://foo.org/foo/tarballs/pkg/2.2/pkg.tar.bz2"
        assert params.signature_url == "http://foo.org/foo/tarballs/pkg/2.2/pkg.tar.asc"

    def test_missing_default_version(self, src_config):
        with pytest.raises(ConfigError, match="No defaults specified for source-bundle"):
            src_config.get_src_params("pkg", bundle_name="nodefault")

    def test_version_override_without_default(self, src_config):
        params = src_config.get_src_params("pkg", bundle_name="nodefault",
                                           override=SrcRepoParamsOverride(version="3"))
        assert params.src_url == "http://foo.org/foo/pkg-3.tar.xz"

    def test_raw_full_url(self, src_config):
        params = src_config.get_src_params("pkg", full_url="{host}/{path_prefix}/x/pkg.tgz",
                                           sig_full_url="https://elsewhere.org/pkg.tgz.asc")
        assert params.src_url == "http://foo.org/foo/x/pkg.tgz"
        assert params.signature_url == "https://elsewhere.org/pkg.tgz.asc"

    def test_unknown_bundle(self, src_config):
        with pytest.raises(ConfigError, match="Unknown source-bundle nope"):
            src_config.get_src_params("pkg", bundle_name="nope")

    def test_bad_url_format_fails_at_load(self):
        data = {"source-bundle": {"bad": {"url-format": "{host}/{package}"}}}
        with pytest.raises(ConfigError, match="unknown placeholder"):
            SrcConfig.from_dict(data, "http://foo.org", "foo")

    def test_unknown_key_fails_at_load(self):
        data = {"source-bundle": {"bad": {"url-format": "{host}", "colour": "red"}}}
        with pytest.raises(ConfigError, match="unknown field"):
            SrcConfig.from_dict(data, "http://foo.org", "foo")


class TestDnfConfig:

    @pytest.fixture
    def dnf_config(self, settings):
        return DnfConfig.load(settings)

    @pytest.mark.parametrize("arch", ["x86_64", "aarch64"])
    def test_base_url_default_version(self, dnf_config, arch):
        bundle = dnf_config.get_bundle("foo")
        assert bundle.get_base_url(dnf_config.host, "repo1", arch) == f"http://foo.org/foo-1/repo1/{arch}/"

    def test_version_label(self, dnf_config):
        bundle = dnf_config.get_bundle("foo")
        assert bundle.get_base_url(dnf_config.host, "repo1", "x86_64", "latest") == \
            "http://foo.org/foo-999/repo1/x86_64/"

    def test_literal_version(self, dnf_config):
        bundle = dnf_config.get_bundle("foo")
        assert bundle.get_base_url(dnf_config.host, "repo1", "x86_64", "42") == \
            "http://foo.org/foo-42/repo1/x86_64/"

    def test_base_arch_only_when_bundle_uses_it(self, dnf_config):
        foo = dnf_config.get_bundle("foo")
        bar = dnf_config.get_bundle("bar")
        assert foo.get_base_url(dnf_config.host, "repo1", "i686") == "http://foo.org/foo-1/repo1/x86_64/"
        assert bar.get_base_url(dnf_config.host, "barrepo", "i686") == "http://foo.org/bar/7/barrepo/i686/"
        assert base_arch("aarch64") == "aarch64"

    def test_repo_params_defaults(self, dnf_config):
        params = dnf_config.get_bundle("foo").get_repo_params(dnf_config.host, "repo2", "x86_64")
        assert params.enabled is False
        assert params.gpgcheck is True
        assert params.gpgkey == "file:///etc/pki/rpm-gpg/RPM-GPG-KEY-foo"
        assert params.priority == 2

    def test_repo_params_override(self, dnf_config):
        overrides = {"repo2": DnfRepoParamsOverride(enabled=True, exclude="foo*", priority=5)}
        params = dnf_config.get_bundle("foo").get_repo_params(
            dnf_config.host, "repo2", "x86_64", overrides=overrides)
        assert params.enabled is True
        assert params.exclude == "foo*"
        assert params.priority == 5

    @pytest.mark.parametrize("bundle, repo", [("foo", "repo1"), ("bar", "barrepo")])
    def test_override_priority_one_rejected(self, dnf_config, bundle, repo):
        overrides = {repo: DnfRepoParamsOverride(enabled=True, priority=1)}
        with pytest.raises(ConfigError, match="priority cannot be 1"):
            dnf_config.get_bundle(bundle).get_repo_params(dnf_config.host, repo, "x86_64",
                                                          overrides=overrides)

    def test_unknown_repo(self, dnf_config):
        with pytest.raises(ConfigError, match="Dnf Repo nope not found in bundle"):
            dnf_config.get_bundle("foo").get_repo_params(dnf_config.host, "nope", "x86_64")

    def test_unknown_bundle(self, dnf_config):
        with pytest.raises(ConfigError, match="Unknown repo-bundle name nope"):
            dnf_config.get_bundle("nope")

    @pytest.mark.parametrize("priority, message", [
        (1, "Priority 1 is reserved"),
        (0, "Priority not set"),
        (-3, "Wrong priority -3"),
    ])
    def test_bundle_priority_validated_at_load(self, priority, message):
        data = {"repo-bundle": {"b": {"baseurl": "{host}/{arch}", "priority": priority}}}
        with pytest.raises(ConfigError, match=message):
            DnfConfig.from_dict(data, "http://foo.org")
