"""
DNF Config Module - Resolves repo-bundle references into dnf repo parameters

dnfconfig.yaml layout:

    repo-bundle:
      <bundle-name>:
        baseurl: "{host}/{repo_name}-{version}/{arch}/"
        gpgcheck: true
        gpgkey: file:///etc/pki/rpm-gpg/KEY
        use-base-arch: false
        priority: 2
        version-labels:
          default: "9"
        repo:
          <repo-name>:
            enabled: true
            exclude: "foo*"
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from eext import config
from eext.bundles.templating import render_template, validate_template
from eext.common.config_loader import Settings
from eext.common.errors import ConfigError
from eext.common.yaml_loader import (
    expect_bool, expect_int, expect_mapping, expect_str, expect_str_map, load_yaml_file,
)

logger = logging.getLogger(__name__)

BASEURL_PLACEHOLDERS = ("host", "repo_name", "arch", "version")

_BUNDLE_KEYS = ("baseurl", "gpgcheck", "gpgkey", "use-base-arch", "repo",
                "version-labels", "priority")
_REPO_KEYS = ("enabled", "exclude")
OVERRIDE_KEYS = ("enabled", "exclude", "priority")


def base_arch(arch: str) -> str:
    if arch == "i686":
        return "x86_64"
    return arch


@dataclass(frozen=True)
class DnfRepoConfig:
    enabled: bool = False
    exclude: str = ""


@dataclass(frozen=True)
class DnfRepoParamsOverride:
    """Manifest-level override for one repo; priority 0 means keep the bundle priority"""
    enabled: bool = False
    exclude: str = ""
    priority: int = 0


@dataclass(frozen=True)
class DnfRepoParams:
    """One rendered repo entry for the mock configuration"""
    name: str
    base_url: str
    enabled: bool
    gpgcheck: bool = False
    gpgkey: str = ""
    exclude: str = ""
    priority: int = 0


@dataclass(frozen=True)
class DnfRepoBundle:
    name: str
    base_url_format: str
    priority: int
    gpgcheck: bool = False
    gpgkey: str = ""
    use_base_arch: bool = False
    repos: Dict[str, DnfRepoConfig] = field(default_factory=dict)
    version_labels: Dict[str, str] = field(default_factory=dict)

    def get_base_url(self, host: str, repo_name: str, arch: str, version_override: str = "") -> str:
        repo_arch = base_arch(arch) if self.use_base_arch else arch
        version = version_override or "default"
        # Labels such as "latest" translate to a concrete version
        version = self.version_labels.get(version, version)
        return render_template(self.base_url_format, f"repo-bundle {self.name}",
                               host=host, repo_name=repo_name, arch=repo_arch, version=version)

    def get_repo_params(self, host: str, repo_name: str, arch: str, version_override: str = "",
                        overrides: Optional[Mapping[str, DnfRepoParamsOverride]] = None) -> DnfRepoParams:
        """
        Merge bundle defaults with manifest overrides for repo_name.

        With an override its enabled/exclude win; a priority override of 1 is
        rejected and 0 falls back to the bundle priority.
        """
        repo_config = self.repos.get(repo_name)
        if repo_config is None:
            raise ConfigError(f"Dnf Repo {repo_name} not found in bundle")

        base_url = self.get_base_url(host, repo_name, arch, version_override)

        override = (overrides or {}).get(repo_name)
        if override is not None:
            enabled = override.enabled
            exclude = override.exclude
            if override.priority == config.REPO_HIGH_PRIORITY:
                raise ConfigError(f"Repo {repo_name} priority cannot be 1. Provide a priority > 1")
            priority = override.priority or self.priority
        else:
            enabled = repo_config.enabled
            exclude = ""
            priority = self.priority

        return DnfRepoParams(
            name=repo_name,
            base_url=base_url,
            enabled=enabled,
            gpgcheck=self.gpgcheck,
            gpgkey=self.gpgkey,
            exclude=exclude,
            priority=priority,
        )


class DnfConfig:
    """Parsed dnfconfig.yaml; immutable once loaded"""

    def __init__(self, bundles: Dict[str, DnfRepoBundle], host: str):
        self.bundles = bundles
        self.host = host

    @classmethod
    def from_dict(cls, data, host: str, source: str = "dnfconfig") -> "DnfConfig":
        data = expect_mapping(data, source, allowed=("repo-bundle",))
        bundles = {}
        for name, raw in expect_mapping(data.get("repo-bundle"), f"{source}: repo-bundle").items():
            name = str(name)
            context = f"{source}: repo-bundle {name}"
            raw = expect_mapping(raw, context, allowed=_BUNDLE_KEYS)

            base_url_format = expect_str(raw.get("baseurl"), f"{context}.baseurl")
            if not base_url_format:
                raise ConfigError(f"{context}: baseurl not specified")
            validate_template(base_url_format, BASEURL_PLACEHOLDERS, context)

            priority = expect_int(raw.get("priority"), f"{context}.priority")
            if priority == config.REPO_HIGH_PRIORITY:
                raise ConfigError(f"{source}: Priority 1 is reserved for local deps, please provide a priority > 1")
            if priority <= 0:
                raise ConfigError(f"{source}: Wrong priority {priority} provided / Priority not set."
                                  " Please provide a valid priority > 1")

            repos = {}
            for repo_name, repo_raw in expect_mapping(raw.get("repo"), f"{context}.repo").items():
                repo_context = f"{context}.repo.{repo_name}"
                repo_raw = expect_mapping(repo_raw, repo_context, allowed=_REPO_KEYS)
                repos[str(repo_name)] = DnfRepoConfig(
                    enabled=expect_bool(repo_raw.get("enabled"), f"{repo_context}.enabled"),
                    exclude=expect_str(repo_raw.get("exclude"), f"{repo_context}.exclude"),
                )

            bundles[name] = DnfRepoBundle(
                name=name,
                base_url_format=base_url_format,
                priority=priority,
                gpgcheck=expect_bool(raw.get("gpgcheck"), f"{context}.gpgcheck"),
                gpgkey=expect_str(raw.get("gpgkey"), f"{context}.gpgkey"),
                use_base_arch=expect_bool(raw.get("use-base-arch"), f"{context}.use-base-arch"),
                repos=repos,
                version_labels=expect_str_map(raw.get("version-labels"), f"{context}.version-labels"),
            )
        return cls(bundles, host)

    @classmethod
    def load(cls, settings: Settings, path: Optional[str] = None) -> "DnfConfig":
        cfg_path = Path(path or settings.dnf_config_file)
        data = load_yaml_file(cfg_path, "dnfconfig.LoadDnfConfig")
        dnf_config = cls.from_dict(data, settings.dnf_repo_host, source=f"dnfconfig.LoadDnfConfig({cfg_path})")
        logger.info(f"DNF_CONFIG_LOADED bundles={len(dnf_config.bundles)} path={cfg_path}")
        return dnf_config

    def get_bundle(self, name: str) -> DnfRepoBundle:
        bundle = self.bundles.get(name)
        if bundle is None:
            raise ConfigError(f"Unknown repo-bundle name {name}")
        return bundle
