"""
Source Config Module - Resolves upstream source and detached-signature URLs

srcconfig.yaml layout:

    source-bundle:
      <bundle-name>:
        url-format: "{host}/{path_prefix}/tarballs/{pkg}/{version}/{pkg}{suffix}"
        default-src-suffix: ".tar.gz"
        default-sig-suffix: ".sig"
        has-detached-sig: true
        version-labels:
          default: "1.0"
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from eext.bundles.templating import render_template, validate_template
from eext.common.config_loader import Settings
from eext.common.errors import ConfigError
from eext.common.yaml_loader import (
    expect_bool, expect_mapping, expect_str, expect_str_map, load_yaml_file,
)

logger = logging.getLogger(__name__)

BUNDLE_PLACEHOLDERS = ("host", "path_prefix", "pkg", "version", "suffix")
FULL_URL_PLACEHOLDERS = ("host", "path_prefix")

_BUNDLE_KEYS = ("url-format", "default-src-suffix", "default-sig-suffix",
                "version-labels", "has-detached-sig")


@dataclass(frozen=True)
class SrcRepoParamsOverride:
    """Per-entry overrides from the manifest's source-bundle.override"""
    version: str = ""
    src_suffix: str = ""
    sig_suffix: str = ""


@dataclass(frozen=True)
class SrcBundle:
    url_format: str
    default_src_suffix: str = ""
    default_sig_suffix: str = ""
    version_labels: Dict[str, str] = field(default_factory=dict)
    has_detached_sig: bool = False

    def resolve_version(self, version_override: str) -> str:
        if version_override:
            return self.version_labels.get(version_override, version_override)
        if "default" not in self.version_labels:
            raise ConfigError("No defaults specified for source-bundle, please specify a version override")
        return self.version_labels["default"]


@dataclass(frozen=True)
class SrcParams:
    src_url: str
    signature_url: str = ""


def _strip_last_extension(url: str) -> str:
    last_dot = url.rfind(".")
    if last_dot <= url.rfind("/"):
        return url
    return url[:last_dot]


class SrcConfig:
    """Parsed srcconfig.yaml plus the host settings needed to render URLs"""

    def __init__(self, bundles: Dict[str, SrcBundle], host: str, path_prefix: str):
        self.bundles = bundles
        self.host = host
        self.path_prefix = path_prefix

    @classmethod
    def from_dict(cls, data, host: str, path_prefix: str, source: str = "srcconfig") -> "SrcConfig":
        data = expect_mapping(data, source, allowed=("source-bundle",))
        bundles = {}
        for name, raw in expect_mapping(data.get("source-bundle"), f"{source}: source-bundle").items():
            context = f"{source}: source-bundle {name}"
            raw = expect_mapping(raw, context, allowed=_BUNDLE_KEYS)
            url_format = expect_str(raw.get("url-format"), f"{context}.url-format")
            if not url_format:
                raise ConfigError(f"{context}: url-format not specified")
            validate_template(url_format, BUNDLE_PLACEHOLDERS, context)
            bundles[str(name)] = SrcBundle(
                url_format=url_format,
                default_src_suffix=expect_str(raw.get("default-src-suffix"), f"{context}.default-src-suffix"),
                default_sig_suffix=expect_str(raw.get("default-sig-suffix"), f"{context}.default-sig-suffix"),
                version_labels=expect_str_map(raw.get("version-labels"), f"{context}.version-labels"),
                has_detached_sig=expect_bool(raw.get("has-detached-sig"), f"{context}.has-detached-sig"),
            )
        return cls(bundles, host, path_prefix)

    @classmethod
    def load(cls, settings: Settings, path: Optional[str] = None) -> "SrcConfig":
        cfg_path = Path(path or settings.src_config_file)
        data = load_yaml_file(cfg_path, "srcconfig.LoadSrcConfig")
        src_config = cls.from_dict(data, settings.src_repo_host, settings.src_repo_path_prefix,
                                   source=f"srcconfig.LoadSrcConfig({cfg_path})")
        logger.info(f"SRC_CONFIG_LOADED bundles={len(src_config.bundles)} path={cfg_path}")
        return src_config

    def _render_full_url(self, url: str) -> str:
        if not url:
            return ""
        context = f"full-url {url}"
        validate_template(url, FULL_URL_PLACEHOLDERS, context)
        return render_template(url, context, host=self.host, path_prefix=self.path_prefix)

    def get_src_params(self, pkg: str, full_url: str = "", bundle_name: str = "",
                       sig_full_url: str = "",
                       override: Optional[SrcRepoParamsOverride] = None,
                       on_uncompressed: bool = False) -> SrcParams:
        """
        Resolve the source URL and, when applicable, its detached signature URL.

        Either full_url (raw mode) or bundle_name must be given. In raw mode
        only {host} and {path_prefix} are substituted.
        """
        if not bundle_name:
            if not full_url:
                raise ConfigError(f"No full-url or source-bundle given for {pkg}")
            return SrcParams(self._render_full_url(full_url), self._render_full_url(sig_full_url))

        bundle = self.bundles.get(bundle_name)
        if bundle is None:
            raise ConfigError(f"Unknown source-bundle {bundle_name}")

        override = override or SrcRepoParamsOverride()
        version = bundle.resolve_version(override.version)
        suffix = override.src_suffix or bundle.default_src_suffix
        context = f"source-bundle {bundle_name}"
        src_url = render_template(bundle.url_format, context,
                                  host=self.host, path_prefix=self.path_prefix,
                                  pkg=pkg, version=version, suffix=suffix)

        signature_url = ""
        if bundle.has_detached_sig:
            sig_suffix = override.sig_suffix or bundle.default_sig_suffix
            base_url = _strip_last_extension(src_url) if on_uncompressed else src_url
            signature_url = base_url + sig_suffix
        return SrcParams(src_url, signature_url)
