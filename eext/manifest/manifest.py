"""
Manifest Module - Loads and validates the per-repository eext.yaml
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from eext import config
from eext.bundles.dnf_config import OVERRIDE_KEYS, DnfRepoParamsOverride
from eext.bundles.src_config import SrcRepoParamsOverride
from eext.common.errors import ConfigError
from eext.common.yaml_loader import (
    expect_bool, expect_int, expect_list, expect_mapping, expect_str, load_yaml_file,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoBundleRef:
    """build.repo-bundle entry: which dnf bundle to use and how to tweak it"""
    name: str
    version: str = ""
    overrides: Dict[str, DnfRepoParamsOverride] = field(default_factory=dict)


@dataclass(frozen=True)
class Build:
    include: List[str] = field(default_factory=list)
    repo_bundle: List[RepoBundleRef] = field(default_factory=list)
    local_deps: bool = False
    dependencies: Dict[str, List[str]] = field(default_factory=dict)
    enable_network: bool = False

    def dependency_list(self, arch: str) -> List[str]:
        """Local dependencies for arch: the 'all' entries followed by the arch-specific ones"""
        return list(self.dependencies.get("all", [])) + list(self.dependencies.get(arch, []))


@dataclass(frozen=True)
class DetachedSignature:
    full_url: str = ""
    public_key: str = ""
    on_uncompressed: bool = False


@dataclass(frozen=True)
class Signature:
    skip_check: bool = False
    detached_sig: DetachedSignature = field(default_factory=DetachedSignature)


@dataclass(frozen=True)
class SourceBundleRef:
    name: str
    override: SrcRepoParamsOverride = field(default_factory=SrcRepoParamsOverride)


@dataclass(frozen=True)
class GitSource:
    url: str
    revision: str


@dataclass(frozen=True)
class UpstreamSrc:
    source_bundle: Optional[SourceBundleRef] = None
    full_url: str = ""
    git: Optional[GitSource] = None
    sha256: str = ""
    signature: Signature = field(default_factory=Signature)

    @property
    def bundle_name(self) -> str:
        return self.source_bundle.name if self.source_bundle else ""

    def to_dict(self) -> Dict[str, Any]:
        """Manifest-shaped representation, used for reports"""
        data: Dict[str, Any] = {}
        if self.source_bundle:
            override = {k: v for k, v in (
                ("version", self.source_bundle.override.version),
                ("src-suffix", self.source_bundle.override.src_suffix),
                ("sig-suffix", self.source_bundle.override.sig_suffix),
            ) if v}
            data["source-bundle"] = {"name": self.source_bundle.name}
            if override:
                data["source-bundle"]["override"] = override
        if self.full_url:
            data["full-url"] = self.full_url
        if self.git:
            data["git"] = {"url": self.git.url, "revision": self.git.revision}
        if self.sha256:
            data["sha256"] = self.sha256
        sig = self.signature
        data["signature"] = {
            "skip-check": sig.skip_check,
            "detached-sig": {
                "full-url": sig.detached_sig.full_url,
                "public-key": sig.detached_sig.public_key,
                "on-uncompressed": sig.detached_sig.on_uncompressed,
            },
        }
        return data


@dataclass(frozen=True)
class Package:
    name: str
    type: str
    subdir: bool = False
    release: str = ""
    upstream_sources: List[UpstreamSrc] = field(default_factory=list)
    build: Build = field(default_factory=Build)


@dataclass(frozen=True)
class Manifest:
    packages: List[Package]

    def select(self, pkg: str = "") -> List[Package]:
        """Packages to process, in manifest order; an unknown name is an error"""
        if not pkg:
            return list(self.packages)
        selected = [p for p in self.packages if p.name == pkg]
        if not selected:
            raise ConfigError(f"Invalid package name {pkg} specified")
        return selected


def _parse_upstream_src(raw, ctx: str) -> UpstreamSrc:
    raw = expect_mapping(raw, ctx, allowed=("source-bundle", "full-url", "git", "sha256", "signature"))

    source_bundle = None
    if raw.get("source-bundle") is not None:
        sb = expect_mapping(raw["source-bundle"], f"{ctx}.source-bundle", allowed=("name", "override"))
        ov = expect_mapping(sb.get("override"), f"{ctx}.source-bundle.override",
                            allowed=("version", "src-suffix", "sig-suffix"))
        source_bundle = SourceBundleRef(
            name=expect_str(sb.get("name"), f"{ctx}.source-bundle.name"),
            override=SrcRepoParamsOverride(
                version=expect_str(ov.get("version"), f"{ctx}.source-bundle.override.version"),
                src_suffix=expect_str(ov.get("src-suffix"), f"{ctx}.source-bundle.override.src-suffix"),
                sig_suffix=expect_str(ov.get("sig-suffix"), f"{ctx}.source-bundle.override.sig-suffix"),
            ),
        )
        if source_bundle == SourceBundleRef(name=""):
            source_bundle = None

    git = None
    if raw.get("git") is not None:
        g = expect_mapping(raw["git"], f"{ctx}.git", allowed=("url", "revision"))
        git = GitSource(url=expect_str(g.get("url"), f"{ctx}.git.url"),
                        revision=expect_str(g.get("revision"), f"{ctx}.git.revision"))

    sig = expect_mapping(raw.get("signature"), f"{ctx}.signature", allowed=("skip-check", "detached-sig"))
    det = expect_mapping(sig.get("detached-sig"), f"{ctx}.signature.detached-sig",
                         allowed=("full-url", "public-key", "on-uncompressed"))

    return UpstreamSrc(
        source_bundle=source_bundle,
        full_url=expect_str(raw.get("full-url"), f"{ctx}.full-url"),
        git=git,
        sha256=expect_str(raw.get("sha256"), f"{ctx}.sha256").lower(),
        signature=Signature(
            skip_check=expect_bool(sig.get("skip-check"), f"{ctx}.signature.skip-check"),
            detached_sig=DetachedSignature(
                full_url=expect_str(det.get("full-url"), f"{ctx}.signature.detached-sig.full-url"),
                public_key=expect_str(det.get("public-key"), f"{ctx}.signature.detached-sig.public-key"),
                on_uncompressed=expect_bool(det.get("on-uncompressed"),
                                            f"{ctx}.signature.detached-sig.on-uncompressed"),
            ),
        ),
    )


def _parse_build(raw, ctx: str) -> Optional[Build]:
    raw = expect_mapping(raw, ctx, allowed=("include", "repo-bundle", "local-deps",
                                            "dependencies", "enable-network"))
    if raw.get("repo-bundle") is None:
        return None

    repo_bundles = []
    for i, rb in enumerate(expect_list(raw["repo-bundle"], f"{ctx}.repo-bundle")):
        rb_ctx = f"{ctx}.repo-bundle[{i}]"
        rb = expect_mapping(rb, rb_ctx, allowed=("name", "version", "override"))
        overrides = {}
        for repo_name, ov in expect_mapping(rb.get("override"), f"{rb_ctx}.override").items():
            ov_ctx = f"{rb_ctx}.override.{repo_name}"
            ov = expect_mapping(ov, ov_ctx, allowed=OVERRIDE_KEYS)
            overrides[str(repo_name)] = DnfRepoParamsOverride(
                enabled=expect_bool(ov.get("enabled"), f"{ov_ctx}.enabled"),
                exclude=expect_str(ov.get("exclude"), f"{ov_ctx}.exclude"),
                priority=expect_int(ov.get("priority"), f"{ov_ctx}.priority"),
            )
        repo_bundles.append(RepoBundleRef(
            name=expect_str(rb.get("name"), f"{rb_ctx}.name"),
            version=expect_str(rb.get("version"), f"{rb_ctx}.version"),
            overrides=overrides,
        ))

    dependencies = {}
    for key, deps in expect_mapping(raw.get("dependencies"), f"{ctx}.dependencies").items():
        dependencies[str(key)] = [expect_str(d, f"{ctx}.dependencies.{key}")
                                  for d in expect_list(deps, f"{ctx}.dependencies.{key}")]

    return Build(
        include=[expect_str(i, f"{ctx}.include") for i in expect_list(raw.get("include"), f"{ctx}.include")],
        repo_bundle=repo_bundles,
        local_deps=expect_bool(raw.get("local-deps"), f"{ctx}.local-deps"),
        dependencies=dependencies,
        enable_network=expect_bool(raw.get("enable-network"), f"{ctx}.enable-network"),
    )


def _sanity_check_upstream(pkg_name: str, src: UpstreamSrc) -> None:
    # a git url stands in for full-url and may be resolved through a source-bundle
    git_url = src.git.url if src.git is not None else ""
    if not (src.full_url or git_url or src.source_bundle is not None):
        raise ConfigError(f"Specify source for Build in package {pkg_name}, "
                          "provide either full-url or source-bundle")
    if src.full_url and (git_url or src.source_bundle is not None):
        raise ConfigError(f"Conflicting sources for Build in package {pkg_name}, "
                          "provide either full-url or source-bundle")
    if src.signature.detached_sig.full_url and src.source_bundle is not None:
        raise ConfigError(f"Conflicting signatures for Build in package {pkg_name}, "
                          "provide full-url or source-bundle")
    if src.git is not None and not src.git.revision:
        raise ConfigError(f"No git revision specified for upstream source of package {pkg_name}")


def parse_manifest(data, source: str = "manifest") -> Manifest:
    data = expect_mapping(data, source, allowed=("package",))
    packages = []
    for i, raw in enumerate(expect_list(data.get("package"), f"{source}: package")):
        ctx = f"{source}: package[{i}]"
        raw = expect_mapping(raw, ctx, allowed=("name", "subdir", "release", "upstream-sources",
                                                "type", "build"))
        name = expect_str(raw.get("name"), f"{ctx}.name")
        if not name:
            raise ConfigError(f"{source}: Package name not specified in manifest")

        pkg_type = expect_str(raw.get("type"), f"{ctx}.type")
        if pkg_type not in config.ALLOWED_PKG_TYPES:
            raise ConfigError(f"{source}: Bad type '{pkg_type}' for package {name}")

        build = _parse_build(raw.get("build"), f"{ctx}.build")
        if build is None:
            raise ConfigError(f"{source}: No repo-bundle specified for Build in package {name}")

        upstream_sources = [
            _parse_upstream_src(u, f"{ctx}.upstream-sources[{j}]")
            for j, u in enumerate(expect_list(raw.get("upstream-sources"), f"{ctx}.upstream-sources"))
        ]
        for src in upstream_sources:
            try:
                _sanity_check_upstream(name, src)
            except ConfigError as e:
                raise ConfigError(f"{source}: Manifest sanity check error: {e}") from e

        packages.append(Package(
            name=name,
            type=pkg_type,
            subdir=expect_bool(raw.get("subdir"), f"{ctx}.subdir"),
            release=expect_str(raw.get("release"), f"{ctx}.release"),
            upstream_sources=upstream_sources,
            build=build,
        ))
    return Manifest(packages)


def load_manifest(repo_dir: Path) -> Manifest:
    """Load <repo_dir>/eext.yaml"""
    yaml_path = Path(repo_dir) / config.MANIFEST_FILENAME
    data = load_yaml_file(yaml_path, "manifest.LoadManifest")
    manifest = parse_manifest(data, source=f"manifest.LoadManifest({yaml_path})")
    logger.info(f"MANIFEST_LOADED packages={len(manifest.packages)} path={yaml_path}")
    return manifest
