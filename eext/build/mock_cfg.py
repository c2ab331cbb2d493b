"""
Mock Config Module - Renders the per-package mock configuration

The template is a string.Template file. It is parsed once, and its
placeholder set is validated when it is loaded, so a bad template fails
the environment check instead of the first build.
"""

import logging
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from eext import config
from eext.bundles.dnf_config import DnfConfig, DnfRepoParams
from eext.common.errors import ConfigError, ResourceError
from eext.common.file_utils import copy_to_dest_dir, ensure_dir
from eext.common.paths import PackagePaths
from eext.manifest.manifest import Build

logger = logging.getLogger(__name__)


class MockCfgTemplate:
    """Once-parsed mock.cfg template owned by the caller"""

    PLACEHOLDERS = ("target_arch", "root", "resultdir", "macros", "repos", "includes")
    REQUIRED = ("target_arch", "root", "resultdir", "repos")

    def __init__(self, path):
        self.path = Path(path)
        self._template: Optional[string.Template] = None

    @property
    def loaded(self) -> bool:
        return self._template is not None

    @staticmethod
    def placeholders(template: string.Template) -> List[str]:
        names = []
        for match in template.pattern.finditer(template.template):
            if match.group("invalid") is not None:
                line = template.template[:match.start("invalid")].count("\n") + 1
                raise ConfigError(f"invalid placeholder on line {line}, use $$ for a literal $")
            name = match.group("named") or match.group("braced")
            if name:
                names.append(name)
        return names

    def parse(self, text: str) -> string.Template:
        template = string.Template(text)
        names = set(self.placeholders(template))
        unknown = names - set(self.PLACEHOLDERS)
        if unknown:
            raise ConfigError(f"unknown placeholder(s) {', '.join(sorted(unknown))}")
        missing = set(self.REQUIRED) - names
        if missing:
            raise ConfigError(f"missing placeholder(s) {', '.join(sorted(missing))}")
        return template

    def load(self) -> string.Template:
        if self._template is None:
            try:
                text = self.path.read_text()
            except OSError as e:
                raise ConfigError(f"Error reading mock config template {self.path}: {e}") from e
            try:
                self._template = self.parse(text)
            except ConfigError as e:
                raise ConfigError(f"Error parsing mock config template {self.path}: {e}") from e
            logger.info(f"MOCK_TEMPLATE_LOADED path={self.path}")
        return self._template

    def render(self, data: "MockCfgData") -> str:
        return self.load().substitute(data.template_values())


def _render_repo(repo: DnfRepoParams) -> str:
    lines = [
        f"[{repo.name}]",
        f"name={repo.name}",
        f"baseurl={repo.base_url}",
        f"enabled={int(repo.enabled)}",
        f"gpgcheck={int(repo.gpgcheck)}",
    ]
    if repo.gpgkey:
        lines.append(f"gpgkey={repo.gpgkey}")
    if repo.exclude:
        lines.append(f"exclude={repo.exclude}")
    lines.append(f"priority={repo.priority}")
    return "\n".join(lines) + "\n"


@dataclass
class MockCfgData:
    """Values substituted into the mock config template"""
    default_common_cfg: Dict[str, str]
    macros: Dict[str, str] = field(default_factory=dict)
    repos: List[DnfRepoParams] = field(default_factory=list)
    includes: List[str] = field(default_factory=list)

    def template_values(self) -> Dict[str, str]:
        values = dict(self.default_common_cfg)
        values["macros"] = "\n".join(
            f"config_opts['macros']['%{name}'] = {value!r}" for name, value in self.macros.items())
        values["repos"] = "\n".join(_render_repo(repo) for repo in self.repos)
        values["includes"] = "\n".join(f"include({path!r})" for path in self.includes)
        return values


class MockCfgBuilder:
    """Builds mock.cfg for one package and arch"""

    def __init__(self, paths: PackagePaths, arch: str, build_spec: Build, dnf_config: DnfConfig,
                 template: MockCfgTemplate, rpm_release_macro: str = "", eext_signature: str = "",
                 dependency_list: Optional[List[str]] = None):
        self.paths = paths
        self.arch = arch
        self.build_spec = build_spec
        self.dnf_config = dnf_config
        self.template = template
        self.rpm_release_macro = rpm_release_macro
        self.eext_signature = eext_signature
        self.dependency_list = dependency_list or []

    def resolve_repos(self) -> List[DnfRepoParams]:
        """Dnf repos for every repo-bundle in the manifest, bundle repos in sorted order"""
        repos = []
        for bundle_ref in self.build_spec.repo_bundle:
            bundle = self.dnf_config.get_bundle(bundle_ref.name)
            for override_repo in bundle_ref.overrides:
                if override_repo not in bundle.repos:
                    raise ConfigError(f"Bad repo-override {override_repo} specified in manifest")
            for repo_name in sorted(bundle.repos):
                repos.append(bundle.get_repo_params(
                    self.dnf_config.host, repo_name, self.arch,
                    bundle_ref.version, bundle_ref.overrides))

        if self.dependency_list:
            repos.append(DnfRepoParams(
                name=config.LOCAL_DEPS_REPO_NAME,
                base_url="file://" + str(self.paths.mock_deps_dir(self.arch)),
                enabled=True,
                gpgcheck=False,
                priority=config.REPO_HIGH_PRIORITY,
            ))
        return repos

    def template_data(self) -> MockCfgData:
        pkg_paths = self.paths
        arch = self.arch
        macros = {}
        if self.rpm_release_macro:
            macros["eext_release"] = self.rpm_release_macro
        if self.eext_signature:
            macros["distribution"] = f"eextsig={self.eext_signature}"

        cfg_dir = pkg_paths.mock_cfg_dir(arch)
        return MockCfgData(
            default_common_cfg={
                "target_arch": arch,
                "root": pkg_paths.mock_chroot_name(arch),
                "resultdir": str(pkg_paths.mock_results_dir(arch)),
            },
            macros=macros,
            repos=self.resolve_repos(),
            # mock wants absolute include paths; includes are copied next to mock.cfg
            includes=[str(cfg_dir / include) for include in self.build_spec.include],
        )

    def copy_includes(self) -> None:
        cfg_dir = ensure_dir(self.paths.mock_cfg_dir(self.arch))
        pkg_dir_in_repo = self.paths.pkg_dir_in_repo
        for include in self.build_spec.include:
            include_path = pkg_dir_in_repo / include
            if not include_path.is_file():
                raise ResourceError(f"include file {include} not found in repo dir {pkg_dir_in_repo}")
            copy_to_dest_dir(include_path, cfg_dir)

    def create(self) -> Path:
        """Write mock.cfg and return its path"""
        data = self.template_data()
        self.copy_includes()
        cfg_path = self.paths.mock_cfg_path(self.arch)
        try:
            cfg_path.write_text(self.template.render(data))
        except OSError as e:
            raise ResourceError(f"Error '{e}' writing mock configuration {cfg_path}") from e
        logger.info(f"MOCK_CFG_WRITTEN path={cfg_path} repos={len(data.repos)}")
        return cfg_path
