"""
Commands Module - Main orchestrator for the eext subcommands

Each public method maps to one CLI subcommand. Packages are processed one at
a time in manifest order and the first failure aborts the run.
"""

import os
import json
import shutil
import logging
import platform
from pathlib import Path
from typing import List, Mapping, Optional

from eext import config
from eext.bundles.dnf_config import DnfConfig
from eext.bundles.src_config import SrcConfig
from eext.build.build_tracker import BuildTracker
from eext.build.mock_builder import MockBuilder
from eext.build.mock_cfg import MockCfgTemplate
from eext.build.srpm_builder import SrpmBuilder
from eext.common.config_loader import Settings
from eext.common.environment import RpmKeyLoader, check_env
from eext.common.errors import CommandError, ConfigError, ResourceError
from eext.common.file_utils import ensure_dir
from eext.common.release import eext_signature, rpm_release_macro
from eext.common.shell_executor import Executor
from eext.manifest.manifest import load_manifest
from eext.scm.git_client import GitClient

logger = logging.getLogger(__name__)


def default_arch() -> str:
    """Build arch used when no target is given: the host's"""
    return platform.machine()


def validate_arch(arch: str) -> str:
    if not arch:
        raise ConfigError("Arch is not set, please input a valid build architecture.")
    if arch not in config.ALLOWED_ARCHES:
        raise ConfigError(f"'{arch}' is not a valid build arch, must be one of "
                          f"{', '.join(config.ALLOWED_ARCHES)}")
    return arch


class Orchestrator:
    """Runs eext commands with one settings object, one executor and one template cache"""

    def __init__(self, settings: Settings, executor: Executor,
                 mock_template: Optional[MockCfgTemplate] = None,
                 environ: Optional[Mapping[str, str]] = None):
        self.settings = settings
        self.executor = executor
        self.mock_template = mock_template or MockCfgTemplate(settings.mock_cfg_template)
        self.environ = os.environ if environ is None else environ
        self.key_loader = RpmKeyLoader(executor, settings)
        self.tracker = BuildTracker()

    def checkenv(self) -> None:
        check_env(self.settings, self.mock_template)

    def setup(self) -> None:
        """Environment check followed by loading the trusted rpm keys"""
        self.checkenv()
        self.key_loader.load()

    def clone(self, repo_url: str, repo: str, force: bool = False) -> Path:
        self.checkenv()
        repo_dir = self.settings.repo_dir(repo)
        if repo_dir.exists():
            if not force:
                raise ResourceError(f"{repo_dir} already exists, use --force to overwrite")
            try:
                shutil.rmtree(repo_dir)
            except OSError as e:
                raise ResourceError(f"Error '{e}' removing {repo_dir}") from e

        try:
            GitClient(self.executor, quiet=self.settings.quiet).clone_repository(repo_url, repo_dir)
        except CommandError as e:
            raise ResourceError(f"Cloning {repo_url} to {repo_dir} errored out with {e}") from e
        logger.info("SUCCESS: clone")
        return repo_dir

    def create_srpm(self, repo: str = "", pkg: str = "", do_build_prep: bool = False) -> List[Path]:
        self.setup()
        manifest = load_manifest(self.settings.repo_dir(repo))
        src_config = SrcConfig.load(self.settings)

        results = []
        for pkg_spec in manifest.select(pkg):
            builder = SrpmBuilder(
                self.executor, self.settings, repo, pkg_spec, src_config,
                do_build_prep=do_build_prep,
                rpm_release_macro=rpm_release_macro(pkg_spec.release, self.settings.src_env_prefix,
                                                    self.environ),
                tracker=self.tracker,
            )
            results.append(builder.run())

        logger.info(self.tracker.summary())
        logger.info("SUCCESS: createSrpm")
        return results

    def mock(self, repo: str = "", pkg: str = "", arch: str = "", no_check: bool = False,
             only_create_cfg: bool = False) -> List[Path]:
        validate_arch(arch)
        self.setup()
        dnf_config = DnfConfig.load(self.settings)
        manifest = load_manifest(self.settings.repo_dir(repo))

        signature = eext_signature(self.settings.src_env_prefix, self.environ)
        results = []
        for pkg_spec in manifest.select(pkg):
            builder = MockBuilder(
                self.executor, self.settings, repo, pkg_spec, arch, dnf_config, self.mock_template,
                rpm_release_macro=rpm_release_macro(pkg_spec.release, self.settings.src_env_prefix,
                                                    self.environ),
                eext_signature=signature,
                no_check=no_check,
                only_create_cfg=only_create_cfg,
                tracker=self.tracker,
            )
            results.extend(builder.run())

        logger.info(self.tracker.summary())
        logger.info("SUCCESS: mock")
        return results

    def build(self, repo: str = "", pkg: str = "", arch: str = "", do_build_prep: bool = False,
              no_check: bool = False) -> List[Path]:
        validate_arch(arch)
        self.create_srpm(repo, pkg, do_build_prep=do_build_prep)
        results = self.mock(repo, pkg, arch, no_check=no_check)
        logger.info("SUCCESS: Build")
        return results

    def list_unverified_sources(self, repo: str = "", pkg: str = "") -> List[Path]:
        """
        Write the upstream sources whose signature check is skipped.

        One JSON file per package, under
        <DEST_DIR>/unverified-sources/<repo-name>/<pkg>/unverified_sources.json.
        Packages without such sources get no file.
        """
        repo_dir = self.settings.repo_dir(repo)
        manifest = load_manifest(repo_dir)
        repo_name = repo_dir.resolve().name

        written = []
        for pkg_spec in manifest.select(pkg):
            unverified = [src.to_dict() for src in pkg_spec.upstream_sources if src.signature.skip_check]
            if not unverified:
                logger.debug(f"No unverified sources in {pkg_spec.name}")
                continue

            out_dir = ensure_dir(Path(self.settings.dest_dir) / "unverified-sources" / repo_name / pkg_spec.name)
            out_file = out_dir / "unverified_sources.json"
            try:
                with open(out_file, 'w') as f:
                    json.dump(unverified, f, indent=2)
            except OSError as e:
                raise ResourceError(f"listUnverifiedSources({pkg_spec.name}): unable to write to file "
                                    f"{out_file}: {e}") from e
            logger.info(f"UNVERIFIED_SOURCES pkg={pkg_spec.name} count={len(unverified)} file={out_file}")
            written.append(out_file)

        logger.info("SUCCESS: listUnverifiedSources")
        return written
