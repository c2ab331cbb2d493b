"""
Mock Builder Module - Builds binary RPMs from a previously built SRPM

Stages, in order:
    fetchSrpm -> clean -> setupDeps (only with local deps) -> createCfg
    -> chroot-init -> installdeps (not for i686) -> build -> copyResultsToDestDir

Results land in <DEST_DIR>/RPMS/<noarch|arch>/<pkg>/.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

from eext.bundles.dnf_config import DnfConfig
from eext.build.artifact_manager import ArtifactManager
from eext.build.build_tracker import BuildTracker, StagedPipeline
from eext.build.mock_cfg import MockCfgBuilder, MockCfgTemplate
from eext.common.config_loader import Settings
from eext.common.errors import CommandError, PipelineIdentity, ResourceError
from eext.common.file_utils import check_dir, sorted_glob
from eext.common.paths import PackagePaths
from eext.common.shell_executor import Executor
from eext.manifest.manifest import Package

logger = logging.getLogger(__name__)


class MockBuilder(StagedPipeline):
    """Runs fedora mock for one manifest package and target arch"""

    kind = "rpm"

    def __init__(self, executor: Executor, settings: Settings, repo: str, pkg_spec: Package,
                 arch: str, dnf_config: DnfConfig, template: MockCfgTemplate,
                 rpm_release_macro: str = "", eext_signature: str = "",
                 no_check: bool = False, only_create_cfg: bool = False,
                 tracker: Optional[BuildTracker] = None):
        super().__init__(PipelineIdentity("mockBuilder", f"{pkg_spec.name}-{arch}"), tracker)
        self.executor = executor
        self.settings = settings
        self.repo = repo
        self.pkg_spec = pkg_spec
        self.arch = arch
        self.no_check = no_check
        self.only_create_cfg = only_create_cfg
        self.paths = PackagePaths(settings, repo, pkg_spec.name, pkg_spec.subdir)
        self.dependency_list = pkg_spec.build.dependency_list(arch)
        self.artifacts = ArtifactManager(debug_mode=settings.debug)
        self.cfg_builder = MockCfgBuilder(
            self.paths, arch, pkg_spec.build, dnf_config, template,
            rpm_release_macro=rpm_release_macro,
            eext_signature=eext_signature,
            dependency_list=self.dependency_list,
        )
        self.srpm_path = ""

    @property
    def rpm_archs(self) -> List[str]:
        return ["noarch", self.arch]

    def fetch_srpm(self, stage: str) -> str:
        pkg_srpms_dir = self.paths.find_srpms_dir()
        files = sorted_glob(pkg_srpms_dir / "*")
        if not files:
            raise ResourceError(f"Found no files in {pkg_srpms_dir}, expected to find input .src.rpm file here")
        if len(files) > 1 or not files[0].endswith(".src.rpm"):
            raise ResourceError(f"Found files {','.join(files)} in {pkg_srpms_dir}, "
                                "expected only one .src.rpm file")
        self.srpm_path = files[0]
        return self.srpm_path

    def clean(self, stage: str) -> None:
        dirs = [self.paths.rpms_dest_dir(rpm_arch) for rpm_arch in self.rpm_archs]
        dirs.append(self.paths.mock_base_dir(self.arch))
        self.artifacts.cleanup_directories(*dirs)

    def setup_deps(self, stage: str) -> None:
        """Stage prebuilt local dependencies as a createrepo'd dnf repo for mock"""
        if not self.dependency_list:
            raise RuntimeError("setup_deps called but the manifest doesn't specify any dependencies")

        deps_dir = Path(self.settings.deps_dir)
        try:
            check_dir(deps_dir)
        except ResourceError as e:
            raise ResourceError(f"Problem with DepsDir: {e}") from e

        mock_deps_dir = self.paths.mock_deps_dir(self.arch)
        path_map: Dict[Path, str] = {}
        missing_deps = []
        for dep in self.dependency_list:
            satisfied = False
            for rpm_arch in self.rpm_archs:
                dep_dir = deps_dir / rpm_arch / dep
                path_glob = str(dep_dir / f"*.{rpm_arch}.rpm")
                if dep_dir.is_dir() and sorted_glob(path_glob):
                    satisfied = True
                    path_map[mock_deps_dir / rpm_arch / dep] = path_glob
            if not satisfied:
                missing_deps.append(dep)

        if missing_deps:
            raise ResourceError(f"Missing/Empty deps: {','.join(missing_deps)} in depDir: {deps_dir}")

        self.artifacts.filter_and_copy(path_map)
        try:
            self.executor.run("createrepo", str(mock_deps_dir))
        except CommandError as e:
            raise ResourceError(f"createrepo {mock_deps_dir} errored out with {e}") from e
        self.log.info(stage, f"staged {len(self.dependency_list)} local dependencies")

    def create_cfg(self, stage: str) -> Path:
        return self.cfg_builder.create()

    def mock_args(self, extra_args: List[str]) -> List[str]:
        args = [f"--root={self.paths.mock_cfg_path(self.arch)}"]
        if self.settings.quiet:
            args.append("--quiet")
        args.extend(extra_args)
        args.append(self.srpm_path)
        return args

    def _dump_build_log(self, stage: str) -> None:
        build_log = self.paths.mock_results_dir(self.arch) / "build.log"
        if not build_log.is_file():
            self.log.info(stage, "No build.log found")
            return
        self.log.info(stage, "--- start of mock build.log ---")
        try:
            for line in build_log.read_text(errors="replace").splitlines():
                logger.info(line)
        except OSError as e:
            self.log.warning(stage, f"Dumping logfile failed: {e}")
        self.log.info(stage, "--- end of build.log ---")

    def run_mock(self, stage: str, extra_args: List[str]) -> None:
        args = self.mock_args(extra_args)
        self.log.info(stage, f"Running mock {' '.join(args)}")
        try:
            self.executor.run("mock", *args)
        except CommandError as e:
            self._dump_build_log(stage)
            raise ResourceError(f"mock {' '.join(args)} errored out with {e}") from e
        self.log.info(stage, "mock successful")

    def build_args(self) -> List[str]:
        args = ["--no-clean", "--rebuild"]
        if self.no_check:
            args.append("--nocheck")
        if self.pkg_spec.build.enable_network:
            args.append("--enable-network")
        return args

    def copy_results_to_dest_dir(self, stage: str) -> List[Path]:
        results_dir = self.paths.mock_results_dir(self.arch)
        path_map = {
            self.paths.rpms_dest_dir(rpm_arch): str(results_dir / f"*.{rpm_arch}.rpm")
            for rpm_arch in self.rpm_archs
        }
        copied = self.artifacts.filter_and_copy(path_map)
        logger.info(f"RPMS_PUBLISHED pkg={self.pkg_spec.name} arch={self.arch} count={len(copied)}")
        return copied

    def run(self) -> List[Path]:
        """Run every stage; returns the published RPM paths"""
        self.run_stage("fetchSrpm", self.fetch_srpm)
        self.run_stage("clean", self.clean)
        # dependencies may be declared for other arches only
        if self.dependency_list:
            self.run_stage("setupDeps", self.setup_deps)
        self.run_stage("createCfg", self.create_cfg)

        if self.only_create_cfg:
            args = self.mock_args(["[<extra-args>] [<sub-cmd>]"])
            self.log.info("", "Mock config has been created. If you want to run mock natively use: "
                              f"'mock {' '.join(args)}'")
            return []

        self.run_stage("chroot-init", lambda stage: self.run_mock(stage, ["--init"]))
        # installdeps is broken for i686 targets; the rebuild installs them instead
        if self.arch != "i686":
            self.run_stage("installdeps", lambda stage: self.run_mock(stage, ["--installdeps"]))
        self.run_stage("build", lambda stage: self.run_mock(stage, self.build_args()))

        copied = self.run_stage("copyResultsToDestDir", self.copy_results_to_dest_dir)
        self.finish()
        return copied
