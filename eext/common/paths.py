"""
Filesystem layout for one package: repo checkout, working tree and destination tree
"""

from pathlib import Path
from typing import List

from eext.common.config_loader import Settings
from eext.common.errors import ResourceError


class PackagePaths:
    """
    Path getters for a package.

    Layout:
        <repo>/[<pkg>/]{sources,spec}
        <WORKING_DIR>/<pkg>/upstream
        <WORKING_DIR>/<pkg>/rpmbuild/{SOURCES,SPECS,SRPMS}
        <WORKING_DIR>/<pkg>/mock-<arch>/{mock-cfg,mock-deps,mock-results}
        <DEST_DIR>/SRPMS/<pkg>
        <DEST_DIR>/RPMS/<arch>/<pkg>
    """

    def __init__(self, settings: Settings, repo: str, pkg: str, subdir: bool = False):
        self.settings = settings
        self.repo = repo
        self.pkg = pkg
        self.subdir = subdir

    # Repository checkout

    @property
    def repo_dir(self) -> Path:
        return self.settings.repo_dir(self.repo)

    @property
    def pkg_dir_in_repo(self) -> Path:
        if self.subdir:
            return self.repo_dir / self.pkg
        return self.repo_dir

    @property
    def sources_dir_in_repo(self) -> Path:
        return self.pkg_dir_in_repo / "sources"

    @property
    def spec_dir_in_repo(self) -> Path:
        return self.pkg_dir_in_repo / "spec"

    # Working tree

    @property
    def working_dir(self) -> Path:
        return Path(self.settings.working_dir) / self.pkg

    @property
    def download_dir(self) -> Path:
        return self.working_dir / "upstream"

    @property
    def rpmbuild_dir(self) -> Path:
        return self.working_dir / "rpmbuild"

    @property
    def rpmbuild_sources_dir(self) -> Path:
        return self.rpmbuild_dir / "SOURCES"

    @property
    def rpmbuild_specs_dir(self) -> Path:
        return self.rpmbuild_dir / "SPECS"

    @property
    def rpmbuild_srpms_dir(self) -> Path:
        return self.rpmbuild_dir / "SRPMS"

    def mock_base_dir(self, arch: str) -> Path:
        return self.working_dir / f"mock-{arch}"

    def mock_deps_dir(self, arch: str) -> Path:
        return self.mock_base_dir(arch) / "mock-deps"

    def mock_cfg_dir(self, arch: str) -> Path:
        return self.mock_base_dir(arch) / "mock-cfg"

    def mock_cfg_path(self, arch: str) -> Path:
        return self.mock_cfg_dir(arch) / "mock.cfg"

    def mock_results_dir(self, arch: str) -> Path:
        return self.mock_base_dir(arch) / "mock-results"

    def mock_chroot_name(self, arch: str) -> str:
        # Name relative to mock's own working directory, not WORKING_DIR
        return f"{self.pkg}-{arch}"

    # Destination tree

    @property
    def srpms_dest_dir(self) -> Path:
        return Path(self.settings.dest_dir) / "SRPMS" / self.pkg

    def rpms_dest_dir(self, arch: str) -> Path:
        return Path(self.settings.dest_dir) / "RPMS" / arch / self.pkg

    def find_srpms_dir(self) -> Path:
        """First <candidate>/<pkg> directory among the configured SRPM locations"""
        candidates: List[Path] = self.settings.srpms_dirs()
        for candidate in candidates:
            path = candidate / self.pkg
            if path.is_dir():
                return path
        searched = ":".join(str(c) for c in candidates)
        raise ResourceError(f"subpath {self.pkg} not found in any item in SrpmsDir {searched}")
