"""
SRPM Builder Module - Rebuilds a modified source package from upstream sources

Stages, in order:
    checkRepo -> clean -> fetchUpstream -> verifyUpstream -> setupRpmbuildTree
    -> build-prep (optional) -> build-srpm -> copyResultsToDestDir

fetchUpstream and verifyUpstream are skipped for standalone packages.
The first failing stage aborts the package.
"""

import re
import shutil
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from eext import config
from eext.bundles.src_config import SrcConfig
from eext.build.build_tracker import BuildTracker, StagedPipeline
from eext.common.config_loader import Settings
from eext.common.download import download
from eext.common.errors import CommandError, ConfigError, PipelineIdentity, ResourceError
from eext.common.file_utils import (
    check_dir, copy_to_dest_dir, ensure_dir, remove_dirs, sorted_glob,
)
from eext.common.paths import PackagePaths
from eext.common.shell_executor import Executor
from eext.gpg.gpg_handler import (
    check_valid_rpm, verify_rpm_signature, verify_sha256, verify_tarball_signature,
)
from eext.manifest.manifest import Package, UpstreamSrc
from eext.scm.git_client import GitCheckout, GitClient

logger = logging.getLogger(__name__)

# Line based: group 1 is the Release value before any comment, group 2 the optional comment
RELEASE_REGEX = re.compile(r"^(Release:[ \t]+[^#\n]+)(.*)$", re.MULTILINE)


@dataclass
class FetchedSource:
    """An upstream source downloaded into the package's download dir"""
    source_file: str
    sig_file: str = ""
    pub_key_path: str = ""
    skip_sig_check: bool = False
    git_checkout: Optional[GitCheckout] = None


def find_single_spec(specs_dir: Path) -> Path:
    spec_files = sorted_glob(Path(specs_dir) / "*.spec")
    if len(spec_files) != 1:
        raise ResourceError(f"No/multiple spec files {','.join(spec_files)} in {specs_dir}")
    return Path(spec_files[0])


def patch_release_line(spec_text: str) -> str:
    """Append the eext release macro to the single Release: line, keeping any trailing comment"""
    matches = RELEASE_REGEX.findall(spec_text)
    if len(matches) != 1:
        raise ResourceError(f"Found unexpected number ({len(matches)}) of occurences matching "
                            f"regex '{RELEASE_REGEX.pattern}', expected only one")
    return RELEASE_REGEX.sub(lambda m: m.group(1) + config.RELEASE_SUFFIX_MACRO + m.group(2), spec_text)


class SrpmBuilder(StagedPipeline):
    """Runs the source package pipeline for one manifest package"""

    kind = "srpm"

    def __init__(self, executor: Executor, settings: Settings, repo: str, pkg_spec: Package,
                 src_config: SrcConfig, do_build_prep: bool = False, rpm_release_macro: str = "",
                 tracker: Optional[BuildTracker] = None):
        super().__init__(PipelineIdentity("srpmBuilder", pkg_spec.name), tracker)
        self.executor = executor
        self.settings = settings
        self.repo = repo
        self.pkg_spec = pkg_spec
        self.src_config = src_config
        self.do_build_prep = do_build_prep
        self.rpm_release_macro = rpm_release_macro
        self.paths = PackagePaths(settings, repo, pkg_spec.name, pkg_spec.subdir)
        self.git = GitClient(executor, quiet=settings.quiet)
        self.upstream_sources: List[FetchedSource] = []

    @property
    def is_srpm_type(self) -> bool:
        return self.pkg_spec.type in config.SRPM_PKG_TYPES

    def check_repo(self, stage: str) -> None:
        """The package dir in the repo must hold exactly one spec, unless the upstream spec is reused"""
        if self.pkg_spec.type == "unmodified-srpm":
            return
        spec_dir = self.paths.spec_dir_in_repo
        spec_files = sorted_glob(spec_dir / "*.spec")
        if not spec_files:
            raise ResourceError(f"No *.spec files found in {spec_dir}")
        if len(spec_files) > 1:
            raise ResourceError(f"Multiple *.spec files {','.join(spec_files)} found in {spec_dir}")

    def clean(self, stage: str) -> None:
        remove_dirs([self.paths.srpms_dest_dir, self.paths.working_dir])
        self.upstream_sources = []

    def _pub_key_path(self, public_key: str) -> str:
        pub_key_path = self.settings.detached_sig_dir / public_key
        if not pub_key_path.exists():
            raise ResourceError(f"Cannot find public-key at path {pub_key_path}")
        return str(pub_key_path)

    def _fetch_git(self, stage: str, upstream: UpstreamSrc, download_dir: Path) -> FetchedSource:
        pkg = self.pkg_spec.name
        skip_check = upstream.signature.skip_check
        public_key = upstream.signature.detached_sig.public_key
        if not skip_check and not public_key:
            raise ConfigError(f"expected public-key for {pkg} to verify git repo")

        src_params = self._src_params(upstream, upstream.git.url)
        self.log.info(stage, f"archiving {src_params.src_url} at {upstream.git.revision}")
        filename, checkout = self.git.archive_revision(
            pkg, src_params.src_url, upstream.git.revision, download_dir, self.paths.spec_dir_in_repo)
        fetched = FetchedSource(source_file=filename, skip_sig_check=skip_check)
        if skip_check:
            checkout.remove()
            return fetched
        try:
            fetched.pub_key_path = self._pub_key_path(public_key)
        except ResourceError:
            checkout.remove()
            raise
        fetched.git_checkout = checkout
        return fetched

    def _src_params(self, upstream: UpstreamSrc, full_url: str):
        detached_sig = upstream.signature.detached_sig
        return self.src_config.get_src_params(
            self.pkg_spec.name,
            full_url=full_url,
            bundle_name=upstream.bundle_name,
            sig_full_url=detached_sig.full_url,
            override=upstream.source_bundle.override if upstream.source_bundle else None,
            on_uncompressed=detached_sig.on_uncompressed,
        )

    def _fetch_url(self, stage: str, upstream: UpstreamSrc, download_dir: Path) -> FetchedSource:
        pkg_type = self.pkg_spec.type
        detached_sig = upstream.signature.detached_sig
        src_params = self._src_params(upstream, upstream.full_url)

        self.log.info(stage, f"downloading {src_params.src_url}")
        fetched = FetchedSource(
            source_file=download(src_params.src_url, download_dir, self.paths.pkg_dir_in_repo),
            skip_sig_check=upstream.signature.skip_check,
        )
        self.log.info(stage, "downloaded")

        if upstream.sha256:
            verify_sha256(download_dir / fetched.source_file, upstream.sha256)

        if pkg_type == "tarball" and not fetched.skip_sig_check:
            if not src_params.signature_url or not detached_sig.public_key:
                raise ConfigError(f"No detached-signature/public-key specified for "
                                  f"upstream-sources entry {src_params.src_url}")
            fetched.sig_file = download(src_params.signature_url, download_dir,
                                        self.paths.pkg_dir_in_repo)
            fetched.pub_key_path = self._pub_key_path(detached_sig.public_key)
        elif pkg_type in config.SRPM_PKG_TYPES:
            # SRPMs carry their own rpm signature
            if src_params.signature_url:
                raise ConfigError("Unexpected detached-sig specified for SRPM")
            if detached_sig.public_key:
                raise ConfigError("Unexpected public-key specified for SRPM")
        return fetched

    def fetch_upstream(self, stage: str) -> None:
        download_dir = ensure_dir(self.paths.download_dir)
        for upstream in self.pkg_spec.upstream_sources:
            if upstream.git is not None:
                fetched = self._fetch_git(stage, upstream, download_dir)
            else:
                fetched = self._fetch_url(stage, upstream, download_dir)
            self.upstream_sources.append(fetched)

    def upstream_srpm_path(self) -> Path:
        if len(self.upstream_sources) != 1:
            raise ConfigError("For building SRPMs, we expect exactly one upstream source to be specified, "
                              f"found {len(self.upstream_sources)}")
        srpm_path = self.paths.download_dir / self.upstream_sources[0].source_file
        if not srpm_path.exists():
            raise ResourceError(f"File not found at expected path: {srpm_path}")
        return srpm_path

    def _verify_upstream_srpm(self) -> None:
        srpm_path = self.upstream_srpm_path()
        if not srpm_path.name.endswith(".src.rpm"):
            raise ResourceError(f"Upstream SRPM file {srpm_path} doesn't have valid extension")
        upstream = self.upstream_sources[0]
        if upstream.sig_file:
            raise ConfigError("Unexpected: detached signature specified for SRPM")
        check_valid_rpm(self.executor, srpm_path)
        if not upstream.skip_sig_check:
            verify_rpm_signature(self.executor, srpm_path)

    def verify_upstream(self, stage: str) -> None:
        if self.is_srpm_type:
            self._verify_upstream_srpm()
            return

        download_dir = self.paths.download_dir
        for upstream in self.upstream_sources:
            if upstream.git_checkout is not None:
                try:
                    self.git.verify_revision_signature(upstream.git_checkout, upstream.pub_key_path)
                finally:
                    upstream.git_checkout.remove()
                    upstream.git_checkout = None
            elif not upstream.skip_sig_check:
                verify_tarball_signature(
                    self.executor,
                    str(download_dir / upstream.source_file),
                    str(download_dir / upstream.sig_file),
                    upstream.pub_key_path,
                    download_dir=str(download_dir),
                )
            else:
                self.log.warning(stage, f"signature check skipped for {upstream.source_file}")

    def _setup_tree_from_srpm(self) -> None:
        srpm_path = self.upstream_srpm_path()
        rpmbuild_dir = self.paths.rpmbuild_dir
        try:
            self.executor.run("rpm", "--define", f"_topdir {rpmbuild_dir}", "-i", str(srpm_path))
        except CommandError as e:
            raise ResourceError(f"Error '{e}' installing upstream SRPM file {srpm_path}") from e
        specs_dir = self.paths.rpmbuild_specs_dir
        try:
            check_dir(specs_dir)
        except ResourceError as e:
            raise ResourceError(f"{specs_dir} not found after installing upstream SRPM : {e}") from e

    def _setup_tree_from_sources(self) -> None:
        sources_dir = ensure_dir(self.paths.rpmbuild_sources_dir)
        if self.pkg_spec.type == "tarball":
            for upstream in self.upstream_sources:
                copy_to_dest_dir(self.paths.download_dir / upstream.source_file, sources_dir)
        ensure_dir(self.paths.rpmbuild_specs_dir)

    def _overlay_repo_files(self) -> None:
        repo_sources_dir = self.paths.sources_dir_in_repo
        # Some repos only carry a spec file, no patches
        if repo_sources_dir.is_dir():
            copy_to_dest_dir(repo_sources_dir / "*", ensure_dir(self.paths.rpmbuild_sources_dir))
        copy_to_dest_dir(self.paths.spec_dir_in_repo / "*", ensure_dir(self.paths.rpmbuild_specs_dir))

    def _patch_upstream_spec_release(self) -> None:
        spec_file = find_single_spec(self.paths.rpmbuild_specs_dir)
        orig_spec_file = spec_file.with_name(spec_file.name + ".orig")
        try:
            shutil.copy2(spec_file, orig_spec_file)
        except OSError as e:
            raise ResourceError(f"copying {spec_file} to {orig_spec_file} errored out with '{e}'") from e
        try:
            spec_file.write_text(patch_release_line(spec_file.read_text()))
        except OSError as e:
            raise ResourceError(f"Error '{e}' patching {spec_file}") from e

    def setup_rpmbuild_tree(self, stage: str) -> None:
        if self.is_srpm_type:
            self._setup_tree_from_srpm()
        elif self.pkg_spec.type in ("tarball", "standalone"):
            self._setup_tree_from_sources()
        else:
            raise RuntimeError(f"setup_rpmbuild_tree called for unsupported type {self.pkg_spec.type}")

        if self.pkg_spec.type == "unmodified-srpm":
            self._patch_upstream_spec_release()
        else:
            self._overlay_repo_files()

    def build(self, stage: str, prep: bool = False) -> None:
        spec_file = find_single_spec(self.paths.rpmbuild_specs_dir)
        args = [
            "-bp" if prep else "-bs",
            "--define", f"_topdir {self.paths.rpmbuild_dir}",
        ]
        if self.rpm_release_macro:
            args.extend(["--define", f"eext_release {self.rpm_release_macro}"])
        args.append(str(spec_file))
        self.executor.run("rpmbuild", *args)

    def copy_results_to_dest_dir(self, stage: str) -> Path:
        srpms_dir = self.paths.rpmbuild_srpms_dir
        try:
            check_dir(srpms_dir)
        except ResourceError as e:
            raise ResourceError(f"SRPMS directory {srpms_dir} not found after build: {e}") from e

        srpms = sorted_glob(srpms_dir / "*.src.rpm")
        if not srpms:
            raise ResourceError(f"No .src.rpm was found in {srpms_dir}")
        if len(srpms) > 1:
            raise ResourceError(f"Multiple .src.rpm files {','.join(srpms)} found in {srpms_dir}, "
                                "only one was expected")

        dest_dir = ensure_dir(self.paths.srpms_dest_dir)
        copy_to_dest_dir(srpms[0], dest_dir)
        logger.info(f"SRPM_PUBLISHED pkg={self.pkg_spec.name} file={Path(srpms[0]).name} dest={dest_dir}")
        return dest_dir / Path(srpms[0]).name

    def _cleanup_checkouts(self) -> None:
        for upstream in self.upstream_sources:
            if upstream.git_checkout is not None:
                upstream.git_checkout.remove()
                upstream.git_checkout = None

    def run(self) -> Path:
        """Run every stage; returns the published .src.rpm path"""
        try:
            self.run_stage("checkRepo", self.check_repo)
            self.run_stage("clean", self.clean)
            if self.pkg_spec.type != "standalone":
                self.run_stage("fetchUpstream", self.fetch_upstream)
                self.run_stage("verifyUpstream", self.verify_upstream)
            self.run_stage("setupRpmbuildTree", self.setup_rpmbuild_tree)
            if self.do_build_prep:
                self.run_stage("build-prep", lambda stage: self.build(stage, prep=True))
            self.run_stage("build-srpm", self.build)
            result = self.run_stage("copyResultsToDestDir", self.copy_results_to_dest_dir)
        finally:
            self._cleanup_checkouts()
        self.finish()
        return result
