"""
Git Client Module - Handles Git operations for repositories and upstream sources
"""

import shutil
import tempfile
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from eext import config
from eext.common.errors import CommandError, ResourceError, VerificationError
from eext.common.file_utils import sorted_glob
from eext.common.shell_executor import Executor
from eext.gpg.gpg_handler import ephemeral_keyring

logger = logging.getLogger(__name__)


@dataclass
class GitCheckout:
    """A revision fetched into a scratch directory"""
    url: str
    revision: str
    cloned_dir: str

    def remove(self):
        shutil.rmtree(self.cloned_dir, ignore_errors=True)


class GitClient:
    """Handles Git operations through the injected executor"""

    def __init__(self, executor: Executor, quiet: bool = False):
        self.executor = executor
        self.quiet = quiet

    def clone_repository(self, repo_url: str, target_dir: Path) -> None:
        """Full clone of a package repository"""
        args = ["clone"]
        if self.quiet:
            args.append("--quiet")
        args.extend([repo_url, str(target_dir)])
        self.executor.run("git", *args)
        logger.info(f"Successfully cloned {repo_url} to {target_dir}")

    def fetch_revision(self, pkg: str, url: str, revision: str, target_dir: Path) -> GitCheckout:
        """
        Fetch a single revision into a temp dir under target_dir.

        init + fetch is used instead of clone since it only pulls what the
        revision needs.
        """
        cloned_dir = tempfile.mkdtemp(prefix=pkg, dir=str(target_dir))
        checkout = GitCheckout(url=url, revision=revision, cloned_dir=cloned_dir)
        steps = [
            (["init"], f"git init at {cloned_dir} failed"),
            (["remote", "add", "origin", url], f"adding {url} as git remote failed"),
            (["fetch", "--tags"], f"fetching tags failed for {pkg}"),
            (["fetch", "origin", revision], f"fetching revision {revision} failed for {pkg}"),
            (["reset", "--hard", "FETCH_HEAD"], f"fetching HEAD at {revision} failed"),
        ]
        try:
            for args, failure in steps:
                try:
                    self.executor.run_in_dir(cloned_dir, "git", *args)
                except CommandError as e:
                    raise ResourceError(f"{failure}: {e}") from e
        except ResourceError:
            checkout.remove()
            raise
        return checkout

    def rpm_name_from_spec(self, spec_dir: Path) -> str:
        """NAME-VERSION of the single spec file in spec_dir"""
        spec_files = sorted_glob(Path(spec_dir) / "*.spec")
        if not spec_files:
            raise ResourceError(f"no *.spec files found in {spec_dir}")
        if len(spec_files) > 1:
            raise ResourceError(f"multiple *.spec files {','.join(spec_files)} found in {spec_dir}")
        try:
            output = self.executor.output("rpmspec", "-q", "--srpm", "--qf", "%{NAME}-%{VERSION}", spec_files[0])
        except CommandError as e:
            raise ResourceError(f"cannot query spec file {spec_files[0]}: {e}") from e
        return output.strip()

    def archive_revision(self, pkg: str, url: str, revision: str, download_dir: Path,
                         spec_dir: Path) -> Tuple[str, GitCheckout]:
        """
        Fetch revision and archive it as the package's Source0 tarball.

        Returns:
            (archive filename inside download_dir, checkout kept for verification)
        """
        checkout = self.fetch_revision(pkg, url, revision, download_dir)
        try:
            parent_folder = self.rpm_name_from_spec(spec_dir)
            archive_path = Path(download_dir) / config.GIT_ARCHIVE_FILENAME
            archive_args = ["archive", "--prefix", parent_folder + "/", "-o", str(archive_path), revision]
            try:
                self.executor.run_in_dir(checkout.cloned_dir, "git", *archive_args)
            except CommandError as e:
                raise ResourceError(f"git archive of {pkg} failed: {e}") from e
        except ResourceError:
            checkout.remove()
            raise
        logger.info(f"GIT_ARCHIVE_CREATED pkg={pkg} revision={revision} file={archive_path}")
        return config.GIT_ARCHIVE_FILENAME, checkout

    def verify_revision_signature(self, checkout: GitCheckout, pub_key_path: str) -> None:
        """
        Verify the tag or commit signature of checkout.revision.

        The revision is treated as a tag if a tag ref matches it, otherwise
        as a commit if the object exists.
        """
        cloned_dir = checkout.cloned_dir
        revision = checkout.revision
        with ephemeral_keyring() as keyring:
            env = keyring.gpg_env()
            try:
                self.executor.run("gpg", "--fingerprint", extra_env=env)
            except CommandError as e:
                raise VerificationError(f"Error '{e}' creating keyring") from e
            try:
                self.executor.run("gpg", "--import", pub_key_path, extra_env=env)
            except CommandError as e:
                raise VerificationError(f"Error '{e}' importing public-key {pub_key_path}") from e

            if self._succeeds(cloned_dir, env, "show-ref", "--quiet", "--tags", revision):
                self._verify(cloned_dir, env, "verify-tag", revision)
            elif self._succeeds(cloned_dir, env, "cat-file", "-e", revision):
                self._verify(cloned_dir, env, "verify-commit", revision)
            else:
                raise VerificationError(
                    f"invalid revision {revision} provided, provide either a COMMIT or TAG")
        logger.info(f"GIT_SIGNATURE_OK url={checkout.url} revision={revision}")

    def _succeeds(self, cloned_dir: str, env, *args: str) -> bool:
        try:
            self.executor.run_in_dir(cloned_dir, "git", *args, extra_env=env)
        except CommandError:
            return False
        return True

    def _verify(self, cloned_dir: str, env, subcommand: str, revision: str) -> None:
        try:
            self.executor.run_in_dir(cloned_dir, "git", subcommand, "-v", revision, extra_env=env)
        except CommandError as e:
            raise VerificationError(f"git {subcommand} of {revision} failed: {e}") from e
