"""
GPG Handler - signature verification for upstream sources

Verification is a mandatory gate: every failure raises VerificationError and
stops the package. Keys are only ever imported into a throwaway keyring that
is removed when the check finishes, successful or not.
"""

import os
import shutil
import tempfile
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

from eext import config
from eext.common.errors import CommandError, VerificationError
from eext.common.file_utils import sha256sum
from eext.common.shell_executor import Executor

logger = logging.getLogger(__name__)


class EphemeralKeyring:
    """A private GNUPGHOME holding a single keyring file"""

    KEYRING_NAME = "eext.gpg"

    def __init__(self, home: str):
        self.home = home
        self.keyring_path = os.path.join(home, self.KEYRING_NAME)

    @property
    def base_args(self):
        return ["--homedir", self.home, "--no-default-keyring", "--keyring", self.keyring_path]

    def gpg_env(self) -> Dict[str, str]:
        return {"GNUPGHOME": self.home}


@contextmanager
def ephemeral_keyring() -> Iterator[EphemeralKeyring]:
    """Create a fresh GNUPGHOME and remove it on exit"""
    home = tempfile.mkdtemp(prefix="eext-keyring")
    os.chmod(home, 0o700)
    try:
        yield EphemeralKeyring(home)
    finally:
        shutil.rmtree(home, ignore_errors=True)


def check_valid_rpm(executor: Executor, rpm_path: Path) -> None:
    try:
        executor.run("rpm", "-q", "-p", str(rpm_path))
    except CommandError as e:
        raise VerificationError(f"Downloaded SRPM file is not a valid rpm: {e}") from e


def verify_rpm_signature(executor: Executor, rpm_path: Path) -> None:
    """`rpm -K` must report the confirmation phrase, whatever its exit code says"""
    try:
        output = executor.output("rpm", "-K", str(rpm_path))
    except CommandError as e:
        raise VerificationError(f"Signature check of {rpm_path} failed: {e}") from e
    if config.RPM_SIGNATURE_OK_PHRASE not in output:
        raise VerificationError(f"Signature check of {rpm_path} failed. rpm -K output:\n{output}")
    logger.info(f"RPM_SIGNATURE_OK path={rpm_path}")


def is_sigfile_applicable(tarball_path: str, sig_path: str) -> Tuple[bool, bool]:
    """
    Check that a detached signature belongs to a tarball.

    The signature path up to its last dot must prefix the tarball path.

    Returns:
        (applicable, decompression_required). Decompression is required when
        the tarball has extensions beyond the signed name, e.g.
        ("foo.tar.gz", "foo.tar.sig") -> (True, True).
    """
    last_dot = sig_path.rfind(".")
    if last_dot == -1 or not tarball_path.startswith(sig_path[:last_dot]):
        return False, False
    return True, tarball_path[last_dot:].count(".") > 0


def uncompress_tarball(executor: Executor, tarball_path: str, download_dir: str) -> str:
    """Strip one compression layer with 7za; returns the uncompressed path"""
    executor.run("7za", "x", "-y", tarball_path, f"-o{download_dir}")
    return tarball_path[:tarball_path.rfind(".")]


def match_tarball_signature(executor: Executor, tarball_path: str, sig_path: str,
                            download_dir: str) -> str:
    """Return the path the signature should be checked against"""
    applicable, decompress = is_sigfile_applicable(tarball_path, sig_path)
    if not applicable:
        raise VerificationError(f"Error while matching tarball {tarball_path} and signature {sig_path}")
    if not decompress:
        return tarball_path
    try:
        return uncompress_tarball(executor, tarball_path, download_dir)
    except CommandError as e:
        raise VerificationError(f"Error '{e}' while decompressing tarball {tarball_path}") from e


def verify_tarball_signature(executor: Executor, tarball_path: str, sig_path: str,
                             pub_key_path: str, download_dir: Optional[str] = None) -> None:
    """
    Verify a detached signature using a keyring that holds only pub_key_path.

    When download_dir is given the tarball is first matched against the
    signature name, decompressing one layer if the signature was made over
    the uncompressed payload.
    """
    if download_dir is not None:
        tarball_path = match_tarball_signature(executor, tarball_path, sig_path, download_dir)

    with ephemeral_keyring() as keyring:
        try:
            executor.run("gpg", *keyring.base_args, "--fingerprint")
        except CommandError as e:
            raise VerificationError(f"Error '{e}' creating keyring") from e

        try:
            executor.run("gpg", *keyring.base_args, "--import", pub_key_path)
        except CommandError as e:
            raise VerificationError(f"Error '{e}' importing public-key {pub_key_path}") from e

        try:
            executor.output("gpg", *keyring.base_args, "--verify", sig_path, tarball_path)
        except CommandError as e:
            raise VerificationError(
                f"Error verifying signature {sig_path} for tarball {tarball_path} "
                f"with pubkey {pub_key_path}.\ngpg --verify err: {e}") from e

    logger.info(f"TARBALL_SIGNATURE_OK tarball={tarball_path} sig={sig_path}")


def verify_sha256(path: Path, expected: str) -> None:
    actual = sha256sum(path)
    if actual != expected.lower():
        raise VerificationError(f"bad SHA256: '{actual}' expected: '{expected}' for file: {path}")
    logger.info(f"SHA256_OK file={path}")
