"""Tests for rpm, tarball, digest and git revision signature checks."""

import hashlib
import os

import pytest

from eext import config
from eext.common.errors import VerificationError
from eext.common.shell_executor import MockedExecutor, RecordedCall, Response
from eext.gpg.gpg_handler import (
    ephemeral_keyring, is_sigfile_applicable, match_tarball_signature, verify_rpm_signature,
    verify_sha256, verify_tarball_signature,
)
from eext.scm.git_client import GitCheckout, GitClient

from conftest import ok_responses


class TestSigfileMatching:

    @pytest.mark.parametrize("tarball, sig, expected", [
        ("foo.tar.gz", "foo.tar.gz.sig", (True, False)),
        ("foo.tar.gz", "foo.tar.sig", (True, True)),
        ("foobar.tar.gz", "signature", (False, False)),
        ("foo.tar.gz", "bar.tar.gz.sig", (False, False)),
        ("/dl/foo-1.0.tar.xz", "/dl/foo-1.0.tar.asc", (True, True)),
    ])
    def test_is_sigfile_applicable(self, tarball, sig, expected):
        assert is_sigfile_applicable(tarball, sig) == expected

    def test_mismatch_rejected(self):
        with pytest.raises(VerificationError, match="Error while matching tarball"):
            match_tarball_signature(MockedExecutor(), "foo.tar.gz", "bar.sig", "/dl")

    def test_decompression(self):
        executor = MockedExecutor(ok_responses(1))
        path = match_tarball_signature(executor, "/dl/foo.tar.gz", "/dl/foo.tar.sig", "/dl")

        assert path == "/dl/foo.tar"
        assert executor.has_exact_calls([RecordedCall("", "7za", ["x", "-y", "/dl/foo.tar.gz", "-o/dl"])])


class TestTarballSignature:

    def test_verify_uses_private_keyring(self):
        executor = MockedExecutor(ok_responses(3))
        verify_tarball_signature(executor, "/dl/foo.tar.gz", "/dl/foo.tar.gz.sig", "/pki/key.pem")

        assert [call.args[-1] for call in executor.calls] == ["--fingerprint", "/pki/key.pem", "/dl/foo.tar.gz"]
        assert executor.calls[2].args[-3:] == ["--verify", "/dl/foo.tar.gz.sig", "/dl/foo.tar.gz"]
        home = executor.calls[0].args[1]
        assert executor.calls[0].args[:3] == ["--homedir", home, "--no-default-keyring"]
        assert not os.path.exists(home)

    def test_verify_failure_removes_keyring(self):
        executor = MockedExecutor(ok_responses(2) + [Response(return_code=1, output="BAD signature")])
        with pytest.raises(VerificationError, match="BAD signature"):
            verify_tarball_signature(executor, "/dl/foo.tar.gz", "/dl/foo.tar.gz.sig", "/pki/key.pem")
        assert not os.path.exists(executor.calls[0].args[1])

    def test_verify_on_uncompressed_payload(self):
        executor = MockedExecutor(ok_responses(4))
        verify_tarball_signature(executor, "/dl/foo.tar.gz", "/dl/foo.tar.sig", "/pki/key.pem",
                                 download_dir="/dl")

        assert executor.calls[0].prog == "7za"
        assert executor.calls[3].args[-2:] == ["/dl/foo.tar.sig", "/dl/foo.tar"]

    def test_ephemeral_keyring_permissions(self):
        with ephemeral_keyring() as keyring:
            assert oct(os.stat(keyring.home).st_mode & 0o777) == oct(0o700)
            assert keyring.gpg_env() == {"GNUPGHOME": keyring.home}
        assert not os.path.exists(keyring.home)


class TestRpmSignature:

    def test_phrase_required(self):
        executor = MockedExecutor([Response(output="foo.src.rpm: digests OK\n")])
        with pytest.raises(VerificationError, match="Signature check of foo.src.rpm failed"):
            verify_rpm_signature(executor, "foo.src.rpm")

    def test_phrase_present(self):
        executor = MockedExecutor([Response(output=f"foo.src.rpm: {config.RPM_SIGNATURE_OK_PHRASE}\n")])
        verify_rpm_signature(executor, "foo.src.rpm")
        assert executor.has_call(RecordedCall("", "rpm", ["-K", "foo.src.rpm"]))


class TestSha256:

    def test_match_and_mismatch(self, tmp_path):
        path = tmp_path / "src.tar.gz"
        path.write_bytes(b"upstream")
        digest = hashlib.sha256(b"upstream").hexdigest()

        verify_sha256(path, digest.upper())
        with pytest.raises(VerificationError, match="bad SHA256"):
            verify_sha256(path, "0" * 64)


class TestGitClient:

    def test_fetch_revision_sequence(self, tmp_path):
        executor = MockedExecutor(ok_responses(5))
        checkout = GitClient(executor).fetch_revision("pkg", "https://example.org/pkg.git", "v1.0", tmp_path)

        cloned = checkout.cloned_dir
        assert os.path.basename(cloned).startswith("pkg")
        assert executor.has_exact_calls([
            RecordedCall(cloned, "git", ["init"]),
            RecordedCall(cloned, "git", ["remote", "add", "origin", "https://example.org/pkg.git"]),
            RecordedCall(cloned, "git", ["fetch", "--tags"]),
            RecordedCall(cloned, "git", ["fetch", "origin", "v1.0"]),
            RecordedCall(cloned, "git", ["reset", "--hard", "FETCH_HEAD"]),
        ])

    def test_fetch_failure_removes_clone(self, tmp_path):
        executor = MockedExecutor(ok_responses(2) + [Response(return_code=128)])
        with pytest.raises(Exception, match="fetching tags failed for pkg"):
            GitClient(executor).fetch_revision("pkg", "https://example.org/pkg.git", "v1.0", tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_archive_revision(self, tmp_path):
        spec_dir = tmp_path / "spec"
        spec_dir.mkdir()
        (spec_dir / "pkg.spec").write_text("Name: pkg\n")
        download_dir = tmp_path / "upstream"
        download_dir.mkdir()

        executor = MockedExecutor(ok_responses(5) + [Response(output="pkg-1.0\n"), Response()])
        filename, checkout = GitClient(executor).archive_revision(
            "pkg", "https://example.org/pkg.git", "v1.0", download_dir, spec_dir)

        assert filename == config.GIT_ARCHIVE_FILENAME
        assert executor.calls[-1] == RecordedCall(
            checkout.cloned_dir, "git",
            ["archive", "--prefix", "pkg-1.0/", "-o", str(download_dir / filename), "v1.0"])
        checkout.remove()

    @pytest.fixture
    def checkout(self, tmp_path):
        return GitCheckout(url="https://example.org/pkg.git", revision="v1.0", cloned_dir=str(tmp_path))

    def test_tag_is_verified(self, checkout):
        executor = MockedExecutor(ok_responses(4))
        GitClient(executor).verify_revision_signature(checkout, "/pki/key.pem")

        cloned = checkout.cloned_dir
        assert executor.calls[2] == RecordedCall(cloned, "git", ["show-ref", "--quiet", "--tags", "v1.0"])
        assert executor.calls[3] == RecordedCall(cloned, "git", ["verify-tag", "-v", "v1.0"])
        assert "GNUPGHOME" in executor.calls[3].extra_env

    def test_commit_is_verified(self, checkout):
        executor = MockedExecutor(ok_responses(2) + [Response(return_code=1), Response(), Response()])
        GitClient(executor).verify_revision_signature(checkout, "/pki/key.pem")

        assert executor.calls[3].args == ["cat-file", "-e", "v1.0"]
        assert executor.calls[4].args == ["verify-commit", "-v", "v1.0"]

    def test_invalid_revision(self, checkout):
        executor = MockedExecutor(ok_responses(2) + [Response(return_code=1), Response(return_code=1)])
        with pytest.raises(VerificationError, match="provide either a COMMIT or TAG"):
            GitClient(executor).verify_revision_signature(checkout, "/pki/key.pem")

    def test_bad_signature(self, checkout):
        executor = MockedExecutor(ok_responses(3) + [Response(return_code=1)])
        with pytest.raises(VerificationError, match="git verify-tag of v1.0 failed"):
            GitClient(executor).verify_revision_signature(checkout, "/pki/key.pem")
