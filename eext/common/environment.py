"""
Environment setup and validation module
"""

import logging
from pathlib import Path
from typing import List

from eext import config
from eext.build.mock_cfg import MockCfgTemplate
from eext.common.config_loader import Settings
from eext.common.errors import CommandError, ConfigError, EnvironmentCheckError
from eext.common.file_utils import sorted_glob
from eext.common.shell_executor import Executor

logger = logging.getLogger(__name__)


def _check_dir(problems: List[str], label: str, path: str) -> None:
    p = Path(path)
    if not p.exists():
        problems.append(f"trouble with {label}: {path} doesn't exist")
    elif not p.is_dir():
        problems.append(f"trouble with {label}: {path} is not a directory")


def _check_file(problems: List[str], label: str, path: str) -> None:
    if not Path(path).exists():
        problems.append(f"trouble with {label}: {path} doesn't exist")


def check_env(settings: Settings, mock_template: MockCfgTemplate) -> None:
    """
    Pre-flight environment validation.

    Every problem is collected and reported together in one
    EnvironmentCheckError. The mock template is parsed here, once.
    """
    problems: List[str] = []

    if settings.src_dir:
        if not Path(settings.src_dir).exists():
            problems.append(f"trouble with SrcDir: {settings.src_dir} doesn't exist")
    elif not (Path(".") / config.MANIFEST_FILENAME).exists():
        problems.append(f"No {config.MANIFEST_FILENAME} in current directory. SrcDir is unspecified, "
                        "so it is expected that no --repo will be specified, "
                        "and that the sources are in the current working directory.")

    _check_dir(problems, "WorkingDir", settings.working_dir)
    _check_dir(problems, "DestDir", settings.dest_dir)

    if not Path(settings.mock_cfg_template).exists():
        problems.append(f"trouble with MockCfgTemplate: {settings.mock_cfg_template} doesn't exist")
    elif not mock_template.loaded:
        try:
            mock_template.load()
        except ConfigError as e:
            problems.append(f"trouble with MockCfgTemplate: {e}")

    _check_file(problems, "DnfConfigFile", settings.dnf_config_file)
    _check_file(problems, "SrcConfigFile", settings.src_config_file)
    _check_dir(problems, "PkiPath", settings.pki_path)

    if problems:
        for problem in problems:
            logger.error(f"[ERROR] {problem}")
        raise EnvironmentCheckError(problems)

    logger.info("Environment validation passed")


class RpmKeyLoader:
    """Replaces the rpmdb's gpg-pubkeys with the trusted keys under PKI_PATH, once per session"""

    NOT_INSTALLED = "package gpg-pubkey is not installed"

    def __init__(self, executor: Executor, settings: Settings):
        self.executor = executor
        self.settings = settings
        self.loaded = False

    def load(self) -> None:
        if self.loaded:
            return

        try:
            self.executor.output("rpm", "-e", "gpg-pubkey", "--allmatches")
        except CommandError as e:
            if self.NOT_INSTALLED not in str(e):
                raise ConfigError(f"Error '{e}' clearing gpg-pubkey from rpmdb") from e

        pub_keys = sorted_glob(self.settings.rpm_keys_dir / "*.pem")
        for pub_key in pub_keys:
            try:
                self.executor.run("rpm", "--import", pub_key)
            except CommandError as e:
                raise ConfigError(f"Error '{e}' importing {pub_key} to rpmdb") from e

        self.loaded = True
        logger.info(f"RPM_KEYS_LOADED count={len(pub_keys)} dir={self.settings.rpm_keys_dir}")
