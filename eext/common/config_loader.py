"""
Config Loader Module - Handles settings loading and validation
"""

import os
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from eext import config
from eext.common.errors import ConfigError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings, passed explicitly to every component"""
    src_dir: str = config.SRC_DIR
    working_dir: str = config.WORKING_DIR
    dest_dir: str = config.DEST_DIR
    deps_dir: str = config.DEPS_DIR
    srpms_dir: str = config.SRPMS_DIR
    mock_cfg_template: str = config.MOCK_CFG_TEMPLATE
    dnf_config_file: str = config.DNF_CONFIG_FILE
    dnf_repo_host: str = config.DNF_REPO_HOST
    src_config_file: str = config.SRC_CONFIG_FILE
    src_repo_host: str = config.SRC_REPO_HOST
    src_repo_path_prefix: str = config.SRC_REPO_PATH_PREFIX
    pki_path: str = config.PKI_PATH
    src_env_prefix: str = config.SRC_ENV_PREFIX
    log_file: str = ""
    quiet: bool = False
    dry_run: bool = False
    debug: bool = False

    def repo_dir(self, repo: str = "") -> Path:
        """Cloned repository path; without a repo name the sources are in the current directory"""
        if repo:
            return Path(self.src_dir) / repo
        return Path(".")

    def srpms_dirs(self) -> List[Path]:
        if self.srpms_dir:
            return [Path(d) for d in self.srpms_dir.split(":") if d]
        return [Path(self.dest_dir) / "SRPMS"]

    @property
    def rpm_keys_dir(self) -> Path:
        return Path(self.pki_path) / config.RPM_KEYS_SUBDIR

    @property
    def detached_sig_dir(self) -> Path:
        return Path(self.pki_path) / config.DETACHED_SIGNERS_SUBDIR


class ConfigLoader:
    """Builds Settings from defaults, a YAML settings file, EEXT_* env vars and overrides"""

    @staticmethod
    def _field_types() -> Dict[str, Any]:
        return {f.name: f.type for f in fields(Settings)}

    @staticmethod
    def _coerce(key: str, value: Any) -> Any:
        field_type = ConfigLoader._field_types()[key]
        if field_type in (bool, "bool"):
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in _TRUE_VALUES
        if value is None:
            return ""
        return str(value)

    @staticmethod
    def find_settings_file(config_file: Optional[str] = None) -> Optional[Path]:
        """Explicit path wins; otherwise the first existing search path, if any"""
        if config_file:
            path = Path(config_file).expanduser()
            if not path.is_file():
                raise ConfigError(f"Settings file {path} doesn't exist")
            return path
        for candidate in config.SETTINGS_SEARCH_PATHS:
            path = Path(candidate).expanduser()
            if path.is_file():
                return path
        return None

    @staticmethod
    def read_settings_file(path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error reading settings file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")

        known = ConfigLoader._field_types()
        values = {}
        for raw_key, value in data.items():
            key = str(raw_key).replace("-", "_").lower()
            if key not in known:
                raise ConfigError(f"Unknown setting '{raw_key}' in {path}")
            values[key] = ConfigLoader._coerce(key, value)
        return values

    @staticmethod
    def read_environment(environ=None) -> Dict[str, Any]:
        environ = os.environ if environ is None else environ
        values = {}
        for key in ConfigLoader._field_types():
            env_name = config.ENV_PREFIX + key.upper()
            if env_name in environ:
                values[key] = ConfigLoader._coerce(key, environ[env_name])
        return values

    @staticmethod
    def load(config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None,
             environ=None) -> Settings:
        """
        Resolve settings.

        Precedence, lowest first: defaults in eext.config, the settings file,
        EEXT_<KEY> environment variables, explicit overrides.
        """
        values: Dict[str, Any] = {}

        settings_file = ConfigLoader.find_settings_file(config_file)
        if settings_file is not None:
            logger.info(f"Using settings file: {settings_file}")
            values.update(ConfigLoader.read_settings_file(settings_file))

        values.update(ConfigLoader.read_environment(environ))

        for key, value in (overrides or {}).items():
            if key not in ConfigLoader._field_types():
                raise ConfigError(f"Unknown setting override '{key}'")
            if value is not None:
                values[key] = ConfigLoader._coerce(key, value)

        return replace(Settings(), **values)
