"""Pytest configuration and fixtures for eext tests."""

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import yaml

from eext.common.config_loader import Settings
from eext.common.shell_executor import MockedExecutor, Response

TEST_DATA = Path(__file__).parent / "testData"


class SimulatingExecutor(MockedExecutor):
    """
    MockedExecutor that also runs per-program side effects.

    Used where a stage checks what an external tool left behind, e.g. the
    SPECS dir after `rpm -i` or the .src.rpm after `rpmbuild -bs`.
    """

    def __init__(self, responses=None, side_effects: Optional[Dict[str, Callable[[List[str]], None]]] = None):
        super().__init__(responses)
        self.side_effects = side_effects or {}

    def run_in_dir(self, directory, name, *args, extra_env=None):
        super().run_in_dir(directory, name, *args, extra_env=extra_env)
        effect = self.side_effects.get(name)
        if effect is not None:
            effect(list(args))


def ok_responses(count: int) -> List[Response]:
    return [Response() for _ in range(count)]


def topdir_from_args(args: List[str]) -> Path:
    for arg in args:
        if arg.startswith("_topdir "):
            return Path(arg[len("_topdir "):])
    raise AssertionError(f"no _topdir define in {args}")


@pytest.fixture
def make_settings(tmp_path):
    """Settings factory with every directory created under tmp_path"""
    def _make(**overrides) -> Settings:
        base = tmp_path / "eext"
        dirs = {
            "src_dir": base / "src",
            "working_dir": base / "work",
            "dest_dir": base / "dest",
            "deps_dir": base / "deps",
            "pki_path": base / "pki",
        }
        for directory in dirs.values():
            directory.mkdir(parents=True, exist_ok=True)
        values = {key: str(value) for key, value in dirs.items()}
        values.update(
            mock_cfg_template=str(TEST_DATA / "mock.cfg.template"),
            dnf_config_file=str(TEST_DATA / "dnfconfig.yaml"),
            src_config_file=str(TEST_DATA / "srcconfig.yaml"),
            dnf_repo_host="http://foo.org",
            src_repo_host="http://foo.org",
            src_repo_path_prefix="foo",
        )
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def make_repo(settings):
    """Create <src_dir>/<repo> with an eext.yaml and optional files (relative path -> content)"""
    def _make(repo: str, manifest: dict, files: Optional[Dict[str, str]] = None) -> Path:
        repo_dir = Path(settings.src_dir) / repo
        repo_dir.mkdir(parents=True, exist_ok=True)
        with open(repo_dir / "eext.yaml", 'w') as f:
            yaml.safe_dump(manifest, f)
        for rel_path, content in (files or {}).items():
            path = repo_dir / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return repo_dir
    return _make
