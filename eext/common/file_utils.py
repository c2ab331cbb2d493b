"""
File helpers used by the pipelines
"""

import glob
import hashlib
import os
import shutil
import logging
from pathlib import Path
from typing import Iterable, List, Union

from eext.common.errors import ResourceError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def check_dir(path: PathLike, writable: bool = False) -> None:
    path = Path(path)
    if not path.exists():
        raise ResourceError(f"{path} doesn't exist")
    if not path.is_dir():
        raise ResourceError(f"{path} is not a directory")
    if writable and not os.access(path, os.W_OK):
        raise ResourceError(f"{path} is not writable")


def ensure_dir(path: PathLike) -> Path:
    """Create a directory with parents if missing"""
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ResourceError(f"Error '{e}' trying to create directory {path} with parents") from e
    return path


def remove_dirs(dirs: Iterable[PathLike]) -> None:
    for directory in dirs:
        directory = Path(directory)
        if not directory.exists():
            continue
        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise ResourceError(f"Error '{e}' while removing {directory}") from e


def sorted_glob(pattern: PathLike) -> List[str]:
    return sorted(glob.glob(str(pattern)))


def copy_to_dest_dir(src_glob: PathLike, dest_dir: PathLike) -> List[Path]:
    """
    Copy every file or directory matching src_glob into dest_dir.

    dest_dir must already exist and be writable. Returns the copied paths.
    """
    dest_dir = Path(dest_dir)
    try:
        check_dir(dest_dir, writable=True)
    except ResourceError as e:
        raise ResourceError(f"Directory {dest_dir} should be present and writable: {e}") from e

    copied = []
    for src in sorted_glob(src_glob):
        target = dest_dir / os.path.basename(src)
        try:
            if os.path.isdir(src):
                shutil.copytree(src, target, dirs_exist_ok=True)
            else:
                shutil.copy2(src, target)
        except OSError as e:
            raise ResourceError(f"copying {src} to {dest_dir}/ errored out with '{e}'") from e
        logger.debug(f"Copied {src} -> {target}")
        copied.append(target)
    return copied


def sha256sum(path: PathLike) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()
