"""
Artifact manager - moves build outputs between the working tree and the destination tree
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

from eext.common.file_utils import copy_to_dest_dir, ensure_dir, remove_dirs, sorted_glob

logger = logging.getLogger(__name__)


class ArtifactManager:
    """Copies artifacts matching glob patterns into their destination directories"""

    def __init__(self, debug_mode: bool = False):
        self.debug_mode = debug_mode

    def filter_and_copy(self, path_map: Dict[Union[str, Path], str]) -> List[Path]:
        """
        Copy files for each destination -> source glob entry.

        A destination directory is only created when its glob matches
        something, so no empty arch directories appear in the destination tree.
        """
        copied = []
        for dest_dir, src_glob in path_map.items():
            if not sorted_glob(src_glob):
                logger.debug(f"No files match {src_glob}, skipping {dest_dir}")
                continue
            ensure_dir(dest_dir)
            files = copy_to_dest_dir(src_glob, dest_dir)
            for target in files:
                logger.info(f"ARTIFACT_COPIED file={target.name} dest={dest_dir}")
            copied.extend(files)
        return copied

    def cleanup_directories(self, *directories: Union[str, Path]) -> None:
        """Remove directories, ignoring ones that do not exist"""
        remove_dirs(directories)
        if self.debug_mode:
            for directory in directories:
                logger.debug(f"Cleaned directory: {directory}")
