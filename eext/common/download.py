"""
Download Module - Fetches upstream sources and signatures into the working tree
"""

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests

from eext import config
from eext.common.errors import ConfigError, ResourceError
from eext.common.file_utils import copy_to_dest_dir

logger = logging.getLogger(__name__)


def download(src_url: str, target_dir: Path, pkg_dir_in_repo: Path,
             timeout: Optional[float] = config.DOWNLOAD_TIMEOUT) -> str:
    """
    Download src_url into target_dir and return the resulting filename.

    Args:
        src_url: http(s) URL, or file:// URL rooted at the package directory
                 inside the repository checkout
        target_dir: Existing directory to place the file in
        pkg_dir_in_repo: Root for file:// URLs
        timeout: Per-request timeout in seconds, None for no timeout

    Returns:
        Basename of the downloaded file
    """
    uri = urlparse(src_url)
    filename = uri.path.split("/")[-1]

    if uri.scheme == "file":
        if not uri.path:
            raise ConfigError(f"Bad URL {src_url}. Example usage: file:///foo")
        src_path = Path(pkg_dir_in_repo) / uri.path.lstrip("/")
        if not src_path.exists():
            raise ResourceError(f"{src_path} referenced by {src_url} not found in repo")
        copy_to_dest_dir(src_path, target_dir)
        return filename

    if uri.scheme not in ("http", "https"):
        raise ConfigError(f"Unsupported URL scheme in {src_url}. (Supported: file, http, https)")
    if not filename:
        raise ConfigError(f"Bad URL {src_url}, no filename in path")

    dest_path = Path(target_dir) / filename
    try:
        with requests.get(src_url, stream=True, timeout=timeout) as response:
            if response.status_code != requests.codes.ok:
                raise ResourceError(f"GET {src_url} returned {response.status_code} {response.reason}")
            with open(dest_path, 'wb') as f:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    f.write(chunk)
    except requests.exceptions.RequestException as e:
        raise ResourceError(f"GET {src_url} failed: {e}") from e
    except OSError as e:
        raise ResourceError(f"Error writing {dest_path}: {e}") from e

    logger.info(f"DOWNLOADED url={src_url} file={dest_path}")
    return filename
