"""
Release macro and build signature derived from SRC_<N> environment variables
"""

import os
from typing import List, Mapping, Optional

from eext.common.errors import ConfigError


def _combine_src_env(env_prefix: str, use_hash: bool, sep: str,
                     environ: Optional[Mapping[str, str]] = None) -> str:
    environ = os.environ if environ is None else environ
    fields: List[str] = []
    index = 0
    while True:
        env_var = f"{env_prefix}{index}"
        value = environ.get(env_var, "")
        if not value:
            break
        parts = value.split("#")
        if len(parts) != 2:
            raise ConfigError(f"Env {env_var} has bad format {value}")
        # short hash, as in `git log --oneline`
        fields.append(parts[1][:7] if use_hash else value)
        index += 1
    return sep.join(fields)


def rpm_release_macro(pkg_release: str, env_prefix: str,
                      environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Value for the eext_release rpm macro.

    A release hardcoded in the manifest wins. Otherwise the short hashes from
    SRC_0, SRC_1, ... are joined with '_'. Returns "" when none are set.
    """
    if pkg_release:
        return pkg_release
    return _combine_src_env(env_prefix, True, "_", environ)


def eext_signature(env_prefix: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Signature of the sources and build requirements: full SRC_<N> values joined with ','"""
    return _combine_src_env(env_prefix, False, ",", environ)
