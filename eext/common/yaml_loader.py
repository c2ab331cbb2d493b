"""
Strict YAML helpers: unknown keys and wrong shapes are configuration errors
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from eext.common.errors import ConfigError


def load_yaml_file(path: Path, what: str) -> Any:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"{what}: {path} doesn't exist")
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"{what}: reading {path} returned {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"{what}: Error parsing yaml file {path}: {e}") from e


def expect_mapping(value: Any, context: str, allowed: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Return value as a dict, rejecting non-mappings and keys outside `allowed`"""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{context}: expected a mapping, got {type(value).__name__}")
    if allowed is not None:
        allowed = set(allowed)
        unknown = sorted(str(k) for k in value if k not in allowed)
        if unknown:
            raise ConfigError(f"{context}: unknown field(s) {', '.join(unknown)}")
    return value


def expect_list(value: Any, context: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{context}: expected a list, got {type(value).__name__}")
    return value


def expect_str(value: Any, context: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"{context}: expected a string, got {type(value).__name__}")
    return str(value)


def expect_bool(value: Any, context: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"{context}: expected true/false, got {value!r}")
    return value


def expect_int(value: Any, context: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{context}: expected an integer, got {value!r}")
    return value


def expect_str_map(value: Any, context: str) -> Dict[str, str]:
    mapping = expect_mapping(value, context)
    return {str(k): expect_str(v, f"{context}.{k}") for k, v in mapping.items()}
