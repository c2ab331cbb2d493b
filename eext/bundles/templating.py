"""
URL format templates: str.format placeholders checked when the config is loaded
"""

import string
from typing import Iterable, Set

from eext.common.errors import ConfigError

_FORMATTER = string.Formatter()


def template_fields(template: str) -> Set[str]:
    """Placeholder names used by a str.format template; raises ConfigError if it doesn't parse"""
    names = set()
    try:
        for _literal, field_name, _spec, _conversion in _FORMATTER.parse(template):
            if field_name is None:
                continue
            if field_name == "" or field_name.isdigit():
                raise ConfigError(f"positional placeholder in template '{template}'")
            names.add(field_name)
    except ValueError as e:
        raise ConfigError(f"Error parsing template '{template}': {e}") from e
    return names


def validate_template(template: str, allowed: Iterable[str], context: str) -> None:
    allowed = set(allowed)
    try:
        unknown = template_fields(template) - allowed
    except ConfigError as e:
        raise ConfigError(f"{context}: {e}") from e
    if unknown:
        raise ConfigError(
            f"{context}: unknown placeholder(s) {', '.join(sorted(unknown))} in '{template}', "
            f"allowed: {', '.join(sorted(allowed))}")


def render_template(template: str, context: str, **values) -> str:
    try:
        return template.format(**values)
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigError(f"{context}: Error executing template {template} with data {values}: {e}") from e
