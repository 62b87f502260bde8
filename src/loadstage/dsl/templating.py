"""``${name}`` substitution of iteration variables into request fields."""

from __future__ import annotations

from string import Template
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping


class _BlankMissing(dict[str, str]):
    """Mapping that renders unknown placeholders as the empty string."""

    def __missing__(self, key: str) -> str:
        return ""


def render(value: Any, variables: Mapping[str, Any]) -> Any:
    """Substitute ``${name}`` / ``$name`` placeholders in *value*.

    Strings are rendered with :class:`string.Template`; dicts, lists and
    tuples are rendered recursively (dict keys included); anything else is
    returned unchanged.  A placeholder with no matching variable becomes an
    empty string, so ``"Bearer ${token}"`` without a token renders as
    ``"Bearer "``.  ``$$`` renders a literal dollar sign; malformed
    placeholders such as ``$5`` are left as written.

    Args:
        value: Request field to render.
        variables: Iteration variables.

    Returns:
        The rendered copy of *value*.
    """
    mapping = _BlankMissing({k: "" if v is None else str(v) for k, v in variables.items()})
    return _render(value, mapping)


def _render(value: Any, mapping: _BlankMissing) -> Any:
    if isinstance(value, str):
        if "$" not in value:
            return value
        return Template(value).safe_substitute(mapping)
    if isinstance(value, dict):
        return {_render(k, mapping): _render(v, mapping) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return type(value)(_render(v, mapping) for v in value)
    return value


def placeholders(value: Any) -> set[str]:
    """Return the variable names referenced anywhere in *value*."""
    found: set[str] = set()
    if isinstance(value, str):
        for match in Template.pattern.finditer(value):
            name = match.group("named") or match.group("braced")
            if name:
                found.add(name)
    elif isinstance(value, dict):
        for k, v in value.items():
            found |= placeholders(k) | placeholders(v)
    elif isinstance(value, list | tuple):
        for v in value:
            found |= placeholders(v)
    return found
