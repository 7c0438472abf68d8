"""Named parameter resolution."""

from __future__ import annotations

from typing import Iterable

from sqlite_bridge.domain.errors import InvalidStateError

PARAMETER_PREFIXES = (":", "@", "$")


def build_bare_name_map(names: Iterable[str | None]) -> dict[str, str]:
    """
    Map each parameter's bare name to its full, prefixed name.

    Anonymous (``?``) and numbered (``?NNN``) parameters are skipped.

    Args:
        names: Parameter names in index order; None for anonymous ones

    Returns:
        Mapping from bare name to full name

    Raises:
        InvalidStateError: If two different full names share a bare name
    """
    bare_names: dict[str, str] = {}
    for full_name in names:
        if not full_name or full_name[0] not in PARAMETER_PREFIXES:
            continue
        bare = full_name[1:]
        existing = bare_names.get(bare)
        if existing is not None and existing != full_name:
            raise InvalidStateError(
                f"Cannot create bare named parameter '{bare}' because of "
                f"conflicting names '{existing}' and '{full_name}'."
            )
        bare_names[bare] = full_name
    return bare_names
