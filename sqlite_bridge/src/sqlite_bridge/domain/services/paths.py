"""Database location validation."""

from __future__ import annotations

import os
from urllib.parse import unquote, urlsplit

from sqlite_bridge.domain.errors import ArgumentError

MEMORY_LOCATION = ":memory:"

# Nested percent-encoding is decoded at most this many times.
_MAX_DECODE_PASSES = 10


def _decode_file_url(url: str, field: str) -> str:
    parts = urlsplit(url)
    if parts.netloc not in ("", "localhost"):
        raise ArgumentError(f'The "{field}" argument must be a local file URL')

    path = parts.path
    for _ in range(_MAX_DECODE_PASSES):
        decoded = unquote(path)
        if decoded == path:
            break
        path = decoded
    else:
        raise ArgumentError(f'The "{field}" argument has too many levels of percent-encoding')

    if "\0" in path:
        raise ArgumentError(f'The "{field}" argument must not contain null bytes')
    if ".." in path.split("/"):
        raise ArgumentError(f'The "{field}" argument must not contain ".." segments')
    return path


def validate_database_path(value: object, field: str = "path") -> str:
    """
    Normalize a database location to the string handed to the engine.

    Accepts str, bytes and os.PathLike. ``file://`` URLs are turned into plain
    paths; other ``file:`` URIs and ``:memory:`` pass through unchanged.

    Args:
        value: Location supplied by the caller
        field: Argument name used in error messages

    Returns:
        The location as a str

    Raises:
        ArgumentError: If the value is not a usable location
    """
    if isinstance(value, os.PathLike):
        value = os.fspath(value)
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ArgumentError(f'The "{field}" argument must be valid UTF-8') from exc
    if not isinstance(value, str):
        raise ArgumentError(
            f'The "{field}" argument must be a string, bytes or path-like object'
        )
    if "\0" in value:
        raise ArgumentError(f'The "{field}" argument must not contain null bytes')
    if value.startswith("file://"):
        return _decode_file_url(value, field)
    return value


def is_uri(location: str) -> bool:
    """Whether the engine must be told to interpret the location as a URI."""
    return location.startswith("file:")
