"""Outbound adapters: the SQLite C library, reached through cffi."""

from sqlite_bridge.adapters.outbound.engine import EngineLibrary, EngineLoadError, load_engine

__all__ = [
    "EngineLibrary",
    "EngineLoadError",
    "load_engine",
]
