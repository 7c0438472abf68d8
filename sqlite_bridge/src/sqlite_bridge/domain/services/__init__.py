"""Domain services.

Pure logic shared by the application layer: value conversion, accumulator
storage, parameter-name resolution, arity inference and path validation.
"""

from sqlite_bridge.domain.services.accumulator import AccumulatorStore, AccumulatorTag
from sqlite_bridge.domain.services.marshaller import (
    INT32_MAX,
    INT32_MIN,
    INT64_MAX,
    INT64_MIN,
    MAX_SAFE_INTEGER,
    integer_to_host,
    to_engine,
    to_host,
)
from sqlite_bridge.domain.services.parameters import build_bare_name_map
from sqlite_bridge.domain.services.paths import MEMORY_LOCATION, validate_database_path
from sqlite_bridge.domain.services.signatures import aggregate_arity, scalar_arity

__all__ = [
    "AccumulatorStore",
    "AccumulatorTag",
    "INT32_MAX",
    "INT32_MIN",
    "INT64_MAX",
    "INT64_MIN",
    "MAX_SAFE_INTEGER",
    "MEMORY_LOCATION",
    "aggregate_arity",
    "build_bare_name_map",
    "integer_to_host",
    "scalar_arity",
    "to_engine",
    "to_host",
    "validate_database_path",
]
