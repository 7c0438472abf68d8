"""Engine constants.

Values are numerically identical to the ones in ``sqlite3.h`` so they can be
passed straight through to the engine and compared with what it returns.
"""

from __future__ import annotations

from enum import IntEnum

# Result codes
SQLITE_OK = 0
SQLITE_ERROR = 1
SQLITE_INTERNAL = 2
SQLITE_PERM = 3
SQLITE_ABORT = 4
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_NOMEM = 7
SQLITE_READONLY = 8
SQLITE_INTERRUPT = 9
SQLITE_IOERR = 10
SQLITE_CORRUPT = 11
SQLITE_NOTFOUND = 12
SQLITE_FULL = 13
SQLITE_CANTOPEN = 14
SQLITE_PROTOCOL = 15
SQLITE_EMPTY = 16
SQLITE_SCHEMA = 17
SQLITE_TOOBIG = 18
SQLITE_CONSTRAINT = 19
SQLITE_MISMATCH = 20
SQLITE_MISUSE = 21
SQLITE_NOLFS = 22
SQLITE_AUTH = 23
SQLITE_FORMAT = 24
SQLITE_RANGE = 25
SQLITE_NOTADB = 26
SQLITE_NOTICE = 27
SQLITE_WARNING = 28
SQLITE_ROW = 100
SQLITE_DONE = 101

# Open flags
SQLITE_OPEN_READONLY = 0x00000001
SQLITE_OPEN_READWRITE = 0x00000002
SQLITE_OPEN_CREATE = 0x00000004
SQLITE_OPEN_DELETEONCLOSE = 0x00000008
SQLITE_OPEN_EXCLUSIVE = 0x00000010
SQLITE_OPEN_AUTOPROXY = 0x00000020
SQLITE_OPEN_URI = 0x00000040
SQLITE_OPEN_MEMORY = 0x00000080
SQLITE_OPEN_MAIN_DB = 0x00000100
SQLITE_OPEN_TEMP_DB = 0x00000200
SQLITE_OPEN_TRANSIENT_DB = 0x00000400
SQLITE_OPEN_MAIN_JOURNAL = 0x00000800
SQLITE_OPEN_TEMP_JOURNAL = 0x00001000
SQLITE_OPEN_SUBJOURNAL = 0x00002000
SQLITE_OPEN_SUPER_JOURNAL = 0x00004000
SQLITE_OPEN_NOMUTEX = 0x00008000
SQLITE_OPEN_FULLMUTEX = 0x00010000
SQLITE_OPEN_SHAREDCACHE = 0x00020000
SQLITE_OPEN_PRIVATECACHE = 0x00040000
SQLITE_OPEN_WAL = 0x00080000

# Function flags
SQLITE_UTF8 = 1
SQLITE_DETERMINISTIC = 0x000000800
SQLITE_DIRECTONLY = 0x000080000

# sqlite3_db_config verbs
SQLITE_DBCONFIG_ENABLE_LOAD_EXTENSION = 1005
SQLITE_DBCONFIG_DQS_DML = 1013
SQLITE_DBCONFIG_DQS_DDL = 1014

# Changeset conflict kinds
SQLITE_CHANGESET_DATA = 1
SQLITE_CHANGESET_NOTFOUND = 2
SQLITE_CHANGESET_CONFLICT = 3
SQLITE_CHANGESET_CONSTRAINT = 4
SQLITE_CHANGESET_FOREIGN_KEY = 5

# Changeset conflict resolutions
SQLITE_CHANGESET_OMIT = 0
SQLITE_CHANGESET_REPLACE = 1
SQLITE_CHANGESET_ABORT = 2


class ConflictKind(IntEnum):
    """Why a change could not be applied cleanly."""

    DATA = SQLITE_CHANGESET_DATA
    NOTFOUND = SQLITE_CHANGESET_NOTFOUND
    CONFLICT = SQLITE_CHANGESET_CONFLICT
    CONSTRAINT = SQLITE_CHANGESET_CONSTRAINT
    FOREIGN_KEY = SQLITE_CHANGESET_FOREIGN_KEY


class ConflictResolution(IntEnum):
    """What the engine should do with a conflicting change."""

    OMIT = SQLITE_CHANGESET_OMIT
    REPLACE = SQLITE_CHANGESET_REPLACE
    ABORT = SQLITE_CHANGESET_ABORT
