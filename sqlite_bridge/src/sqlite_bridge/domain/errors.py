"""Error taxonomy for the binding.

Every error raised across the public surface derives from BridgeError and
carries a stable ``code`` string so callers can branch without matching
messages. Engine failures keep the engine's own diagnostic text unmodified.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all binding errors."""

    code = "ERR_SQLITE_BRIDGE"


class ArgumentError(BridgeError, TypeError):
    """An argument has the wrong type or shape."""

    code = "ERR_INVALID_ARG_TYPE"


class InvalidStateError(BridgeError):
    """The object is not in a state that permits the call."""

    code = "ERR_INVALID_STATE"


class ThreadAffinityError(InvalidStateError):
    """A connection was used from a thread other than the one that created it."""

    def __init__(self) -> None:
        super().__init__("Database connection cannot be used from different thread")


class IntegerRangeError(BridgeError, OverflowError):
    """An engine integer exceeds the safe range and wide integers were not requested."""

    code = "ERR_OUT_OF_RANGE"

    def __init__(self, value: int, limit: int) -> None:
        super().__init__(
            f"Value is too large to be represented as a safe integer "
            f"(|{value}| > {limit}); enable read_bigints to receive it"
        )
        self.value = value
        self.limit = limit


class CallbackError(BridgeError):
    """A user-supplied callable raised while the engine was calling it.

    The original exception is attached as ``__cause__``.
    """

    code = "ERR_CALLBACK"

    def __init__(self, kind: str, name: str, message: str) -> None:
        super().__init__(f"{kind} callback '{name}' raised: {message}")
        self.kind = kind
        self.name = name


class EngineError(BridgeError):
    """The engine reported a failure.

    Attributes:
        errcode: Primary result code.
        extended_code: Extended result code, when a connection was available.
        errstr: Engine description of the result code.
        system_errno: OS error number recorded by the engine, or 0.
    """

    code = "ERR_SQLITE_ERROR"

    def __init__(
        self,
        message: str,
        errcode: int,
        *,
        extended_code: int | None = None,
        errstr: str = "",
        system_errno: int = 0,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.errcode = errcode
        self.extended_code = errcode if extended_code is None else extended_code
        self.errstr = errstr
        self.system_errno = system_errno


class OpenError(EngineError):
    """Opening a database failed."""


class BackupError(EngineError):
    """An online backup ended with a non-success status."""
