"""Option and result value objects for the public API.

Options are pydantic models so malformed arguments are rejected before any
engine call; ``parse_options`` turns validation failures into ArgumentError.
Results are plain frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from sqlite_bridge.domain.errors import ArgumentError
from sqlite_bridge.domain.services.paths import validate_database_path

M = TypeVar("M", bound=BaseModel)


class _Options(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", strict=True)


def parse_options(model: type[M], **values: Any) -> M:
    """
    Build an options model, reporting bad input as ArgumentError.

    Keys whose value is None are dropped so model defaults apply.
    """
    try:
        return model(**{key: value for key, value in values.items() if value is not None})
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or model.__name__
        raise ArgumentError(f'The "{field}" option is invalid: {error["msg"]}') from exc


class DatabaseOpenConfiguration(_Options):
    """How a connection opens its database."""

    location: str | None = None
    read_only: bool = Field(
        default=False, validation_alias=AliasChoices("read_only", "readOnly")
    )
    enable_foreign_keys: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "enable_foreign_keys", "enableForeignKeys", "enableForeignKeyConstraints"
        ),
    )
    enable_double_quoted_string_literals: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "enable_double_quoted_string_literals", "enableDoubleQuotedStringLiterals"
        ),
    )
    timeout: int = Field(default=0, ge=0, description="Busy timeout in milliseconds")
    allow_extension: bool = Field(
        default=False, validation_alias=AliasChoices("allow_extension", "allowExtension")
    )

    @field_validator("location", mode="before")
    @classmethod
    def _normalize_location(cls, value: Any) -> str | None:
        if value is None:
            return None
        try:
            return validate_database_path(value, "location")
        except ArgumentError as exc:
            raise ValueError(str(exc)) from exc


class StatementOptions(_Options):
    """Per-statement behaviour flags."""

    read_bigints: bool = False
    return_arrays: bool = False
    allow_bare_named_parameters: bool = False


class FunctionOptions(_Options):
    """Flags shared by scalar and aggregate registrations."""

    deterministic: bool = False
    direct_only: bool = False
    use_bigint_arguments: bool = False
    varargs: bool = False


class AggregateOptions(FunctionOptions):
    """An aggregate or window function definition."""

    start: Any = None
    step: Callable[..., Any]
    inverse: Callable[..., Any] | None = None
    result: Callable[..., Any] | None = None


class SessionOptions(_Options):
    """Which table and schema a change-tracking session watches."""

    table: str | None = None
    db: str = "main"


class ChangesetApplyOptions(_Options):
    """Callbacks consulted while applying a changeset."""

    on_conflict: Callable[[int], Any] | None = None
    filter: Callable[[str], Any] | None = None


class BackupOptions(_Options):
    """Online backup parameters."""

    rate: int = 100
    source: str = "main"
    target: str = "main"
    progress: Callable[..., Any] | None = None


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of a data-changing statement."""

    changes: int
    last_insert_rowid: int


@dataclass(frozen=True, slots=True)
class ColumnInfo:
    """Result column metadata; None where the engine does not know."""

    column: str | None
    database: str | None
    name: str
    table: str | None
    type: str | None


@dataclass(frozen=True, slots=True)
class IteratorResult:
    """One step of a row iterator."""

    done: bool
    value: Any = None


@dataclass(frozen=True, slots=True)
class BackupProgress:
    """Progress of an online backup after one step."""

    total_pages: int
    remaining_pages: int

    @property
    def current_page(self) -> int:
        return self.total_pages - self.remaining_pages
