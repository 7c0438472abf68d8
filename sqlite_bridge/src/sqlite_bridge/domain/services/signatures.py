"""Argument-count inference for user functions."""

from __future__ import annotations

import inspect
from typing import Any, Callable

VARIADIC = -1

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def declared_arity(fn: Callable[..., Any]) -> int:
    """
    Count the required positional parameters of a callable.

    Returns VARIADIC when it accepts ``*args`` or has no inspectable
    signature (some builtins).
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return VARIADIC
    count = 0
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return VARIADIC
        if parameter.kind in _POSITIONAL and parameter.default is inspect.Parameter.empty:
            count += 1
    return count


def scalar_arity(fn: Callable[..., Any], varargs: bool = False) -> int:
    """Engine argument count for a scalar function."""
    if varargs:
        return VARIADIC
    return declared_arity(fn)


def aggregate_arity(
    step: Callable[..., Any],
    inverse: Callable[..., Any] | None = None,
    varargs: bool = False,
) -> int:
    """
    Engine argument count for an aggregate.

    Each callable receives the accumulator first, so its SQL arity is one
    less than its declared arity. The larger of step and inverse wins.
    """
    if varargs:
        return VARIADIC
    arities = [declared_arity(step)]
    if inverse is not None:
        arities.append(declared_arity(inverse))
    if VARIADIC in arities:
        return VARIADIC
    return max(max(arity - 1 for arity in arities), 0)
