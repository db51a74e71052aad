from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from .errors import NotFoundError, TenantOperatorError

T = TypeVar("T")


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T


@dataclass(frozen=True)
class Missing:
    reason: str = ""


@dataclass(frozen=True)
class Failure:
    error: TenantOperatorError


LookupResult = Union[Found[T], Missing, Failure]


def lookup(fetch: Callable[[], T]) -> "LookupResult[T]":
    """Run a fetch and classify its outcome.

    ``NotFoundError`` becomes ``Missing``; any other operator error becomes
    ``Failure``. Errors outside the operator hierarchy propagate unchanged.
    """
    try:
        return Found(fetch())
    except NotFoundError as exc:
        return Missing(str(exc))
    except TenantOperatorError as exc:
        return Failure(exc)
