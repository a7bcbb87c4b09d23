"""Outcome of a best-effort upstream call.

Fetchers that must always return *something* hand back either ``Resolved``
(every upstream call succeeded) or ``Degraded`` (a fallback or partial value
was used, with the reason). Callers read ``.value`` in both cases and check
``.degraded`` when they care which one they got.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Resolved(Generic[T]):
    value: T
    degraded = False
    reason = None


@dataclass(frozen=True)
class Degraded(Generic[T]):
    value: T
    reason: str
    degraded = True


Outcome = Union[Resolved[T], Degraded[T]]
