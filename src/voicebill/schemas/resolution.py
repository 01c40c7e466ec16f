"""
Outcome of a "hard match, else ranked alternatives" lookup.

Every lookup in the core returns exactly one of:
- Resolved(value): a single confident answer
- Ambiguous(candidates): several plausible answers; a human must pick
- NotFound(suggestions): nothing matched; suggestions may still help

Callers branch with isinstance() and must handle all three.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar, Union

if TYPE_CHECKING:
    from voicebill.matching.clients import ClientSuggestion

T = TypeVar("T")


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """A single confident match."""

    value: T


@dataclass(frozen=True)
class Ambiguous:
    """Several plausible candidates, ranked best first."""

    candidates: list[ClientSuggestion] = field(default_factory=list)
    reason: str = ""


@dataclass(frozen=True)
class NotFound:
    """No match. suggestions holds ranked alternatives, possibly empty."""

    suggestions: list[ClientSuggestion] = field(default_factory=list)
    reason: str = ""


Resolution = Union[Resolved[T], Ambiguous, NotFound]


def unhandled_resolution(resolution: object) -> AssertionError:
    """Error for a resolution variant a caller forgot to handle."""
    return AssertionError(f"Unhandled resolution variant: {type(resolution).__name__}")
