"""
Result type and error taxonomy.

Expected failures (collisions, insufficient stock, already-claimed rewards)
are returned as values instead of raised, so tick drivers and handlers can
decide how to surface them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Result(Generic[T, E]):
    """Success value or error value of an operation."""

    value: Optional[T] = None
    error: Optional[E] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T, E]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: E) -> "Result[T, E]":
        return cls(error=error)

    def __bool__(self) -> bool:
        return self.success


class PlacementErrorCode(str, Enum):
    INVALID_POSITION = "INVALID_POSITION"
    BOUNDARY_CONFLICT = "BOUNDARY_CONFLICT"
    EXPANSION_CONFLICT = "EXPANSION_CONFLICT"


class ClaimErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    EXPIRED = "EXPIRED"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    BUFFER_FULL = "BUFFER_FULL"


class PlacementError(BaseModel):
    """Town placement rejected by the boundary check."""

    code: PlacementErrorCode = Field(description="Machine-readable reason")
    message: str = Field(description="Human-readable distance/overlap explanation")
    conflicting_town_id: Optional[str] = Field(
        default=None, description="Town whose boundary was violated"
    )


class ClaimError(BaseModel):
    """Reward claim rejected."""

    code: ClaimErrorCode = Field(description="Machine-readable reason")
    message: str = Field(description="Human-readable reason")


class StorageError(BaseModel):
    """Removal exceeded the available quantity."""

    item_id: str = Field(description="Item or resource that was short")
    requested: int = Field(description="Quantity requested")
    available: int = Field(description="Quantity held")


class ValidationError(BaseModel):
    """Input rejected at the boundary (e.g. malformed town name)."""

    field: str = Field(description="Offending field")
    message: str = Field(description="Human-readable reason")
