"""
Inventory error taxonomy.

Every service raises one of these; routes translate them to JSON with the
carried status code. Messages are written for the operator: each one says
what was wrong and with which values, so the caller can act on it without
reading logs.

    InventoryError (base)
    +-- ValidationError        400  malformed or missing input, nothing mutated
    +-- NotFoundError          404  unknown or cross-tenant id
    +-- ConflictError          409  transition attempted from the wrong state
    |   +-- StaleStateError    409  optimistic guard lost a race; re-fetch and retry
    +-- InsufficientStockError 409  carries a structured shortfall list
"""
from __future__ import annotations

from dataclasses import asdict, dataclass


class InventoryError(Exception):
    """Base for errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(InventoryError):
    """400-level input problem."""

    status_code = 400


class NotFoundError(InventoryError):
    status_code = 404


class ConflictError(InventoryError):
    """409-level state conflict (e.g. shipping a transfer that is not approved)."""

    status_code = 409


class StaleStateError(ConflictError):
    """A status/version guarded update matched no row: someone else got there first."""


@dataclass(frozen=True)
class Shortfall:
    product_id: int
    name: str
    requested: int
    available: int

    def to_dict(self) -> dict:
        return asdict(self)

    def describe(self) -> str:
        return f"{self.name}: Only {self.available} available, requested {self.requested}"


class InsufficientStockError(InventoryError):
    status_code = 409

    def __init__(self, message: str, shortfalls: list[Shortfall]):
        super().__init__(message)
        self.shortfalls = list(shortfalls)

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "shortfalls": [s.to_dict() for s in self.shortfalls],
        }
