# Overview: Typed errors raised by settlement and order services.

from __future__ import annotations


class SettlementError(Exception):
    """
    Base class for inventory settlement failures.

    Every settlement error aborts the enclosing transaction. `retryable`
    tells the caller whether resubmitting the same request can succeed
    without anything else changing first.
    """
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotTrackedError(SettlementError):
    """Sale attempted against an entity with no inventory configured."""

    def __init__(self, kind: str, entity_id: str, entity_name: str):
        super().__init__(
            f'{kind.capitalize()} "{entity_name}" has no stock configured',
            details={"kind": kind, "entity_id": entity_id, "entity_name": entity_name},
        )
        self.kind = kind
        self.entity_id = entity_id
        self.entity_name = entity_name


class InsufficientStockError(SettlementError):
    """Sale would drive a size below zero. Never clamped or partially filled."""

    def __init__(
        self,
        *,
        kind: str,
        entity_id: str,
        entity_name: str,
        size: str,
        available: int,
        requested: int,
    ):
        super().__init__(
            f'Not enough stock for {kind} "{entity_name}" size {size}: '
            f"available {available}, requested {requested}",
            details={
                "kind": kind,
                "entity_id": entity_id,
                "entity_name": entity_name,
                "size": size,
                "available": available,
                "requested": requested,
            },
        )
        self.kind = kind
        self.entity_id = entity_id
        self.entity_name = entity_name
        self.size = size
        self.available = available
        self.requested = requested


class EntityNotFoundError(SettlementError):
    """Referenced product/box id does not exist (stale client data)."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(
            f"{kind.capitalize()} {entity_id} not found",
            details={"kind": kind, "entity_id": entity_id},
        )
        self.kind = kind
        self.entity_id = entity_id


class LockTimeoutError(SettlementError):
    """Row lock could not be acquired in time. Safe to resubmit."""
    retryable = True


class MalformedLineItemsWarning(UserWarning):
    """Cart data on an order could not be parsed; the bad part was ignored."""


class OrderError(Exception):
    """Raised for order lookup and status transition errors."""

    def __init__(self, message: str, details: dict | None = None, *, not_found: bool = False):
        super().__init__(message)
        self.details = details or {}
        self.not_found = not_found
