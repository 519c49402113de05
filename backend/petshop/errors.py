# Overview: Typed domain errors shared by services and routes.

"""
Domain error taxonomy.

Services raise these; routes render them with error_response(). Every error
has a stable `kind` string (machine readable), a message (human readable)
and optional structured `details`.

    PetShopError
    +-- NotFoundError              404
    +-- ValidationError            400  (also a ValueError)
    +-- ConflictError              409  (duplicate barcode, referenced rows)
    +-- InsufficientStockError     409
    +-- InvalidStateError          409
        +-- AlreadyCancelledError
        +-- CreditLimitExceededError

Any of these raised inside a unit of work aborts it; run_with_retry rolls the
session back before the error reaches the caller.
"""

from __future__ import annotations

from flask import jsonify


class PetShopError(Exception):
    """Base class for errors a caller can act on."""
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class NotFoundError(PetShopError):
    """Referenced product/purchase/sale/customer (or other row) does not exist."""
    kind = "not_found"
    status_code = 404


class ValidationError(PetShopError, ValueError):
    """400-level input problem."""
    kind = "validation_error"
    status_code = 400


class ConflictError(PetShopError, ValueError):
    """409-level business rule conflict (e.g., duplicate barcode)."""
    kind = "conflict"
    status_code = 409


class InvalidStateError(PetShopError):
    """Operation attempted from a state that forbids it."""
    kind = "invalid_state"
    status_code = 409


class AlreadyCancelledError(InvalidStateError):
    kind = "already_cancelled"


class CreditLimitExceededError(InvalidStateError):
    kind = "credit_limit_exceeded"


class InsufficientStockError(PetShopError):
    """Requested quantity exceeds what is on hand."""
    kind = "insufficient_stock"
    status_code = 409

    def __init__(self, *, product_id: int, product_name: str, available, requested):
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": float(available),
                "requested": float(requested),
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


def error_response(exc: PetShopError):
    return jsonify(exc.to_dict()), exc.status_code
