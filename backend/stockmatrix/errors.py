# Overview: Domain error taxonomy for the variant matrix and the stock ledger.

"""
Variant core errors.

Every error carries an ``error_code`` matching its class name; routes return it
verbatim as the ``error`` field so clients can branch without parsing messages.

- InvalidAttributeSet: empty/duplicate attributes or values (caller error, not retried)
- ValidationFailed:    per-cell field/uniqueness errors, carried as a mapping
- InsufficientStock:   reserve exceeds available stock (never clamped)
- InvalidQuantity:     non-positive quantity, release > reserved, stock driven below 0
- DuplicateSku:        persistence-level uniqueness violation (per item in bulk)
- BatchTooLarge:       batch-level rejection, nothing attempted
- VariantNotFound:     variant missing or outside the caller's tenant
- TemplateNotFound:    template missing or owned by another tenant
- TemplateReadOnly:    system templates cannot be changed or deleted by a tenant
"""
from __future__ import annotations


class VariantCoreError(Exception):
    """Base class for recoverable business errors."""

    error_code = "VariantCoreError"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error_code)
        self.message = message or self.error_code

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class InvalidAttributeSet(VariantCoreError):
    error_code = "InvalidAttributeSet"


class ValidationFailed(VariantCoreError):
    error_code = "ValidationFailed"

    def __init__(self, errors: dict[str, list[str]], message: str | None = None):
        super().__init__(message or f"{len(errors)} cell(s) failed validation")
        self.errors = errors

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class InsufficientStock(VariantCoreError):
    error_code = "InsufficientStock"

    def __init__(self, *, requested: int, available: int):
        super().__init__(
            f"Insufficient stock available: requested {requested}, available {available}"
        )
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({"requested": self.requested, "available": self.available})
        return payload


class InvalidQuantity(VariantCoreError):
    error_code = "InvalidQuantity"


class DuplicateSku(VariantCoreError):
    error_code = "DuplicateSku"

    def __init__(self, sku: str):
        super().__init__(f"duplicate SKU '{sku}' already exists")
        self.sku = sku


class BatchTooLarge(VariantCoreError):
    error_code = "BatchTooLarge"

    def __init__(self, *, size: int, limit: int):
        super().__init__(f"Batch of {size} items exceeds the maximum of {limit}")
        self.size = size
        self.limit = limit

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload.update({"size": self.size, "limit": self.limit})
        return payload


class VariantNotFound(VariantCoreError):
    error_code = "VariantNotFound"


class TemplateNotFound(VariantCoreError):
    error_code = "TemplateNotFound"


class TemplateReadOnly(VariantCoreError):
    error_code = "TemplateReadOnly"
