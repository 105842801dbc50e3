# portfolio_engine/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors of the accounting engine.
Callers decide how to surface them; the engine itself only recovers from
NotFound and FX errors while attaching quotes.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidCurrencyError
    │   └── InvalidTransactionError
    ├── NotFoundError
    │   ├── QuoteNotFoundError
    │   └── CurrencyNotFoundError
    ├── FXRateError
    │   ├── FXRateNotFoundError
    │   └── FXConversionError
    ├── CacheFailureError
    │   └── CacheLockError
    └── StoreError
        └── StoreUnavailableError
"""

from datetime import datetime


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidCurrencyError(ValidationError):
    """
    Raised when a currency code cannot be parsed.

    Attributes:
        code: The rejected code
        reason: "invalid_length" or "invalid_character"
    """

    def __init__(self, code: str, reason: str) -> None:
        self.code = code
        self.reason = reason
        super().__init__(
            f"Invalid currency code '{code}': {reason.replace('_', ' ')}",
            field="iso_code",
        )


class InvalidTransactionError(ValidationError):
    """
    Raised when a transaction is malformed or an immutable field is rewritten.

    Attributes:
        transaction_id: ID of the offending transaction (if persisted)
    """

    def __init__(
            self,
            message: str,
            transaction_id: int | None = None,
            field: str | None = None,
    ) -> None:
        self.transaction_id = transaction_id
        super().__init__(message, field=field)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Quote", "Currency")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class QuoteNotFoundError(NotFoundError):
    """
    Raised when no quote exists at or before the requested time.

    Attributes:
        asset_id: Asset that has no quote
        time: The requested point in time
    """

    def __init__(self, asset_id: int, time: datetime) -> None:
        self.asset_id = asset_id
        self.time = time
        super().__init__(
            f"No quote for asset {asset_id} at or before {time.isoformat()}",
            resource_type="Quote",
            resource_id=asset_id,
        )


class CurrencyNotFoundError(NotFoundError):
    """Raised when a currency id is unknown to the currency store."""

    def __init__(self, currency_id: int) -> None:
        self.currency_id = currency_id
        super().__init__(
            f"Currency {currency_id} not found",
            resource_type="Currency",
            resource_id=currency_id,
        )


# =============================================================================
# FX RATE ERRORS
# =============================================================================


class FXRateError(ServiceError):
    """
    Base exception for FX rate errors.

    Attributes:
        base_currency: Source currency code
        quote_currency: Target currency code
    """

    def __init__(
            self,
            message: str,
            base_currency: str | None = None,
            quote_currency: str | None = None,
    ) -> None:
        self.base_currency = base_currency
        self.quote_currency = quote_currency
        super().__init__(message)


class FXRateNotFoundError(FXRateError):
    """
    Raised when no FX quote exists at or before the requested time.

    Attributes:
        time: The requested point in time
    """

    def __init__(
            self,
            base_currency: str,
            quote_currency: str,
            time: datetime,
    ) -> None:
        self.time = time
        super().__init__(
            f"No FX rate {base_currency}/{quote_currency} at or before {time.isoformat()}",
            base_currency=base_currency,
            quote_currency=quote_currency,
        )


class FXConversionError(FXRateError):
    """
    Raised when no conversion path between two currencies exists.

    Attributes:
        reason: Why the conversion failed
    """

    def __init__(
            self,
            base_currency: str,
            quote_currency: str,
            reason: str,
    ) -> None:
        self.reason = reason
        super().__init__(
            f"Cannot convert {base_currency} to {quote_currency}: {reason}",
            base_currency=base_currency,
            quote_currency=quote_currency,
        )


# =============================================================================
# CACHE ERRORS
# =============================================================================


class CacheFailureError(ServiceError):
    """
    Raised when the valuation cache cannot serve a request.

    Never recovered from by quote attachment.
    """
    pass


class CacheLockError(CacheFailureError):
    """
    Raised when the cache population lock cannot be acquired in time.

    Attributes:
        timeout: Seconds waited before giving up
    """

    def __init__(self, timeout: float, asset_id: int | None = None) -> None:
        self.timeout = timeout
        self.asset_id = asset_id
        super().__init__(
            f"Could not acquire valuation cache lock within {timeout}s"
            + (f" (asset {asset_id})" if asset_id is not None else "")
        )


# =============================================================================
# STORE ERRORS
# =============================================================================


class StoreError(ServiceError):
    """Base exception for quote/currency store failures."""
    pass


class StoreUnavailableError(StoreError):
    """
    Raised when a backing store is temporarily unreachable.

    This error is retryable.

    Attributes:
        store: Name of the store
        reason: Error details
    """

    def __init__(self, store: str, reason: str) -> None:
        self.store = store
        self.reason = reason
        super().__init__(f"Store '{store}' unavailable: {reason}")


__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidCurrencyError",
    "InvalidTransactionError",
    "NotFoundError",
    "QuoteNotFoundError",
    "CurrencyNotFoundError",
    "FXRateError",
    "FXRateNotFoundError",
    "FXConversionError",
    "CacheFailureError",
    "CacheLockError",
    "StoreError",
    "StoreUnavailableError",
]
