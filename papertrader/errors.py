"""Error taxonomy shared by the ledger, execution engine and collaborators.

- ValidationError: expected rejection of an order (non-fatal)
- ExternalCallError: broker or policy failure (recoverable, nothing mutated)
- InternalConsistencyError: ledger and order book diverged (fatal)
"""

from __future__ import annotations


class PaperTraderError(Exception):
    """Base exception for the simulator."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(PaperTraderError):
    """An order was rejected before reaching the broker."""

    code = "ValidationError"

    def __init__(self, message: str, *, symbol: str | None = None):
        super().__init__(message)
        self.symbol = symbol


class InsufficientFunds(ValidationError):
    code = "InsufficientFunds"


class InsufficientAsset(ValidationError):
    code = "InsufficientAsset"


class InvalidOrder(ValidationError):
    code = "InvalidOrder"


class PriceUnavailable(ValidationError):
    code = "PriceUnavailable"


# ---------------------------------------------------------------------------
# External calls
# ---------------------------------------------------------------------------


class ExternalCallError(PaperTraderError):
    """A collaborator call (broker, decision policy) failed."""

    def __init__(self, message: str, is_transient: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.is_transient = is_transient
        self.status_code = status_code


class TransientError(ExternalCallError):
    """Transient error (a later attempt may succeed)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, is_transient=True, status_code=status_code)


class PermanentError(ExternalCallError):
    """Permanent error (e.g. bad credentials, malformed request)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, is_transient=False, status_code=status_code)


def classify_http_error(status_code: int, message: str) -> ExternalCallError:
    """Classify HTTP errors as transient or permanent.

    Args:
        status_code: HTTP status code
        message: Error message

    Returns:
        Appropriate ExternalCallError subclass
    """
    if status_code in {429, 502, 503, 504}:
        return TransientError(message, status_code)

    if status_code in {400, 401, 403, 404}:
        return PermanentError(message, status_code)

    if 500 <= status_code < 600:
        return TransientError(message, status_code)

    if 400 <= status_code < 500:
        return PermanentError(message, status_code)

    return TransientError(message, status_code)


# ---------------------------------------------------------------------------
# Internal consistency
# ---------------------------------------------------------------------------


class InternalConsistencyError(PaperTraderError):
    """Ledger and order book no longer agree. Must never be swallowed."""
