"""
Errors raised by the rent payment flow.

Every error carries a message that can be shown to the tenant as-is.
None of them is fatal: the flow always falls back to a well-defined state.
"""
from typing import List, Optional


class PaymentFlowError(Exception):
    """Base class for payment flow failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PaymentValidationError(PaymentFlowError):
    """Client-side form validation failed; no request was made."""

    def __init__(self, reasons: List[str]):
        super().__init__("; ".join(reasons) or "Invalid payment details")
        self.reasons = list(reasons)


class NetworkError(PaymentFlowError):
    """A backend request failed or returned a non-2xx response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class VerificationError(PaymentFlowError):
    """The backend rejected the checkout proof. The intent stays pending."""


class GatewayError(PaymentFlowError):
    """The checkout widget could not be loaded or opened."""


class FlowStateError(PaymentFlowError):
    """The operation is not allowed in the flow's current state."""


class FlowNotFoundError(PaymentFlowError):
    pass
