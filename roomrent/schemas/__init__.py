# package marker for roomrent.schemas

from roomrent.schemas.payment import (
    PaymentStatus,
    PaymentMethod,
    OrderDescriptor,
    PaymentIntent,
    CheckoutProof,
    BuyerInfo,
    PaymentForm,
)
from roomrent.schemas.room import Room
from roomrent.schemas.flow import FlowState, FlowSnapshot, Notice, CashInstructions

__all__ = [
    "PaymentStatus",
    "PaymentMethod",
    "OrderDescriptor",
    "PaymentIntent",
    "CheckoutProof",
    "BuyerInfo",
    "PaymentForm",
    "Room",
    "FlowState",
    "FlowSnapshot",
    "Notice",
    "CashInstructions",
]
