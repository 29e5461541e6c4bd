from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum

from roomrent.schemas.payment import PaymentForm, PaymentIntent, BuyerInfo
from roomrent.schemas.room import Room


class FlowState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    AWAITING_ONLINE_CHECKOUT = "awaiting_online_checkout"
    AWAITING_CASH_CONFIRMATION = "awaiting_cash_confirmation"
    VERIFYING = "verifying"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (FlowState.CONFIRMED, FlowState.CANCELLED)


class Notice(BaseModel):
    level: str = Field("info", description="success, info or error")
    message: str


class CashInstructions(BaseModel):
    transaction_id: str
    amount: int
    amount_display: str
    month: str
    month_display: str
    instructions: List[str]


class StartFlowRequest(BaseModel):
    buyer: BuyerInfo


class FlowSnapshot(BaseModel):
    flow_id: str
    state: FlowState
    revision: int
    room: Room
    form: PaymentForm
    intent: Optional[PaymentIntent] = None
    checkout: Optional[Dict[str, Any]] = None
    cash_instructions: Optional[CashInstructions] = None
    notices: List[Notice] = []
