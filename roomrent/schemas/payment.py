from pydantic import BaseModel, Field, ConfigDict, AliasChoices, model_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum


class PaymentStatus(str, Enum):
    """Payment status as owned by the backend. Only pending can move on."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # Set by the backend after a paid payment is returned; never counted as revenue
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING

    @property
    def rank(self) -> int:
        return 1 if self.is_terminal else 0

    def supersedes(self, other: "PaymentStatus") -> bool:
        """True when a record in this status may replace one in `other`."""
        return self.rank >= other.rank


class PaymentMethod(str, Enum):
    ONLINE = "online"
    CASH = "cash"

    @classmethod
    def _missing_(cls, value):
        # Older records were stored with the gateway name
        if isinstance(value, str) and value.lower() == "razorpay":
            return cls.ONLINE
        return None


class OrderDescriptor(BaseModel):
    """Gateway order created by the backend for an online payment."""
    order_id: str = Field(..., min_length=1, description="Razorpay order ID")
    key: str = Field("", description="Razorpay key ID for the checkout widget")
    amount: int = Field(..., gt=0, description="Amount in paise (500 rupees = 50000 paise)")
    currency: str = Field("INR", description="Order currency")


class PaymentIntent(BaseModel):
    """
    One rent payment attempt, as returned by the backend.

    Accepts the backend's camelCase payloads; `roomId` and `confirmedBy` may
    arrive either as plain strings or as populated objects.
    """
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(..., validation_alias=AliasChoices("payment_id", "paymentId", "_id", "id"))
    transaction_id: str = Field("", validation_alias=AliasChoices("transaction_id", "transactionId"))
    room_id: Optional[str] = Field(None, validation_alias=AliasChoices("room_id", "roomId"))
    room_number: Optional[str] = Field(None, validation_alias=AliasChoices("room_number", "roomNumber"))
    amount: int = Field(..., description="Amount in whole rupees")
    billing_month: str = Field("", validation_alias=AliasChoices("billing_month", "month"))
    month_display: Optional[str] = Field(None, validation_alias=AliasChoices("month_display", "monthDisplay"))
    method: PaymentMethod = Field(PaymentMethod.ONLINE, validation_alias=AliasChoices("method", "paymentMethod"))
    status: PaymentStatus = PaymentStatus.PENDING
    notes: Optional[str] = None
    order_descriptor: Optional[OrderDescriptor] = None
    paid_on: Optional[datetime] = Field(None, validation_alias=AliasChoices("paid_on", "paidOn"))
    receipt_number: Optional[str] = Field(None, validation_alias=AliasChoices("receipt_number", "receiptNumber"))
    confirmed_by: Optional[str] = Field(None, validation_alias=AliasChoices("confirmed_by", "confirmedBy"))
    created_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("created_at", "createdAt"))
    tenant_name: Optional[str] = Field(None, validation_alias=AliasChoices("tenant_name", "tenantName"))
    tenant_email: Optional[str] = Field(None, validation_alias=AliasChoices("tenant_email", "tenantEmail"))
    razorpay_payment_id: Optional[str] = Field(None, validation_alias=AliasChoices("razorpay_payment_id", "razorpayPaymentId"))

    @model_validator(mode="before")
    @classmethod
    def _normalize_backend_payload(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)

        room = data.get("roomId")
        if isinstance(room, dict):
            data["roomId"] = room.get("_id") or room.get("id")
            if room.get("roomNumber") and not data.get("roomNumber"):
                data["roomNumber"] = room["roomNumber"]

        confirmed_by = data.get("confirmedBy")
        if isinstance(confirmed_by, dict):
            data["confirmedBy"] = confirmed_by.get("name")

        if data.get("order_descriptor") is None:
            order = data.get("order") if isinstance(data.get("order"), dict) else {}
            order_id = data.get("orderId") or order.get("id") or data.get("razorpayOrderId")
            if order_id:
                amount = order.get("amount")
                if amount is None and data.get("amount") is not None:
                    try:
                        amount = round(float(data["amount"]) * 100)
                    except (TypeError, ValueError):
                        amount = None
                data["order_descriptor"] = {
                    "order_id": order_id,
                    "key": data.get("razorpayKey") or data.get("key") or "",
                    "amount": amount,
                    "currency": order.get("currency") or data.get("currency") or "INR",
                }
        return data


class CheckoutProof(BaseModel):
    """Signed tuple handed back by the checkout widget after a charge."""
    razorpay_order_id: str = Field(..., min_length=1, description="Razorpay order ID")
    razorpay_payment_id: str = Field(..., min_length=1, description="Razorpay payment ID")
    razorpay_signature: str = Field(..., min_length=1, description="Razorpay signature for verification")


class BuyerInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)


class PaymentForm(BaseModel):
    """
    Tenant's draft payment. Deliberately loose so that validation can report
    every problem at once instead of stopping at the first.
    """
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[int] = None
    month: str = ""
    method: Optional[PaymentMethod] = Field(PaymentMethod.ONLINE, validation_alias=AliasChoices("method", "paymentMethod"))
    notes: str = ""
    agree_terms: bool = Field(False, validation_alias=AliasChoices("agree_terms", "agreeTerms"))


class CancelRequest(BaseModel):
    confirm: bool = Field(False, description="Tenant confirmed the cancellation")


class CashPaymentCreate(BaseModel):
    """Admin-created cash payment record."""
    room_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    month: str = Field(..., min_length=7, max_length=7, description="Billing month (YYYY-MM)")
    notes: str = ""


class CashConfirmRequest(BaseModel):
    payment_id: str = Field(..., min_length=1)
    notes: str = ""


class AdminCancelRequest(BaseModel):
    payment_id: str = Field(..., min_length=1)


class PaymentPage(BaseModel):
    payments: List[PaymentIntent] = []
    page: int = 1
    pages: int = 1
    total: int = 0


class PaymentStats(BaseModel):
    total_paid: int = 0
    pending_amount: int = 0
    pending_cash: int = 0
    online_count: int = 0
    cash_count: int = 0
    pending_count: int = 0
    total_count: int = 0


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentIntent]
    stats: PaymentStats
    page: int = 1
    pages: int = 1
