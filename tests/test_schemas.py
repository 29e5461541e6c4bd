import pytest
from pydantic import ValidationError

from roomrent.schemas.payment import PaymentIntent, PaymentMethod, PaymentStatus, PaymentForm
from roomrent.schemas.room import Room


def test_online_intent_from_create_response():
    intent = PaymentIntent.model_validate({
        "paymentId": "pay_1",
        "transactionId": "TXN1",
        "amount": 5000,
        "month": "2025-03",
        "paymentMethod": "online",
        "status": "pending",
        "orderId": "order_1",
        "razorpayKey": "rzp_test_key",
    })
    assert intent.payment_id == "pay_1"
    assert intent.billing_month == "2025-03"
    assert intent.method is PaymentMethod.ONLINE
    assert intent.order_descriptor.order_id == "order_1"
    assert intent.order_descriptor.key == "rzp_test_key"
    # Derived from the rupee amount when the order carries none
    assert intent.order_descriptor.amount == 500000
    assert intent.order_descriptor.currency == "INR"


def test_order_descriptor_from_nested_order():
    intent = PaymentIntent.model_validate({
        "_id": "pay_2",
        "amount": 5000,
        "order": {"id": "order_2", "amount": 500000, "currency": "INR"},
    })
    assert intent.order_descriptor.order_id == "order_2"
    assert intent.order_descriptor.amount == 500000


def test_cash_intent_has_no_order():
    intent = PaymentIntent.model_validate({"_id": "pay_3", "amount": 5000, "paymentMethod": "cash"})
    assert intent.method is PaymentMethod.CASH
    assert intent.order_descriptor is None


def test_populated_references_are_flattened():
    intent = PaymentIntent.model_validate({
        "_id": "pay_4",
        "amount": 5000,
        "status": "paid",
        "roomId": {"_id": "room-1", "roomNumber": "101"},
        "confirmedBy": {"_id": "admin-1", "name": "Asha"},
        "receiptNumber": "R-1001",
        "paidOn": "2025-03-05T09:30:00Z",
    })
    assert intent.room_id == "room-1"
    assert intent.room_number == "101"
    assert intent.confirmed_by == "Asha"
    assert intent.paid_on.day == 5


def test_legacy_gateway_method_name():
    assert PaymentMethod("razorpay") is PaymentMethod.ONLINE
    with pytest.raises(ValueError):
        PaymentMethod("cheque")


def test_refunded_payment_is_terminal():
    intent = PaymentIntent.model_validate({"_id": "pay_5", "amount": 5000, "status": "refunded"})

    assert intent.status is PaymentStatus.REFUNDED
    assert intent.status.is_terminal
    assert not PaymentStatus.PENDING.supersedes(PaymentStatus.REFUNDED)


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        PaymentIntent.model_validate({"_id": "pay_6", "amount": 5000, "status": "disputed"})


def test_unusable_order_amount_is_a_validation_error():
    with pytest.raises(ValidationError):
        PaymentIntent.model_validate({"_id": "pay_7", "amount": {"value": 5000}, "orderId": "order_7"})


def test_status_ordering():
    assert PaymentStatus.PAID.supersedes(PaymentStatus.PENDING)
    assert PaymentStatus.PENDING.supersedes(PaymentStatus.PENDING)
    assert not PaymentStatus.PENDING.supersedes(PaymentStatus.PAID)
    assert not PaymentStatus.PENDING.is_terminal
    assert all(
        s.is_terminal for s in (PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED)
    )


def test_form_accepts_camel_case():
    form = PaymentForm.model_validate({"amount": 5000, "month": "2025-03", "paymentMethod": "cash", "agreeTerms": True})
    assert form.method is PaymentMethod.CASH
    assert form.agree_terms


def test_room_from_backend():
    room = Room.model_validate({"_id": "room-1", "roomNumber": "101", "monthlyRent": 5000, "isAvailable": False})
    assert room.room_id == "room-1"
    assert room.monthly_rent == 5000
    assert not room.is_available
