"""
Search, statistics and CSV export over payment and room listings.

Revenue figures only count payments in `paid` status, so a payment that is
still pending (or was cancelled) never inflates a total.
"""
import csv
import io
from collections import defaultdict
from datetime import date, datetime
from typing import List, Iterable, Optional, Dict, Any

from roomrent.schemas.payment import PaymentIntent, PaymentStatus, PaymentMethod, PaymentStats
from roomrent.schemas.room import Room
from roomrent.utils.validation import month_display

HISTORY_CSV_HEADERS = [
    "Date",
    "Transaction ID",
    "Room",
    "Month",
    "Amount",
    "Payment Method",
    "Status",
    "Paid On",
    "Receipt Number",
    "Payment Gateway",
]

ADMIN_CSV_HEADERS = [
    "Date",
    "Transaction ID",
    "Room",
    "Tenant",
    "Month",
    "Amount",
    "Method",
    "Status",
    "Paid On",
    "Receipt Number",
]


def _display_month(payment: PaymentIntent) -> str:
    return payment.month_display or month_display(payment.billing_month)


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return f"{value.day}/{value.month}/{value.year}"


def filter_payments(
    payments: Iterable[PaymentIntent],
    search: str = "",
    status: str = "all",
    method: str = "all",
) -> List[PaymentIntent]:
    """Case-insensitive search plus exact status/method filters ('all' disables a filter)."""
    needle = (search or "").strip().lower()
    result = []
    for payment in payments:
        if status != "all" and payment.status.value != status:
            continue
        if method != "all" and payment.method.value != method:
            continue
        if needle:
            haystack = [
                _display_month(payment),
                payment.billing_month,
                payment.transaction_id,
                payment.room_number or "",
                payment.receipt_number or "",
                payment.tenant_name or "",
            ]
            if not any(needle in field.lower() for field in haystack):
                continue
        result.append(payment)
    return result


def filter_rooms(
    rooms: Iterable[Room],
    search: str = "",
    available_only: bool = False,
    min_rent: Optional[int] = None,
    max_rent: Optional[int] = None,
) -> List[Room]:
    needle = (search or "").strip().lower()
    result = []
    for room in rooms:
        if available_only and not room.is_available:
            continue
        if min_rent is not None and room.monthly_rent < min_rent:
            continue
        if max_rent is not None and room.monthly_rent > max_rent:
            continue
        if needle and not any(
            needle in (field or "").lower() for field in (room.room_number, room.description, room.building)
        ):
            continue
        result.append(room)
    return result


def payment_stats(payments: Iterable[PaymentIntent]) -> PaymentStats:
    stats = PaymentStats()
    for payment in payments:
        stats.total_count += 1
        if payment.method is PaymentMethod.ONLINE:
            stats.online_count += 1
        else:
            stats.cash_count += 1
        if payment.status is PaymentStatus.PAID:
            stats.total_paid += payment.amount
        elif payment.status is PaymentStatus.PENDING:
            stats.pending_count += 1
            stats.pending_amount += payment.amount
            if payment.method is PaymentMethod.CASH:
                stats.pending_cash += 1
    return stats


def monthly_revenue(payments: Iterable[PaymentIntent], months: int = 6) -> List[Dict[str, Any]]:
    """Paid revenue per billing month, oldest first, limited to the latest `months`."""
    totals: Dict[str, int] = defaultdict(int)
    for payment in payments:
        if payment.status is PaymentStatus.PAID and payment.billing_month:
            totals[payment.billing_month] += payment.amount
    rows = [{"month": month, "revenue": revenue} for month, revenue in sorted(totals.items())]
    return rows[-months:] if months else rows


def method_breakdown(payments: Iterable[PaymentIntent]) -> List[Dict[str, Any]]:
    breakdown: Dict[PaymentMethod, Dict[str, int]] = {}
    for payment in payments:
        entry = breakdown.setdefault(payment.method, {"count": 0, "amount": 0})
        entry["count"] += 1
        if payment.status is PaymentStatus.PAID:
            entry["amount"] += payment.amount
    return [
        {
            "method": "Online" if method is PaymentMethod.ONLINE else "Cash",
            "count": entry["count"],
            "amount": entry["amount"],
        }
        for method, entry in breakdown.items()
    ]


def room_occupancy(rooms: Iterable[Room]) -> Dict[str, Any]:
    rooms = list(rooms)
    occupied = sum(1 for room in rooms if not room.is_available)
    total = len(rooms)
    return {
        "occupied": occupied,
        "available": total - occupied,
        "total": total,
        "occupancy_rate": round(occupied * 100 / total, 1) if total else 0.0,
    }


def top_rooms(payments: Iterable[PaymentIntent], rooms: Iterable[Room], limit: int = 5) -> List[Dict[str, Any]]:
    numbers = {room.room_id: room.room_number for room in rooms}
    revenue: Dict[str, int] = defaultdict(int)
    for payment in payments:
        if payment.status is PaymentStatus.PAID and payment.room_id:
            revenue[payment.room_id] += payment.amount
    ranked = sorted(revenue.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [
        {"room_number": numbers.get(room_id, "Unknown"), "revenue": amount}
        for room_id, amount in ranked
    ]


def payments_to_csv(payments: Iterable[PaymentIntent], admin: bool = False) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(ADMIN_CSV_HEADERS if admin else HISTORY_CSV_HEADERS)
    for payment in payments:
        online = payment.method is PaymentMethod.ONLINE
        row = [
            _format_date(payment.created_at),
            payment.transaction_id,
            payment.room_number or "N/A",
        ]
        if admin:
            row.append(payment.tenant_name or "")
        row += [
            _display_month(payment),
            payment.amount,
            "Online" if online else "Cash",
            payment.status.value.capitalize(),
            _format_date(payment.paid_on),
            payment.receipt_number or "N/A",
        ]
        if not admin:
            row.append("Razorpay" if online else "N/A")
        writer.writerow(row)
    return output.getvalue()


def export_filename(prefix: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{prefix}-{today.isoformat()}.csv"
