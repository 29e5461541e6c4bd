import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Response, Query, status

from roomrent.core.dependencies import (
    BackendFactory,
    get_backend_client,
    get_backend_factory,
    require_role,
)
from roomrent.core.errors import PaymentFlowError
from roomrent.schemas.payment import (
    PaymentIntent,
    PaymentHistoryResponse,
    CashPaymentCreate,
    CashConfirmRequest,
    AdminCancelRequest,
)
from roomrent.services.backend_client import BackendClient
from roomrent.utils.reports import (
    filter_payments,
    payment_stats,
    payments_to_csv,
    export_filename,
    monthly_revenue,
    method_breakdown,
    room_occupancy,
    top_rooms,
)
from roomrent.utils.validation import is_valid_month

router = APIRouter()
logger = logging.getLogger(__name__)

ADMIN_PAGE_SIZE = 20


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/history", response_model=PaymentHistoryResponse)
async def payment_history(
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    method: str = "all",
    backend: BackendClient = Depends(get_backend_client),
):
    """Tenant's payment history with search, filters and summary figures"""
    history = await backend.payment_history()
    return PaymentHistoryResponse(
        payments=filter_payments(history.payments, search, status_filter, method),
        stats=payment_stats(history.payments),
        page=history.page,
        pages=history.pages,
    )


@router.get("/history.csv")
async def export_payment_history(backend: BackendClient = Depends(get_backend_client)):
    history = await backend.payment_history()
    logger.info(f"Exporting {len(history.payments)} payments to CSV")
    return _csv_response(payments_to_csv(history.payments), export_filename("payment-history"))


@router.get("/{payment_id}/status", response_model=PaymentIntent)
async def payment_status(payment_id: str, backend: BackendClient = Depends(get_backend_client)):
    return await backend.get_payment_status(payment_id)


@router.get("/{payment_id}/receipt")
async def payment_receipt(payment_id: str, backend: BackendClient = Depends(get_backend_client)):
    return await backend.get_receipt(payment_id)


# Admin console


async def get_admin_backend(
    token: str = Depends(require_role(["admin"])),
    factory: BackendFactory = Depends(get_backend_factory),
):
    backend = factory(token)
    try:
        yield backend
    finally:
        await backend.aclose()


@router.get("/admin", response_model=PaymentHistoryResponse)
async def admin_payments(
    page: int = Query(1, ge=1),
    search: str = "",
    status_filter: str = Query("all", alias="status"),
    method: str = "all",
    backend: BackendClient = Depends(get_admin_backend),
):
    history = await backend.payment_history(page=page, limit=ADMIN_PAGE_SIZE)
    return PaymentHistoryResponse(
        payments=filter_payments(history.payments, search, status_filter, method),
        stats=payment_stats(history.payments),
        page=history.page,
        pages=history.pages,
    )


@router.get("/admin.csv")
async def export_admin_payments(
    page: Optional[int] = Query(None, ge=1),
    backend: BackendClient = Depends(get_admin_backend),
):
    history = await backend.payment_history(page=page, limit=ADMIN_PAGE_SIZE if page else None)
    return _csv_response(payments_to_csv(history.payments, admin=True), export_filename("payments"))


@router.post("/cash", response_model=PaymentIntent, status_code=status.HTTP_201_CREATED)
async def create_cash_payment(body: CashPaymentCreate, backend: BackendClient = Depends(get_admin_backend)):
    """Create a pending cash payment the tenant can then pay at the office"""
    if not is_valid_month(body.month):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Billing month must be in YYYY-MM format"
        )
    try:
        intent = await backend.create_cash_payment(body.room_id, body.amount, body.month, body.notes)
        logger.info(f"Cash payment {intent.payment_id} created for room {body.room_id}")
        return intent
    except (HTTPException, PaymentFlowError):
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating cash payment: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error creating cash payment"
        )


@router.post("/confirm-cash", response_model=PaymentIntent)
async def confirm_cash_payment(body: CashConfirmRequest, backend: BackendClient = Depends(get_admin_backend)):
    return await backend.confirm_cash_payment(body.payment_id, body.notes)


@router.post("/cancel")
async def cancel_payment(body: AdminCancelRequest, backend: BackendClient = Depends(get_admin_backend)):
    await backend.cancel_payment(body.payment_id)
    logger.info(f"Payment {body.payment_id} cancelled by admin")
    return {"success": True, "message": "Payment cancelled successfully!"}


@router.get("/reports")
async def reports(backend: BackendClient = Depends(get_admin_backend)):
    """Revenue, payment method and occupancy figures for the admin dashboard"""
    payments = await backend.list_payments()
    rooms = await backend.list_rooms()
    return {
        "monthly_revenue": monthly_revenue(payments),
        "payment_methods": method_breakdown(payments),
        "room_occupancy": room_occupancy(rooms),
        "top_rooms": top_rooms(payments, rooms),
        "stats": payment_stats(payments).model_dump(),
    }
