import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomrent.core import config
from roomrent.core.errors import (
    PaymentFlowError,
    PaymentValidationError,
    NetworkError,
    VerificationError,
    GatewayError,
    FlowStateError,
    FlowNotFoundError,
)
from roomrent.routes.pay_rent import router as pay_rent_router
from roomrent.routes.payments import router as payments_router
from roomrent.routes.rooms import router as rooms_router
from roomrent.services.flow_registry import get_flow_registry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Stop every status poller still running
    await get_flow_registry().close_all()


app = FastAPI(title="RoomRent Portal", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _status_for(exc: PaymentFlowError) -> int:
    if isinstance(exc, PaymentValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, VerificationError):
        return status.HTTP_402_PAYMENT_REQUIRED
    if isinstance(exc, GatewayError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, FlowStateError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, FlowNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, NetworkError) and exc.status_code and 400 <= exc.status_code < 500:
        return exc.status_code
    return status.HTTP_502_BAD_GATEWAY


@app.exception_handler(PaymentFlowError)
async def payment_flow_error_handler(request: Request, exc: PaymentFlowError):
    content = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, PaymentValidationError):
        content["reasons"] = exc.reasons
    return JSONResponse(status_code=_status_for(exc), content=content)


app.include_router(pay_rent_router, prefix="/api/pay-rent", tags=["pay-rent"])
app.include_router(payments_router, prefix="/api/payments", tags=["payments"])
app.include_router(rooms_router, prefix="/api/rooms", tags=["rooms"])


@app.get("/")
def read_root():
    return {"status": "ok"}
