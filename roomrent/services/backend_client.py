"""
Async client for the RoomRent backend REST API.

The backend owns every room and payment record; this client only proxies
requests and parses the responses into schemas. Failures are raised as
NetworkError (or VerificationError for a rejected checkout proof) so the
payment flow can decide how loudly to report them. A 2xx response whose
body cannot be read is a failure too.
"""
import logging
from typing import Optional, List, Dict, Any, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from roomrent.core import config
from roomrent.core.errors import NetworkError, VerificationError
from roomrent.schemas.payment import PaymentIntent, CheckoutProof, PaymentForm, PaymentPage
from roomrent.schemas.room import Room

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

UNREADABLE_RESPONSE = "Unexpected response from the server. Please try again."


class BackendClient:
    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        token: Optional[str] = None,
        timeout: float = config.BACKEND_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Backend request {method} {path} failed: {str(e)}")
            raise NetworkError("Unable to reach the server. Please try again.") from e

        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                logger.error(f"Backend request {method} {path} returned a body that is not JSON")
                raise NetworkError(UNREADABLE_RESPONSE) from e

        message = _error_message(response)
        logger.warning(f"Backend request {method} {path} returned {response.status_code}: {message}")
        raise NetworkError(message, status_code=response.status_code)

    # Rooms

    async def get_room(self, room_id: str) -> Room:
        data = await self._request("GET", f"/rooms/{room_id}")
        return _parse(Room, _unwrap(data, "room"), f"/rooms/{room_id}")

    async def get_my_room(self) -> Room:
        data = await self._request("GET", "/rooms/my-room")
        return _parse(Room, _unwrap(data, "room"), "/rooms/my-room")

    async def list_rooms(self) -> List[Room]:
        data = await self._request("GET", "/rooms")
        return _parse_list(Room, _items(data, "rooms"), "/rooms")

    # Payments

    async def create_payment(self, room_id: str, form: PaymentForm) -> PaymentIntent:
        payload = {
            "roomId": room_id,
            "amount": form.amount,
            "month": form.month,
            "paymentMethod": form.method.value,
            "notes": form.notes,
        }
        data = await self._request("POST", "/payments/create", json=payload)
        intent = _parse(PaymentIntent, _with_room(room_id, _unwrap(data, "payment")), "/payments/create")
        logger.info(f"Payment {intent.payment_id} created for room {room_id} ({form.method.value}, {form.month})")
        return intent

    async def verify_payment(self, proof: CheckoutProof, payment_id: str) -> PaymentIntent:
        payload = proof.model_dump()
        payload["paymentId"] = payment_id
        try:
            data = await self._request("POST", "/payments/verify", json=payload)
        except NetworkError as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                raise VerificationError(e.message or "Payment verification failed") from e
            raise
        return _parse(PaymentIntent, _unwrap(data, "payment"), "/payments/verify")

    async def get_payment_status(self, payment_id: str) -> PaymentIntent:
        data = await self._request("GET", "/payments/status", params={"paymentId": payment_id})
        return _parse(PaymentIntent, _unwrap(data, "payment"), "/payments/status")

    async def cancel_payment(self, payment_id: str) -> bool:
        data = await self._request("POST", "/payments/cancel", json={"paymentId": payment_id})
        return bool(data.get("success", True)) if isinstance(data, dict) else True

    async def payment_history(self, page: Optional[int] = None, limit: Optional[int] = None) -> PaymentPage:
        params = {}
        if page is not None:
            params["page"] = page
        if limit is not None:
            params["limit"] = limit
        data = await self._request("GET", "/payments/history", params=params)
        pagination = (data.get("pagination") if isinstance(data, dict) else None) or {}
        payments = _parse_list(PaymentIntent, _items(data, "payments"), "/payments/history")
        return PaymentPage(
            payments=payments,
            page=pagination.get("page", page or 1),
            pages=pagination.get("pages", 1),
            total=pagination.get("total", len(payments)),
        )

    async def list_payments(self) -> List[PaymentIntent]:
        data = await self._request("GET", "/payments")
        return _parse_list(PaymentIntent, _items(data, "payments"), "/payments")

    async def get_receipt(self, payment_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/payments/receipt/{payment_id}")
        receipt = _unwrap(data, "receipt")
        if not isinstance(receipt, dict):
            raise NetworkError(UNREADABLE_RESPONSE)
        return receipt

    # Admin

    async def create_cash_payment(self, room_id: str, amount: int, month: str, notes: str = "") -> PaymentIntent:
        payload = {
            "roomId": room_id,
            "amount": amount,
            "month": month,
            "paymentMethod": "cash",
            "notes": notes,
        }
        data = await self._request("POST", "/payments/create", json=payload)
        return _parse(PaymentIntent, _with_room(room_id, _unwrap(data, "payment")), "/payments/create")

    async def confirm_cash_payment(self, payment_id: str, notes: str = "") -> PaymentIntent:
        # The confirmation response only carries the changed fields
        await self._request("POST", "/payments/confirm-cash", json={"paymentId": payment_id, "notes": notes})
        logger.info(f"Cash payment {payment_id} confirmed")
        return await self.get_payment_status(payment_id)


def _unwrap(data: Any, key: str) -> Any:
    if isinstance(data, dict):
        return data.get(key, data)
    return data


def _items(data: Any, key: str) -> list:
    items = data.get(key) if isinstance(data, dict) else data
    return items if isinstance(items, list) else []


def _with_room(room_id: str, data: Any) -> Any:
    if isinstance(data, dict):
        return {"roomId": room_id, **data}
    return data


def _parse(model: Type[ModelT], data: Any, path: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Unreadable {model.__name__} from {path}: {str(e)}")
        raise NetworkError(UNREADABLE_RESPONSE) from e


def _parse_list(model: Type[ModelT], items: list, path: str) -> List[ModelT]:
    """Parse a listing, leaving out (and logging) records that cannot be read."""
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping unreadable {model.__name__} from {path}: {e.error_count()} errors")
    return parsed


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail") or body.get("error")
        if isinstance(message, str) and message:
            return message
    return f"Request failed with status {response.status_code}"
