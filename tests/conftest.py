import asyncio
import json
from collections import defaultdict, deque
from datetime import date

import httpx
import pytest

from roomrent.schemas.payment import BuyerInfo
from roomrent.schemas.room import Room
from roomrent.services.backend_client import BackendClient
from roomrent.services.checkout import CheckoutBridge, CheckoutScriptLoader
from roomrent.services.payment_flow import PaymentFlow

BACKEND_URL = "http://backend.test/api"
RAZORPAY_KEY = "rzp_test_key"


class FakeBackend:
    """
    Stand-in for the RoomRent REST API, served through httpx.MockTransport.

    Records every call; individual endpoints can be told to fail with an
    HTTP status or a connection error, and status reads can be scripted.
    """

    def __init__(self):
        self.rooms = {
            "room-1": {"_id": "room-1", "roomNumber": "101", "monthlyRent": 5000, "isAvailable": False},
            "room-2": {"_id": "room-2", "roomNumber": "102", "monthlyRent": 7000, "isAvailable": True},
        }
        self.my_room_id = "room-1"
        self.payments = {}
        self.calls = []
        self.failures = {}
        self.status_script = defaultdict(deque)
        self.gates = {}
        self.canned = {}
        self._sequence = 1000

    def count(self, method, path):
        return sum(1 for call in self.calls if call == (method, path))

    def fail(self, method, path, with_status="network"):
        self.failures[(method, path)] = with_status

    def recover(self, method, path):
        self.failures.pop((method, path), None)
        self.canned.pop((method, path), None)

    def hold(self, method, path):
        """Keep requests to an endpoint waiting until the returned event is set."""
        gate = asyncio.Event()
        self.gates[(method, path)] = gate
        return gate

    def respond(self, method, path, status_code, body):
        """Answer an endpoint with a fixed response, which may not be JSON at all."""
        self.canned[(method, path)] = (status_code, body)

    def script_status(self, payment_id, **changes):
        """Queue the next status read for a payment (fields override the stored record)."""
        self.status_script[payment_id].append(changes)

    def client(self, token="tenant-token"):
        return BackendClient(base_url=BACKEND_URL, token=token, transport=httpx.MockTransport(self.handler))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/api"):]
        key = (request.method, path)
        self.calls.append(key)

        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()

        failure = self.failures.get(key)
        if failure == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if failure is not None:
            return httpx.Response(failure, json={"message": "Backend unavailable" if failure >= 500 else "Rejected"})

        body = json.loads(request.content) if request.content else {}
        canned = self.canned.get(key)
        if canned is not None:
            status_code, content = canned
            if isinstance(content, str):
                return httpx.Response(status_code, text=content)
            return httpx.Response(status_code, json=content)

        if path == "/rooms":
            return httpx.Response(200, json=list(self.rooms.values()))
        if path == "/rooms/my-room":
            return httpx.Response(200, json=self.rooms[self.my_room_id])
        if path.startswith("/rooms/"):
            room = self.rooms.get(path.split("/")[-1])
            if room is None:
                return httpx.Response(404, json={"message": "Room not found"})
            return httpx.Response(200, json=room)

        if path == "/payments/create":
            return self._create(body)
        if path == "/payments/verify":
            payment = self.payments[body["paymentId"]]
            payment.update(status="paid", receiptNumber="R-2001", razorpayPaymentId=body["razorpay_payment_id"])
            return httpx.Response(200, json={"success": True, "payment": payment})
        if path == "/payments/status":
            payment_id = request.url.params["paymentId"]
            payment = dict(self.payments[payment_id])
            if self.status_script[payment_id]:
                changes = self.status_script[payment_id].popleft()
                payment.update(changes)
                self.payments[payment_id].update(changes)
            return httpx.Response(200, json={"success": True, "payment": payment})
        if path == "/payments/cancel":
            self.payments[body["paymentId"]]["status"] = "cancelled"
            return httpx.Response(200, json={"success": True})
        if path == "/payments/confirm-cash":
            self.payments[body["paymentId"]].update(
                status="paid", receiptNumber="R-1001", confirmedBy={"_id": "admin-1", "name": "Asha"}
            )
            return httpx.Response(200, json={"success": True, "payment": {"receiptNumber": "R-1001"}})
        if path == "/payments/history":
            payments = list(self.payments.values())
            return httpx.Response(200, json={
                "success": True,
                "payments": payments,
                "pagination": {"page": int(request.url.params.get("page", 1)), "pages": 1, "total": len(payments)},
            })
        if path == "/payments":
            return httpx.Response(200, json=list(self.payments.values()))
        if path.startswith("/payments/receipt/"):
            payment_id = path.split("/")[-1]
            return httpx.Response(200, json={"success": True, "receipt": {"paymentId": payment_id, "receiptNumber": "R-1001"}})

        return httpx.Response(404, json={"message": f"No route for {path}"})

    def _create(self, body):
        self._sequence += 1
        payment_id = f"pay_{self._sequence}"
        room = self.rooms[body["roomId"]]
        payment = {
            "_id": payment_id,
            "transactionId": f"TXN{self._sequence}",
            "roomId": {"_id": room["_id"], "roomNumber": room["roomNumber"]},
            "amount": body["amount"],
            "month": body["month"],
            "paymentMethod": body["paymentMethod"],
            "status": "pending",
            "notes": body.get("notes"),
            "createdAt": "2025-03-02T10:00:00Z",
        }
        self.payments[payment_id] = payment
        response = {
            "success": True,
            "paymentId": payment_id,
            "transactionId": payment["transactionId"],
            "amount": payment["amount"],
            "month": payment["month"],
            "status": "pending",
            "paymentMethod": body["paymentMethod"],
        }
        if body["paymentMethod"] == "online":
            response["orderId"] = f"order_{self._sequence}"
            response["razorpayKey"] = RAZORPAY_KEY
            response["order"] = {"id": response["orderId"], "amount": body["amount"] * 100, "currency": "INR"}
        return httpx.Response(201, json=response)


class FakeScript:
    """Counts how often the checkout script is injected."""

    def __init__(self, fail=False, delay=0.0):
        self.fail = fail
        self.delay = delay
        self.injections = 0

    async def __call__(self):
        self.injections += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise httpx.ConnectError("script blocked")
        return "window.Razorpay = function () {};"


async def wait_for(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def script():
    return FakeScript()


@pytest.fixture
def bridge(script):
    return CheckoutBridge(CheckoutScriptLoader(inject=script), fallback_key="")


@pytest.fixture
def room():
    return Room(room_id="room-1", room_number="101", monthly_rent=5000, is_available=False)


@pytest.fixture
def buyer():
    return BuyerInfo(name="Ravi Kumar", email="ravi@example.com", phone="9876543210")


@pytest.fixture
async def flow(backend, bridge, room, buyer):
    flow = PaymentFlow(room, buyer, backend.client(), bridge, poll_interval=0.01, today=date(2025, 3, 2))
    yield flow
    await flow.close()
