import asyncio

import pytest

from roomrent.core.errors import FlowNotFoundError
from roomrent.schemas.flow import FlowState
from roomrent.schemas.payment import CheckoutProof, PaymentForm, PaymentMethod
from roomrent.services.flow_registry import FlowRegistry

from .conftest import wait_for


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _form(method):
    return PaymentForm(amount=5000, month="2025-03", method=method, agree_terms=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def registry(clock):
    registry = FlowRegistry(poll_interval=0.01, idle_timeout=600, final_timeout=60, clock=clock)
    yield registry
    await registry.close_all()


async def test_flows_are_scoped_to_their_owner(registry, backend, bridge, room, buyer):
    flow = registry.create(room, buyer, backend.client(), bridge, owner="tenant-token")

    assert registry.get(flow.flow_id, owner="tenant-token") is flow
    with pytest.raises(FlowNotFoundError):
        registry.get(flow.flow_id, owner="someone-else")
    with pytest.raises(FlowNotFoundError):
        registry.get("missing")


async def test_discard_closes_the_flow(registry, backend, bridge, room, buyer):
    flow = registry.create(room, buyer, backend.client(), bridge, owner="tenant-token")
    await flow.submit(_form(PaymentMethod.CASH))
    assert flow.state is FlowState.AWAITING_CASH_CONFIRMATION and flow.polling

    await registry.discard(flow.flow_id)

    assert len(registry) == 0
    assert flow.closed
    assert not flow.polling
    assert await registry.discard(flow.flow_id) is None


async def test_abandoned_cash_flow_stops_polling(registry, clock, backend, bridge, room, buyer):
    flow = registry.create(room, buyer, backend.client(), bridge, owner="tenant-token")
    await flow.submit(_form(PaymentMethod.CASH))
    await wait_for(lambda: backend.count("GET", "/payments/status") >= 1)

    clock.now += 599
    assert await registry.sweep() == []
    assert flow.polling

    clock.now += 1
    assert await registry.sweep() == [flow.flow_id]

    assert flow.closed
    assert not flow.polling
    assert len(registry) == 0
    polls = backend.count("GET", "/payments/status")
    await asyncio.sleep(0.05)
    assert backend.count("GET", "/payments/status") == polls
    with pytest.raises(FlowNotFoundError):
        registry.get(flow.flow_id, owner="tenant-token")


async def test_access_keeps_a_flow_alive(registry, clock, backend, bridge, room, buyer):
    flow = registry.create(room, buyer, backend.client(), bridge, owner="tenant-token")

    clock.now += 500
    registry.get(flow.flow_id, owner="tenant-token")
    clock.now += 500

    assert await registry.sweep() == []
    assert registry.get(flow.flow_id, owner="tenant-token") is flow


async def test_expired_flow_is_gone_before_sweeping(registry, clock, backend, bridge, room, buyer):
    flow = registry.create(room, buyer, backend.client(), bridge, owner="tenant-token")

    clock.now += 600

    with pytest.raises(FlowNotFoundError, match="expired"):
        registry.get(flow.flow_id, owner="tenant-token")


async def test_confirmed_flow_is_released_sooner(registry, clock, backend, bridge, room, buyer):
    flow = registry.create(room, buyer, backend.client(), bridge, owner="tenant-token")
    await flow.submit(_form(PaymentMethod.ONLINE))
    proof = CheckoutProof(
        razorpay_order_id=flow.intent.order_descriptor.order_id,
        razorpay_payment_id="pay_rzp_1",
        razorpay_signature="signature",
    )
    await flow.approve_checkout(proof)
    assert flow.state is FlowState.CONFIRMED
    registry.get(flow.flow_id, owner="tenant-token")

    clock.now += 59
    assert await registry.sweep() == []
    clock.now += 1
    assert await registry.sweep() == [flow.flow_id]
    assert flow.closed
