import asyncio

import pytest

from roomrent.core.errors import GatewayError
from roomrent.schemas.payment import OrderDescriptor, CheckoutProof
from roomrent.services.checkout import CheckoutBridge, CheckoutScriptLoader, CheckoutSession, CHECKOUT_SCRIPT_PATH

from .conftest import FakeScript

PROOF = CheckoutProof(razorpay_order_id="order_1", razorpay_payment_id="pay_rzp_1", razorpay_signature="sig")


async def _noop(*args):
    return None


async def test_concurrent_loads_share_one_injection():
    script = FakeScript(delay=0.01)
    loader = CheckoutScriptLoader(inject=script)

    results = await asyncio.gather(*(loader.get_or_load() for _ in range(10)))

    assert script.injections == 1
    assert len(set(results)) == 1
    assert loader.loaded

    await loader.get_or_load()
    assert script.injections == 1


async def test_failed_load_is_not_remembered():
    script = FakeScript(fail=True)
    loader = CheckoutScriptLoader(inject=script)

    with pytest.raises(GatewayError, match="Failed to load payment gateway"):
        await loader.get_or_load()
    assert not loader.loaded

    script.fail = False
    assert await loader.get_or_load()
    assert script.injections == 2


async def test_cancelled_caller_does_not_abort_shared_load():
    script = FakeScript(delay=0.02)
    loader = CheckoutScriptLoader(inject=script)

    impatient = asyncio.ensure_future(loader.get_or_load())
    patient = asyncio.ensure_future(loader.get_or_load())
    await asyncio.sleep(0)
    impatient.cancel()

    assert await patient
    assert script.injections == 1


async def test_launch_builds_widget_options(bridge, buyer):
    descriptor = OrderDescriptor(order_id="order_1", key="rzp_test_key", amount=500000)

    session = await bridge.launch(
        descriptor,
        buyer,
        description="Rent for Room 101 - March 2025",
        on_approved=_noop,
        on_dismissed=_noop,
        notes={"roomNumber": "101", "month": "2025-03"},
    )

    options = session.options
    assert options["key"] == "rzp_test_key"
    assert options["order_id"] == "order_1"
    assert options["amount"] == 500000
    assert options["currency"] == "INR"
    assert options["prefill"] == {"name": "Ravi Kumar", "email": "ravi@example.com", "contact": "9876543210"}
    assert options["modal"] == {"escape": False, "backdropclose": False}
    assert session.to_payload()["script_url"] == CHECKOUT_SCRIPT_PATH


async def test_launch_falls_back_to_configured_key(script, buyer):
    bridge = CheckoutBridge(CheckoutScriptLoader(inject=script), fallback_key="rzp_fallback")
    descriptor = OrderDescriptor(order_id="order_1", amount=500000)

    session = await bridge.launch(descriptor, buyer, "Rent", _noop, _noop)

    assert session.options["key"] == "rzp_fallback"


async def test_launch_without_key_fails(bridge, buyer):
    descriptor = OrderDescriptor(order_id="order_1", amount=500000)
    with pytest.raises(GatewayError, match="not configured"):
        await bridge.launch(descriptor, buyer, "Rent", _noop, _noop)


async def test_launch_without_order_fails(bridge, buyer):
    with pytest.raises(GatewayError, match="Invalid payment order"):
        await bridge.launch(None, buyer, "Rent", _noop, _noop)


async def test_launch_reports_script_failure(buyer):
    bridge = CheckoutBridge(CheckoutScriptLoader(inject=FakeScript(fail=True)), fallback_key="rzp_fallback")
    descriptor = OrderDescriptor(order_id="order_1", amount=500000)
    with pytest.raises(GatewayError):
        await bridge.launch(descriptor, buyer, "Rent", _noop, _noop)


async def test_session_settles_once():
    outcomes = []

    async def approved(proof):
        outcomes.append(("approved", proof.razorpay_payment_id))

    async def dismissed():
        outcomes.append(("dismissed",))

    session = CheckoutSession({"order_id": "order_1"}, approved, dismissed)

    assert await session.approve(PROOF)
    assert not await session.dismiss()
    assert not await session.approve(PROOF)
    assert outcomes == [("approved", "pay_rzp_1")]
