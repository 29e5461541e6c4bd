import logging
from fastapi import APIRouter, Depends, HTTPException, Response, status

from roomrent.core.dependencies import (
    BackendFactory,
    get_backend_factory,
    get_bearer_token,
    get_checkout_bridge,
    get_registry,
)
from roomrent.core.errors import PaymentFlowError
from roomrent.schemas.flow import FlowSnapshot, StartFlowRequest
from roomrent.schemas.payment import PaymentForm, CheckoutProof, CancelRequest
from roomrent.services.checkout import CheckoutBridge
from roomrent.services.flow_registry import FlowRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/checkout.js")
async def checkout_script(bridge: CheckoutBridge = Depends(get_checkout_bridge)):
    """Razorpay checkout script, loaded once per process and served from memory"""
    script = await bridge.loader.get_or_load()
    return Response(content=script, media_type="application/javascript")


async def _start_flow(
    room_id,
    body: StartFlowRequest,
    token: str,
    factory: BackendFactory,
    registry: FlowRegistry,
    bridge: CheckoutBridge,
) -> FlowSnapshot:
    backend = factory(token)
    try:
        room = await (backend.get_room(room_id) if room_id else backend.get_my_room())
    except Exception:
        await backend.aclose()
        raise
    flow = registry.create(room, body.buyer, backend, bridge, owner=token)
    return flow.snapshot()


@router.post("/rooms/{room_id}", response_model=FlowSnapshot, status_code=status.HTTP_201_CREATED)
async def start_for_room(
    room_id: str,
    body: StartFlowRequest,
    token: str = Depends(get_bearer_token),
    factory: BackendFactory = Depends(get_backend_factory),
    registry: FlowRegistry = Depends(get_registry),
    bridge: CheckoutBridge = Depends(get_checkout_bridge),
):
    """Start paying rent for a specific room, pre-filled with its monthly rent"""
    return await _start_flow(room_id, body, token, factory, registry, bridge)


@router.post("/my-room", response_model=FlowSnapshot, status_code=status.HTTP_201_CREATED)
async def start_for_my_room(
    body: StartFlowRequest,
    token: str = Depends(get_bearer_token),
    factory: BackendFactory = Depends(get_backend_factory),
    registry: FlowRegistry = Depends(get_registry),
    bridge: CheckoutBridge = Depends(get_checkout_bridge),
):
    """Start paying rent for the room assigned to the tenant"""
    return await _start_flow(None, body, token, factory, registry, bridge)


@router.get("/{flow_id}", response_model=FlowSnapshot)
async def get_flow(
    flow_id: str,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    return registry.get(flow_id, owner=token).snapshot()


@router.post("/{flow_id}/submit", response_model=FlowSnapshot)
async def submit_payment(
    flow_id: str,
    form: PaymentForm,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    """
    Create the payment on the backend.

    Online payments come back with checkout options for the Razorpay widget;
    cash payments come back with the instructions to show the tenant.
    """
    flow = registry.get(flow_id, owner=token)
    try:
        await flow.submit(form)
        return flow.snapshot()
    except (HTTPException, PaymentFlowError):
        raise
    except Exception as e:
        logger.error(f"Unexpected error submitting payment for flow {flow_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to process payment. Please try again or contact support if the issue persists."
        )


@router.post("/{flow_id}/checkout/approved", response_model=FlowSnapshot)
async def checkout_approved(
    flow_id: str,
    proof: CheckoutProof,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    """Relay the widget's signed proof to the backend for verification"""
    flow = registry.get(flow_id, owner=token)
    await flow.approve_checkout(proof)
    return flow.snapshot()


@router.post("/{flow_id}/checkout/dismissed", response_model=FlowSnapshot)
async def checkout_dismissed(
    flow_id: str,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    flow = registry.get(flow_id, owner=token)
    await flow.dismiss_checkout()
    return flow.snapshot()


@router.post("/{flow_id}/checkout/retry", response_model=FlowSnapshot)
async def checkout_retry(
    flow_id: str,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    flow = registry.get(flow_id, owner=token)
    await flow.retry_checkout()
    return flow.snapshot()


@router.post("/{flow_id}/refresh", response_model=FlowSnapshot)
async def refresh_status(
    flow_id: str,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    flow = registry.get(flow_id, owner=token)
    await flow.refresh()
    return flow.snapshot()


@router.post("/{flow_id}/cancel", response_model=FlowSnapshot)
async def cancel_payment(
    flow_id: str,
    body: CancelRequest,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    flow = registry.get(flow_id, owner=token)
    await flow.cancel(confirm=body.confirm)
    return flow.snapshot()


@router.post("/{flow_id}/reset", response_model=FlowSnapshot)
async def make_another_payment(
    flow_id: str,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    flow = registry.get(flow_id, owner=token)
    flow.reset()
    return flow.snapshot()


@router.delete("/{flow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_flow(
    flow_id: str,
    token: str = Depends(get_bearer_token),
    registry: FlowRegistry = Depends(get_registry),
):
    """Tenant left the payment page: stop any polling and forget the session"""
    registry.get(flow_id, owner=token)
    await registry.discard(flow_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
