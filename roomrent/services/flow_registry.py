import hmac
import logging
import time
from typing import Callable, Dict, List, Optional

from roomrent.core import config
from roomrent.core.errors import FlowNotFoundError
from roomrent.schemas.payment import BuyerInfo
from roomrent.schemas.room import Room
from roomrent.services.backend_client import BackendClient
from roomrent.services.checkout import CheckoutBridge
from roomrent.services.payment_flow import PaymentFlow

logger = logging.getLogger(__name__)


class FlowRegistry:
    """
    In-memory payment flows of this portal process, keyed by flow id.

    A flow keeps its own backend client (with the tenant's token) for as
    long as it lives, because the status poller outlives the request that
    started it. Flows the tenant has stopped asking about are closed by
    sweep(): after `idle_timeout` seconds in general, or `final_timeout`
    seconds once the payment is confirmed or cancelled.
    """

    def __init__(
        self,
        poll_interval: float = config.PAYMENT_POLL_INTERVAL,
        idle_timeout: float = config.FLOW_IDLE_TIMEOUT,
        final_timeout: float = config.FLOW_FINAL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.poll_interval = poll_interval
        self.idle_timeout = idle_timeout
        self.final_timeout = final_timeout
        self._clock = clock
        self._flows: Dict[str, PaymentFlow] = {}
        self._owners: Dict[str, str] = {}
        self._last_seen: Dict[str, float] = {}

    def __len__(self):
        return len(self._flows)

    def create(
        self,
        room: Room,
        buyer: BuyerInfo,
        backend: BackendClient,
        bridge: CheckoutBridge,
        owner: str = "",
    ) -> PaymentFlow:
        flow = PaymentFlow(room, buyer, backend, bridge, poll_interval=self.poll_interval)
        self._flows[flow.flow_id] = flow
        self._owners[flow.flow_id] = owner
        self._last_seen[flow.flow_id] = self._clock()
        logger.info(f"Payment flow {flow.flow_id} started for room {room.room_number} ({buyer.email})")
        return flow

    def get(self, flow_id: str, owner: Optional[str] = None) -> PaymentFlow:
        """
        Look up a flow. When `owner` is given it must match the token the
        flow was started with; a mismatch looks exactly like a missing flow.
        An expired flow that has not been swept yet counts as missing too.
        """
        flow = self._flows.get(flow_id)
        if flow is None or (owner is not None and not hmac.compare_digest(self._owners.get(flow_id, "").encode(), owner.encode())):
            raise FlowNotFoundError("Payment session not found. Please start again.")
        now = self._clock()
        if self._expired(flow_id, now):
            raise FlowNotFoundError("Payment session expired. Please start again.")
        self._last_seen[flow_id] = now
        return flow

    async def discard(self, flow_id: str) -> Optional[PaymentFlow]:
        flow = self._pop(flow_id)
        if flow is not None:
            await flow.close()
        return flow

    async def sweep(self) -> List[str]:
        """Close every expired flow; returns their ids."""
        now = self._clock()
        expired = [flow_id for flow_id in self._flows if self._expired(flow_id, now)]
        for flow_id in expired:
            flow = self._pop(flow_id)
            logger.info(f"Payment flow {flow_id} expired in state {flow.state.value}")
            await flow.close()
        return expired

    async def close_all(self):
        flows = list(self._flows.values())
        self._flows.clear()
        self._owners.clear()
        self._last_seen.clear()
        for flow in flows:
            await flow.close()
        if flows:
            logger.info(f"Closed {len(flows)} payment flows")

    def _expired(self, flow_id: str, now: float) -> bool:
        flow = self._flows[flow_id]
        timeout = self.final_timeout if flow.state.is_final else self.idle_timeout
        return now - self._last_seen[flow_id] >= timeout

    def _pop(self, flow_id: str) -> Optional[PaymentFlow]:
        self._owners.pop(flow_id, None)
        self._last_seen.pop(flow_id, None)
        return self._flows.pop(flow_id, None)


_registry: Optional[FlowRegistry] = None


def get_flow_registry() -> FlowRegistry:
    global _registry
    if _registry is None:
        _registry = FlowRegistry()
    return _registry
