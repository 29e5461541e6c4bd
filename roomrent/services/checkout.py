"""
Bridge to the Razorpay checkout widget.

The widget itself runs in the tenant's browser. The portal loads the
checkout script once per process, hands the browser the widget options for
a given order, and relays the widget's outcome (approved with a signed proof,
or dismissed) back into the payment flow.
"""
import asyncio
import logging
from typing import Optional, Callable, Awaitable, Dict, Any

import httpx

from roomrent.core import config
from roomrent.core.errors import GatewayError
from roomrent.schemas.payment import OrderDescriptor, BuyerInfo, CheckoutProof

logger = logging.getLogger(__name__)

CHECKOUT_SCRIPT_PATH = "/api/pay-rent/checkout.js"


class CheckoutScriptLoader:
    """
    Loads the checkout script at most once.

    Concurrent callers share a single in-flight load. A successful load is
    kept for the lifetime of the loader; a failed one is forgotten so that a
    later, explicit attempt can try again.
    """

    def __init__(
        self,
        url: str = config.RAZORPAY_CHECKOUT_URL,
        inject: Optional[Callable[[], Awaitable[str]]] = None,
        timeout: float = config.BACKEND_TIMEOUT,
    ):
        self.url = url
        self.timeout = timeout
        self._inject = inject or self._fetch_script
        self._task: Optional[asyncio.Task] = None
        self._script: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self._script is not None

    async def get_or_load(self) -> str:
        if self._script is not None:
            return self._script
        if self._task is None:
            self._task = asyncio.ensure_future(self._load())
        # shield: a caller giving up must not abort the load for the others
        return await asyncio.shield(self._task)

    async def _load(self) -> str:
        logger.info(f"Loading checkout script from {self.url}")
        try:
            script = await self._inject()
        except Exception as e:
            logger.error(f"Failed to load checkout script: {str(e)}")
            self._task = None
            raise GatewayError("Failed to load payment gateway") from e
        self._script = script
        return script

    async def _fetch_script(self) -> str:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.text


_script_loader: Optional[CheckoutScriptLoader] = None


def get_script_loader() -> CheckoutScriptLoader:
    """Process-wide loader shared by every flow."""
    global _script_loader
    if _script_loader is None:
        _script_loader = CheckoutScriptLoader()
    return _script_loader


class CheckoutSession:
    """One opening of the widget. Settles exactly once."""

    def __init__(
        self,
        options: Dict[str, Any],
        on_approved: Callable[[CheckoutProof], Awaitable[None]],
        on_dismissed: Callable[[], Awaitable[None]],
    ):
        self.options = options
        self._on_approved = on_approved
        self._on_dismissed = on_dismissed
        self.settled = False

    def to_payload(self) -> Dict[str, Any]:
        return {"script_url": CHECKOUT_SCRIPT_PATH, "options": self.options}

    async def approve(self, proof: CheckoutProof) -> bool:
        if self.settled:
            logger.warning(f"Ignoring approval for settled checkout of order {self.options.get('order_id')}")
            return False
        self.settled = True
        await self._on_approved(proof)
        return True

    async def dismiss(self) -> bool:
        if self.settled:
            return False
        self.settled = True
        await self._on_dismissed()
        return True


class CheckoutBridge:
    def __init__(
        self,
        loader: Optional[CheckoutScriptLoader] = None,
        fallback_key: str = config.RAZORPAY_KEY_ID,
        merchant_name: str = config.MERCHANT_NAME,
        theme_color: str = config.CHECKOUT_THEME_COLOR,
    ):
        self.loader = loader or get_script_loader()
        self.fallback_key = fallback_key
        self.merchant_name = merchant_name
        self.theme_color = theme_color

    async def launch(
        self,
        descriptor: Optional[OrderDescriptor],
        buyer: BuyerInfo,
        description: str,
        on_approved: Callable[[CheckoutProof], Awaitable[None]],
        on_dismissed: Callable[[], Awaitable[None]],
        notes: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        """
        Open the widget for an order.

        Raises:
            GatewayError: the script could not be loaded or the order is unusable.
        """
        await self.loader.get_or_load()

        if descriptor is None or not descriptor.order_id:
            raise GatewayError("Invalid payment order")
        key = descriptor.key or self.fallback_key
        if not key:
            logger.error(f"No Razorpay key available for order {descriptor.order_id}")
            raise GatewayError("Payment gateway is not configured")

        options = {
            "key": key,
            "amount": descriptor.amount,
            "currency": descriptor.currency or config.CURRENCY,
            "name": self.merchant_name,
            "description": description,
            "order_id": descriptor.order_id,
            "prefill": {
                "name": buyer.name,
                "email": buyer.email,
                "contact": buyer.phone or "",
            },
            "notes": notes or {},
            "theme": {"color": self.theme_color},
            "modal": {"escape": False, "backdropclose": False},
        }
        logger.info(f"Opening checkout for order {descriptor.order_id}")
        return CheckoutSession(options, on_approved, on_dismissed)
