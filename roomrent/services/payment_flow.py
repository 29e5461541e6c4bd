"""
Rent payment lifecycle for one tenant and one room.

    idle -> submitting -> awaiting_online_checkout -> verifying -> confirmed
                       -> awaiting_cash_confirmation ----------> confirmed
                                                     ----------> cancelled
    dismiss, gateway or payment failure -> idle

The backend owns the payment record. The flow never edits `status` itself:
it only replaces its copy of the record with a freshly fetched one, and
drops any response that would move the record backwards.
"""
import logging
import uuid
from datetime import date
from typing import Optional, List, Union, Tuple

from roomrent.core import config
from roomrent.core.errors import (
    PaymentFlowError,
    PaymentValidationError,
    VerificationError,
    GatewayError,
    FlowStateError,
)
from roomrent.schemas.flow import FlowState, FlowSnapshot, Notice, CashInstructions
from roomrent.schemas.payment import (
    PaymentIntent,
    PaymentForm,
    PaymentMethod,
    PaymentStatus,
    CheckoutProof,
    BuyerInfo,
    OrderDescriptor,
)
from roomrent.schemas.room import Room
from roomrent.services.backend_client import BackendClient
from roomrent.services.checkout import CheckoutBridge, CheckoutSession
from roomrent.services.poller import StatusPoller
from roomrent.utils.validation import validate_payment_form, current_month, month_display, format_currency

logger = logging.getLogger(__name__)

# States in which an update from the backend may move the flow forward
WATCHING_STATES = (
    FlowState.AWAITING_ONLINE_CHECKOUT,
    FlowState.AWAITING_CASH_CONFIRMATION,
    FlowState.VERIFYING,
)

FINAL_STATES = tuple(state for state in FlowState if state.is_final)


class PaymentFlow:
    def __init__(
        self,
        room: Room,
        buyer: BuyerInfo,
        backend: BackendClient,
        bridge: CheckoutBridge,
        poll_interval: float = config.PAYMENT_POLL_INTERVAL,
        today: Optional[date] = None,
    ):
        self.flow_id = uuid.uuid4().hex
        self.room = room
        self.buyer = buyer
        self.poll_interval = poll_interval
        self.state = FlowState.IDLE
        self.intent: Optional[PaymentIntent] = None
        self.revision = 0
        self.closed = False
        self._backend = backend
        self._bridge = bridge
        self._today = today
        self._descriptor: Optional[OrderDescriptor] = None
        self._checkout: Optional[CheckoutSession] = None
        self._poller: Optional[StatusPoller] = None
        self._notices: List[Notice] = []
        self.form = self._fresh_form()

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    # Intent creation

    async def submit(self, form: PaymentForm) -> PaymentIntent:
        """
        Validate the form and create a payment intent on the backend.

        Validation failures raise before any request is made and leave the
        flow untouched. A failed request returns the flow to idle with the
        submitted form kept, so the tenant can simply retry.
        """
        self._require(FlowState.IDLE, "submit a payment")

        reasons = validate_payment_form(form, self.room.monthly_rent)
        if reasons:
            raise PaymentValidationError(reasons)

        self.form = form
        self._enter(FlowState.SUBMITTING)
        try:
            intent = await self._backend.create_payment(self.room.room_id, form)
        except Exception:
            self._enter(FlowState.IDLE)
            raise

        self.intent = intent
        self.revision += 1
        self._descriptor = intent.order_descriptor

        if form.method is PaymentMethod.CASH:
            self._enter(FlowState.AWAITING_CASH_CONFIRMATION)
            self._notify("success", "Cash payment recorded. Pay at the office to complete it.")
        else:
            self._enter(FlowState.AWAITING_ONLINE_CHECKOUT)
            await self._open_checkout()
        return intent

    # Online checkout

    async def approve_checkout(self, proof: CheckoutProof) -> PaymentIntent:
        """Called with the proof the widget handed to the browser."""
        self._require(FlowState.AWAITING_ONLINE_CHECKOUT, "complete checkout")
        if self._checkout is None or self._checkout.settled:
            raise FlowStateError("Checkout is not open for this payment")
        await self._checkout.approve(proof)
        return self.intent

    async def dismiss_checkout(self):
        self._require(FlowState.AWAITING_ONLINE_CHECKOUT, "close checkout")
        if self._checkout is not None and not self._checkout.settled:
            await self._checkout.dismiss()
        else:
            await self._checkout_dismissed()

    async def retry_checkout(self):
        """Re-open the widget for the same pending intent after a failed verification."""
        self._require(FlowState.AWAITING_ONLINE_CHECKOUT, "retry checkout")
        if self._checkout is not None and not self._checkout.settled:
            raise FlowStateError("Checkout is already open")
        await self._open_checkout()

    async def _open_checkout(self):
        month = self.form.month
        try:
            self._checkout = await self._bridge.launch(
                self._descriptor,
                self.buyer,
                description=f"Rent for Room {self.room.room_number} - {month_display(month)}",
                on_approved=self._checkout_approved,
                on_dismissed=self._checkout_dismissed,
                notes={"roomNumber": self.room.room_number, "month": month},
            )
        except GatewayError:
            self._enter(FlowState.IDLE)
            raise

    async def _checkout_approved(self, proof: CheckoutProof):
        payment_id = self.intent.payment_id
        self._enter(FlowState.VERIFYING)
        try:
            verified = await self._backend.verify_payment(proof, payment_id)
        except Exception as e:
            if self.state is not FlowState.VERIFYING:
                # Settled by a status update while the request was in flight
                logger.info(f"Ignoring verification failure for payment {payment_id}: flow is {self.state.value}")
                return
            logger.warning(f"Verification of payment {payment_id} failed: {str(e)}")
            self._enter(FlowState.AWAITING_ONLINE_CHECKOUT)
            raise

        self.apply(verified)
        if self.state is FlowState.VERIFYING:
            # Accepted by the backend but not marked paid
            self._enter(FlowState.AWAITING_ONLINE_CHECKOUT)
            raise VerificationError("Payment verification failed")

    async def _checkout_dismissed(self):
        # The intent stays pending on the backend; nothing is cancelled here
        logger.info(f"Checkout dismissed for payment {self.intent.payment_id if self.intent else None}")
        self._enter(FlowState.IDLE)
        self._notify("error", "Payment cancelled")

    # Cash confirmation

    def cash_instructions(self) -> Optional[CashInstructions]:
        if self.intent is None or self.state is not FlowState.AWAITING_CASH_CONFIRMATION:
            return None
        amount = format_currency(self.intent.amount)
        return CashInstructions(
            transaction_id=self.intent.transaction_id,
            amount=self.intent.amount,
            amount_display=amount,
            month=self.intent.billing_month,
            month_display=month_display(self.intent.billing_month),
            instructions=[
                f"Pay {amount} in cash at the management office.",
                f"Quote transaction ID {self.intent.transaction_id} when you pay.",
                "This page updates automatically once the administrator confirms your payment.",
            ],
        )

    async def cancel(self, confirm: bool = False):
        self._require(FlowState.AWAITING_CASH_CONFIRMATION, "cancel the payment")
        if not confirm:
            raise FlowStateError("Please confirm that you want to cancel this payment")

        payment_id = self.intent.payment_id
        self._stop_polling()
        try:
            await self._backend.cancel_payment(payment_id)
        except PaymentFlowError:
            if self.state is FlowState.AWAITING_CASH_CONFIRMATION:
                self._start_polling()
            raise
        if self.state is not FlowState.AWAITING_CASH_CONFIRMATION:
            # Settled by a manual refresh while the request was in flight
            return

        self._enter(FlowState.CANCELLED)
        self._notify("success", "Payment cancelled successfully!")
        try:
            self.apply(await self._backend.get_payment_status(payment_id))
        except PaymentFlowError as e:
            logger.warning(f"Could not re-read cancelled payment {payment_id}: {e.message}")

    # Status updates

    async def refresh(self) -> PaymentIntent:
        """Manual status check. Unlike background polling, errors are raised."""
        if self.intent is None:
            raise FlowStateError("There is no payment to refresh")
        intent = await self._backend.get_payment_status(self.intent.payment_id)
        if self.apply(intent):
            self._notify("info", "Payment status updated!")
        return self.intent

    def apply(self, intent: PaymentIntent) -> bool:
        """
        Replace the local record with a fetched one, if it is not older.

        Returns False when the update was discarded: it belongs to another
        payment, or it would move the record backwards (for instance a late
        `pending` after `paid`).
        """
        current = self.intent
        if current is None or intent.payment_id != current.payment_id:
            logger.info(f"Discarding update for payment {intent.payment_id}: not the active payment")
            return False
        if not intent.status.supersedes(current.status) or (
            current.status.is_terminal and intent.status is not current.status
        ):
            logger.info(f"Discarding stale {intent.status.value} update for payment {intent.payment_id} (now {current.status.value})")
            return False

        self.intent = intent
        self.revision += 1
        self._react(intent)
        return True

    def _react(self, intent: PaymentIntent):
        if self.state not in WATCHING_STATES:
            return
        if intent.status is PaymentStatus.PAID:
            self._enter(FlowState.CONFIRMED)
            message = "Payment successful!"
            if intent.receipt_number:
                message += f" Receipt number {intent.receipt_number}."
            if intent.confirmed_by:
                message += f" Confirmed by {intent.confirmed_by}."
            self._notify("success", message)
        elif intent.status is PaymentStatus.CANCELLED:
            self._enter(FlowState.IDLE)
            self._notify("error", "This payment was cancelled. Please choose a payment method to try again.")
        elif intent.status is PaymentStatus.FAILED:
            self._enter(FlowState.IDLE)
            self._notify("error", "Payment failed. Please try again")
        elif intent.status is PaymentStatus.REFUNDED:
            self._enter(FlowState.IDLE)
            self._notify("info", "This payment was refunded. Please contact the office if you still need to pay.")

    # Lifecycle

    def reset(self):
        """Start over with a fresh form; the previous payment is not reused."""
        self._require(FINAL_STATES, "start a new payment")
        self.intent = None
        self._descriptor = None
        self._checkout = None
        self.form = self._fresh_form()
        self._enter(FlowState.IDLE)
        self.revision += 1

    async def close(self):
        if self.closed:
            return
        self.closed = True
        self._stop_polling()
        await self._backend.aclose()
        logger.info(f"Payment flow {self.flow_id} closed")

    def snapshot(self, drain: bool = True) -> FlowSnapshot:
        notices = list(self._notices)
        if drain:
            self._notices.clear()
        checkout = None
        if self.state is FlowState.AWAITING_ONLINE_CHECKOUT and self._checkout is not None and not self._checkout.settled:
            checkout = self._checkout.to_payload()
        return FlowSnapshot(
            flow_id=self.flow_id,
            state=self.state,
            revision=self.revision,
            room=self.room,
            form=self.form,
            intent=self.intent,
            checkout=checkout,
            cash_instructions=self.cash_instructions(),
            notices=notices,
        )

    # Internals

    def _fresh_form(self) -> PaymentForm:
        return PaymentForm(
            amount=self.room.monthly_rent,
            month=current_month(self._today),
            method=PaymentMethod.ONLINE,
        )

    def _require(self, allowed: Union[FlowState, Tuple[FlowState, ...]], action: str):
        if self.closed:
            raise FlowStateError("This payment session has ended")
        allowed = allowed if isinstance(allowed, tuple) else (allowed,)
        if self.state not in allowed:
            raise FlowStateError(f"Cannot {action} while {self.state.value.replace('_', ' ')}")

    def _enter(self, state: FlowState):
        if state is self.state:
            return
        logger.info(f"Payment flow {self.flow_id}: {self.state.value} -> {state.value}")
        if self.state is FlowState.AWAITING_CASH_CONFIRMATION:
            self._stop_polling()
        if state not in (FlowState.AWAITING_ONLINE_CHECKOUT, FlowState.VERIFYING):
            self._checkout = None
        self.state = state
        if state is FlowState.AWAITING_CASH_CONFIRMATION:
            self._start_polling()

    def _start_polling(self):
        self._stop_polling()
        self._poller = StatusPoller(
            self.intent.payment_id,
            fetch=self._backend.get_payment_status,
            on_update=self.apply,
            interval=self.poll_interval,
        )
        self._poller.start()

    def _stop_polling(self):
        if self._poller is not None:
            self._poller.stop()
            self._poller = None

    def _notify(self, level: str, message: str):
        self._notices.append(Notice(level=level, message=message))
