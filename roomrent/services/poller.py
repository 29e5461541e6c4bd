import asyncio
import logging
from typing import Optional, Callable, Awaitable

from roomrent.core.errors import PaymentFlowError
from roomrent.schemas.payment import PaymentIntent

logger = logging.getLogger(__name__)


class StatusPoller:
    """
    Re-reads a payment on a fixed interval until stopped.

    The timer is acquired by start() and released by stop(); stop() may be
    called any number of times, including from inside on_update. Failed
    ticks are logged and skipped, the next tick tries again.
    """

    def __init__(
        self,
        payment_id: str,
        fetch: Callable[[str], Awaitable[PaymentIntent]],
        on_update: Callable[[PaymentIntent], None],
        interval: float = 30.0,
    ):
        self.payment_id = payment_id
        self.interval = interval
        self._fetch = fetch
        self._on_update = on_update
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._stopped

    def start(self):
        if self._task is not None:
            return
        logger.info(f"Polling payment {self.payment_id} every {self.interval}s")
        self._task = asyncio.ensure_future(self._run())

    def stop(self):
        if self._stopped:
            return
        self._stopped = True
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        logger.info(f"Stopped polling payment {self.payment_id}")

    async def _run(self):
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                break
            try:
                intent = await self._fetch(self.payment_id)
            except PaymentFlowError as e:
                logger.warning(f"Status check for payment {self.payment_id} failed, retrying next tick: {e.message}")
                continue
            except Exception as e:
                logger.error(f"Unexpected error checking payment {self.payment_id}: {str(e)}")
                continue
            if self._stopped:
                break
            self._on_update(intent)
