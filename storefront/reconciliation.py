"""Payment status reconciliation after a redirect-based payment.

When the browser comes back from TWINT or 3-D Secure only the order id is
known. The backend learns the outcome from the provider's webhook, which
can lag behind the redirect, so the order is re-read until its payment
status settles or the attempt budget runs out.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from storefront import config
from storefront.api_client import ApiError
from storefront.schemas import Order, PaymentStatus

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    PAID = "PAID"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


@dataclass
class Reconciliation:
    outcome: Outcome
    order: Optional[Order]
    attempts: int


FetchOrder = Callable[[], Awaitable[Order]]


async def reconcile_payment(
    fetch_order: FetchOrder,
    interval: float = None,
    max_attempts: int = None,
    sleep=asyncio.sleep,
) -> Reconciliation:
    """Poll ``fetch_order`` until the payment is PAID or FAILED.

    The first fetch happens immediately, later ones every ``interval``
    seconds. ``max_attempts`` bounds the total number of fetches; when it
    is used up while the payment is still pending the last order seen is
    returned with ``Outcome.TIMED_OUT``. A fetch that raises ``ApiError``
    is logged and counts as an attempt.
    """
    interval = config.PAYMENT_POLL_INTERVAL if interval is None else interval
    max_attempts = config.PAYMENT_POLL_ATTEMPTS if max_attempts is None else max_attempts

    order = None
    attempts = 0
    while attempts < max_attempts:
        if attempts:
            await sleep(interval)
        attempts += 1
        try:
            order = await fetch_order()
        except ApiError as exc:
            logger.warning("Payment status check %s/%s failed: %s", attempts, max_attempts, exc.message)
            continue

        if order.payment_status == PaymentStatus.PAID:
            return Reconciliation(Outcome.PAID, order, attempts)
        if order.payment_status == PaymentStatus.FAILED:
            return Reconciliation(Outcome.FAILED, order, attempts)

    logger.info("Payment still pending after %s checks", attempts)
    return Reconciliation(Outcome.TIMED_OUT, order, attempts)


class PaymentWatcher:
    """Owns the running reconciliation loops, one per order id.

    Concurrent requests for the same order share one loop, which is
    cancelled once the last request waiting on it goes away. ``close`` is
    called on application shutdown so no loop outlives the app.
    """

    def __init__(self, interval: float = None, max_attempts: int = None, sleep=asyncio.sleep):
        self.interval = interval
        self.max_attempts = max_attempts
        self.sleep = sleep
        self._tasks: Dict[str, asyncio.Task] = {}
        self._waiters: Dict[str, int] = {}

    def __contains__(self, order_id):
        return order_id in self._tasks

    def start(self, order_id: str, fetch_order: FetchOrder) -> asyncio.Task:
        task = self._tasks.get(order_id)
        if task is None or task.done():
            logger.info("Watching payment of order %s", order_id)
            task = asyncio.ensure_future(reconcile_payment(
                fetch_order,
                interval=self.interval,
                max_attempts=self.max_attempts,
                sleep=self.sleep,
            ))
            self._tasks[order_id] = task
            task.add_done_callback(lambda t, oid=order_id: self._forget(oid, t))
        return task

    async def watch(self, order_id: str, fetch_order: FetchOrder) -> Reconciliation:
        task = self.start(order_id, fetch_order)
        self._waiters[order_id] = self._waiters.get(order_id, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            self._waiters[order_id] -= 1
            if not self._waiters[order_id]:
                del self._waiters[order_id]
                # last page watching this order went away
                if not task.done():
                    self.cancel(order_id)

    def _forget(self, order_id, task):
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]

    def cancel(self, order_id: str) -> bool:
        task = self._tasks.pop(order_id, None)
        if task is None or task.done():
            return False
        logger.info("Stopped watching payment of order %s", order_id)
        task.cancel()
        return True

    async def close(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
