"""Dispatch service: talks to providers on behalf of the Delivery aggregate.

The aggregate never performs I/O. This service loads a delivery, awaits
the provider adapter and records the answer through domain commands,
holding the delivery's lock for the whole round-trip.

Dispatch retries retryable provider failures with exponential backoff and
jitter. Once the attempt budget is spent (or the provider says retrying
is pointless) the delivery is marked as failed so the restaurant sees an
actionable state instead of a delivery stuck in ``pending``.
"""

import asyncio
import os
import random
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from delivery.delivery.cancellation import CancelDelivery
from delivery.delivery.delivery import Delivery
from delivery.delivery.dispatch import MarkDispatchFailed, QuoteFees, RecordDispatch, RecordDispatchAttemptFailed
from delivery.delivery.exceptions import DispatchError, InvalidStateError
from delivery.delivery.lifecycle import DeliveryStatus
from delivery.provider import get_provider
from delivery.provider.port import Quote
from delivery.services.locks import DeliveryLocks, get_locks

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for provider dispatch."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: float = 0.25

    @classmethod
    def from_env(cls) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(os.environ.get("DELIVERY_DISPATCH_MAX_ATTEMPTS", "3"))),
            base_delay=float(os.environ.get("DELIVERY_DISPATCH_BASE_DELAY", "0.5")),
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the ``attempt``-th failure."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + self.jitter * delay * random.random()


class DeliveryDispatcher:
    def __init__(self, policy: RetryPolicy | None = None, locks: DeliveryLocks | None = None, sleep=asyncio.sleep):
        self.policy = policy or RetryPolicy.from_env()
        self.locks = locks if locks is not None else get_locks()
        self._sleep = sleep

    def _load(self, delivery_id: str) -> Delivery:
        return current_domain.repository_for(Delivery).get(delivery_id)

    async def dispatch(self, delivery_id: str) -> Delivery:
        """Send the delivery to its provider; returns the delivery as recorded.

        Dispatching an already dispatched delivery is a no-op.
        """
        async with self.locks.hold(delivery_id):
            dlv = self._load(delivery_id)
            if dlv.is_dispatched:
                logger.info("Delivery already dispatched", delivery_id=delivery_id, provider=dlv.provider)
                return dlv
            if not dlv.provider:
                raise InvalidStateError({"provider": ["Cannot dispatch a delivery without a provider"]})
            if dlv.current_status != DeliveryStatus.PENDING:
                raise InvalidStateError({"status": [f"Cannot dispatch a delivery that is {dlv.status}"]})

            provider = dlv.provider
            adapter = get_provider(provider)
            attempt = 0
            while True:
                attempt += 1
                try:
                    result = await adapter.dispatch(dlv)
                except DispatchError as exc:
                    current_domain.process(
                        RecordDispatchAttemptFailed(delivery_id=delivery_id, reason=exc.message),
                        asynchronous=False,
                    )
                    if not exc.retryable or attempt >= self.policy.max_attempts:
                        logger.error(
                            "Dispatch failed",
                            delivery_id=delivery_id,
                            provider=dlv.provider,
                            attempt=attempt,
                            retryable=exc.retryable,
                            error=exc.message,
                        )
                        current_domain.process(
                            MarkDispatchFailed(delivery_id=delivery_id, reason=exc.message),
                            asynchronous=False,
                        )
                        self.locks.discard(delivery_id)
                        return self._load(delivery_id)

                    delay = self.policy.delay_for(attempt)
                    logger.warning(
                        "Dispatch attempt failed, retrying",
                        delivery_id=delivery_id,
                        provider=dlv.provider,
                        attempt=attempt,
                        delay=round(delay, 3),
                        error=exc.message,
                    )
                    await self._sleep(delay)
                    dlv = self._load(delivery_id)
                    continue

                current_domain.process(
                    RecordDispatch(
                        delivery_id=delivery_id,
                        provider=provider,
                        provider_identifier=result.provider_identifier,
                        tracking_url=result.tracking_url,
                        eta_time=result.eta_time,
                        collection_code=result.collection_code,
                    ),
                    asynchronous=False,
                )
                logger.info(
                    "Delivery dispatched",
                    delivery_id=delivery_id,
                    provider=dlv.provider,
                    provider_identifier=result.provider_identifier,
                    attempt=attempt,
                )
                return self._load(delivery_id)

    async def estimate(self, delivery_id: str) -> Quote:
        """Ask the assigned provider for a quote and record it as the delivery fees."""
        async with self.locks.hold(delivery_id):
            dlv = self._load(delivery_id)
            if not dlv.provider:
                raise InvalidStateError({"provider": ["A provider must be assigned before quoting"]})
            quote = await get_provider(dlv.provider).quote(dlv)
            current_domain.process(
                QuoteFees(delivery_id=delivery_id, amount=quote.amount, currency=quote.currency),
                asynchronous=False,
            )
            return quote

    async def cancel(self, delivery_id: str, reason: str) -> Delivery:
        """Cancel at the provider (when already dispatched), then in the domain.

        A provider refusal (``CancelError``) propagates and leaves the
        delivery untouched.
        """
        async with self.locks.hold(delivery_id):
            dlv = self._load(delivery_id)
            dlv.ensure_cancellable()
            if dlv.is_dispatched and dlv.provider_identifier:
                await get_provider(dlv.provider).cancel(dlv.provider_identifier)
                logger.info(
                    "Delivery cancelled at provider",
                    delivery_id=delivery_id,
                    provider=dlv.provider,
                    provider_identifier=dlv.provider_identifier,
                )
            current_domain.process(CancelDelivery(delivery_id=delivery_id, reason=reason), asynchronous=False)
        self.locks.discard(delivery_id)
        return self._load(delivery_id)
