"""Webhook processor: applies provider callbacks to deliveries.

Callbacks are normalized by the provider's adapter, matched to a
delivery through the provider's own reference, and applied under that
delivery's lock. Payloads the adapter does not understand, and callbacks
for deliveries this service never dispatched, are logged and dropped:
the provider cannot act on an error response for them anyway.
"""

import json
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from delivery.delivery.delivery import Delivery, provider_value
from delivery.delivery.exceptions import InvalidStateError, UnrecognizedPayloadError
from delivery.delivery.lifecycle import is_terminal
from delivery.delivery.tracking import ApplyProviderUpdate
from delivery.provider import get_provider
from delivery.services.locks import DeliveryLocks, get_locks

logger = structlog.get_logger(__name__)

IGNORED = "ignored"


@dataclass(frozen=True)
class WebhookResult:
    """What happened to one callback: an ``UpdateOutcome`` value or ``ignored``."""

    status: str
    delivery_id: str | None = None
    reason: str | None = None


class WebhookProcessor:
    def __init__(self, locks: DeliveryLocks | None = None):
        self.locks = locks if locks is not None else get_locks()

    async def process(self, provider: str, payload: dict) -> WebhookResult:
        """Normalize and apply one provider callback.

        Lifecycle violations (e.g. ``pickup`` after ``cancelled``) are
        logged and re-raised so the caller sees them.
        """
        provider = provider_value(provider)
        adapter = get_provider(provider)
        try:
            update = adapter.normalize_webhook(payload)
        except UnrecognizedPayloadError as exc:
            logger.warning("Dropping unrecognized webhook", provider=provider, error=exc.message)
            return WebhookResult(status=IGNORED, reason=exc.message)

        repo = current_domain.repository_for(Delivery)
        dlv = repo.find_by_provider_identifier(provider, update.provider_identifier)
        if dlv is None:
            logger.warning(
                "Dropping webhook for unknown delivery",
                provider=provider,
                provider_identifier=update.provider_identifier,
                provider_event=update.raw_event,
            )
            return WebhookResult(status=IGNORED, reason="unknown delivery")

        delivery_id = str(dlv.id)
        async with self.locks.hold(delivery_id):
            command = ApplyProviderUpdate(
                delivery_id=delivery_id,
                status=update.status,
                occurred_at=update.occurred_at,
                courier=json.dumps(update.courier) if update.courier else None,
                latitude=update.latitude,
                longitude=update.longitude,
                allow_skip=adapter.skip_tolerant,
            )
            try:
                outcome = current_domain.process(command, asynchronous=False)
            except InvalidStateError as exc:
                logger.warning(
                    "Rejected provider update",
                    delivery_id=delivery_id,
                    provider=provider,
                    provider_event=update.raw_event,
                    status=update.status,
                    errors=exc.messages,
                )
                raise

        logger.info(
            "Provider update processed",
            delivery_id=delivery_id,
            provider=provider,
            provider_event=update.raw_event,
            outcome=outcome,
        )
        if is_terminal(repo.get(delivery_id).current_status):
            self.locks.discard(delivery_id)
        return WebhookResult(status=outcome, delivery_id=delivery_id)
