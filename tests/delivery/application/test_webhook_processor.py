"""Application tests for WebhookProcessor: provider callbacks applied to deliveries."""

import asyncio
import json

import pytest
import structlog
from delivery.delivery.creation import CreateDelivery
from delivery.delivery.delivery import Delivery
from delivery.delivery.dispatch import RecordDispatch
from delivery.delivery.exceptions import InvalidTransitionError, TerminalStateError
from delivery.provider import set_provider
from delivery.provider.fake import FakeProvider
from delivery.provider.port import ProviderSettings
from delivery.services import webhooks
from delivery.services.locks import DeliveryLocks
from delivery.services.webhooks import IGNORED, WebhookProcessor
from protean import current_domain
from protean.exceptions import ValidationError
from structlog.testing import capture_logs


def _dispatched(order_id, provider, provider_identifier):
    dlv_id = current_domain.process(
        CreateDelivery(
            order_id=order_id,
            channel="third_party",
            provider=provider,
            pick_up=json.dumps({"name": "Taqueria", "address": "1 Main St"}),
            drop_off=json.dumps({"name": "Sam", "address": "9 Elm St"}),
        ),
        asynchronous=False,
    )
    current_domain.process(
        RecordDispatch(delivery_id=dlv_id, provider_identifier=provider_identifier),
        asynchronous=False,
    )
    return dlv_id


def _uber(status, minute, delivery_id="del_wh", **data):
    return {
        "kind": "event.delivery_status",
        "delivery_id": delivery_id,
        "status": status,
        "created": f"2026-05-02T12:{minute:02d}:00Z",
        "data": data,
    }


def _chaskis(status, minute, delivery_id="ch-wh"):
    return {
        "event": "delivery.status_updated",
        "data": {"id": delivery_id, "status": status, "timestamp": f"2026-05-02T12:{minute:02d}:00+00:00"},
    }


def _get(dlv_id):
    return current_domain.repository_for(Delivery).get(dlv_id)


class TestWebhookProcessing:
    async def test_applies_status(self):
        dlv_id = _dispatched("ord-wh-1", "chaskis", "ch-wh-1")
        result = await WebhookProcessor().process("chaskis", _chaskis("ASSIGNED", 1, "ch-wh-1"))

        assert result.status == "applied"
        assert result.delivery_id == dlv_id
        assert _get(dlv_id).status == "pickup"

    async def test_uber_imminent(self):
        dlv_id = _dispatched("ord-wh-2", "uberDirect", "del_wh_2")
        processor = WebhookProcessor()
        await processor.process("uberDirect", _uber("pickup", 1, "del_wh_2"))
        await processor.process("uberDirect", _uber("pickup", 4, "del_wh_2", courier_imminent=True))
        assert _get(dlv_id).status == "pickup_imminent"

    async def test_out_of_order_callback_is_stale(self):
        dlv_id = _dispatched("ord-wh-3", "chaskis", "ch-wh-3")
        processor = WebhookProcessor()
        for status, minute in (("ASSIGNED", 1), ("ARRIVING_AT_PICKUP", 5), ("PICKED_UP", 9), ("GOING_TO_DROPOFF", 12)):
            await processor.process("chaskis", _chaskis(status, minute, "ch-wh-3"))

        result = await processor.process("chaskis", _chaskis("PICKED_UP", 8, "ch-wh-3"))

        assert result.status == "stale"
        assert _get(dlv_id).status == "dropoff"

    async def test_duplicate_callback_is_unchanged(self):
        _dispatched("ord-wh-4", "chaskis", "ch-wh-4")
        processor = WebhookProcessor()
        await processor.process("chaskis", _chaskis("ASSIGNED", 1, "ch-wh-4"))
        result = await processor.process("chaskis", _chaskis("ASSIGNED", 1, "ch-wh-4"))
        assert result.status == "unchanged"

    async def test_courier_details_recorded(self):
        dlv_id = _dispatched("ord-wh-5", "uberDirect", "del_wh_5")
        payload = _uber(
            "pickup",
            2,
            "del_wh_5",
            courier={"name": "Ana", "public_key": "c-5", "location": {"lat": 40.7, "lng": -74.0}},
        )
        await WebhookProcessor().process("uberDirect", payload)

        courier = _get(dlv_id).courier
        assert courier.courier_id == "c-5"
        assert courier.latitude == 40.7

    async def test_uber_status_applied_end_to_end(self):
        dlv_id = _dispatched("ord-wh-10", "uberDirect", "del_wh_10")
        result = await WebhookProcessor().process("uberDirect", _uber("pickup", 1, "del_wh_10"))

        assert (result.status, result.delivery_id) == ("applied", dlv_id)
        assert _get(dlv_id).status == "pickup"

    async def test_processed_callback_logs_provider_event(self, monkeypatch):
        _dispatched("ord-wh-15", "uberDirect", "del_wh_15")
        with capture_logs() as logs:
            monkeypatch.setattr(webhooks, "logger", structlog.get_logger(webhooks.__name__))
            await WebhookProcessor().process("uberDirect", _uber("pickup", 1, "del_wh_15"))

        entry = next(log for log in logs if log["event"] == "Provider update processed")
        assert entry["provider_event"] == "event.delivery_status:pickup"
        assert entry["provider"] == "uberDirect"


class TestConcurrentCallbacks:
    async def test_late_callback_racing_a_newer_one_is_stale(self):
        dlv_id = _dispatched("ord-wh-11", "chaskis", "ch-wh-11")
        processor = WebhookProcessor()
        await processor.process("chaskis", _chaskis("ASSIGNED", 1, "ch-wh-11"))

        newer, older = await asyncio.gather(
            processor.process("chaskis", _chaskis("ARRIVING_AT_PICKUP", 5, "ch-wh-11")),
            processor.process("chaskis", _chaskis("GOING_TO_PICKUP", 3, "ch-wh-11")),
        )

        assert (newer.status, older.status) == ("applied", "stale")
        assert _get(dlv_id).status == "pickup_imminent"

    async def test_callbacks_for_different_deliveries(self):
        first = _dispatched("ord-wh-12", "chaskis", "ch-wh-12")
        second = _dispatched("ord-wh-13", "chaskis", "ch-wh-13")
        processor = WebhookProcessor()

        await asyncio.gather(
            processor.process("chaskis", _chaskis("ASSIGNED", 1, "ch-wh-12")),
            processor.process("chaskis", _chaskis("CANCELED", 1, "ch-wh-13")),
        )

        assert _get(first).status == "pickup"
        assert _get(second).status == "cancelled"


class TestIgnoredCallbacks:
    async def test_unrecognized_payload(self):
        result = await WebhookProcessor().process("chaskis", {"event": "delivery.rated", "data": {"id": "x"}})
        assert result.status == IGNORED
        assert result.delivery_id is None

    async def test_unknown_delivery(self):
        result = await WebhookProcessor().process("chaskis", _chaskis("ASSIGNED", 1, "ch-never-dispatched"))
        assert result.status == IGNORED
        assert result.reason == "unknown delivery"

    async def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            await WebhookProcessor().process("drone", {})


class TestLifecycleViolations:
    async def test_skip_rejected_for_strict_provider(self):
        dlv_id = _dispatched("ord-wh-6", "uberDirect", "del_wh_6")
        processor = WebhookProcessor()
        await processor.process("uberDirect", _uber("pickup", 1, "del_wh_6"))

        with pytest.raises(InvalidTransitionError):
            await processor.process("uberDirect", _uber("delivered", 20, "del_wh_6"))
        assert _get(dlv_id).status == "pickup"

    async def test_skip_accepted_for_tolerant_provider(self):
        set_provider("uberDirect", FakeProvider("uberDirect", settings=ProviderSettings(skip_tolerant=True)))
        dlv_id = _dispatched("ord-wh-7", "uberDirect", "del_wh_7")
        processor = WebhookProcessor()
        await processor.process("uberDirect", _uber("pickup", 1, "del_wh_7"))
        result = await processor.process("uberDirect", _uber("delivered", 20, "del_wh_7"))

        assert result.status == "applied"
        assert _get(dlv_id).status == "delivered"

    async def test_uber_collection_without_imminent_flag_needs_tolerance(self, monkeypatch):
        monkeypatch.setenv("DELIVERY_SKIP_TOLERANT_PROVIDERS", "uberDirect")
        dlv_id = _dispatched("ord-wh-14", "uberDirect", "del_wh_14")
        processor = WebhookProcessor()
        await processor.process("uberDirect", _uber("pickup", 1, "del_wh_14"))

        result = await processor.process("uberDirect", _uber("pickup_complete", 9, "del_wh_14"))

        assert result.status == "applied"
        assert _get(dlv_id).status == "pickup_complete"

    async def test_update_after_cancellation_rejected(self):
        _dispatched("ord-wh-8", "chaskis", "ch-wh-8")
        processor = WebhookProcessor()
        await processor.process("chaskis", _chaskis("CANCELED", 1, "ch-wh-8"))
        with pytest.raises(TerminalStateError):
            await processor.process("chaskis", _chaskis("ASSIGNED", 2, "ch-wh-8"))

    async def test_terminal_delivery_releases_lock(self):
        locks = DeliveryLocks()
        dlv_id = _dispatched("ord-wh-9", "chaskis", "ch-wh-9")
        processor = WebhookProcessor(locks=locks)
        await processor.process("chaskis", _chaskis("ASSIGNED", 1, "ch-wh-9"))
        assert len(locks) == 1

        await processor.process("chaskis", _chaskis("CANCELED", 2, "ch-wh-9"))

        assert len(locks) == 0
        assert _get(dlv_id).status == "cancelled"
