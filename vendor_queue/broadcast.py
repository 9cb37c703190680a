from __future__ import annotations

# Broadcast gateway: the seam between QueueService and the transport.
#
# QueueService only knows `publish()` / `publish_to_customer()`. The MQTT
# adapter maps those onto topics; the in-memory one calls Python callbacks
# and is what tests and embedded users plug in.

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)

QUEUE_UPDATED = "queue-updated"
CUSTOMER_JOINED = "customer-joined"
CUSTOMER_CALLED = "customer-called"
CUSTOMER_LEFT = "customer-left"
QUEUE_STATUS_UPDATED = "queue-status-updated"

EVENT_TYPES = (QUEUE_UPDATED, CUSTOMER_JOINED, CUSTOMER_CALLED, CUSTOMER_LEFT, QUEUE_STATUS_UPDATED)

Subscriber = Callable[[str, dict[str, Any]], None]


class BroadcastGateway(Protocol):
    def publish(self, vendor_id: str, event_type: str, payload: dict[str, Any]) -> None: ...

    def publish_to_customer(self, customer_id: str, event_type: str, payload: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class PublishedEvent:
    channel: str  # "vendor" or "customer"
    target_id: str
    event_type: str
    payload: dict[str, Any]


class InMemoryBroadcastGateway:
    """Callback fan-out, one channel per vendor and per customer.

    Subscriber exceptions are logged and do not stop delivery to the others.
    Every published event is also kept in `events` for inspection.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._vendor_subs: dict[str, list[Subscriber]] = defaultdict(list)
        self._customer_subs: dict[str, list[Subscriber]] = defaultdict(list)
        self.events: list[PublishedEvent] = []

    def subscribe_vendor(self, vendor_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            self._vendor_subs[vendor_id].append(subscriber)

    def subscribe_customer(self, customer_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            self._customer_subs[customer_id].append(subscriber)

    def unsubscribe_vendor(self, vendor_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            subs = self._vendor_subs.get(vendor_id, [])
            if subscriber in subs:
                subs.remove(subscriber)

    def publish(self, vendor_id: str, event_type: str, payload: dict[str, Any]) -> None:
        self._deliver("vendor", vendor_id, event_type, payload, self._vendor_subs)

    def publish_to_customer(self, customer_id: str, event_type: str, payload: dict[str, Any]) -> None:
        self._deliver("customer", customer_id, event_type, payload, self._customer_subs)

    def events_for(self, target_id: str) -> list[PublishedEvent]:
        with self._lock:
            return [e for e in self.events if e.target_id == target_id]

    def _deliver(
        self,
        channel: str,
        target_id: str,
        event_type: str,
        payload: dict[str, Any],
        table: dict[str, list[Subscriber]],
    ) -> None:
        with self._lock:
            self.events.append(PublishedEvent(channel, target_id, event_type, payload))
            subs = list(table.get(target_id, ()))
        for sub in subs:
            try:
                sub(event_type, payload)
            except Exception:
                logger.exception("subscriber failed on %s %s event %s", channel, target_id, event_type)


class MqttBroadcastGateway:
    """Publishes queue events as JSON on per-vendor / per-customer topics."""

    def __init__(self, *, mqtt: MqttClient, namespace: str = "vendorqueue/v1") -> None:
        from .mqtt_topics import customer_events, vendor_events

        self._customer_events = customer_events
        self._vendor_events = vendor_events
        self.mqtt = mqtt
        self.namespace = namespace

    def publish(self, vendor_id: str, event_type: str, payload: dict[str, Any]) -> None:
        msg = dict(payload)
        msg["type"] = event_type
        self.mqtt.publish(self._vendor_events(vendor_id, self.namespace), msg)

    def publish_to_customer(self, customer_id: str, event_type: str, payload: dict[str, Any]) -> None:
        msg = dict(payload)
        msg["type"] = event_type
        self.mqtt.publish(self._customer_events(customer_id, self.namespace), msg)
