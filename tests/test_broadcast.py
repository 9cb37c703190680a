from vendor_queue.broadcast import InMemoryBroadcastGateway, MqttBroadcastGateway


class FakeMqtt:
    def __init__(self):
        self.published = []

    def publish(self, topic, message):
        self.published.append((topic, message))


def test_in_memory_fan_out_per_channel():
    gw = InMemoryBroadcastGateway()
    vendor_seen, customer_seen = [], []
    gw.subscribe_vendor("V", lambda event, payload: vendor_seen.append((event, payload["n"])))
    gw.subscribe_customer("A", lambda event, payload: customer_seen.append(event))

    gw.publish("V", "queue-updated", {"n": 1})
    gw.publish("W", "queue-updated", {"n": 2})
    gw.publish_to_customer("A", "customer-called", {})

    assert vendor_seen == [("queue-updated", 1)]
    assert customer_seen == ["customer-called"]
    assert len(gw.events) == 3


def test_failing_subscriber_does_not_block_others():
    gw = InMemoryBroadcastGateway()
    seen = []

    def broken(event, payload):
        raise RuntimeError("render failed")

    gw.subscribe_vendor("V", broken)
    gw.subscribe_vendor("V", lambda event, payload: seen.append(event))

    gw.publish("V", "customer-left", {})

    assert seen == ["customer-left"]


def test_unsubscribe():
    gw = InMemoryBroadcastGateway()
    seen = []
    sub = lambda event, payload: seen.append(event)  # noqa: E731
    gw.subscribe_vendor("V", sub)
    gw.unsubscribe_vendor("V", sub)
    gw.publish("V", "queue-updated", {})
    assert seen == []


def test_subscriber_receives_snapshots_from_service(service, gateway):
    views = []
    gateway.subscribe_vendor("V", lambda event, payload: views.append([w["customer_id"] for w in payload["waiting"]]))

    service.join_queue("V", "A")
    service.join_queue("V", "B")
    service.call_next("V")

    assert views == [["A"], ["A", "B"], ["B"]]


def test_mqtt_gateway_topics_and_payload():
    mqtt = FakeMqtt()
    gw = MqttBroadcastGateway(mqtt=mqtt, namespace="demo")

    payload = {"vendor_id": "V", "waiting": []}
    gw.publish("V", "queue-updated", payload)
    gw.publish_to_customer("A", "customer-called", {"vendor_id": "V"})

    assert mqtt.published == [
        ("demo/vendors/V/events", {"vendor_id": "V", "waiting": [], "type": "queue-updated"}),
        ("demo/customers/A/events", {"vendor_id": "V", "type": "customer-called"}),
    ]
    assert "type" not in payload


def test_every_event_carries_full_snapshot_on_both_channels(service, gateway):
    entries = {c: service.join_queue("V", c).entry for c in "ABCD"}
    service.call_next("V")
    service.customer_leave(entries["B"].id, "B")
    service.update_status(entries["C"].id, "skipped", acting_vendor_id="V")

    assert {e.channel for e in gateway.events} == {"vendor", "customer"}
    for event in gateway.events:
        assert {"vendor_id", "waiting", "stats", "entry"} <= set(event.payload), (event.channel, event.event_type)
        assert event.payload["stats"]["total_waiting"] == len(event.payload["waiting"])

    left = [e for e in gateway.events_for("B") if e.event_type == "customer-left"]
    assert [w["customer_id"] for w in left[0].payload["waiting"]] == ["C", "D"]
    assert left[0].payload["entry"]["status"] == "left"

    skipped = gateway.events_for("C")[-1]
    assert skipped.event_type == "queue-status-updated"
    assert [(w["customer_id"], w["position"]) for w in skipped.payload["waiting"]] == [("D", 1)]
