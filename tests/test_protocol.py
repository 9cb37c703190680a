from vendor_queue.mqtt_client import decode_payload
from vendor_queue.mqtt_topics import (
    counter_status,
    customer_events,
    queue_requests,
    queue_responses,
    vendor_events,
)


def test_topic_helpers():
    ns = "demo/v1"
    assert queue_requests(ns) == "demo/v1/queue/requests"
    assert queue_responses("c1", ns) == "demo/v1/queue/responses/c1"
    assert vendor_events("V1", ns) == "demo/v1/vendors/V1/events"
    assert customer_events("alice", ns) == "demo/v1/customers/alice/events"
    assert counter_status("V1", "2", ns) == "demo/v1/vendors/V1/counters/2/status"


def test_decode_payload():
    assert decode_payload(b'{"type":"join_queue"}') == {"type": "join_queue"}
    assert decode_payload('{"a":1}') == {"a": 1}
    assert decode_payload(b"[1,2]") is None
    assert decode_payload(b"not json") is None
    assert decode_payload(b"\xff\xfe") is None
