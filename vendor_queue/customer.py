from __future__ import annotations

# Customer client.
#
# A customer is a short-lived process:
# - connect to broker
# - publish a join_queue (or leave_queue) request
# - wait for the server's reply, print it and exit

import argparse
import time
from typing import Any

from .mqtt_client import MqttClient
from .mqtt_topics import queue_requests, queue_responses


def _send(*, mqtt_host: str, mqtt_port: int, namespace: str, customer_id: str, message: dict[str, Any]) -> dict:
    # Unique client id so multiple customers can run concurrently.
    client_id = f"customer-{customer_id}-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = queue_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    try:
        return mqtt.request(
            request_topic=queue_requests(namespace),
            response_topic=reply_topic,
            message=message,
            timeout=5.0,
        )
    finally:
        mqtt.stop()


def join_queue(*, mqtt_host: str, mqtt_port: int, namespace: str, vendor_id: str, customer_id: str) -> dict:
    return _send(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        customer_id=customer_id,
        message={"type": "join_queue", "vendor_id": vendor_id, "customer_id": customer_id},
    )


def leave_queue(*, mqtt_host: str, mqtt_port: int, namespace: str, entry_id: str, customer_id: str) -> dict:
    return _send(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        customer_id=customer_id,
        message={"type": "leave_queue", "entry_id": entry_id, "customer_id": customer_id},
    )


def describe_response(customer_id: str, resp: dict) -> str:
    rtype = resp.get("type")
    if rtype == "joined":
        return (
            f"[customer {customer_id}] in line at position {resp['position']} "
            f"(~{resp['estimated_wait_time']} min, entry {resp['entry_id']})"
        )
    if rtype == "left":
        return f"[customer {customer_id}] left the queue"
    if resp.get("code") == "duplicate_entry":
        return f"[customer {customer_id}] already in this queue"
    return f"[customer {customer_id}] error: {resp.get('message', resp)}"


def main() -> None:
    parser = argparse.ArgumentParser(description="Customer client (MQTT)")
    parser.add_argument("--customer-id", required=True)
    parser.add_argument("--vendor-id", help="vendor queue to join")
    parser.add_argument("--leave", metavar="ENTRY_ID", help="leave the queue entry instead of joining")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default="vendorqueue/v1")
    args = parser.parse_args()

    if args.leave:
        resp = leave_queue(
            mqtt_host=args.mqtt_host,
            mqtt_port=args.mqtt_port,
            namespace=args.namespace,
            entry_id=args.leave,
            customer_id=args.customer_id,
        )
    elif args.vendor_id:
        resp = join_queue(
            mqtt_host=args.mqtt_host,
            mqtt_port=args.mqtt_port,
            namespace=args.namespace,
            vendor_id=args.vendor_id,
            customer_id=args.customer_id,
        )
    else:
        parser.error("either --vendor-id or --leave is required")

    print(describe_response(args.customer_id, resp))


if __name__ == "__main__":
    main()
