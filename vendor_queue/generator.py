from __future__ import annotations

# Customer generator.
#
# Simulates a stream of arriving customers using the exact same MQTT
# request/response protocol as the interactive `customer` CLI.
#
# Poisson arrival model:
# - Customers arrive according to a Poisson process with rate λ (customers/sec)
# - Inter-arrival times are exponential with mean 1/λ
# - Each customer picks one of the configured vendors uniformly at random
# - With probability `leave_probability` a customer gives up right after
#   joining (exercises the self-service leave path)

import argparse
import random
import time

from .arrival import sample_exponential_interarrival
from .mqtt_client import MqttClient
from .mqtt_topics import queue_requests, queue_responses


def run_generator(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    vendor_ids: list[str],
    rate_per_sec: float,
    name_prefix: str = "Cust",
    max_customers: int | None = None,
    seed: int | None = None,
    leave_probability: float = 0.0,
) -> None:
    """Generate customers indefinitely (or for max_customers)."""
    if not vendor_ids:
        raise ValueError("at least one vendor id is required")
    if not 0.0 <= leave_probability <= 1.0:
        raise ValueError("leave_probability must be within [0, 1]")

    rng = random.Random(seed) if seed is not None else random.Random()

    client_id = f"generator-{int(time.time())}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = queue_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    print(
        f"[generator] connected to MQTT {mqtt_host}:{mqtt_port}, namespace={namespace}, "
        f"rate={rate_per_sec} cust/s, vendors={','.join(vendor_ids)}"
    )

    def request(message: dict) -> dict:
        return mqtt.request(
            request_topic=queue_requests(namespace),
            response_topic=reply_topic,
            message=message,
            timeout=5.0,
        )

    i = 0
    try:
        while max_customers is None or i < max_customers:
            dt = sample_exponential_interarrival(rate_per_sec=rate_per_sec, rng=rng)
            time.sleep(dt)

            i += 1
            customer_id = f"{name_prefix}{i}"
            vendor_id = rng.choice(vendor_ids)

            resp = request({"type": "join_queue", "vendor_id": vendor_id, "customer_id": customer_id})
            if resp.get("type") != "joined":
                print(f"[generator] {customer_id} -> {vendor_id} error {resp.get('code')} (dt={dt:0.2f}s)")
                continue

            print(
                f"[generator] {customer_id} -> {vendor_id} "
                f"(pos {resp['position']}, ~{resp['estimated_wait_time']} min, dt={dt:0.2f}s)"
            )

            if leave_probability and rng.random() < leave_probability:
                resp = request({"type": "leave_queue", "entry_id": resp["entry_id"], "customer_id": customer_id})
                print(f"[generator] {customer_id} gave up: {resp.get('type')}")

        print(f"[generator] reached max_customers={max_customers}, stopping")
    except KeyboardInterrupt:
        pass
    finally:
        mqtt.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Customer generator (Poisson arrivals over MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default="vendorqueue/v1")
    parser.add_argument("--vendor-id", action="append", required=True, help="repeat for several vendors")
    parser.add_argument(
        "--rate",
        type=float,
        required=True,
        help="arrival rate λ in customers/second (Poisson process)",
    )
    parser.add_argument("--name-prefix", default="Cust")
    parser.add_argument("--max-customers", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--leave-probability", type=float, default=0.0)
    args = parser.parse_args()

    run_generator(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        vendor_ids=args.vendor_id,
        rate_per_sec=args.rate,
        name_prefix=args.name_prefix,
        max_customers=args.max_customers,
        seed=args.seed,
        leave_probability=args.leave_probability,
    )


if __name__ == "__main__":
    main()
