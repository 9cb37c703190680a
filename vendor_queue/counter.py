from __future__ import annotations

# Service counter agent.
#
# A counter is the vendor console in simulation form:
# - it repeatedly asks the server to call the next customer of its vendor
# - it "serves" that customer by sleeping a sampled service time
# - it publishes its own status periodically so observers can monitor it
#
# An empty queue is a normal answer, not an error: the counter just waits.

import argparse
import logging
import random
import time

from .arrival import sample_service_seconds
from .mqtt_client import MqttClient
from .mqtt_topics import counter_status, queue_requests, queue_responses

logger = logging.getLogger(__name__)


def run_counter(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    vendor_id: str,
    counter_id: str,
    mean_service_seconds: float = 2.0,
    min_service_seconds: float = 0.2,
    idle_poll_seconds: float = 0.5,
    status_every: float = 2.0,
    seed: int | None = None,
    max_served: int | None = None,
) -> int:
    """Serve customers until interrupted (or `max_served` is reached).

    Returns the number of customers served.
    """
    rng = random.Random(seed) if seed is not None else None

    client_id = f"counter-{vendor_id}-{counter_id}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = queue_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)
    status_topic = counter_status(vendor_id, counter_id, namespace)

    print(f"[counter {vendor_id}/{counter_id}] started, mean service {mean_service_seconds:0.2f}s")

    last_status = 0.0
    served_count = 0
    try:
        while max_served is None or served_count < max_served:
            now = time.time()
            if now - last_status >= status_every:
                mqtt.publish(
                    status_topic,
                    {
                        "type": "counter_status",
                        "vendor_id": vendor_id,
                        "counter_id": counter_id,
                        "served_count": served_count,
                        "ts": now,
                    },
                )
                last_status = now

            resp = mqtt.request(
                request_topic=queue_requests(namespace),
                response_topic=reply_topic,
                message={"type": "call_next", "vendor_id": vendor_id},
                timeout=5.0,
            )

            if resp.get("type") != "called":
                if resp.get("code") != "empty_queue":
                    logger.warning("call_next for %s failed: %s", vendor_id, resp)
                time.sleep(idle_poll_seconds)
                continue

            st = sample_service_seconds(mean_seconds=mean_service_seconds, min_seconds=min_service_seconds, rng=rng)
            print(
                f"[counter {vendor_id}/{counter_id}] serving {resp['served_customer_id']} "
                f"({resp['remaining_count']} waiting, service={st:0.2f}s)"
            )
            time.sleep(st)
            served_count += 1
    except KeyboardInterrupt:
        pass
    finally:
        mqtt.stop()
    return served_count


def main() -> None:
    parser = argparse.ArgumentParser(description="Service counter agent (MQTT)")
    parser.add_argument("--vendor-id", required=True)
    parser.add_argument("--counter-id", default="1")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default="vendorqueue/v1")
    parser.add_argument("--mean-service-seconds", type=float, default=2.0)
    parser.add_argument("--min-service-seconds", type=float, default=0.2)
    parser.add_argument("--status-every", type=float, default=2.0, help="seconds between status publications")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper())

    run_counter(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        namespace=args.namespace,
        vendor_id=args.vendor_id,
        counter_id=args.counter_id,
        mean_service_seconds=args.mean_service_seconds,
        min_service_seconds=args.min_service_seconds,
        status_every=args.status_every,
        seed=args.seed,
    )


if __name__ == "__main__":
    main()
