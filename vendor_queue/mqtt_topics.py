"""MQTT topic helpers.

We keep topic construction in one place so all components agree on naming.

Topic layout under a configurable namespace (default: `vendorqueue/v1`):

Request/response:
- `<ns>/queue/requests`
- `<ns>/queue/responses/<client_id>`

Broadcast:
- `<ns>/vendors/<vendor_id>/events`
    Full waiting-list snapshots after every queue change. The vendor console
    and every waiting customer of that vendor subscribe here.
- `<ns>/customers/<customer_id>/events`
    Events addressed to one customer (joined, called, left, status changed).
- `<ns>/vendors/<vendor_id>/counters/<counter_id>/status`
    Each service counter publishes its own status (heartbeat + served count).

You can run multiple independent demos on a shared broker by changing the
`namespace` parameter (e.g. `--namespace demo/alice`).
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "vendorqueue/v1"


def queue_requests(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/queue/requests"


def queue_responses(client_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/queue/responses/{client_id}"


def vendor_events(vendor_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/vendors/{vendor_id}/events"


def customer_events(customer_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/customers/{customer_id}/events"


def counter_status(vendor_id: str, counter_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/vendors/{vendor_id}/counters/{counter_id}/status"
