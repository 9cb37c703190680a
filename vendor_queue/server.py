from __future__ import annotations

# The queue server is the *authoritative brain* of the system.
#
# This file contains the MQTT layer only:
# - `MqttQueueServer` maps request messages onto QueueService, analytics and
#   appointment operations and replies on the requester's `reply_to` topic
# - `main()` wires vendors, estimator policy, broadcast gateway and MQTT
#
# Queue logic itself lives in `service.py` and is testable without a broker.

import argparse
import logging
import threading
import time
from datetime import date, time as dtime
from typing import Any, TYPE_CHECKING

from .analytics import AnalyticsRecorder
from .appointments import AppointmentBook
from .broadcast import QUEUE_UPDATED, BroadcastGateway
from .errors import ErrorResponse, QueueError
from .service import QueueService

if TYPE_CHECKING:
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)


class MqttQueueServer:
    """MQTT adapter around QueueService."""

    def __init__(
        self,
        *,
        mqtt: MqttClient,
        service: QueueService,
        gateway: BroadcastGateway,
        namespace: str = "vendorqueue/v1",
        analytics: AnalyticsRecorder | None = None,
        appointments: AppointmentBook | None = None,
    ) -> None:
        # Local import so tests can drive the server with a fake client.
        from .mqtt_topics import queue_requests

        self._queue_requests = queue_requests

        self.mqtt = mqtt
        self.service = service
        self.gateway = gateway
        self.namespace = namespace

        if analytics is None:
            analytics = AnalyticsRecorder()
            service.add_listener(analytics)
        self.analytics = analytics
        self.appointments = appointments or AppointmentBook(vendors=service.vendors)

        self._stop_event = threading.Event()
        self._snapshot_thread: threading.Thread | None = None

        self._handlers = {
            "join_queue": self._on_join,
            "call_next": self._on_call_next,
            "update_status": self._on_update_status,
            "leave_queue": self._on_leave,
            "queue_snapshot": self._on_snapshot,
            "recalculate_queue": self._on_recalculate,
            "customer_entries": self._on_customer_entries,
            "wait_time_accuracy": self._on_wait_time_accuracy,
            "analytics_daily": self._on_analytics_daily,
            "analytics_summary": self._on_analytics_summary,
            "book_appointment": self._on_book_appointment,
            "cancel_appointment": self._on_cancel_appointment,
            "complete_appointment": self._on_complete_appointment,
            "list_appointments": self._on_list_appointments,
        }

    def start(self, *, publish_snapshot_every: float = 0.0) -> None:
        self.mqtt.subscribe(self._queue_requests(self.namespace))
        self.mqtt.add_handler(self.handle_message)

        # Optional periodic resync for observers that missed an event.
        if publish_snapshot_every > 0:
            self._snapshot_thread = threading.Thread(
                target=self._snapshot_publisher_loop,
                args=(publish_snapshot_every,),
                daemon=True,
            )
            self._snapshot_thread.start()

    def stop(self) -> None:
        """Stop background threads. Call before disconnecting MQTT."""
        self._stop_event.set()
        t = self._snapshot_thread
        if t and t.is_alive():
            t.join(timeout=1.0)

    def publish_snapshots(self) -> None:
        for vendor_id in self.service.active_vendor_ids():
            try:
                snapshot = self.service.snapshot(vendor_id)
                payload = snapshot.to_dict()
                payload["entry"] = None
                self.gateway.publish(vendor_id, QUEUE_UPDATED, payload)
            except Exception:
                logger.exception("periodic snapshot for vendor=%s failed", vendor_id)

    def _snapshot_publisher_loop(self, interval: float) -> None:
        while not self._stop_event.is_set():
            self.publish_snapshots()
            self._stop_event.wait(interval)

    # -------------------- request dispatch --------------------

    def _reply(self, reply_to: str, corr_id: str | None, message: dict[str, Any]) -> None:
        msg = dict(message)
        if corr_id is not None:
            msg["corr_id"] = corr_id
        self.mqtt.publish(reply_to, msg)

    def handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        mtype = msg.get("type")
        corr_id = msg.get("corr_id") if isinstance(msg.get("corr_id"), str) else None
        reply_to = msg.get("reply_to") if isinstance(msg.get("reply_to"), str) else None

        handler = self._handlers.get(str(mtype))
        if handler is None or not reply_to:
            return

        try:
            response = handler(msg)
        except _BadRequest as e:
            response = ErrorResponse("bad_request", str(e)).to_message()
        except QueueError as e:
            logger.info("%s rejected: %s", mtype, e.code)
            response = e.to_response().to_message()
        except Exception:
            logger.exception("%s failed", mtype)
            response = ErrorResponse("internal_error", "Server error").to_message()
        self._reply(reply_to, corr_id, response)

    def _on_join(self, msg: dict[str, Any]) -> dict[str, Any]:
        result = self.service.join_queue(_required(msg, "vendor_id"), _required(msg, "customer_id"))
        return {"type": "joined", **result.to_dict()}

    def _on_call_next(self, msg: dict[str, Any]) -> dict[str, Any]:
        vendor_id = _required(msg, "vendor_id")
        result = self.service.call_next(vendor_id, acting_vendor_id=vendor_id)
        return {"type": "called", **result.to_dict()}

    def _on_update_status(self, msg: dict[str, Any]) -> dict[str, Any]:
        result = self.service.update_status(
            _required(msg, "entry_id"),
            _required(msg, "status"),
            acting_vendor_id=_required(msg, "vendor_id"),
        )
        return {"type": "status_updated", **result.to_dict()}

    def _on_leave(self, msg: dict[str, Any]) -> dict[str, Any]:
        result = self.service.customer_leave(_required(msg, "entry_id"), _required(msg, "customer_id"))
        return {"type": "left", **result.to_dict()}

    def _on_snapshot(self, msg: dict[str, Any]) -> dict[str, Any]:
        snapshot = self.service.snapshot(_required(msg, "vendor_id"))
        return {"type": "snapshot", **snapshot.to_dict()}

    def _on_recalculate(self, msg: dict[str, Any]) -> dict[str, Any]:
        snapshot = self.service.recalculate_all(_required(msg, "vendor_id"))
        return {"type": "recalculated", **snapshot.to_dict()}

    def _on_customer_entries(self, msg: dict[str, Any]) -> dict[str, Any]:
        entries = self.service.customer_entries(_required(msg, "customer_id"))
        return {"type": "customer_entries", "entries": [e.to_dict() for e in entries]}

    def _on_wait_time_accuracy(self, msg: dict[str, Any]) -> dict[str, Any]:
        accuracy = self.service.wait_time_accuracy(_required(msg, "vendor_id"))
        return {"type": "wait_time_accuracy", **accuracy}

    # -------------------- analytics --------------------

    def _on_analytics_daily(self, msg: dict[str, Any]) -> dict[str, Any]:
        vendor_id = _required(msg, "vendor_id")
        now = self.service.now()
        day = _date(msg, "date") if msg.get("date") is not None else now.date()
        record = self.analytics.daily(vendor_id, day, appointments=self.appointments, now=now)
        return {"type": "analytics_daily", **record.to_dict()}

    def _on_analytics_summary(self, msg: dict[str, Any]) -> dict[str, Any]:
        period = msg.get("period") if isinstance(msg.get("period"), str) else "7d"
        summary = self.analytics.vendor_summary(
            _required(msg, "vendor_id"),
            today=self.service.now().date(),
            period=period,
        )
        return {"type": "analytics_summary", **summary}

    # -------------------- appointments --------------------

    def _on_book_appointment(self, msg: dict[str, Any]) -> dict[str, Any]:
        try:
            appt = self.appointments.book(
                vendor_id=_required(msg, "vendor_id"),
                customer_id=_required(msg, "customer_id"),
                service_id=_required(msg, "service_id"),
                day=_date(msg, "date"),
                start=_time(msg, "start"),
                end=_time(msg, "end"),
                service_name=str(msg.get("service_name") or ""),
                notes=str(msg.get("notes") or ""),
            )
        except ValueError as e:
            raise _BadRequest(str(e)) from None
        return {"type": "booked", "appointment": appt.to_dict()}

    def _on_cancel_appointment(self, msg: dict[str, Any]) -> dict[str, Any]:
        customer_id = _optional(msg, "customer_id")
        vendor_id = _optional(msg, "vendor_id")
        if customer_id is None and vendor_id is None:
            raise _BadRequest("customer_id or vendor_id required")
        appt = self.appointments.cancel(
            _required(msg, "appointment_id"),
            customer_id=customer_id,
            vendor_id=vendor_id,
        )
        return {"type": "appointment_canceled", "appointment": appt.to_dict()}

    def _on_complete_appointment(self, msg: dict[str, Any]) -> dict[str, Any]:
        appt = self.appointments.complete(_required(msg, "appointment_id"), vendor_id=_required(msg, "vendor_id"))
        return {"type": "appointment_completed", "appointment": appt.to_dict()}

    def _on_list_appointments(self, msg: dict[str, Any]) -> dict[str, Any]:
        customer_id = _optional(msg, "customer_id")
        vendor_id = _optional(msg, "vendor_id")
        if vendor_id is not None:
            found = self.appointments.for_vendor(vendor_id)
        elif customer_id is not None:
            found = self.appointments.for_customer(customer_id)
        else:
            raise _BadRequest("customer_id or vendor_id required")
        return {"type": "appointments", "appointments": [a.to_dict() for a in found]}


class _BadRequest(Exception):
    pass


def _required(msg: dict[str, Any], key: str) -> str:
    value = msg.get(key)
    if not isinstance(value, str) or not value:
        raise _BadRequest(f"{key} required")
    return value


def _optional(msg: dict[str, Any], key: str) -> str | None:
    value = msg.get(key)
    return value if isinstance(value, str) and value else None


def _date(msg: dict[str, Any], key: str) -> date:
    try:
        return date.fromisoformat(_required(msg, key))
    except ValueError:
        raise _BadRequest(f"{key} must be YYYY-MM-DD") from None


def _time(msg: dict[str, Any], key: str) -> dtime:
    try:
        return dtime.fromisoformat(_required(msg, key))
    except ValueError:
        raise _BadRequest(f"{key} must be HH:MM") from None


def add_policy_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--baseline-weight", type=float, default=0.3)
    parser.add_argument("--observed-weight", type=float, default=0.7)
    parser.add_argument("--uncertainty-buffer", type=float, default=1.2)
    parser.add_argument("--max-wait-minutes", type=int, default=240)


def policy_from_args(args: argparse.Namespace):
    from .estimator import EstimatorPolicy

    return EstimatorPolicy(
        baseline_weight=args.baseline_weight,
        observed_weight=args.observed_weight,
        uncertainty_buffer=args.uncertainty_buffer,
        max_wait_minutes=args.max_wait_minutes,
    )


def build_directory(*, vendors_file: str | None, demo_vendors: int):
    from .models import VendorConfig
    from .vendors import VendorDirectory, VendorProfile

    if vendors_file:
        return VendorDirectory.from_json_file(vendors_file)

    directory = VendorDirectory()
    for i in range(1, demo_vendors + 1):
        directory.add(
            VendorProfile(
                vendor_id=f"V{i}",
                name=f"Demo vendor {i}",
                config=VendorConfig(max_concurrent_appointments=1, average_service_duration=30),
            )
        )
    return directory


def main() -> None:
    # Import MQTT dependencies only when running the real service.
    from .broadcast import MqttBroadcastGateway
    from .mqtt_client import MqttClient

    parser = argparse.ArgumentParser(description="Queue server (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default="vendorqueue/v1")
    parser.add_argument("--vendors", default=None, help="JSON file with vendor profiles")
    parser.add_argument(
        "--demo-vendors",
        type=int,
        default=1,
        help="when --vendors is not given, create V1..VN always-open vendors",
    )
    parser.add_argument(
        "--publish-snapshot-every",
        type=float,
        default=0.0,
        help="seconds between periodic full snapshots (0 = only on change)",
    )
    parser.add_argument("--log-level", default="INFO")
    add_policy_args(parser)
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    mqtt_client = MqttClient(client_id="queue-server", host=args.mqtt_host, port=args.mqtt_port)
    mqtt_client.start()

    gateway = MqttBroadcastGateway(mqtt=mqtt_client, namespace=args.namespace)
    service = QueueService(
        vendors=build_directory(vendors_file=args.vendors, demo_vendors=args.demo_vendors),
        gateway=gateway,
        policy=policy_from_args(args),
    )
    server = MqttQueueServer(mqtt=mqtt_client, service=service, gateway=gateway, namespace=args.namespace)
    server.start(publish_snapshot_every=args.publish_snapshot_every)

    print(f"[server] connected to MQTT {args.mqtt_host}:{args.mqtt_port}, namespace={args.namespace}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
        mqtt_client.stop()


if __name__ == "__main__":
    main()
