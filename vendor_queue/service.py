from __future__ import annotations

# QueueService is the only writer of queue state.
#
# Every operation follows the same shape:
#   1. external lookups (vendor config)                 -- no lock held
#   2. ledger mutation + estimate recompute + snapshot  -- vendor's ledger lock
#   3. broadcast + listener callbacks                   -- no lock held
#
# Locks are per vendor; a registry lock only guards ledger creation and the
# entry-id -> vendor index, never a mutation.

import logging
import math
import threading
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol

from .broadcast import (
    CUSTOMER_CALLED,
    CUSTOMER_JOINED,
    CUSTOMER_LEFT,
    QUEUE_STATUS_UPDATED,
    QUEUE_UPDATED,
    BroadcastGateway,
)
from .errors import (
    EmptyQueue,
    EstimationUnavailable,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    VendorClosed,
    VendorNotFound,
)
from .estimator import (
    DEFAULT_POLICY,
    EstimatorPolicy,
    estimate_wait_minutes,
    fallback_wait_minutes,
    wait_time_accuracy,
)
from .ledger import Clock, QueueLedger, utc_now
from .models import (
    CallNextResult,
    EntryStatus,
    JoinResult,
    QueueEntry,
    QueueSnapshot,
    QueueStats,
    ServiceSample,
    StatusUpdateResult,
    VendorConfig,
)
from .vendors import VendorLookup

logger = logging.getLogger(__name__)


class QueueListener(Protocol):
    def entry_joined(self, entry: QueueEntry, waiting_count: int) -> None: ...

    def entry_completed(self, entry: QueueEntry) -> None: ...


class QueueService:
    """Join / call-next / status / leave over per-vendor ledgers."""

    def __init__(
        self,
        *,
        vendors: VendorLookup,
        gateway: BroadcastGateway,
        policy: EstimatorPolicy = DEFAULT_POLICY,
        clock: Clock = utc_now,
        listeners: Iterable[QueueListener] = (),
    ) -> None:
        self.vendors = vendors
        self.gateway = gateway
        self.policy = policy
        self._clock = clock
        self._listeners: list[QueueListener] = list(listeners)

        self._registry_lock = threading.Lock()
        self._ledgers: dict[str, QueueLedger] = {}
        self._entry_vendor: dict[str, str] = {}

    def add_listener(self, listener: QueueListener) -> None:
        self._listeners.append(listener)

    # -------------------- ledger registry --------------------

    def ledger(self, vendor_id: str) -> QueueLedger:
        with self._registry_lock:
            ledger = self._ledgers.get(vendor_id)
            if ledger is None:
                ledger = QueueLedger(vendor_id, clock=self._clock)
                self._ledgers[vendor_id] = ledger
            return ledger

    def active_vendor_ids(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._ledgers)

    def _existing_ledger(self, vendor_id: str) -> QueueLedger | None:
        with self._registry_lock:
            return self._ledgers.get(vendor_id)

    def _ledger_for_entry(self, entry_id: str) -> QueueLedger:
        with self._registry_lock:
            vendor_id = self._entry_vendor.get(entry_id)
            ledger = self._ledgers.get(vendor_id) if vendor_id is not None else None
        if ledger is None:
            raise NotFound()
        return ledger

    # -------------------- operations --------------------

    def join_queue(self, vendor_id: str, customer_id: str) -> JoinResult:
        """Put `customer_id` at the back of `vendor_id`'s line."""
        status = self.vendors.get_vendor_config(vendor_id)
        if not status.is_open_now:
            raise VendorClosed()

        ledger = self.ledger(vendor_id)
        with ledger.lock:
            appended = ledger.append(customer_id)
            with self._registry_lock:
                self._entry_vendor[appended.id] = vendor_id

            # Appending never moves anyone else, so only the new entry needs an estimate.
            samples = ledger.recent_served_samples(self.policy.sample_limit)
            ledger.set_estimate(appended.id, self._estimate(ledger.vendor_id, appended.position, status.config, samples))
            entry = ledger.get(appended.id)
            snapshot = self._snapshot_locked(ledger, status.config)

        logger.info("vendor=%s customer=%s joined at position %d", vendor_id, customer_id, entry.position)

        ok = self._broadcast(
            (self.gateway.publish, vendor_id, QUEUE_UPDATED, _event_payload(snapshot, entry)),
            (self.gateway.publish_to_customer, customer_id, CUSTOMER_JOINED, _event_payload(snapshot, entry)),
        )
        self._notify("entry_joined", entry, snapshot.stats.total_waiting)
        return JoinResult(entry=entry, stats=snapshot.stats, broadcast_ok=ok)

    def call_next(self, vendor_id: str, *, acting_vendor_id: str | None = None) -> CallNextResult:
        """Serve the entry at position 1."""
        if acting_vendor_id is not None and acting_vendor_id != vendor_id:
            raise NotAuthorized()

        ledger = self._existing_ledger(vendor_id)
        if ledger is None:
            raise EmptyQueue()

        config = self._config_or_none(vendor_id)
        with ledger.lock:
            head = ledger.peek_next()
            if head is None:
                raise EmptyQueue()
            served = ledger.remove(head.id, EntryStatus.SERVED)
            self._recompute_locked(ledger, config)
            snapshot = self._snapshot_locked(ledger, config)

        logger.info("vendor=%s called customer=%s, %d still waiting", vendor_id, served.customer_id, len(snapshot.waiting))

        ok = self._broadcast(
            (self.gateway.publish, vendor_id, CUSTOMER_CALLED, _event_payload(snapshot, served)),
            (self.gateway.publish_to_customer, served.customer_id, CUSTOMER_CALLED, _event_payload(snapshot, served)),
        )
        self._notify("entry_completed", served)
        return CallNextResult(
            served_entry=served,
            remaining_waiting=snapshot.waiting,
            stats=snapshot.stats,
            broadcast_ok=ok,
        )

    def update_status(
        self,
        entry_id: str,
        status: EntryStatus | str,
        *,
        acting_vendor_id: str | None = None,
    ) -> StatusUpdateResult:
        """Vendor-side transition of a waiting entry to served/skipped/left."""
        try:
            target = EntryStatus(status)
        except ValueError:
            raise InvalidTransition(f"unknown status {status!r}") from None
        if not target.is_terminal:
            raise InvalidTransition("status must be served, skipped or left")

        ledger = self._ledger_for_entry(entry_id)
        if acting_vendor_id is not None and acting_vendor_id != ledger.vendor_id:
            raise NotAuthorized()
        return self._finish(ledger, entry_id, target, QUEUE_STATUS_UPDATED)

    def customer_leave(self, entry_id: str, customer_id: str) -> StatusUpdateResult:
        """Self-service leave; only the entry's own customer may do it.

        Unknown ids and other customers' entries get the same denial, so the
        caller learns nothing about entries it does not own.
        """
        try:
            ledger = self._ledger_for_entry(entry_id)
            owner = ledger.get(entry_id).customer_id
        except NotFound:
            raise NotAuthorized() from None
        if owner != customer_id:
            raise NotAuthorized()
        return self._finish(ledger, entry_id, EntryStatus.LEFT, CUSTOMER_LEFT)

    def recalculate_all(self, vendor_id: str) -> QueueSnapshot:
        """Recompute every waiting estimate and publish the result."""
        ledger = self.ledger(vendor_id)
        config = self._config_or_none(vendor_id)
        with ledger.lock:
            self._recompute_locked(ledger, config)
            snapshot = self._snapshot_locked(ledger, config)
        self._broadcast((self.gateway.publish, vendor_id, QUEUE_UPDATED, _event_payload(snapshot, None)))
        return snapshot

    # -------------------- reads --------------------

    def snapshot(self, vendor_id: str) -> QueueSnapshot:
        config = self._config_or_none(vendor_id)
        ledger = self._existing_ledger(vendor_id)
        if ledger is None:
            if config is None:
                raise VendorNotFound()
            ledger = self.ledger(vendor_id)
        with ledger.lock:
            return self._snapshot_locked(ledger, config)

    def queue_stats(self, vendor_id: str) -> QueueStats:
        return self.snapshot(vendor_id).stats

    def get_entry(self, entry_id: str) -> QueueEntry:
        return self._ledger_for_entry(entry_id).get(entry_id)

    def customer_entries(self, customer_id: str) -> list[QueueEntry]:
        """The customer's waiting entries across all vendors."""
        with self._registry_lock:
            ledgers = list(self._ledgers.values())
        found = [ledger.waiting_entry_for(customer_id) for ledger in ledgers]
        entries = [e for e in found if e is not None]
        entries.sort(key=lambda e: e.join_time, reverse=True)
        return entries

    def wait_time_accuracy(self, vendor_id: str, *, limit: int = 50) -> dict[str, Any]:
        """How close past estimates were for the vendor's most recently served entries."""
        ledger = self._existing_ledger(vendor_id)
        if ledger is None:
            if self._config_or_none(vendor_id) is None:
                raise VendorNotFound()
            return wait_time_accuracy([], limit=limit)
        served = [e for e in ledger.history() if e.served_at is not None]
        served.sort(key=lambda e: e.served_at, reverse=True)
        return wait_time_accuracy(served, limit=limit)

    def now(self) -> datetime:
        return self._clock()

    # -------------------- internals --------------------

    def _finish(
        self,
        ledger: QueueLedger,
        entry_id: str,
        status: EntryStatus,
        event_type: str,
    ) -> StatusUpdateResult:
        config = self._config_or_none(ledger.vendor_id)
        with ledger.lock:
            entry = ledger.remove(entry_id, status)
            self._recompute_locked(ledger, config)
            snapshot = self._snapshot_locked(ledger, config)

        logger.info(
            "vendor=%s entry=%s customer=%s -> %s",
            ledger.vendor_id,
            entry.id,
            entry.customer_id,
            status.value,
        )

        ok = self._broadcast(
            (self.gateway.publish, ledger.vendor_id, event_type, _event_payload(snapshot, entry)),
            (self.gateway.publish_to_customer, entry.customer_id, event_type, _event_payload(snapshot, entry)),
        )
        self._notify("entry_completed", entry)
        return StatusUpdateResult(entry=entry, snapshot=snapshot, broadcast_ok=ok)

    def _config_or_none(self, vendor_id: str) -> VendorConfig | None:
        try:
            return self.vendors.get_vendor_config(vendor_id).config
        except VendorNotFound:
            logger.warning("vendor=%s has no config, using per-person fallback", vendor_id)
            return None

    def _estimate(
        self,
        vendor_id: str,
        position: int,
        config: VendorConfig | None,
        samples: list[ServiceSample],
    ) -> int:
        if config is None:
            return fallback_wait_minutes(position, policy=self.policy)
        try:
            return estimate_wait_minutes(config, position, samples, policy=self.policy)
        except EstimationUnavailable as e:
            logger.warning("vendor=%s estimate failed (%s), using per-person fallback", vendor_id, e)
            return fallback_wait_minutes(position, config.estimated_per_person_wait, policy=self.policy)

    def _recompute_locked(self, ledger: QueueLedger, config: VendorConfig | None) -> None:
        samples = ledger.recent_served_samples(self.policy.sample_limit)
        for entry in ledger.list_waiting():
            ledger.set_estimate(entry.id, self._estimate(ledger.vendor_id, entry.position, config, samples))

    def _snapshot_locked(self, ledger: QueueLedger, config: VendorConfig | None) -> QueueSnapshot:
        waiting = ledger.list_waiting()
        avg = sum(e.estimated_wait_time for e in waiting) / len(waiting) if waiting else 0.0
        stats = QueueStats(
            total_waiting=len(waiting),
            average_wait_time=int(math.floor(avg + 0.5)),
            served_today=ledger.served_on(ledger.today()),
            current_throughput=config.max_concurrent_appointments if config else 1,
            next_available_position=len(waiting) + 1,
        )
        return QueueSnapshot(vendor_id=ledger.vendor_id, waiting=waiting, stats=stats)

    def _broadcast(self, *calls: tuple[Callable[..., None], str, str, dict[str, Any]]) -> bool:
        """Run publish calls; failures are logged and reported, never raised."""
        ok = True
        for publish, target_id, event_type, payload in calls:
            try:
                publish(target_id, event_type, payload)
            except Exception:
                ok = False
                logger.exception("broadcast of %s to %s failed; state is committed", event_type, target_id)
        return ok

    def _notify(self, method: str, *args: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception("queue listener %r failed in %s", listener, method)


def _event_payload(snapshot: QueueSnapshot, entry: QueueEntry | None) -> dict[str, Any]:
    """Full waiting list + stats + the affected entry, for either channel."""
    payload = snapshot.to_dict()
    payload["entry"] = entry.to_dict() if entry is not None else None
    return payload

