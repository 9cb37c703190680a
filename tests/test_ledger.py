import threading
from datetime import date

import pytest

from vendor_queue.errors import DuplicateEntry, InvalidTransition, NotFound
from vendor_queue.ledger import QueueLedger
from vendor_queue.models import EntryStatus


def waiting_view(ledger):
    return [(e.customer_id, e.position) for e in ledger.list_waiting()]


def test_append_assigns_fifo_positions(clock):
    ledger = QueueLedger("V", clock=clock)
    for c in "ABCD":
        ledger.append(c)
    assert waiting_view(ledger) == [("A", 1), ("B", 2), ("C", 3), ("D", 4)]
    assert ledger.list_waiting()[0].join_time == clock.now


def test_duplicate_waiting_customer_rejected(clock):
    ledger = QueueLedger("V", clock=clock)
    ledger.append("A")
    with pytest.raises(DuplicateEntry):
        ledger.append("A")
    assert ledger.waiting_count() == 1


def test_remove_closes_gap_in_order(clock):
    ledger = QueueLedger("V", clock=clock)
    entries = {c: ledger.append(c) for c in "ABCD"}

    removed = ledger.remove(entries["B"].id, EntryStatus.SKIPPED)

    assert removed.status is EntryStatus.SKIPPED
    assert removed.position == 2  # frozen historical value
    assert removed.skipped_at == clock.now
    assert waiting_view(ledger) == [("A", 1), ("C", 2), ("D", 3)]


def test_removing_last_position_shifts_nobody(clock):
    ledger = QueueLedger("V", clock=clock)
    ledger.append("A")
    ledger.append("B")
    d = ledger.append("D")

    left = ledger.remove(d.id, EntryStatus.LEFT)

    assert left.left_at == clock.now
    assert left.served_at is None
    assert waiting_view(ledger) == [("A", 1), ("B", 2)]


def test_terminal_status_is_absorbing(clock):
    ledger = QueueLedger("V", clock=clock)
    a = ledger.append("A")
    ledger.remove(a.id, EntryStatus.SERVED)
    served_at = ledger.get(a.id).served_at

    clock.advance(minutes=5)
    for status in (EntryStatus.SERVED, EntryStatus.SKIPPED, EntryStatus.LEFT):
        with pytest.raises(InvalidTransition):
            ledger.remove(a.id, status)

    entry = ledger.get(a.id)
    assert entry.status is EntryStatus.SERVED
    assert entry.served_at == served_at


def test_remove_to_waiting_is_invalid(clock):
    ledger = QueueLedger("V", clock=clock)
    a = ledger.append("A")
    with pytest.raises(InvalidTransition):
        ledger.remove(a.id, EntryStatus.WAITING)
    assert ledger.get(a.id).is_waiting


def test_remove_unknown_entry(clock):
    ledger = QueueLedger("V", clock=clock)
    with pytest.raises(NotFound):
        ledger.remove("nope", EntryStatus.LEFT)


def test_customer_can_rejoin_after_leaving(clock):
    ledger = QueueLedger("V", clock=clock)
    a1 = ledger.append("A")
    ledger.append("B")
    ledger.remove(a1.id, EntryStatus.LEFT)

    a2 = ledger.append("A")

    assert a2.id != a1.id
    assert waiting_view(ledger) == [("B", 1), ("A", 2)]
    assert len(ledger.history()) == 3


def test_returned_entries_are_copies(clock):
    ledger = QueueLedger("V", clock=clock)
    a = ledger.append("A")
    a.position = 99
    assert ledger.get(a.id).position == 1


def test_recent_served_samples_newest_first(clock):
    ledger = QueueLedger("V", clock=clock)
    ids = [ledger.append(c).id for c in "ABCDEFG"]
    for i, entry_id in enumerate(ids):
        clock.advance(minutes=i + 1)
        ledger.remove(entry_id, EntryStatus.SERVED)

    got = ledger.recent_served_samples(limit=5)

    assert len(got) == 5
    served_times = [s.served_at for s in got]
    assert served_times == sorted(served_times, reverse=True)
    assert ledger.served_on(clock.now.date()) == 7


def test_concurrent_mutations_keep_positions_contiguous(clock):
    ledger = QueueLedger("V", clock=clock)
    errors = []

    def joiner(prefix):
        for i in range(50):
            ledger.append(f"{prefix}-{i}")

    def remover():
        removed = 0
        while removed < 40:
            head = ledger.peek_next()
            if head is None:
                continue
            try:
                ledger.remove(head.id, EntryStatus.SERVED)
                removed += 1
            except InvalidTransition:
                pass  # another remover got it first
            except Exception as e:  # pragma: no cover
                errors.append(e)
                return

    threads = [threading.Thread(target=joiner, args=(p,)) for p in "xyz"]
    threads += [threading.Thread(target=remover) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert not errors
    positions = [e.position for e in ledger.list_waiting()]
    assert positions == list(range(1, len(positions) + 1))
    assert len(positions) == 150 - 80


def test_served_samples_ignore_other_terminal_states(clock):
    ledger = QueueLedger("V", clock=clock)
    a, b, c, d = (ledger.append(x) for x in "ABCD")

    clock.advance(minutes=10)
    ledger.remove(b.id, EntryStatus.SKIPPED)
    ledger.remove(a.id, EntryStatus.SERVED)
    clock.advance(minutes=10)
    ledger.remove(c.id, EntryStatus.LEFT)
    ledger.remove(d.id, EntryStatus.SERVED)

    got = ledger.recent_served_samples(limit=5)

    assert [s.minutes for s in got] == [20, 10]
    assert ledger.recent_served_samples(limit=1)[0].minutes == 20
    assert ledger.recent_served_samples(limit=0) == []
    assert ledger.served_on(clock.now.date()) == 2
    assert ledger.served_on(date(2026, 3, 1)) == 0
