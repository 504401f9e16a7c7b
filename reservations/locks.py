"""Mutual exclusion for booking writes, keyed by ``(room_id, booking_date)``.

Two layers cooperate: an in-process keyed lock so request handlers sharing one
interpreter queue up instead of racing, and, on PostgreSQL, a transaction-scoped
advisory lock so separate worker processes serialise too. The advisory lock is
released by the database on commit or rollback.

Booking writes also hold their room's gate in shared mode; deleting a room takes
the gate exclusively so no booking can land while the room is being removed.
Payment references are drawn from one global sequence, guarded by a lock that is
always taken last.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, List, Tuple

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from .config import get_settings
from .errors import ConcurrencyError

logger = logging.getLogger(__name__)

LockKey = Tuple[int, date]


def _advisory_id(name: str) -> int:
    digest = hashlib.blake2b(name.encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def advisory_key(key: LockKey) -> int:
    """Stable signed 64-bit id for ``pg_advisory_xact_lock``."""
    room_id, booking_date = key
    return _advisory_id(f"{room_id}:{booking_date.isoformat()}")


PAYMENT_SEQUENCE_KEY = _advisory_id("payment-reference-sequence")


class RoomGate:
    """Shared/exclusive gate for one room. Waiting writers block new readers."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_shared(self, timeout: float) -> bool:
        with self._condition:
            if not self._condition.wait_for(lambda: not self._writer and not self._waiting_writers, timeout):
                return False
            self._readers += 1
            return True

    def release_shared(self) -> None:
        with self._condition:
            self._readers -= 1
            if self._readers == 0:
                self._condition.notify_all()

    def acquire_exclusive(self, timeout: float) -> bool:
        with self._condition:
            self._waiting_writers += 1
            try:
                acquired = self._condition.wait_for(lambda: not self._writer and not self._readers, timeout)
            finally:
                self._waiting_writers -= 1
            if acquired:
                self._writer = True
            else:
                self._condition.notify_all()
            return acquired

    def release_exclusive(self) -> None:
        with self._condition:
            self._writer = False
            self._condition.notify_all()


class RoomDateLocks:
    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self._registry_lock = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[LockKey, list] = {}
        # room_id -> [gate, number of holders and waiters]
        self._gates: Dict[int, list] = {}
        self._sequence_lock = threading.Lock()

    def _checkout(self, key: LockKey) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: LockKey) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    def _checkout_gate(self, room_id: int) -> RoomGate:
        with self._registry_lock:
            entry = self._gates.setdefault(room_id, [RoomGate(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin_gate(self, room_id: int) -> None:
        with self._registry_lock:
            entry = self._gates[room_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._gates[room_id]

    def pending(self) -> int:
        with self._registry_lock:
            return len(self._locks) + len(self._gates)

    @contextmanager
    def hold(self, db: Session, *keys: LockKey, sequence: bool = False) -> Iterator[None]:
        """Hold every key for the duration of the block.

        Room gates are taken shared first, then the keys in sorted order, then the
        payment sequence when ``sequence`` is set.
        """
        ordered = sorted(set(keys))
        rooms = sorted({room_id for room_id, _ in ordered})
        gates: List[Tuple[int, RoomGate]] = []
        acquired: List[Tuple[LockKey, threading.Lock]] = []
        sequence_held = False
        try:
            for room_id in rooms:
                gate = self._checkout_gate(room_id)
                if not gate.acquire_shared(self.timeout):
                    self._checkin_gate(room_id)
                    logger.warning("Timed out waiting for room gate room=%s", room_id)
                    raise ConcurrencyError(
                        "This room is being changed; please retry",
                        code="lock_timeout",
                        details={"room_id": room_id},
                    )
                gates.append((room_id, gate))
            for key in ordered:
                lock = self._checkout(key)
                if not lock.acquire(timeout=self.timeout):
                    self._checkin(key)
                    logger.warning("Timed out waiting for booking lock room=%s date=%s", key[0], key[1])
                    raise ConcurrencyError(
                        "Another booking for this room and date is in progress; please retry",
                        code="lock_timeout",
                        details={"room_id": key[0], "date": key[1].isoformat()},
                    )
                acquired.append((key, lock))
            if sequence:
                if not self._sequence_lock.acquire(timeout=self.timeout):
                    logger.warning("Timed out waiting for the payment reference sequence")
                    raise ConcurrencyError(
                        "Another booking is being saved; please retry", code="lock_timeout"
                    )
                sequence_held = True
            self._lock_in_database(db, ordered, sequence)
            yield
        finally:
            if sequence_held:
                self._sequence_lock.release()
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)
            for room_id, gate in reversed(gates):
                gate.release_shared()
                self._checkin_gate(room_id)

    @contextmanager
    def hold_room(self, room_id: int) -> Iterator[None]:
        """Hold ``room_id`` exclusively; waits for every in-flight booking write on the room."""
        gate = self._checkout_gate(room_id)
        if not gate.acquire_exclusive(self.timeout):
            self._checkin_gate(room_id)
            logger.warning("Timed out waiting for exclusive room gate room=%s", room_id)
            raise ConcurrencyError(
                "Bookings for this room are in progress; please retry",
                code="lock_timeout",
                details={"room_id": room_id},
            )
        try:
            yield
        finally:
            gate.release_exclusive()
            self._checkin_gate(room_id)

    def _lock_in_database(self, db: Session, keys: List[LockKey], sequence: bool) -> None:
        if db.get_bind().dialect.name != "postgresql":
            return
        try:
            db.execute(text(f"SET LOCAL lock_timeout = '{int(self.timeout * 1000)}ms'"))
            for key in keys:
                db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(key)})
            if sequence:
                db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": PAYMENT_SEQUENCE_KEY})
        except DBAPIError as exc:
            raise ConcurrencyError(
                "Timed out waiting for the booking lock; please retry", code="lock_timeout"
            ) from exc


room_date_locks = RoomDateLocks(timeout=get_settings().lock_timeout_seconds)
