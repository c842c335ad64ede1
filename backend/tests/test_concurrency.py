# Overview: Threaded tests for the locking and retry paths on a file-backed SQLite database.

"""
Concurrency tests.

Two threads race through the same unit of work, each in its own app context
and session. A barrier holds both threads right after their first read, so
both act on the same stale state before either writes.

Verifies:
- concurrent shift starts for one employee: one shift, one ShiftAlreadyActive
- concurrent credit postings on one creditor: no ledger append is lost
- concurrent settlements against one balance: the loser re-reads and is refused
- concurrent confirmations of one handover: exactly one winner
"""

import os
import tempfile
import threading
import unittest
from datetime import date
from decimal import Decimal
from unittest import mock

from fuelsync import create_app
from fuelsync.domain.allocation import CreditAllocationRequest, PaymentBreakdown
from fuelsync.domain.handovers import STATUS_CONFIRMED, STATUS_DISPUTED
from fuelsync.errors import AlreadyConfirmed, AlreadyDisputed, ShiftAlreadyActive
from fuelsync.extensions import db
from fuelsync.models import AuditEvent, CashHandover, CreditLedgerEntry, Shift
from fuelsync.services import (
    credit_service,
    handover_service,
    reading_service,
    shift_service,
    station_service,
    transaction_service,
)
from fuelsync.validation import ValidationError

BUSINESS_DAY = date(2026, 3, 1)


def _gate(func, barrier):
    """Wrap func so each thread waits at the barrier after its first call only."""
    seen = set()
    seen_lock = threading.Lock()

    def _wrapped(*args, **kwargs):
        result = func(*args, **kwargs)
        ident = threading.get_ident()
        with seen_lock:
            first = ident not in seen
            seen.add(ident)
        if first:
            barrier.wait()
        return result

    return _wrapped


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "RETRY_ATTEMPTS": 10,
            "RETRY_BACKOFF_SECONDS": 0.01,
            "LOG_LEVEL": "WARNING",
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            station = station_service.create_station("Concurrency Station", "CONC1")
            self.station_id = station.id

            manager = station_service.create_user(
                "Concurrent Manager", "manager@concurrency.test", role="manager", station_id=station.id
            )
            station_service.assign_station_roles(station.id, manager_user_id=manager.id)
            self.manager_id = manager.id

            employee = station_service.create_user(
                "Concurrent Employee", "employee@concurrency.test", role="employee", station_id=station.id
            )
            self.employee_id = employee.id

            self.nozzle_ids = [
                station_service.create_nozzle(station.id, label, "petrol", Decimal("100.000")).id
                for label in ("P1-N1", "P1-N2")
            ]
            station_service.set_fuel_price(station.id, "petrol", 9550, date(2026, 1, 1))

            creditor = credit_service.create_creditor(
                station.id, "Concurrent Transport", credit_limit_cents=500000
            )
            self.creditor_id = creditor.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _race(self, *workers):
        """Run each worker in its own thread and app context; return (results, errors)."""
        results = []
        errors = []
        lock = threading.Lock()

        def _run(worker):
            with self.app.app_context():
                try:
                    value = worker()
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=_run, args=(worker,)) for worker in workers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return results, errors

    def _credit_sale(self, nozzle_id, credit_cents):
        """Post one 50 L sale (477500 cents) with credit_cents on the creditor."""
        reading = reading_service.record_reading(
            nozzle_id=nozzle_id, reading_value=Decimal("150.000"), reading_date=BUSINESS_DAY
        )
        return transaction_service.create_transaction(
            station_id=self.station_id,
            transaction_date=BUSINESS_DAY,
            reading_ids=[reading.id],
            breakdown=PaymentBreakdown(477500 - credit_cents, 0, credit_cents),
            allocations=[CreditAllocationRequest(self.creditor_id, credit_cents)],
        )

    def test_concurrent_shift_start(self):
        barrier = threading.Barrier(2, timeout=10)
        gated = _gate(shift_service.get_active_shift, barrier)

        def start():
            return shift_service.start_shift(employee_id=self.employee_id, station_id=self.station_id).id

        with mock.patch.object(shift_service, "get_active_shift", gated):
            results, errors = self._race(start, start)

        self.assertEqual(len(results), 1, errors)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], ShiftAlreadyActive)

        with self.app.app_context():
            shifts = db.session.query(Shift).filter_by(employee_id=self.employee_id).all()
            self.assertEqual([s.id for s in shifts], results)
            self.assertEqual(shifts[0].status, "ACTIVE")
            started = db.session.query(AuditEvent).filter_by(event_type="shift.started").count()
            self.assertEqual(started, 1)

    def test_concurrent_credit_postings(self):
        with self.app.app_context():
            readings = [
                reading_service.record_reading(
                    nozzle_id=nozzle_id, reading_value=Decimal("150.000"), reading_date=BUSINESS_DAY
                ).id
                for nozzle_id in self.nozzle_ids
            ]

        barrier = threading.Barrier(2, timeout=10)
        gated = _gate(credit_service.positions, barrier)

        def post(reading_id):
            def _post():
                return transaction_service.create_transaction(
                    station_id=self.station_id,
                    transaction_date=BUSINESS_DAY,
                    reading_ids=[reading_id],
                    breakdown=PaymentBreakdown(377500, 0, 100000),
                    allocations=[CreditAllocationRequest(self.creditor_id, 100000)],
                ).transaction.id
            return _post

        with mock.patch.object(credit_service, "positions", gated):
            results, errors = self._race(post(readings[0]), post(readings[1]))

        self.assertEqual(errors, [])
        self.assertEqual(len(results), 2)

        with self.app.app_context():
            entries = db.session.query(CreditLedgerEntry).filter_by(creditor_id=self.creditor_id).all()
            self.assertEqual(len(entries), 2)
            self.assertEqual({e.cause_type for e in entries}, {"credit_allocation"})
            self.assertEqual(credit_service.outstanding_cents(self.creditor_id), 200000)

    def test_concurrent_settlements_cannot_overdraw(self):
        with self.app.app_context():
            self._credit_sale(self.nozzle_ids[0], 100000)

        barrier = threading.Barrier(2, timeout=10)
        gated = _gate(credit_service.outstanding_cents, barrier)

        def settle():
            return credit_service.record_settlement(
                self.creditor_id, 60000, settlement_date=BUSINESS_DAY
            ).id

        with mock.patch.object(credit_service, "outstanding_cents", gated):
            results, errors = self._race(settle, settle)

        self.assertEqual(len(results), 1, errors)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], ValidationError)

        with self.app.app_context():
            self.assertEqual(credit_service.outstanding_cents(self.creditor_id), 40000)
            settlements = (
                db.session.query(CreditLedgerEntry)
                .filter_by(creditor_id=self.creditor_id, entry_type="SETTLEMENT")
                .count()
            )
            self.assertEqual(settlements, 1)

    def test_concurrent_handover_confirmation(self):
        with self.app.app_context():
            handover_id = handover_service.create_handover(
                station_id=self.station_id,
                handover_type="shift_collection",
                from_user_id=self.employee_id,
                to_user_id=self.manager_id,
                expected_amount_cents=200000,
                handover_date=BUSINESS_DAY,
            ).id

        barrier = threading.Barrier(2, timeout=10)
        gated = _gate(handover_service._lock_handover, barrier)

        def confirm(amount):
            def _confirm():
                return handover_service.confirm_handover(
                    handover_id, confirmed_by_user_id=self.manager_id, actual_amount_cents=amount
                ).status
            return _confirm

        with mock.patch.object(handover_service, "_lock_handover", gated):
            results, errors = self._race(confirm(200000), confirm(190000))

        self.assertEqual(len(results), 1, errors)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], (AlreadyConfirmed, AlreadyDisputed))

        with self.app.app_context():
            handover = db.session.get(CashHandover, handover_id)
            self.assertEqual(handover.status, results[0])
            self.assertIn(handover.status, (STATUS_CONFIRMED, STATUS_DISPUTED))
            if handover.status == STATUS_CONFIRMED:
                self.assertIsInstance(errors[0], AlreadyConfirmed)
            else:
                self.assertIsInstance(errors[0], AlreadyDisputed)
            counted = (
                db.session.query(AuditEvent)
                .filter(AuditEvent.entity_type == "cash_handover")
                .filter(AuditEvent.event_type.in_(("handover.confirmed", "handover.disputed")))
                .count()
            )
            self.assertEqual(counted, 1)


if __name__ == "__main__":
    unittest.main()
