"""
API tests.

Drives one business day end to end over HTTP: reading, transaction, shift
close, handover count and dispute resolution, then the settlement report.
Also covers acting-user resolution, station access and error translation.
"""

import pytest

from fuelsync.extensions import db
from fuelsync.time_utils import today


@pytest.fixture
def day():
    return today().isoformat()


def _record_reading(client, headers, nozzle, value, day):
    return client.post(
        "/api/readings",
        json={"nozzleId": nozzle.id, "readingValue": value, "readingDate": day},
        headers=headers,
    )


# =============================================================================
# ACTING USER / ACCESS
# =============================================================================


class TestAccess:

    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"

    def test_missing_actor(self, client, station):
        response = client.get(f"/api/readings?station_id={station.id}")
        assert response.status_code == 401
        assert response.get_json()["error"] == "UNAUTHENTICATED"

    @pytest.mark.parametrize("header", ["abc", "99999"])
    def test_unknown_actor(self, client, station, header):
        response = client.get(f"/api/readings?station_id={station.id}", headers={"X-User-Id": header})
        assert response.status_code == 401

    def test_other_station_denied(self, client, employee, other_station, as_user):
        response = client.get(f"/api/readings?station_id={other_station.id}", headers=as_user(employee))
        assert response.status_code == 403
        assert response.get_json()["details"]["station_id"] == other_station.id

    def test_report_needs_manager_role(self, client, station, employee, as_user, day):
        response = client.get(
            f"/api/reports/settlement?station_id={station.id}&start={day}&end={day}",
            headers=as_user(employee),
        )
        assert response.status_code == 403
        assert response.get_json()["error"] == "FORBIDDEN"

    def test_employee_cannot_start_shift_for_someone_else(self, client, station, employee, second_employee, as_user):
        response = client.post(
            "/api/shifts/start",
            json={"stationId": station.id, "employeeId": second_employee.id},
            headers=as_user(employee),
        )
        assert response.status_code == 403


# =============================================================================
# ERROR TRANSLATION
# =============================================================================


class TestErrors:

    def test_invalid_reading(self, client, employee, nozzle, petrol_price, as_user, day):
        response = _record_reading(client, as_user(employee), nozzle, "100.000", day)
        assert response.status_code == 422
        assert response.get_json()["error"] == "INVALID_READING"

    def test_breakdown_mismatch(self, client, station, employee, nozzle, petrol_price, as_user, day):
        reading = _record_reading(client, as_user(employee), nozzle, "150.000", day).get_json()["reading"]

        response = client.post(
            "/api/transactions",
            json={
                "stationId": station.id,
                "transactionDate": day,
                "readingIds": [reading["id"]],
                "paymentBreakdown": {"cash": "4000.00", "online": "500.00"},
            },
            headers=as_user(employee),
        )

        body = response.get_json()
        assert response.status_code == 422
        assert body["error"] == "BREAKDOWN_MISMATCH"
        assert body["details"]["difference_cents"] == -27500

    def test_money_with_fractional_cents(self, client, station, employee, nozzle, petrol_price, as_user, day):
        reading = _record_reading(client, as_user(employee), nozzle, "150.000", day).get_json()["reading"]

        response = client.post(
            "/api/transactions",
            json={
                "stationId": station.id,
                "transactionDate": day,
                "readingIds": [reading["id"]],
                "paymentBreakdown": {"cash": "4775.005"},
            },
            headers=as_user(employee),
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "VALIDATION_ERROR"

    def test_second_active_shift(self, client, station, employee, as_user):
        first = client.post("/api/shifts/start", json={"stationId": station.id}, headers=as_user(employee))
        second = client.post("/api/shifts/start", json={"stationId": station.id}, headers=as_user(employee))

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.get_json()["error"] == "SHIFT_ALREADY_ACTIVE"

    @pytest.mark.parametrize("value", ["nan", "inf", "-Infinity"])
    def test_report_rejects_non_finite_percent(self, client, station, manager, as_user, day, value):
        response = client.get(
            f"/api/reports/settlement?station_id={station.id}&start={day}&end={day}&review_percent={value}",
            headers=as_user(manager),
        )
        body = response.get_json()
        assert response.status_code == 400
        assert body["error"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "review_percent"

    def test_amount_above_cap(self, client, manager, creditor, as_user):
        response = client.post(
            f"/api/creditors/{creditor.id}/settlements",
            json={"amount": "100000000.00"},
            headers=as_user(manager),
        )
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "amount"


# =============================================================================
# ONE BUSINESS DAY
# =============================================================================


class TestBusinessDay:

    def test_full_day(self, client, station, owner, manager, employee, nozzle, petrol_price, creditor, as_user, day):
        response = client.post("/api/shifts/start", json={"stationId": station.id, "shiftType": "morning"},
                               headers=as_user(employee))
        assert response.status_code == 201
        shift_id = response.get_json()["shift"]["id"]

        response = _record_reading(client, as_user(employee), nozzle, "150.000", day)
        assert response.status_code == 201
        reading = response.get_json()["reading"]
        assert reading["litres_sold"] == "50.000"
        assert reading["sale_value_cents"] == 477500

        response = client.post(
            "/api/transactions",
            json={
                "stationId": station.id,
                "transactionDate": day,
                "readingIds": [reading["id"]],
                "paymentBreakdown": {"cash": "2775.00", "online": "1000.00", "credit": "1000.00"},
                "creditAllocations": [{"creditorId": creditor.id, "amount": "1000.00"}],
            },
            headers=as_user(employee),
        )
        assert response.status_code == 201
        posted = response.get_json()
        assert posted["shift_id"] == shift_id
        assert posted["warnings"] == []

        response = client.get(f"/api/creditors/{creditor.id}", headers=as_user(manager))
        assert response.status_code == 200
        assert len(response.get_json()["ledger"]) == 1

        response = client.post(f"/api/shifts/{shift_id}/end", json={"cashCollected": "2725.00"},
                               headers=as_user(employee))
        assert response.status_code == 200
        closure = response.get_json()
        assert closure["shift"]["status"] == "CLOSED"
        assert closure["shift"]["expected_cash_cents"] == 277500
        assert closure["shift"]["cash_difference_cents"] == -5000
        handover = closure["handover"]
        assert handover["to_user_id"] == manager.id
        assert handover["expected_amount_cents"] == 277500

        response = client.get("/api/handovers/pending", headers=as_user(manager))
        assert [h["id"] for h in response.get_json()["handovers"]] == [handover["id"]]

        response = client.post(f"/api/handovers/{handover['id']}/confirm", json={"actualAmount": "2725.00"},
                               headers=as_user(manager))
        assert response.status_code == 200
        counted = response.get_json()["handover"]
        assert counted["status"] == "DISPUTED"
        assert counted["difference_cents"] == -5000
        assert counted["dispute_notes"] == "Shortage of ₹50.00"

        response = client.post(f"/api/handovers/{handover['id']}/confirm", json={"acceptAsIs": True},
                               headers=as_user(manager))
        assert response.status_code == 409
        assert response.get_json()["error"] == "ALREADY_DISPUTED"

        response = client.post(f"/api/handovers/{handover['id']}/resolve", json={"resolutionNotes": "Short counted"},
                               headers=as_user(manager))
        assert response.status_code == 403

        response = client.post(f"/api/handovers/{handover['id']}/resolve", json={"resolutionNotes": "Short counted"},
                               headers=as_user(owner))
        assert response.status_code == 200
        assert response.get_json()["handover"]["status"] == "RESOLVED"

        response = client.get(
            f"/api/reports/settlement?station_id={station.id}&start={day}&end={day}",
            headers=as_user(manager),
        )
        assert response.status_code == 200
        report = response.get_json()
        assert report["verification"]["match"] is True
        assert report["daily"][0]["variance_cents"] == -5000
        assert report["daily"][0]["handovers"]["resolved"] == 1
        assert report["income_breakdown"]["credit_pending_cents"] == 100000
        assert report["receivables_aging"]["total_outstanding_cents"] == 100000

        response = client.get(
            f"/api/reports/audit-events?station_id={station.id}&entity_type=cash_handover",
            headers=as_user(owner),
        )
        event_types = {e["event_type"] for e in response.get_json()["events"]}
        assert {"handover.created", "handover.disputed", "handover.resolved"} <= event_types

    def test_only_recipient_confirms(self, client, station, manager, employee, second_employee, as_user):
        response = client.post(
            "/api/handovers",
            json={
                "stationId": station.id,
                "handoverType": "shift_collection",
                "toUserId": manager.id,
                "expectedAmount": "500.00",
            },
            headers=as_user(employee),
        )
        assert response.status_code == 201
        handover_id = response.get_json()["handover"]["id"]

        response = client.post(f"/api/handovers/{handover_id}/confirm", json={"acceptAsIs": True},
                               headers=as_user(second_employee))
        assert response.status_code == 403

        response = client.post(f"/api/handovers/{handover_id}/confirm", json={"acceptAsIs": True},
                               headers=as_user(manager))
        assert response.status_code == 200
        assert response.get_json()["handover"]["status"] == "CONFIRMED"

    def test_creditor_settlement(self, client, manager, creditor, as_user):
        response = client.post(
            f"/api/creditors/{creditor.id}/settlements",
            json={"amount": "100.00"},
            headers=as_user(manager),
        )
        # nothing outstanding yet
        assert response.status_code == 400

        db.session.expire_all()
        response = client.get(f"/api/creditors/{creditor.id}", headers=as_user(manager))
        assert response.get_json()["ledger"] == []


class TestListings:

    def test_station_shifts_by_status(self, client, station, manager, employee, second_employee, as_user, day):
        client.post("/api/shifts/start", json={"stationId": station.id, "shiftType": "night"},
                    headers=as_user(employee))
        started = client.post("/api/shifts/start", json={"stationId": station.id}, headers=as_user(second_employee))
        client.post(f"/api/shifts/{started.get_json()['shift']['id']}/end", json={"cashCollected": "0"},
                    headers=as_user(second_employee))

        response = client.get(f"/api/stations/{station.id}/shifts?date={day}&status=active", headers=as_user(manager))
        shifts = response.get_json()["shifts"]
        assert [s["employee_id"] for s in shifts] == [employee.id]
        assert shifts[0]["shift_type"] == "night"

        response = client.get(f"/api/stations/{station.id}/shifts?date={day}", headers=as_user(manager))
        assert len(response.get_json()["shifts"]) == 2

    def test_unknown_shift_type(self, client, station, employee, as_user):
        response = client.post("/api/shifts/start", json={"stationId": station.id, "shiftType": "brunch"},
                               headers=as_user(employee))
        assert response.status_code == 400

    def test_unknown_handover_status(self, client, station, manager, as_user):
        response = client.get(f"/api/stations/{station.id}/handovers?status=lost", headers=as_user(manager))
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "status"
