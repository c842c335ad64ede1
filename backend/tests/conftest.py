"""
Pytest fixtures for FuelSync backend tests.

Provides an in-memory database, a station with its staff, a priced nozzle,
a creditor, and a test client with acting-user headers.
"""

from datetime import date
from decimal import Decimal

import pytest

from fuelsync import create_app
from fuelsync.extensions import db
from fuelsync.decorators import ACTOR_HEADER
from fuelsync.services import credit_service, station_service



@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_SECONDS': 0,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test, keep the schema."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def station(db_session):
    return station_service.create_station("Highway 44", "HW44")


@pytest.fixture(scope='function')
def other_station(db_session):
    return station_service.create_station("Ring Road", "RR01")


@pytest.fixture(scope='function')
def owner(station):
    user = station_service.create_user("Olivia Owner", "owner@fuelsync.test", role="owner")
    station_service.assign_station_roles(station.id, owner_user_id=user.id)
    return user


@pytest.fixture(scope='function')
def manager(station):
    user = station_service.create_user(
        "Manu Manager", "manager@fuelsync.test", role="manager", station_id=station.id
    )
    station_service.assign_station_roles(station.id, manager_user_id=user.id)
    return user


@pytest.fixture(scope='function')
def employee(station):
    return station_service.create_user(
        "Esha Employee", "employee@fuelsync.test", role="employee", station_id=station.id
    )


@pytest.fixture(scope='function')
def second_employee(station):
    return station_service.create_user(
        "Kiran Employee", "kiran@fuelsync.test", role="employee", station_id=station.id
    )


@pytest.fixture(scope='function')
def nozzle(station):
    """Petrol nozzle whose meter opens at 100.000."""
    return station_service.create_nozzle(station.id, "P1-N1", "petrol", Decimal("100.000"))


@pytest.fixture(scope='function')
def petrol_price(station):
    """95.50 per litre from the first business day onward."""
    return station_service.set_fuel_price(station.id, "petrol", 9550, date(2026, 1, 1))


@pytest.fixture(scope='function')
def creditor(station):
    return credit_service.create_creditor(station.id, "City Transport Co", credit_limit_cents=500000)


@pytest.fixture(scope='function')
def as_user():
    """Build request headers for an acting user."""
    def _headers(user):
        return {ACTOR_HEADER: str(user.id)}
    return _headers
