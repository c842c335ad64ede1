# Overview: Station, nozzle, price and staff records the pipeline reads from.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound
from ..extensions import db
from ..models import FuelPrice, Nozzle, Station, User
from ..models.users import ROLES
from ..validation import ConflictError, ValidationError


def get_station(station_id: int) -> Station:
    station = db.session.get(Station, station_id)
    if not station:
        raise NotFound("Station not found", station_id=station_id)
    return station


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found", user_id=user_id)
    return user


def get_nozzle(nozzle_id: int) -> Nozzle:
    nozzle = db.session.get(Nozzle, nozzle_id)
    if not nozzle:
        raise NotFound("Nozzle not found", nozzle_id=nozzle_id)
    return nozzle


def create_station(
    name: str,
    code: str,
    *,
    manager_user_id: int | None = None,
    owner_user_id: int | None = None,
) -> Station:
    if not name or not code:
        raise ValidationError("name and code are required")

    existing = db.session.query(Station).filter_by(code=code).first()
    if existing:
        raise ConflictError(f"Station code '{code}' already exists", code=code)

    station = Station(
        name=name,
        code=code,
        manager_user_id=manager_user_id,
        owner_user_id=owner_user_id,
        is_active=True,
    )
    db.session.add(station)
    db.session.commit()
    return station


def assign_station_roles(
    station_id: int,
    *,
    manager_user_id: int | None = None,
    owner_user_id: int | None = None,
) -> Station:
    station = get_station(station_id)
    if manager_user_id is not None:
        get_user(manager_user_id)
        station.manager_user_id = manager_user_id
    if owner_user_id is not None:
        get_user(owner_user_id)
        station.owner_user_id = owner_user_id
    db.session.commit()
    return station


def create_nozzle(
    station_id: int,
    label: str,
    fuel_type: str,
    initial_reading: Decimal | None = None,
) -> Nozzle:
    get_station(station_id)
    if not label or not fuel_type:
        raise ValidationError("label and fuel_type are required")
    if initial_reading is not None and initial_reading < 0:
        raise ValidationError("initial_reading cannot be negative", field="initial_reading")

    nozzle = Nozzle(
        station_id=station_id,
        label=label,
        fuel_type=fuel_type.strip().lower(),
        initial_reading=initial_reading,
        is_active=True,
    )
    db.session.add(nozzle)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Nozzle '{label}' already exists at this station", label=label)
    return nozzle


def set_fuel_price(
    station_id: int,
    fuel_type: str,
    price_cents: int,
    effective_from: date,
    *,
    created_by_user_id: int | None = None,
) -> FuelPrice:
    """
    Record the price per litre for a fuel type from effective_from onward.

    Prices are never edited in place; a later effective_from supersedes.
    """
    get_station(station_id)
    if price_cents is None or price_cents <= 0:
        raise ValidationError("price must be positive", field="price")

    fuel_type = fuel_type.strip().lower()
    existing = db.session.query(FuelPrice).filter_by(
        station_id=station_id,
        fuel_type=fuel_type,
        effective_from=effective_from,
    ).first()
    if existing:
        raise ConflictError(
            f"A {fuel_type} price already starts on {effective_from.isoformat()}",
            fuel_type=fuel_type,
            effective_from=effective_from.isoformat(),
        )

    price = FuelPrice(
        station_id=station_id,
        fuel_type=fuel_type,
        price_cents=price_cents,
        effective_from=effective_from,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(price)
    db.session.commit()
    return price


def get_price_for_date(station_id: int, fuel_type: str, on_date: date) -> Optional[int]:
    """Latest price with effective_from <= on_date, or None when no price exists."""
    price = (
        db.session.query(FuelPrice)
        .filter(
            FuelPrice.station_id == station_id,
            FuelPrice.fuel_type == fuel_type,
            FuelPrice.effective_from <= on_date,
        )
        .order_by(FuelPrice.effective_from.desc(), FuelPrice.id.desc())
        .first()
    )
    return price.price_cents if price else None


def create_user(
    name: str,
    email: str,
    *,
    role: str = "employee",
    station_id: int | None = None,
) -> User:
    if role not in ROLES:
        raise ValidationError(f"role must be one of {list(ROLES)}", field="role")
    if not name or not email:
        raise ValidationError("name and email are required")
    if station_id is not None:
        get_station(station_id)

    existing = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if existing:
        raise ConflictError(f"User '{email}' already exists", email=email)

    user = User(
        name=name,
        email=email.strip().lower(),
        role=role,
        station_id=station_id,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user
