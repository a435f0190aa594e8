from datetime import datetime
import uuid as uuid_module

from sqlalchemy import (
    Column, String, Float, Boolean, Date, DateTime, Text, Index, create_engine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from calculations.readings import EntryKind, Reading
from calculations.tariff import TariffRate


Base = declarative_base()


def new_id():
    return str(uuid_module.uuid4())


FUEL_TYPES = ('PETROL', 'DIESEL', 'ELECTRIC', 'HYBRID')
FUEL_GRADES = ('UNLEADED', 'SUPER_UNLEADED', 'PREMIUM_DIESEL', 'STANDARD_DIESEL')
TOPUP_ENTRY_TYPES = (EntryKind.MANUAL.value, EntryKind.IMPORTED.value)
MILEAGE_ENTRY_TYPES = ('MANUAL', 'FUEL_LINKED')


class FuelTopup(Base):
    """A fuel topup (or metered energy reading) logged against a vehicle."""

    __tablename__ = 'fuel_topups'

    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(64), nullable=False, default='default', index=True)
    date = Column(Date, nullable=False, index=True)
    litres = Column(Float, nullable=False)
    cost_per_litre = Column(Float, nullable=False, default=0.0)
    total_cost = Column(Float, nullable=False, default=0.0)
    mileage = Column(Float)

    entry_type = Column(String(20), nullable=False, default=EntryKind.MANUAL.value)
    fuel_type = Column(String(20), default='PETROL')
    fuel_grade = Column(String(32))
    retailer = Column(String(128))
    location_name = Column(String(255))
    notes = Column(Text)

    # At most one per vehicle; enforced by the tracker service
    is_first_topup = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('ix_fuel_topups_vehicle_date', 'vehicle_id', 'date'),
    )

    def to_reading(self) -> Reading:
        return Reading(
            id=self.id,
            subject_id=self.vehicle_id,
            quantity=self.litres,
            date=self.date,
            unit_cost=self.cost_per_litre or 0.0,
            total_cost=self.total_cost,
            kind=EntryKind(self.entry_type or EntryKind.MANUAL.value),
            is_first_entry=bool(self.is_first_topup),
            odometer=self.mileage,
            notes=self.notes,
            fuel_type=self.fuel_type,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'date': self.date.isoformat() if self.date else None,
            'litres': self.litres,
            'cost_per_litre': self.cost_per_litre,
            'total_cost': self.total_cost,
            'mileage': self.mileage,
            'entry_type': self.entry_type,
            'fuel_type': self.fuel_type,
            'fuel_grade': self.fuel_grade,
            'retailer': self.retailer,
            'location_name': self.location_name,
            'notes': self.notes,
            'is_first_topup': self.is_first_topup,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class MileageEntry(Base):
    """An odometer reading, optionally linked to the topup it was taken at."""

    __tablename__ = 'mileage_entries'

    id = Column(String(36), primary_key=True, default=new_id)
    vehicle_id = Column(String(64), nullable=False, default='default', index=True)
    date = Column(Date, nullable=False, index=True)
    odometer_reading = Column(Float, nullable=False)
    trip_distance = Column(Float)
    trip_purpose = Column(String(64))
    notes = Column(Text)
    linked_fuel_topup_id = Column(String(36))
    entry_type = Column(String(20), nullable=False, default='MANUAL')
    is_first_reading = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_reading(self) -> Reading:
        # Odometer series are cumulative: quantity carries the raw reading
        return Reading(
            id=self.id,
            subject_id=self.vehicle_id,
            quantity=self.odometer_reading,
            date=self.date,
            total_cost=0.0,
            kind=EntryKind.MANUAL,
            is_first_entry=bool(self.is_first_reading),
            odometer=self.odometer_reading,
            notes=self.notes,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'date': self.date.isoformat() if self.date else None,
            'odometer_reading': self.odometer_reading,
            'trip_distance': self.trip_distance,
            'trip_purpose': self.trip_purpose,
            'notes': self.notes,
            'linked_fuel_topup_id': self.linked_fuel_topup_id,
            'entry_type': self.entry_type,
            'is_first_reading': self.is_first_reading,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class TariffPeriod(Base):
    """Electricity tariff in force between two dates (end_date NULL = current)."""

    __tablename__ = 'tariff_periods'

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(128))
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date)
    unit_rate = Column(Float, nullable=False)  # pence per unit
    standing_charge = Column(Float, nullable=False, default=0.0)  # pence per day
    estimated_annual_usage = Column(Float)
    estimated_annual_cost = Column(Float)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow)

    def to_rate(self) -> TariffRate:
        return TariffRate(
            id=self.id,
            start_date=self.start_date,
            end_date=self.end_date,
            unit_rate=self.unit_rate,
            standing_charge=self.standing_charge or 0.0,
            estimated_annual_usage=self.estimated_annual_usage,
            estimated_annual_cost=self.estimated_annual_cost,
            name=self.name,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'unit_rate': self.unit_rate,
            'standing_charge': self.standing_charge,
            'estimated_annual_usage': self.estimated_annual_usage,
            'estimated_annual_cost': self.estimated_annual_cost,
            'is_current': self.end_date is None,
        }


def get_engine(database_url):
    """Create database engine."""
    if database_url.startswith('sqlite'):
        # One shared connection so in-memory databases survive across sessions
        return create_engine(
            database_url,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)
