"""
Pytest configuration and fixtures.

Booking logic is exercised against an in-memory stand-in for
BarbershopQueries, so no database is needed. The chat session store gets a
mocked AsyncSession the same way the routing tests mock one.

Calendar used throughout: 2026-10-18 is a Sunday, 2026-10-19 a Monday.
"""
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models import (
    Appointment,
    AppointmentStatus,
    Barbershop,
    BreakType,
    ClientProfile,
    Employee,
    EmployeeBreak,
    EmployeeSchedule,
    EmployeeStatus,
    PaymentStatus,
    Service,
)

BARBERSHOP_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")

SUNDAY = date(2026, 10, 18)
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)

# Sunday 14:00 in the business timezone (UTC-3).
NOW = datetime(2026, 10, 18, 17, 0, tzinfo=timezone.utc)


class FakeBarbershopQueries:
    """In-memory BarbershopQueries with the same async surface."""

    def __init__(self, barbershop):
        self.barbershop = barbershop
        self.services = []
        self.employees = []
        self.schedules = []
        self.breaks = []
        self.appointments = []
        self.profiles = []
        self.inserted = []
        self.insert_error = None

    # builders

    def add_service(self, name, duration_minutes=30, price="40.00"):
        service = Service(
            id=uuid.uuid4(),
            barbershop_id=self.barbershop.id,
            name=name,
            duration_minutes=duration_minutes,
            price=Decimal(price),
            active=True,
        )
        self.services.append(service)
        return service

    def add_employee(self, name, weekdays=range(1, 7), start=time(9, 0), end=time(18, 0)):
        employee = Employee(
            id=uuid.uuid4(),
            barbershop_id=self.barbershop.id,
            name=name,
            status=EmployeeStatus.ACTIVE,
        )
        self.employees.append(employee)
        for weekday in weekdays:
            self.add_schedule(employee, weekday, start, end)
        return employee

    def add_schedule(self, employee, weekday, start, end):
        schedule = EmployeeSchedule(
            id=uuid.uuid4(),
            employee_id=employee.id,
            day_of_week=weekday,
            start_time=start,
            end_time=end,
            is_active=True,
        )
        self.schedules.append(schedule)
        return schedule

    def add_break(self, employee, start, end, weekday=None, specific_date=None):
        entry = EmployeeBreak(
            id=uuid.uuid4(),
            employee_id=employee.id,
            break_type=BreakType.ONE_TIME if specific_date else BreakType.RECURRING,
            title="Intervalo",
            start_time=start,
            end_time=end,
            day_of_week=weekday,
            specific_date=specific_date,
            is_active=True,
        )
        self.breaks.append(entry)
        return entry

    def book(self, employee, day, start, end, status=AppointmentStatus.CONFIRMED):
        appointment = Appointment(
            id=uuid.uuid4(),
            barbershop_id=self.barbershop.id,
            employee_id=employee.id,
            service_id=self.services[0].id if self.services else uuid.uuid4(),
            client_name="Cliente Anterior",
            client_phone="11912345670",
            appointment_date=day,
            start_time=start,
            end_time=end,
            status=status,
            payment_status=PaymentStatus.PENDING,
        )
        self.appointments.append(appointment)
        return appointment

    def add_profile(self, name, phone, notes=None):
        profile = ClientProfile(
            id=uuid.uuid4(),
            barbershop_id=self.barbershop.id,
            name=name,
            phone=phone,
            phone_verified=False,
            notes=notes,
        )
        self.profiles.append(profile)
        return profile

    # BarbershopQueries surface

    async def get_barbershop(self):
        return self.barbershop

    async def list_services(self):
        return [s for s in self.services if s.active]

    async def list_employees(self):
        return [e for e in self.employees if e.status == EmployeeStatus.ACTIVE]

    async def list_schedules(self, employee_id, day_of_week):
        return [
            s for s in self.schedules
            if s.employee_id == employee_id and s.day_of_week == day_of_week and s.is_active
        ]

    async def list_breaks(self, employee_id):
        return [b for b in self.breaks if b.employee_id == employee_id and b.is_active]

    async def list_appointments(self, employee_id, appointment_date):
        return [
            a for a in self.appointments
            if a.employee_id == employee_id
            and a.appointment_date == appointment_date
            and a.blocks_slot()
        ]

    async def list_client_profiles(self):
        return list(self.profiles)

    async def add_appointment(self, appointment):
        if self.insert_error is not None:
            raise self.insert_error
        self.appointments.append(appointment)
        self.inserted.append(appointment)
        return appointment


@pytest.fixture
def barbershop():
    return Barbershop(id=BARBERSHOP_ID, name="Barbearia Central", business_hours=None)


@pytest.fixture
def queries(barbershop):
    """One service (Corte de Cabelo, 30 min) and Carlos working Mon-Sat 09-18."""
    fake = FakeBarbershopQueries(barbershop)
    fake.add_service("Corte de Cabelo", duration_minutes=30)
    fake.add_employee("Carlos")
    return fake


@pytest.fixture
def carlos(queries):
    return queries.employees[0]


@pytest.fixture
def mock_db_session():
    """Mock async database session."""
    session = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def store(mock_db_session):
    from app.chat_sessions import ChatSessionStore

    return ChatSessionStore(mock_db_session, BARBERSHOP_ID)


@pytest.fixture
def narrator():
    """Chat model stand-in; returns None (model unavailable) unless told otherwise."""
    return AsyncMock(return_value=None)


@pytest.fixture
def run_turn(queries, store, narrator):
    """Run one chat turn: run_turn(message, history=[(role, content), ...])."""
    from app.chat import ChatRequest, process_turn

    async def _run(message, history=(), session_id=None, now=NOW):
        request = ChatRequest(
            message=message,
            barbershopId=str(BARBERSHOP_ID),
            conversationHistory=[{"role": role, "content": content} for role, content in history],
            sessionId=session_id,
        )
        return await process_turn(request, queries, store, narrator=narrator, now=now)

    return _run
