"""
Barbershop-scoped query helpers.

Every query for shop data (services, employees, appointments, client
profiles) goes through these helpers or filters on barbershop_id explicitly.
Employee-owned rows (schedules, breaks) are reached through an employee id
that was itself loaded through a scoped query.

Usage:
    from app.tenancy.queries import list_active_services, scoped_select

    services = await list_active_services(session, barbershop_id)
    stmt = scoped_select(Service, barbershop_id).where(Service.name.ilike("%corte%"))
"""

import uuid
from datetime import date
from typing import Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from ..models import (
    NON_BLOCKING_STATUSES,
    Appointment,
    Barbershop,
    ClientProfile,
    Employee,
    EmployeeBreak,
    EmployeeSchedule,
    EmployeeStatus,
    Service,
)

T = TypeVar("T", bound=DeclarativeBase)


# ────────────────────────────────────────────────────────────────
# Composable helpers
# ────────────────────────────────────────────────────────────────

def scoped_select(model: Type[T], barbershop_id: uuid.UUID) -> Select:
    """
    Create a SELECT statement pre-filtered by barbershop_id.

    Usage:
        stmt = scoped_select(Service, barbershop_id).where(Service.active.is_(True))
    """
    return select(model).where(model.barbershop_id == barbershop_id)


# ────────────────────────────────────────────────────────────────
# Catalog
# ────────────────────────────────────────────────────────────────

async def get_barbershop(session: AsyncSession, barbershop_id: uuid.UUID) -> Optional[Barbershop]:
    result = await session.execute(select(Barbershop).where(Barbershop.id == barbershop_id))
    return result.scalar_one_or_none()


async def list_active_services(session: AsyncSession, barbershop_id: uuid.UUID) -> Sequence[Service]:
    result = await session.execute(
        scoped_select(Service, barbershop_id)
        .where(Service.active.is_(True))
        .order_by(Service.created_at, Service.name)
    )
    return result.scalars().all()


async def list_active_employees(
    session: AsyncSession, barbershop_id: uuid.UUID
) -> Sequence[Employee]:
    """Active employees in a stable order; this order decides who gets a slot first."""
    result = await session.execute(
        scoped_select(Employee, barbershop_id)
        .where(Employee.status == EmployeeStatus.ACTIVE)
        .order_by(Employee.created_at, Employee.name)
    )
    return result.scalars().all()


# ────────────────────────────────────────────────────────────────
# Working hours
# ────────────────────────────────────────────────────────────────

async def list_schedules(
    session: AsyncSession, employee_id: uuid.UUID, day_of_week: int
) -> Sequence[EmployeeSchedule]:
    result = await session.execute(
        select(EmployeeSchedule)
        .where(
            EmployeeSchedule.employee_id == employee_id,
            EmployeeSchedule.day_of_week == day_of_week,
            EmployeeSchedule.is_active.is_(True),
        )
        .order_by(EmployeeSchedule.start_time)
    )
    return result.scalars().all()


async def list_breaks(session: AsyncSession, employee_id: uuid.UUID) -> Sequence[EmployeeBreak]:
    result = await session.execute(
        select(EmployeeBreak).where(
            EmployeeBreak.employee_id == employee_id,
            EmployeeBreak.is_active.is_(True),
        )
    )
    return result.scalars().all()


# ────────────────────────────────────────────────────────────────
# Appointments
# ────────────────────────────────────────────────────────────────

async def list_blocking_appointments(
    session: AsyncSession,
    barbershop_id: uuid.UUID,
    employee_id: uuid.UUID,
    appointment_date: date,
) -> Sequence[Appointment]:
    """Appointments of an employee on a date that still hold their slot."""
    result = await session.execute(
        scoped_select(Appointment, barbershop_id)
        .where(
            Appointment.employee_id == employee_id,
            Appointment.appointment_date == appointment_date,
            Appointment.status.not_in(list(NON_BLOCKING_STATUSES)),
        )
        .order_by(Appointment.start_time)
    )
    return result.scalars().all()


async def list_client_profiles(
    session: AsyncSession, barbershop_id: uuid.UUID
) -> Sequence[ClientProfile]:
    result = await session.execute(
        scoped_select(ClientProfile, barbershop_id).order_by(ClientProfile.created_at)
    )
    return result.scalars().all()


class BarbershopQueries:
    """
    The data the booking pipeline reads and writes, bound to one barbershop.

    Thin wrapper over the module helpers so the pipeline can be handed a
    single object (and tests can hand it an in-memory stand-in).
    """

    def __init__(self, session: AsyncSession, barbershop_id: uuid.UUID):
        self.session = session
        self.barbershop_id = barbershop_id

    async def get_barbershop(self) -> Optional[Barbershop]:
        return await get_barbershop(self.session, self.barbershop_id)

    async def list_services(self) -> Sequence[Service]:
        return await list_active_services(self.session, self.barbershop_id)

    async def list_employees(self) -> Sequence[Employee]:
        return await list_active_employees(self.session, self.barbershop_id)

    async def list_schedules(self, employee_id: uuid.UUID, day_of_week: int):
        return await list_schedules(self.session, employee_id, day_of_week)

    async def list_breaks(self, employee_id: uuid.UUID):
        return await list_breaks(self.session, employee_id)

    async def list_appointments(self, employee_id: uuid.UUID, appointment_date: date):
        return await list_blocking_appointments(
            self.session, self.barbershop_id, employee_id, appointment_date
        )

    async def list_client_profiles(self) -> Sequence[ClientProfile]:
        return await list_client_profiles(self.session, self.barbershop_id)

    async def add_appointment(self, appointment: Appointment) -> Appointment:
        """
        Insert inside a SAVEPOINT so unique-index violations surface here
        and roll back only the insert.
        """
        async with self.session.begin_nested():
            self.session.add(appointment)
        return appointment
