import logging
from datetime import time
from decimal import Decimal

from sqlalchemy import select

from .core.config import get_settings
from .models import (
    Barbershop,
    BreakType,
    Employee,
    EmployeeBreak,
    EmployeeSchedule,
    Service,
)


settings = get_settings()
logger = logging.getLogger(__name__)

DEMO_BUSINESS_HOURS = {
    "monday": {"open": "09:00", "close": "19:00", "closed": False},
    "tuesday": {"open": "09:00", "close": "19:00", "closed": False},
    "wednesday": {"open": "09:00", "close": "19:00", "closed": False},
    "thursday": {"open": "09:00", "close": "19:00", "closed": False},
    "friday": {"open": "09:00", "close": "19:00", "closed": False},
    "saturday": {"open": "09:00", "close": "17:00", "closed": False},
    "sunday": {"closed": True},
}

# (name, weekdays with 0 = Sunday, start, end)
DEMO_EMPLOYEES = [
    ("Carlos", range(1, 7), time(9, 0), time(18, 0)),
    ("Rafael", range(2, 7), time(10, 0), time(19, 0)),
]


async def seed_initial_data(session):
    result = await session.execute(
        select(Barbershop).where(Barbershop.name == settings.demo_barbershop_name)
    )
    barbershop = result.scalar_one_or_none()

    if not barbershop:
        barbershop = Barbershop(name=settings.demo_barbershop_name, business_hours=DEMO_BUSINESS_HOURS)
        session.add(barbershop)
        await session.flush()

    # Seed services if missing
    result = await session.execute(select(Service).where(Service.barbershop_id == barbershop.id))
    services = result.scalars().all()
    if not services:
        session.add_all(
            [
                Service(
                    barbershop_id=barbershop.id,
                    name="Corte de Cabelo",
                    duration_minutes=40,
                    price=Decimal("45.00"),
                ),
                Service(
                    barbershop_id=barbershop.id,
                    name="Barba",
                    duration_minutes=30,
                    price=Decimal("30.00"),
                ),
                Service(
                    barbershop_id=barbershop.id,
                    name="Corte e Barba",
                    duration_minutes=60,
                    price=Decimal("70.00"),
                ),
            ]
        )

    result = await session.execute(select(Employee).where(Employee.barbershop_id == barbershop.id))
    employees = result.scalars().all()
    if not employees:
        for name, weekdays, start, end in DEMO_EMPLOYEES:
            employee = Employee(barbershop_id=barbershop.id, name=name)
            session.add(employee)
            await session.flush()
            session.add_all(
                [
                    EmployeeSchedule(
                        employee_id=employee.id,
                        day_of_week=weekday,
                        start_time=start,
                        end_time=end,
                    )
                    for weekday in weekdays
                ]
            )
            session.add_all(
                [
                    EmployeeBreak(
                        employee_id=employee.id,
                        break_type=BreakType.RECURRING,
                        title="Almoço",
                        start_time=time(12, 0),
                        end_time=time(13, 0),
                        day_of_week=weekday,
                    )
                    for weekday in weekdays
                ]
            )

    await session.commit()
    logger.info("Demo barbershop ready: %s (%s)", barbershop.name, barbershop.id)
    return barbershop
