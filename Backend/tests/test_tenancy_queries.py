"""
Barbershop scoping of the query helpers (mocked AsyncSession).

Run with: pytest tests/test_tenancy_queries.py -v
"""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from app.models import Appointment, Service
from app.tenancy import BarbershopQueries, scoped_select
from conftest import BARBERSHOP_ID, MONDAY


def compiled(statement):
    return statement.compile(dialect=postgresql.dialect())


@pytest.fixture
def db():
    session = AsyncMock()
    result = MagicMock()
    result.scalars.return_value.all.return_value = []
    result.scalar_one_or_none.return_value = None
    session.execute = AsyncMock(return_value=result)
    session.add = MagicMock()

    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=None)
    nested.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=nested)
    return session


def executed(db):
    return compiled(db.execute.await_args.args[0])


class TestScopedSelect:

    def test_filters_on_barbershop(self):
        statement = compiled(scoped_select(Service, BARBERSHOP_ID))
        assert "services.barbershop_id = " in str(statement)
        assert BARBERSHOP_ID in statement.params.values()


@pytest.mark.asyncio
class TestBarbershopQueries:

    async def test_services_are_scoped_and_active(self, db):
        await BarbershopQueries(db, BARBERSHOP_ID).list_services()

        statement = executed(db)
        assert "services.barbershop_id" in str(statement)
        assert "services.active IS true" in str(statement)
        assert BARBERSHOP_ID in statement.params.values()

    async def test_employees_are_ordered(self, db):
        await BarbershopQueries(db, BARBERSHOP_ID).list_employees()

        sql = str(executed(db))
        assert "employees.barbershop_id" in sql
        assert "ORDER BY employees.created_at, employees.name" in sql

    async def test_appointments_skip_released_slots(self, db):
        employee_id = uuid.uuid4()

        await BarbershopQueries(db, BARBERSHOP_ID).list_appointments(employee_id, MONDAY)

        statement = executed(db)
        sql = str(statement)
        assert "appointments.barbershop_id" in sql
        assert "appointments.status NOT IN" in sql
        assert employee_id in statement.params.values()
        assert MONDAY in statement.params.values()

    async def test_profiles_are_scoped(self, db):
        await BarbershopQueries(db, BARBERSHOP_ID).list_client_profiles()
        assert "client_profiles.barbershop_id" in str(executed(db))

    async def test_missing_barbershop(self, db):
        assert await BarbershopQueries(db, BARBERSHOP_ID).get_barbershop() is None

    async def test_insert_runs_in_savepoint(self, db):
        appointment = Appointment(id=uuid.uuid4(), barbershop_id=BARBERSHOP_ID)

        returned = await BarbershopQueries(db, BARBERSHOP_ID).add_appointment(appointment)

        assert returned is appointment
        db.begin_nested.assert_called_once_with()
        db.add.assert_called_once_with(appointment)
        db.begin_nested.return_value.__aexit__.assert_awaited_once()
