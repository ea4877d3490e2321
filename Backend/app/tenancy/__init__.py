"""
Multi-tenancy package.

Every barbershop's services, employees, appointments and client profiles
are isolated by barbershop_id.

Modules:
    queries: barbershop-scoped query helpers and the BarbershopQueries gateway
"""

from .queries import (
    BarbershopQueries,
    get_barbershop,
    list_active_employees,
    list_active_services,
    list_blocking_appointments,
    list_breaks,
    list_client_profiles,
    list_schedules,
    scoped_select,
)

__all__ = [
    "BarbershopQueries",
    "scoped_select",
    "get_barbershop",
    "list_active_services",
    "list_active_employees",
    "list_schedules",
    "list_breaks",
    "list_blocking_appointments",
    "list_client_profiles",
]
