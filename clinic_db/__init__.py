from clinic_db.connection import ClinicDatabase, clinic_db
from clinic_db.errors import TenantResolutionError, TenantNotFoundError, MisconfiguredTenantError
from clinic_db.tenant_resolver import resolve_tenant

__all__ = [
    "ClinicDatabase",
    "clinic_db",
    "TenantResolutionError",
    "TenantNotFoundError",
    "MisconfiguredTenantError",
    "resolve_tenant",
]
