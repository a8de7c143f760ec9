import re

from models import db, Tenant
from clinic_db.errors import TenantNotFoundError, MisconfiguredTenantError

# Le nom est injecté tel quel dans la directive USE
DATABASE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_$]{1,64}$")


def resolve_tenant(tenant_id):
    """Retourne la ligne de l'annuaire pour cette clinique.

    Lève TenantNotFoundError si aucune ligne ne correspond, et
    MisconfiguredTenantError si la clinique n'a pas de base utilisable.
    """
    try:
        key = int(tenant_id)
    except (TypeError, ValueError):
        raise TenantNotFoundError(tenant_id)

    tenant = db.session.get(Tenant, key)
    if tenant is None:
        raise TenantNotFoundError(tenant_id)

    if not tenant.database_name:
        raise MisconfiguredTenantError(tenant_id)

    if not DATABASE_NAME_PATTERN.match(tenant.database_name):
        raise MisconfiguredTenantError(
            tenant_id, f"Clinic database name '{tenant.database_name}' is invalid"
        )

    return tenant
