class TenantResolutionError(Exception):
    """Clinique introuvable ou inutilisable dans l'annuaire des tenants."""

    def __init__(self, tenant_id, message):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.message = message


class TenantNotFoundError(TenantResolutionError):
    def __init__(self, tenant_id):
        super().__init__(tenant_id, f"Clinic with ID {tenant_id} not found")


class MisconfiguredTenantError(TenantResolutionError):
    def __init__(self, tenant_id, message="Clinic has no database configured"):
        super().__init__(tenant_id, message)
