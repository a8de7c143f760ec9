import pytest
from sqlalchemy import text

from clinic_db import clinic_db, resolve_tenant
from clinic_db.switcher import ACTIVE_DATABASE_KEY

SQLITE_SYSTEM_DATABASES = ("main", "temp")


def clinic_databases(dbapi_connection):
    cursor = dbapi_connection.cursor()
    try:
        rows = cursor.execute("PRAGMA database_list").fetchall()
    finally:
        cursor.close()
    return [row[1] for row in rows if row[1] not in SQLITE_SYSTEM_DATABASES]


def test_concurrent_operations_get_their_own_connection(pooled_app):
    alpha = resolve_tenant(1)
    legacy = resolve_tenant(3)

    with clinic_db.tenant_connection(alpha) as alpha_conn, clinic_db.tenant_connection(legacy) as legacy_conn:
        alpha_raw = alpha_conn.connection.dbapi_connection
        legacy_raw = legacy_conn.connection.dbapi_connection
        assert alpha_raw is not legacy_raw

        assert clinic_databases(alpha_raw) == ["clinic_alpha"]
        assert clinic_databases(legacy_raw) == ["clinic_legacy"]
        assert alpha_conn.info[ACTIVE_DATABASE_KEY] == "clinic_alpha"
        assert legacy_conn.info[ACTIVE_DATABASE_KEY] == "clinic_legacy"

        # Chaque connexion lit la table de sa propre clinique
        assert alpha_conn.execute(text("SELECT COUNT(*) FROM staff")).scalar() == 2
        legacy_columns = {row[1] for row in legacy_conn.execute(text("PRAGMA clinic_legacy.table_info(appointment)"))}
        assert "created_at" not in legacy_columns

    # Rendues au pool, les deux connexions sont revenues sur l'annuaire
    assert clinic_databases(alpha_raw) == []
    assert clinic_databases(legacy_raw) == []


def test_failure_in_one_operation_leaves_the_other_switched(pooled_app):
    alpha = resolve_tenant(1)
    legacy = resolve_tenant(3)

    with clinic_db.tenant_connection(alpha) as alpha_conn:
        alpha_raw = alpha_conn.connection.dbapi_connection
        with pytest.raises(ValueError):
            with clinic_db.tenant_connection(legacy) as legacy_conn:
                legacy_raw = legacy_conn.connection.dbapi_connection
                raise ValueError("interrupted")

        assert clinic_databases(legacy_raw) == []
        assert clinic_databases(alpha_raw) == ["clinic_alpha"]

    assert clinic_databases(alpha_raw) == []
