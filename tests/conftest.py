# tests/conftest.py
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from app import create_app
from models import db, Tenant

CLINIC_SCHEMA = [
    """
    CREATE TABLE appointment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        appointment_id VARCHAR(20),
        doctor_id INTEGER NOT NULL,
        patient_id INTEGER NOT NULL,
        schedule VARCHAR(20),
        remarks TEXT,
        appointment_date DATE NOT NULL,
        status INTEGER DEFAULT 4,
        created_at DATETIME,
        cancellation_reason TEXT,
        auto_cancelled INTEGER DEFAULT 0
    )
    """,
    "CREATE TABLE staff (id INTEGER PRIMARY KEY, name VARCHAR(100), qualification VARCHAR(100))",
    "CREATE TABLE patient (id INTEGER PRIMARY KEY, name VARCHAR(100), mobile_no VARCHAR(20))",
    "INSERT INTO staff (id, name, qualification) VALUES (1, 'Dr. Aina Rahman', 'MBBS'), (2, 'Dr. Lim Wei', 'MD')",
    "INSERT INTO patient (id, name, mobile_no) VALUES (10, 'John Doe', '0123456789'), (11, 'Siti Noor', '0198765432')",
]

# Ancienne clinique : ni created_at, ni remarks, ni tables staff/patient
LEGACY_SCHEMA = [
    """
    CREATE TABLE appointment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        appointment_id VARCHAR(20),
        doctor_id INTEGER NOT NULL,
        patient_id INTEGER NOT NULL,
        schedule VARCHAR(20),
        appointment_date DATE NOT NULL,
        status INTEGER DEFAULT 4
    )
    """,
]

# Clinique dont la table exige une colonne que la réservation ne fournit pas
STRICT_SCHEMA = [
    """
    CREATE TABLE appointment (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        appointment_id VARCHAR(20),
        doctor_id INTEGER NOT NULL,
        patient_id INTEGER NOT NULL,
        schedule VARCHAR(20),
        appointment_date DATE NOT NULL,
        status INTEGER DEFAULT 4,
        consultation_fees DECIMAL(10,2) NOT NULL
    )
    """,
]

# Bases toujours présentes sur une connexion SQLite (selon la version)
SQLITE_SYSTEM_DATABASES = ("main", "temp")

TENANTS = [
    dict(id=1, clinic_name="Alpha Clinic", database_name="clinic_alpha", status="active"),
    dict(id=2, clinic_name="Pending Clinic", database_name=None, status="pending"),
    dict(id=3, clinic_name="Legacy Clinic", database_name="clinic_legacy", status="active"),
    dict(id=4, clinic_name="Strict Clinic", database_name="clinic_strict", status="active"),
    dict(id=5, clinic_name="Ghost Clinic", database_name="clinic_ghost", status="suspended"),
    dict(id=6, clinic_name="Broken Clinic", database_name="clinic-alpha; DROP", status="active"),
]


def build_clinic_database(path, statements):
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))
    engine.dispose()


def build_app(tmp_path, engine_options):
    build_clinic_database(tmp_path / "clinic_alpha.db", CLINIC_SCHEMA)
    build_clinic_database(tmp_path / "clinic_legacy.db", LEGACY_SCHEMA)
    build_clinic_database(tmp_path / "clinic_strict.db", STRICT_SCHEMA)

    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'directory.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": engine_options,
        "TENANT_SQLITE_DIR": str(tmp_path),
        "EUREKA_SERVER": None,
    })

    with app.app_context():
        db.create_all()
        db.session.add_all([Tenant(**tenant) for tenant in TENANTS])
        db.session.commit()
    return app


@pytest.fixture
def app(tmp_path):
    # Une seule connexion physique : le retour vers l'annuaire est observable
    app = build_app(tmp_path, {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def pooled_app(tmp_path):
    # Pool par défaut : chaque opération obtient sa propre connexion physique
    app = build_app(tmp_path, {"pool_size": 5})
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def clinic_sql(tmp_path):
    """Exécute du SQL directement dans le fichier d'une clinique, hors du service."""

    def run(database_name, statement, params=None):
        engine = create_engine(f"sqlite:///{tmp_path / (database_name + '.db')}")
        try:
            with engine.begin() as conn:
                result = conn.execute(text(statement), params or {})
                if result.returns_rows:
                    return [dict(row) for row in result.mappings().all()]
                return result.rowcount
        finally:
            engine.dispose()

    return run


@pytest.fixture
def attached_clinics(app):
    """Bases de cliniques attachées à la connexion partagée de l'annuaire."""

    def run():
        rows = db.session.execute(text("PRAGMA database_list"))
        return [row[1] for row in rows if row[1] not in SQLITE_SYSTEM_DATABASES]

    return run
