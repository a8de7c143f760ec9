import logging
from contextlib import contextmanager

from models import db
from clinic_db.schema import SchemaCache
from clinic_db.switcher import DatabaseSwitcher

logger = logging.getLogger(__name__)


class ClinicDatabase:
    """Accès aux bases des cliniques, une connexion dédiée par opération."""

    def __init__(self, app=None):
        self.switcher = DatabaseSwitcher()
        self.schemas = SchemaCache()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.switcher = DatabaseSwitcher(
            directory_database=app.config.get("DIRECTORY_DB_NAME"),
            sqlite_dir=app.config.get("TENANT_SQLITE_DIR"),
        )
        self.schemas.forget()
        app.extensions["clinic_db"] = self

    def columns(self, conn, tenant, table_name="appointment"):
        return self.schemas.columns(conn, tenant.database_name, table_name)

    @contextmanager
    def tenant_connection(self, tenant):
        """Connexion basculée vers la base de la clinique.

        Le retour vers l'annuaire est tenté à chaque sortie, erreur comprise,
        sauf si la bascule initiale n'a jamais abouti. Une connexion qui n'a
        pas pu revenir vers l'annuaire est invalidée avant d'être rendue au pool.
        """
        conn = db.engine.connect()
        try:
            self.switcher.switch_to(conn, tenant.database_name)
        except Exception:
            conn.close()
            raise

        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            if not self.switcher.switch_to_directory(conn):
                logger.warning("Connexion invalidée après échec du retour vers l'annuaire")
                conn.invalidate()
            conn.close()


clinic_db = ClinicDatabase()
