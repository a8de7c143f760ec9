import os
import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from clinic_db.errors import MisconfiguredTenantError

logger = logging.getLogger(__name__)

ACTIVE_DATABASE_KEY = "active_database"


class DatabaseSwitcher:
    """Change la base active d'une connexion physique.

    MySQL : directive ``USE``. SQLite (développement et tests) : chaque
    clinique est un fichier ``<nom>.db`` attaché sous son propre nom, puis
    détaché au retour vers l'annuaire.

    La base active est notée dans ``conn.info``, qui suit la connexion
    physique d'un checkout du pool à l'autre.
    """

    def __init__(self, directory_database=None, sqlite_dir=None):
        self.directory_database = directory_database
        self.sqlite_dir = sqlite_dir

    def switch_to(self, conn, database_name):
        if conn.dialect.name == "sqlite":
            self._attach(conn, database_name)
        else:
            conn.execute(text(f"USE {self._quote(conn, database_name)}"))

        conn.info[ACTIVE_DATABASE_KEY] = database_name
        logger.debug("Connexion basculée vers %s", database_name)

    def switch_to_directory(self, conn):
        """Retour vers l'annuaire. Les erreurs sont journalisées, jamais propagées."""
        active = conn.info.get(ACTIVE_DATABASE_KEY)
        try:
            if conn.dialect.name == "sqlite":
                if active:
                    conn.execute(text(f"DETACH DATABASE {self._quote(conn, active)}"))
            else:
                directory = self.directory_database or conn.engine.url.database
                conn.execute(text(f"USE {self._quote(conn, directory)}"))
        except SQLAlchemyError as e:
            logger.error("Échec du retour vers l'annuaire depuis %s : %s", active, e)
            return False

        conn.info.pop(ACTIVE_DATABASE_KEY, None)
        return True

    def sqlite_path(self, conn, database_name):
        base_dir = self.sqlite_dir or os.path.dirname(conn.engine.url.database or "")
        return os.path.join(base_dir, f"{database_name}.db")

    def _attach(self, conn, database_name):
        path = self.sqlite_path(conn, database_name)
        # ATTACH créerait un fichier vide : on refuse une base inexistante
        if not os.path.exists(path):
            raise MisconfiguredTenantError(
                database_name, f"Clinic database '{database_name}' does not exist"
            )
        conn.execute(
            text(f"ATTACH DATABASE :path AS {self._quote(conn, database_name)}"),
            {"path": path},
        )

    @staticmethod
    def _quote(conn, name):
        return conn.dialect.identifier_preparer.quote_identifier(name)
