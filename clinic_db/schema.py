import logging
import threading

from sqlalchemy import text

logger = logging.getLogger(__name__)


class SchemaCache:
    """Colonnes connues de chaque table de clinique, lues une seule fois.

    Les schémas varient légèrement d'une clinique à l'autre ; le service
    n'écrit que les colonnes présentes dans ce descripteur.
    """

    def __init__(self):
        self._columns = {}
        self._lock = threading.Lock()

    def columns(self, conn, database_name, table_name):
        key = (database_name, table_name)
        with self._lock:
            cached = self._columns.get(key)
        if cached is not None:
            return cached

        quoted = conn.dialect.identifier_preparer.quote_identifier(table_name)
        result = conn.execute(text(f"SELECT * FROM {quoted} WHERE 1 = 0"))
        columns = frozenset(result.keys())
        result.close()

        logger.info("Colonnes de %s.%s : %s", database_name, table_name, sorted(columns))
        with self._lock:
            self._columns[key] = columns
        return columns

    def forget(self, database_name=None):
        with self._lock:
            if database_name is None:
                self._columns.clear()
                return
            for key in [k for k in self._columns if k[0] == database_name]:
                del self._columns[key]
