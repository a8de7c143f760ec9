import logging
from types import SimpleNamespace

import pytest
from sqlalchemy import text
from sqlalchemy.dialects.mysql import pymysql as mysql_pymysql
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError

from models import db
from clinic_db import MisconfiguredTenantError
from clinic_db.switcher import DatabaseSwitcher, ACTIVE_DATABASE_KEY


class FakeMySQLConnection:
    """Enregistre les directives au lieu de les envoyer à un serveur MySQL."""

    def __init__(self, fail=False):
        self.dialect = mysql_pymysql.dialect()
        self.engine = SimpleNamespace(url=make_url("mysql+pymysql://root@localhost/klinik_directory"))
        self.info = {}
        self.statements = []
        self.fail = fail

    def execute(self, statement, params=None):
        if self.fail:
            raise OperationalError(str(statement), params, Exception("Lost connection to MySQL server"))
        self.statements.append(str(statement))


def test_mysql_uses_use_directives():
    conn = FakeMySQLConnection()
    switcher = DatabaseSwitcher(directory_database="clinic_directory")

    switcher.switch_to(conn, "clinic_alpha")
    assert conn.info[ACTIVE_DATABASE_KEY] == "clinic_alpha"

    assert switcher.switch_to_directory(conn) is True
    assert conn.statements == ["USE `clinic_alpha`", "USE `clinic_directory`"]
    assert ACTIVE_DATABASE_KEY not in conn.info


def test_mysql_directory_defaults_to_engine_database():
    conn = FakeMySQLConnection()
    switcher = DatabaseSwitcher()

    switcher.switch_to(conn, "clinic_alpha")
    switcher.switch_to_directory(conn)

    assert conn.statements[-1] == "USE `klinik_directory`"


def test_switch_back_failure_is_logged_and_swallowed(caplog):
    conn = FakeMySQLConnection()
    switcher = DatabaseSwitcher(directory_database="clinic_directory")
    switcher.switch_to(conn, "clinic_alpha")
    conn.fail = True

    with caplog.at_level(logging.ERROR, logger="clinic_db.switcher"):
        assert switcher.switch_to_directory(conn) is False

    assert "clinic_alpha" in caplog.text
    assert conn.info[ACTIVE_DATABASE_KEY] == "clinic_alpha"


def test_sqlite_attaches_and_detaches_clinic_file(app):
    switcher = DatabaseSwitcher(sqlite_dir=app.config["TENANT_SQLITE_DIR"])

    with db.engine.connect() as conn:
        switcher.switch_to(conn, "clinic_alpha")
        names = [row[1] for row in conn.execute(text("PRAGMA database_list"))]
        assert "clinic_alpha" in names
        assert conn.execute(text("SELECT COUNT(*) FROM staff")).scalar() == 2

        assert switcher.switch_to_directory(conn) is True
        names = [row[1] for row in conn.execute(text("PRAGMA database_list"))]
        assert "clinic_alpha" not in names


def test_sqlite_refuses_missing_clinic_file(app):
    switcher = DatabaseSwitcher(sqlite_dir=app.config["TENANT_SQLITE_DIR"])

    with db.engine.connect() as conn:
        with pytest.raises(MisconfiguredTenantError) as excinfo:
            switcher.switch_to(conn, "clinic_ghost")
        assert ACTIVE_DATABASE_KEY not in conn.info

    assert "does not exist" in excinfo.value.message
