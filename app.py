import logging

from flask import Flask
from flask_migrate import Migrate
from flask_cors import CORS
from flasgger import Swagger
from py_eureka_client import eureka_client

import config
import routes
from models import db
from clinic_db import clinic_db
from commands import appointments_cli

logger = logging.getLogger(__name__)

migrate = Migrate()


def register_with_eureka(app):
    # Configuration de Eureka pour l'enregistrement du service
    eureka_client.init(
        app_name=app.config["SERVICE_NAME"],
        eureka_server=app.config["EUREKA_SERVER"],
        instance_host=app.config["INSTANCE_HOST"],
        instance_port=app.config["INSTANCE_PORT"],
    )
    logger.info("Service %s enregistré auprès de %s", app.config["SERVICE_NAME"], app.config["EUREKA_SERVER"])


def create_app(overrides=None):
    app = Flask(__name__)

    # Charger la configuration (variables d'environnement ou Config Server)
    app.config.from_object(config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    Swagger(app, template={
        "info": {
            "title": "Clinic Booking API",
            "description": "Réservation de rendez-vous multi-cliniques",
            "version": "1.0.0",
        }
    })
    CORS(app)

    # Initialisation de la base annuaire, de Flask-Migrate et des bases cliniques
    db.init_app(app)
    migrate.init_app(app, db)
    clinic_db.init_app(app)

    # Enregistrement du blueprint et des commandes
    app.register_blueprint(routes.routes)
    app.cli.add_command(appointments_cli)

    if app.config.get("EUREKA_SERVER"):
        register_with_eureka(app)

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
