import os
import logging
import requests
from dotenv import load_dotenv
from sqlalchemy.engine import URL

# Charger les variables d'environnement depuis le fichier .env
load_dotenv()

logger = logging.getLogger(__name__)

# Configuration du service Spring Cloud Config
CONFIG_SERVICE_URL = os.getenv('CONFIG_SERVICE_URL')
SERVICE_NAME = os.getenv('SERVICE_NAME', 'clinic-booking-service')
PROFILE = os.getenv('PROFILE', 'default')

# Correspondance entre les clés du Config Server et nos paramètres
REMOTE_KEYS = {
    'spring.datasource.url': 'DB_HOST',
    'spring.datasource.username': 'DB_USER',
    'spring.datasource.password': 'DB_PASSWORD',
    'spring.datasource.dbname': 'DIRECTORY_DB_NAME',
    'DISCOVERY_SERVICE_URL': 'EUREKA_SERVER',
}


def fetch_remote_config(config_service_url, application_name, profile):
    # Lire les configurations depuis Spring Cloud Config
    config_url = f"{config_service_url}/{application_name}/{profile}"
    response = requests.get(config_url, timeout=10)
    response.raise_for_status()
    config_data = response.json()

    # Extraire les configurations depuis la source correcte
    property_sources = config_data.get('propertySources', [])
    if not property_sources:
        raise RuntimeError("Unable to fetch configuration from Config Server")

    source = property_sources[0]['source']
    return {
        setting: source[key]
        for key, setting in REMOTE_KEYS.items()
        if source.get(key) is not None
    }


_remote = {}
if CONFIG_SERVICE_URL:
    _remote = fetch_remote_config(CONFIG_SERVICE_URL, SERVICE_NAME, PROFILE)
    logger.info("Configuration chargée depuis %s", CONFIG_SERVICE_URL)


def _setting(name, default=None):
    return _remote.get(name, os.getenv(name, default))


DB_HOST = _setting('DB_HOST', 'localhost')
DB_PORT = int(_setting('DB_PORT', '3306'))
DB_USER = _setting('DB_USER', 'root')
DB_PASSWORD = _setting('DB_PASSWORD', '')
# Base partagée contenant la table des tenants (cliniques)
DIRECTORY_DB_NAME = _setting('DIRECTORY_DB_NAME', 'clinic_directory')

# Construire l'URL SQLAlchemy
SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL') or URL.create(
    'mysql+pymysql',
    username=DB_USER,
    password=DB_PASSWORD or None,
    host=DB_HOST,
    port=DB_PORT,
    database=DIRECTORY_DB_NAME,
).render_as_string(hide_password=False)
SQLALCHEMY_TRACK_MODIFICATIONS = False
SQLALCHEMY_ENGINE_OPTIONS = {
    'pool_pre_ping': True,
    'pool_recycle': int(os.getenv('DB_POOL_RECYCLE', '300')),
    'pool_size': int(os.getenv('DB_POOL_SIZE', '10')),
    'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', '20')),
}

# Répertoire des fichiers SQLite par clinique (développement local)
TENANT_SQLITE_DIR = os.getenv('TENANT_SQLITE_DIR')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# Enregistrement Eureka (désactivé si aucun serveur n'est configuré)
EUREKA_SERVER = _setting('EUREKA_SERVER')
INSTANCE_HOST = os.getenv('INSTANCE_HOST', 'localhost')
INSTANCE_PORT = int(os.getenv('INSTANCE_PORT', '5000'))
