from configparser import ConfigParser
from urllib.parse import quote
from datetime import timedelta
import os

config = ConfigParser()
config.read(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config.ini'))
host = config['DATABASE']['host']
user = config['DATABASE']['username']
password = config['DATABASE']['password']
database = config['DATABASE']['db_name']
port = config['DATABASE']['port']
password = quote(password, safe='')

def _csv(key, section='CORS'):
    return [x.strip() for x in config[section][key].split(',') if x.strip()]

CORS_ORIGIN = _csv('origin')
LOG_LEVEL = config.get('LOGGING', 'level', fallback='INFO').upper()
MAX_LOGIN_ATTEMPTS = config.getint('AUTH', 'max_login_attempts', fallback=5)
LOCKOUT_MINUTES = config.getint('AUTH', 'lockout_minutes', fallback=15)


class ProductionConfig:
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}")
    SECRET_KEY = config['FLASK']['secret_key']

    JWT_SECRET_KEY = config['AUTH']['jwt_secret']

    JWT_HEADER_NAME = 'Authorization'
    JWT_HEADER_TYPE = 'Bearer'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(config['AUTH']['access_expires_minutes']))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=int(config['AUTH']['refresh_expires_days']))

    JWT_TOKEN_LOCATION = ['cookies', 'headers']
    JWT_ACCESS_COOKIE_NAME = 'access_token'
    JWT_REFRESH_COOKIE_NAME = 'refresh_token'

    JWT_COOKIE_SECURE = False        # True on HTTPS
    JWT_COOKIE_SAMESITE = 'Lax'
    JWT_COOKIE_CSRF_PROTECT = False

    MAX_CONTENT_LENGTH = int(config['UPLOADS']['max_mb']) * 1024 * 1024


class TestConfig:
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = config['TEST']['secret_key']

    JWT_SECRET_KEY = config['AUTH']['jwt_secret']
    JWT_HEADER_NAME = 'Authorization'
    JWT_HEADER_TYPE = 'Bearer'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=15)
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=1)

    JWT_TOKEN_LOCATION = ['cookies', 'headers']
    JWT_ACCESS_COOKIE_NAME = 'access_token'
    JWT_REFRESH_COOKIE_NAME = 'refresh_token'

    JWT_COOKIE_SECURE = False
    JWT_COOKIE_SAMESITE = 'Lax'
    JWT_COOKIE_CSRF_PROTECT = False

    MAX_CONTENT_LENGTH = int(config['UPLOADS']['max_mb']) * 1024 * 1024
