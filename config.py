import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # No default: create_app generates a per-process secret when this is unset
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or os.environ.get('SECRET_KEY')
    JWT_ALGORITHM = "HS256"
    TOKEN_TTL_HOURS = int(os.environ.get('TOKEN_TTL_HOURS', 24))
    PASSWORD_HASH_ITERATIONS = int(os.environ.get('PASSWORD_HASH_ITERATIONS', 600000))
    ALLOWED_ORIGINS = os.environ.get('ALLOWED_ORIGINS', 'http://localhost:5173,http://127.0.0.1:5173').split(',')
    SEED_DEMO_DATA = _env_bool('SEED_DEMO_DATA', True)
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    API_VERSION = "1.0.0"
