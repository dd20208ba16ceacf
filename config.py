from __future__ import annotations
import os
from pathlib import Path

class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'school.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # hosted identity provider (backend API)
    IDENTITY_API_URL = os.getenv("IDENTITY_API_URL", "https://api.clerk.com/v1")
    IDENTITY_SECRET_KEY = os.getenv("IDENTITY_SECRET_KEY", "")
    IDENTITY_TIMEOUT = float(os.getenv("IDENTITY_TIMEOUT", "10"))

    PER_PAGE_DEFAULT = 10
    PER_PAGE_MAX = 100
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

class DevConfig(BaseConfig):
    DEBUG = True
    SEED_GRADES = list(range(1, 7))

class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    IDENTITY_SECRET_KEY = "sk_test"
    IDENTITY_TIMEOUT = 1.0
    SEED_GRADES = []
    AUTH_RL_MAX = 1000

class ProdConfig(BaseConfig):
    DEBUG = False
    JSON_SORT_KEYS = False
    SEED_GRADES = []

config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
