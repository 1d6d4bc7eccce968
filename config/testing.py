import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "promotion_voting_test"),
}

VOTER_FINGERPRINT_SALT = "test-fingerprint-salt"

REDIS_URL = os.getenv("REDIS_URL", "memory://")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "cache+memory://")

LATE_COUNT_THRESHOLD = 3
LATE_MINUTES_THRESHOLD = 10
MAX_PUNISHMENT_ROUNDS = 3
SHOW_LIVE_RESULTS = False

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
