import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "promotion_voting"),
}

# Required: create_app refuses to start without it.
VOTER_FINGERPRINT_SALT = os.getenv("VOTER_FINGERPRINT_SALT", "")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)

LATE_COUNT_THRESHOLD = int(os.getenv("LATE_COUNT_THRESHOLD", "3"))
LATE_MINUTES_THRESHOLD = int(os.getenv("LATE_MINUTES_THRESHOLD", "10"))
MAX_PUNISHMENT_ROUNDS = int(os.getenv("MAX_PUNISHMENT_ROUNDS", "3"))
SHOW_LIVE_RESULTS = bool(int(os.getenv("SHOW_LIVE_RESULTS", "0")))

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
