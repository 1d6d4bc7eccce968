import logging
import os

logger = logging.getLogger(__name__)

_MODULES = {
    "prod": "config.production",
    "production": "config.production",
    "test": "config.testing",
    "testing": "config.testing",
    "dev": "config.development",
    "development": "config.development",
    "local": "config.development",
}


def get_settings_module() -> str:
    """Settings module for APP_ENV; unknown values fall back to development."""
    env = os.getenv("APP_ENV", "development").strip().lower()
    module = _MODULES.get(env)
    if module is None:
        logger.warning("Unknown APP_ENV %r, using development settings", env)
        return "config.development"
    return module
