from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .appeals.controller import register as register_appeals
from .campaigns.controller import register as register_campaigns
from .candidates.controller import register as register_candidates
from .common.logging_utils import setup_logging
from .container import Container, build_container
from .database.bootstrap import apply_schema, list_tables, missing_tables
from .statistics.controller import register as register_statistics
from .voting.controller import register as register_voting

logger = logging.getLogger(__name__)


def load_settings():
    load_dotenv(override=False)
    return importlib.import_module(get_settings_module())


def container_from_settings(settings, *, notifier=None) -> Container:
    salt = getattr(settings, "VOTER_FINGERPRINT_SALT", "")
    if not salt:
        raise RuntimeError("VOTER_FINGERPRINT_SALT is not configured")
    return build_container(
        db_config=getattr(settings, "DB_CONFIG"),
        fingerprint_salt=salt,
        notifier=notifier,
        late_count_threshold=int(getattr(settings, "LATE_COUNT_THRESHOLD", 3)),
        late_minutes_threshold=int(getattr(settings, "LATE_MINUTES_THRESHOLD", 10)),
        max_punishment_rounds=int(getattr(settings, "MAX_PUNISHMENT_ROUNDS", 3)),
        show_live_results=bool(getattr(settings, "SHOW_LIVE_RESULTS", False)),
    )


def create_app(container: Optional[Container] = None) -> Flask:
    settings = load_settings()
    setup_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    app = Flask(__name__)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            settings.__name__,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
            apply_schema(db_config, schema_path=schema_path)
            tables = list_tables(db_config)
            missing = missing_tables(tables)
            if missing:
                raise RuntimeError(f"Schema is missing tables: {', '.join(missing)}")
            logger.info("schema ready (tables=%s)", len(tables))
        container = container_from_settings(settings)

    app.extensions["promotion_voting"] = container

    register_campaigns(app, container)
    register_candidates(app, container)
    register_voting(app, container)
    register_statistics(app, container)
    register_appeals(app, container)

    return app
