from __future__ import annotations

import sys
from pathlib import Path

import importlib

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import get_settings_module

from src.promotion_voting.promotion_voting.database.bootstrap import (
    REQUIRED_TABLES,
    apply_schema,
    list_tables,
    missing_tables,
)


def main() -> int:
    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)
    target = (
        f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}"
    )

    schema_path = REPO_ROOT / "database" / "schema.sql"
    apply_schema(db_config, schema_path=schema_path)
    tables = list_tables(db_config)

    missing = missing_tables(tables)
    if missing:
        print(f"FAIL: {target} is missing {', '.join(missing)}")
        return 1

    extra = sorted(t for t in tables if t.lower() not in REQUIRED_TABLES)
    print(f"OK: Applied schema.sql -> {target}")
    for name in sorted(REQUIRED_TABLES):
        print(f"  {name}")
    if extra:
        print(f"  (unmanaged: {', '.join(extra)})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
