from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Optional

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from platform_console.core.config import DATABASE_URL

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"
SCHEMA_PREFIX = "[SCHEMA]"

# Tables and columns the admin core reads or writes. Optional columns are
# reported through SchemaCapabilities instead.
REQUIRED_SCHEMA: Dict[str, FrozenSet[str]] = {
    "tenants": frozenset({"id", "name", "is_active"}),
    "users": frozenset({"id", "tenant_id", "is_active"}),
    "admin_users": frozenset({"id", "email", "role", "active"}),
    "orders": frozenset({"id", "tenant_id", "status", "created_at"}),
    "marketing_campaigns": frozenset({"id", "tenant_id", "status", "scheduled_at", "rejection_reason"}),
    "tasks": frozenset({"id", "scope", "tenant_id", "company_id", "parent_task_group_id", "status", "completed_at"}),
    "audit_logs": frozenset({"id", "tenant_id", "actor_id", "action", "entity_type", "entity_id", "details_json"}),
    "admin_idempotency_keys": frozenset({"id", "entity_type", "entity_id", "action", "idempotency_key", "result_json"}),
    "demo_bookings": frozenset({"id", "restaurant_name", "status", "converted_task_id"}),
}


@dataclass(frozen=True)
class SchemaCapabilities:
    campaigns_support_active_flag: bool = True
    demo_bookings_track_conversion_stage: bool = True


def _runtime_env() -> str:
    return os.getenv("ENVIRONMENT", os.getenv("ENV", "dev")).strip().lower()


def validate_database_environment(database_url: Optional[str] = None) -> None:
    url = str(database_url or DATABASE_URL)
    if _runtime_env() in {"prod", "production"} and url.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def apply_migrations(*, alembic_config_path: Path) -> None:
    """Apply pending Alembic migrations in production-like runtime before startup checks."""
    env = _runtime_env()
    auto_apply_raw = os.getenv("AUTO_APPLY_MIGRATIONS", "").strip().lower()

    if auto_apply_raw in {"0", "false", "no", "off"}:
        logger.info("%s auto migration disabled by AUTO_APPLY_MIGRATIONS", MIGRATIONS_PREFIX)
        return

    should_auto_apply = auto_apply_raw in {"1", "true", "yes", "on"}
    if auto_apply_raw == "":
        should_auto_apply = env in {"prod", "production"}

    if not should_auto_apply:
        logger.info("%s auto migration skipped env=%s", MIGRATIONS_PREFIX, env)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    logger.info("%s applying migrations to head", MIGRATIONS_PREFIX)
    try:
        subprocess.run(
            [sys.executable, "-m", "alembic", "-c", str(alembic_config_path), "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        logger.critical(
            "%s migration apply failed returncode=%s stdout=%s stderr=%s",
            MIGRATIONS_PREFIX,
            exc.returncode,
            (exc.stdout or "").strip(),
            (exc.stderr or "").strip(),
        )
        raise RuntimeError("Automatic migration failed") from exc

    logger.info("%s migrations applied", MIGRATIONS_PREFIX)


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if _runtime_env() == "test":
        logger.info("%s skipped migration check in test environment", MIGRATIONS_PREFIX)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    alembic_cfg = Config(str(alembic_config_path))
    script_directory = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script_directory.get_heads())

    with engine.connect() as connection:
        inspector = inspect(connection)
        if "alembic_version" not in inspector.get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")

        current_rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in current_rows if row and row[0]}
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", MIGRATIONS_PREFIX)


def ensure_schema_contract(engine: Engine) -> SchemaCapabilities:
    """Verify required tables/columns once and report the optional ones."""
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    columns = {
        table: {column["name"] for column in inspector.get_columns(table)}
        for table in REQUIRED_SCHEMA
        if table in tables
    }

    missing = []
    for table, required in sorted(REQUIRED_SCHEMA.items()):
        if table not in columns:
            missing.append(table)
            continue
        missing.extend(f"{table}.{name}" for name in sorted(required - columns[table]))
    if missing:
        logger.critical("%s missing schema objects: %s", SCHEMA_PREFIX, ", ".join(missing))
        raise RuntimeError(f"Database schema is missing: {', '.join(missing)}")

    capabilities = SchemaCapabilities(
        campaigns_support_active_flag="is_active" in columns["marketing_campaigns"],
        demo_bookings_track_conversion_stage="conversion_stage" in columns["demo_bookings"],
    )
    logger.info(
        "%s contract verified campaigns_active_flag=%s conversion_stage=%s",
        SCHEMA_PREFIX,
        capabilities.campaigns_support_active_flag,
        capabilities.demo_bookings_track_conversion_stage,
    )
    return capabilities
