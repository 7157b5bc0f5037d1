from __future__ import annotations

import atexit
import importlib
import logging
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from flask import Flask, jsonify

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .attendance.model import AttendanceSettings
from .container import Container, build_container, build_source
from .core.constants import DEFAULT_MUTATION_TIMEOUT_SEC
from .database.bootstrap import apply_schema
from .database.connection import DBConfig, DatabaseConnection
from .expenses.controller import register as register_expenses
from .leaves.controller import register as register_leaves
from .tasks.controller import register as register_tasks

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    if container is None:
        data_source = getattr(settings, "DATA_SOURCE", "mysql")
        db_config = getattr(settings, "DB_CONFIG", None)
        if data_source == "mysql":
            logger.info(
                "settings=%s db=%s@%s:%s/%s",
                settings_module,
                db_config.get("user"),
                db_config.get("host"),
                db_config.get("port", 3306),
                db_config.get("database"),
            )
            if getattr(settings, "AUTO_INIT_DB", False):
                apply_schema(DatabaseConnection.get_instance(DBConfig.from_dict(db_config)))
        source = build_source(
            data_source=data_source,
            db_config=db_config,
            storage_root=getattr(settings, "STORAGE_ROOT", "storage"),
            storage_base_url=getattr(settings, "STORAGE_BASE_URL", "/storage"),
        )
        container = build_container(
            source=source,
            tenant_id=getattr(settings, "TENANT_ID", None),
            mutation_timeout=getattr(settings, "MUTATION_TIMEOUT_SEC", DEFAULT_MUTATION_TIMEOUT_SEC),
            attendance_settings=AttendanceSettings.from_values(
                work_start=getattr(settings, "WORK_START_TIME", "09:00"),
                late_threshold_minutes=getattr(settings, "LATE_THRESHOLD_MINUTES", 30),
                half_day_hours=getattr(settings, "HALF_DAY_HOURS", 4),
                tz=ZoneInfo(getattr(settings, "WORK_TIMEZONE", "UTC")),
            ),
        )

    container.start()
    atexit.register(container.close)
    app.extensions["hr_sync"] = container

    @app.route("/api/health", methods=["GET"], endpoint="health")
    def health():
        return jsonify(
            {
                "success": True,
                "views": {s.table: {"active": s.active, "fetch_error": s.fetch_error} for s in container.stores()},
                "malformed_values": container.diagnostics.count,
            }
        )

    register_attendance(app, container)
    register_expenses(app, container)
    register_tasks(app, container)
    register_leaves(app, container)

    return app
