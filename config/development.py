import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DEBUG = True
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# "mysql" or "memory"
DATA_SOURCE = os.getenv("DATA_SOURCE", "mysql")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "hr_db"),
}

# Customer (tenant) every view is scoped to; unset shows all rows
TENANT_ID = int(os.getenv("TENANT_ID")) if os.getenv("TENANT_ID") else None

MUTATION_TIMEOUT_SEC = float(os.getenv("MUTATION_TIMEOUT_SEC", "15"))

STORAGE_ROOT = os.getenv("STORAGE_ROOT", "storage")
STORAGE_BASE_URL = os.getenv("STORAGE_BASE_URL", "http://localhost:5000/storage")

WORK_START_TIME = os.getenv("WORK_START_TIME", "09:00")
LATE_THRESHOLD_MINUTES = int(os.getenv("LATE_THRESHOLD_MINUTES", "30"))
HALF_DAY_HOURS = float(os.getenv("HALF_DAY_HOURS", "4"))
WORK_TIMEZONE = os.getenv("WORK_TIMEZONE", "UTC")

# If enabled, the app creates missing tables on startup (CREATE TABLE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
