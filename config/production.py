import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATA_SOURCE = "mysql"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "hr_db"),
    "connect_timeout": int(os.getenv("DB_CONNECT_TIMEOUT", "10")),
}

TENANT_ID = int(os.getenv("TENANT_ID")) if os.getenv("TENANT_ID") else None

MUTATION_TIMEOUT_SEC = float(os.getenv("MUTATION_TIMEOUT_SEC", "15"))

STORAGE_ROOT = os.getenv("STORAGE_ROOT", "/var/lib/hr-sync/storage")
STORAGE_BASE_URL = os.getenv("STORAGE_BASE_URL", "/storage")

WORK_START_TIME = os.getenv("WORK_START_TIME", "09:00")
LATE_THRESHOLD_MINUTES = int(os.getenv("LATE_THRESHOLD_MINUTES", "30"))
HALF_DAY_HOURS = float(os.getenv("HALF_DAY_HOURS", "4"))
WORK_TIMEZONE = os.getenv("WORK_TIMEZONE", "UTC")

# If enabled, the app creates missing tables on startup (CREATE TABLE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
