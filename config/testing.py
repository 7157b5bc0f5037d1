SECRET_KEY = "test-secret"

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

DATA_SOURCE = "memory"
DB_CONFIG = None

TENANT_ID = 1
MUTATION_TIMEOUT_SEC = 2.0

STORAGE_ROOT = "storage-test"
STORAGE_BASE_URL = "memory://"

WORK_START_TIME = "09:00"
LATE_THRESHOLD_MINUTES = 30
HALF_DAY_HOURS = 4
WORK_TIMEZONE = "UTC"
AUTO_INIT_DB = False
