"""Runtime configuration read from the environment."""

import os

DATABASE_PATH = os.getenv("DATABASE_PATH", "./data/ivrflow.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Transaction ceilings (seconds), sized for the largest flows we have seen
SAVE_TRANSACTION_TIMEOUT = float(os.getenv("SAVE_TRANSACTION_TIMEOUT", "30"))
PUBLISH_TRANSACTION_TIMEOUT = float(os.getenv("PUBLISH_TRANSACTION_TIMEOUT", "60"))
IMPORT_TRANSACTION_TIMEOUT = float(os.getenv("IMPORT_TRANSACTION_TIMEOUT", "60"))

# Number of routing version snapshots kept by cleanup
VERSION_HISTORY_KEEP = int(os.getenv("VERSION_HISTORY_KEEP", "10"))

CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", r"^http://localhost(:\d+)?$")
