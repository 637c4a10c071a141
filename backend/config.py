import os
from pathlib import Path

BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.environ.get("WORKFLOW_DATA_DIR", BASE_DIR / "data"))

RUNS_DATABASE_PATH = Path(os.environ.get("RUNS_DATABASE_PATH", DATA_DIR / "workflow_runs.duckdb"))

# Remote per-node executor service (LLM / crop / frame extraction tasks)
NODE_EXECUTOR_URL = os.environ.get("NODE_EXECUTOR_URL", "http://localhost:3000/api")
EXECUTOR_POLL_INTERVAL = float(os.environ.get("EXECUTOR_POLL_INTERVAL", "2.0"))
EXECUTOR_TIMEOUT = float(os.environ.get("EXECUTOR_TIMEOUT", "300"))
EXECUTOR_REQUEST_TIMEOUT = float(os.environ.get("EXECUTOR_REQUEST_TIMEOUT", "130"))

DEFAULT_LLM_MODEL = os.environ.get("DEFAULT_LLM_MODEL", "gemini-2.5-flash")

RUN_HISTORY_LIMIT = 50
RECORDER_MAX_CONCURRENCY = int(os.environ.get("RECORDER_MAX_CONCURRENCY", "4"))

# Runs older than this many days are deleted at server start (0 keeps everything)
RUN_RETENTION_DAYS = int(os.environ.get("RUN_RETENTION_DAYS", "0"))

# Finished HTTP executions kept in memory for /graph/status lookups
EXECUTION_HISTORY_LIMIT = int(os.environ.get("EXECUTION_HISTORY_LIMIT", "100"))
IO_POOL_SIZE = int(os.environ.get("IO_POOL_SIZE", "8"))

SERVER_PORT = int(os.environ.get("SERVER_PORT", "5000"))

DATA_DIR.mkdir(parents=True, exist_ok=True)
