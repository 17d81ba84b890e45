"""Default configuration values for Dreadnot."""

# Targets used when a stack module does not declare them. A default target is
# only offered when the module defines every task it names.
DEFAULT_TARGETS: dict[str, list[str] | None] = {
    "deploy": ["task_predeploy", "task_deploy", "task_postdeploy"],
    "finally": None,
}

FINALLY_TARGET = "finally"
TASK_PREFIX = "task_"

# Number of deployments returned by history listings
PAGE_SIZE = 10

DEFAULT_TIP_TTL = 120.0  # seconds

RECORD_SUFFIX = ".json"
WARNING_FILE = "warning.txt"
LOGS_DIR = "logs"
# Per-stack file serializing deployments across processes sharing a data root
LOCK_FILE = ".deploy.lock"

# Attempts made to write a finished deployment record before giving up
PERSIST_ATTEMPTS = 3
PERSIST_RETRY_DELAY = 0.5  # seconds

# Environment variable overrides for top-level settings
ENV_VAR_MAP = {
    "env": "DREADNOT_ENV",
    "name": "DREADNOT_NAME",
    "data_root": "DREADNOT_DATA_ROOT",
    "stacks_dir": "DREADNOT_STACKS_DIR",
}
