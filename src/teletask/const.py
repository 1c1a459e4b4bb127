import os

__all__ = [
    "DEFAULT_MONITORED_FUNCTIONS",
    "TELETASK_CENTRAL_UNIT_NUMBER",
    "TELETASK_CENTRAL_UNIT_TYPE",
    "TELETASK_DEBUG",
    "TELETASK_ENABLE_METRICS",
    "TELETASK_HOST",
    "TELETASK_LOG_FORMAT",
    "TELETASK_LOG_HUMAN_OUTPUT",
    "TELETASK_LOG_JSON_FILE",
    "TELETASK_METRICS_PORT",
    "TELETASK_PORT",
    "TELETASK_REFRESH_ON_CONNECT",
    "TELETASK_REGISTRY_FILE",
    "TELETASK_TEST_MODE",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")

DEFAULT_PORT = 55957
DEFAULT_METRICS_PORT = 9420
# Functions subscribed to the log channel on connect
DEFAULT_MONITORED_FUNCTIONS: tuple[str, ...] = ("relay", "locmood", "genmood", "motor", "dimmer")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


TELETASK_HOST: str = os.environ.get("TELETASK_HOST", "localhost")
TELETASK_PORT: int = _env_int("TELETASK_PORT", DEFAULT_PORT)
TELETASK_CENTRAL_UNIT_TYPE: str = os.environ.get("TELETASK_CENTRAL_UNIT_TYPE", "MICROS_PLUS")
TELETASK_CENTRAL_UNIT_NUMBER: int = _env_int("TELETASK_CENTRAL_UNIT_NUMBER", 1)
_registry_file = os.environ.get("TELETASK_REGISTRY_FILE")
TELETASK_REGISTRY_FILE: str | None = _registry_file if _registry_file else None

TELETASK_DEBUG = os.environ.get("TELETASK_DEBUG", "0").casefold() in YES_ANSWER
TELETASK_TEST_MODE = os.environ.get("TELETASK_TEST_MODE", "0").casefold() in YES_ANSWER
TELETASK_REFRESH_ON_CONNECT = os.environ.get("TELETASK_REFRESH_ON_CONNECT", "1").casefold() in YES_ANSWER

# Logging: "json", "human", or "both"
TELETASK_LOG_FORMAT: str = os.environ.get("TELETASK_LOG_FORMAT", "human").casefold()
_json_file = os.environ.get("TELETASK_LOG_JSON_FILE")
TELETASK_LOG_JSON_FILE: str | None = _json_file if _json_file else None
TELETASK_LOG_HUMAN_OUTPUT: str = os.environ.get("TELETASK_LOG_HUMAN_OUTPUT", "stdout")

TELETASK_ENABLE_METRICS: bool = os.environ.get("TELETASK_ENABLE_METRICS", "0").casefold() in YES_ANSWER
TELETASK_METRICS_PORT: int = _env_int("TELETASK_METRICS_PORT", DEFAULT_METRICS_PORT)
