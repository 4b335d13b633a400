import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Dict, List

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Rotating files under the log directory, by handler name.
LOG_FILES = {
    "file_app": ("app.log", "INFO"),
    "file_error": ("error.log", "ERROR"),
    # Room subscriptions and dropped deliveries are only logged at DEBUG.
    "file_realtime": ("realtime.log", "DEBUG"),
}

REALTIME_LOGGERS = ("clubhouse.utils.websocket_manager", "clubhouse.routers.realtime")


def _prune_backups(log_dir: Path, base_name: str, backup_count: int) -> None:
    if backup_count < 1:
        return
    backups = sorted(
        log_dir.glob(f"{base_name}.*"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    for stale in backups[backup_count:]:
        try:
            stale.unlink()
        except OSError:
            continue


def _rotating_handler(path: Path, level: str, max_bytes: int, backup_count: int) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "default",
        "filename": str(path),
        "maxBytes": max_bytes,
        "backupCount": backup_count,
        "level": level,
        "encoding": "utf8",
    }


def _logger(level: str, handlers: List[str], propagate: bool = False) -> Dict[str, Any]:
    return {"handlers": handlers, "level": level, "propagate": propagate}


def build_logging_config(log_dir: Path, level: str = "INFO") -> Dict[str, Any]:
    """
    dictConfig mapping for the service.

    `clubhouse` is the parent of every module logger (`clubhouse.services.*`,
    `clubhouse.routers.*`, ...), which log through it. The realtime loggers
    additionally feed `realtime.log` at DEBUG.
    """
    max_bytes = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "3"))

    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "level": level,
        },
    }
    for name, (filename, handler_level) in LOG_FILES.items():
        handlers[name] = _rotating_handler(
            log_dir / filename, handler_level, max_bytes, backup_count
        )

    loggers: Dict[str, Any] = {
        "": _logger("WARNING", ["console", "file_app", "file_error"], propagate=True),
        "clubhouse": _logger(level, ["console", "file_app", "file_error"]),
        "clubhouse.services": _logger("INFO", [], propagate=True),
        "auth_module": _logger("INFO", ["console", "file_app"]),
        "audit": _logger("INFO", ["file_app"]),
        # get_db traces every session at DEBUG; keep only problems.
        "database": _logger("WARNING", ["console", "file_app", "file_error"]),
        "sqlalchemy.engine": _logger("WARNING", ["file_app", "file_error"]),
        "uvicorn": _logger("INFO", ["console", "file_app"]),
        "uvicorn.access": _logger("INFO", ["file_app"]),
        "uvicorn.error": _logger("INFO", ["console", "file_error"]),
    }
    for name in REALTIME_LOGGERS:
        loggers[name] = _logger("DEBUG", ["file_realtime"], propagate=True)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": LOG_FORMAT}},
        "handlers": handlers,
        "loggers": loggers,
    }


def setup_logging() -> Path:
    """
    Configures logging for the service and returns the log directory.

    The directory comes from CLUBHOUSE_LOG_DIR (default `logs`), the console
    level from CLUBHOUSE_LOG_LEVEL (default INFO).
    """
    log_dir = Path(os.getenv("CLUBHOUSE_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    level = os.getenv("CLUBHOUSE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "3"))
    for filename, _ in LOG_FILES.values():
        _prune_backups(log_dir, filename, backup_count)

    logging.config.dictConfig(build_logging_config(log_dir, level))
    logging.getLogger("clubhouse").info("Logging configured in %s", log_dir)
    return log_dir
