from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from core.config import BACKEND_DIR


# Loggers that trace a run: planner and repair, the run lifecycle, the worker tasks.
ALLOCATION_LOGGERS = ("seating", "services.allocation_runs", "services.tasks")


def resolve_level(name: str | None, default: int) -> int:
    if not name:
        return default
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(*, environment: str, seating_level: str | None = None) -> None:
    """Configure application logging.

    - Dev: console logs, DEBUG level.
    - Prod: console + rotating `allocator.log`, INFO level.

    `seating_level` (SEATING_LOG_LEVEL) overrides the level of the allocation
    loggers only. Safe to call multiple times (won't double-add handlers); the
    Celery worker calls it too, so jobs log in the same format as requests.
    """

    root = logging.getLogger()
    if root.handlers:
        return

    env = (environment or "development").lower().strip()
    level = logging.INFO if env == "production" else logging.DEBUG

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(process)d] %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    if env == "production":
        logs_dir = Path(BACKEND_DIR) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "allocator.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers)

    for name in ALLOCATION_LOGGERS:
        logging.getLogger(name).setLevel(resolve_level(seating_level, level))

    # Keep common noisy loggers reasonable.
    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("kombu").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
