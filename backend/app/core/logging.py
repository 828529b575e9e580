from __future__ import annotations

import logging
import logging.handlers

from app.core.config import BACKEND_DIR


def setup_logging(*, environment: str, level: str | None = None) -> None:
    """Configure root logging once per process.

    Development logs to the console at DEBUG; production adds a rotating file
    under backend/logs and logs at INFO. An explicit level wins over both.
    """

    root = logging.getLogger()
    if root.handlers:
        return

    env = (environment or "development").lower().strip()
    default_level = logging.INFO if env == "production" else logging.DEBUG
    resolved_level = logging.getLevelName(level.upper()) if level else default_level
    if not isinstance(resolved_level, int):
        resolved_level = default_level

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    handlers: list[logging.Handler] = []

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    handlers.append(console)

    if env == "production":
        logs_dir = BACKEND_DIR / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=resolved_level, handlers=handlers)

    # SQL echo at DEBUG drowns out scheduling logs.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
