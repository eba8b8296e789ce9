import json
import logging
import os
import sys

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def resolve_level(
    debug: bool = False, quiet: bool = False, level: str | None = None
) -> int:
    """Pick the effective log level.

    ``debug`` wins over everything; otherwise ``LOG_LEVEL`` (or *level*
    from the settings file) applies, and ``quiet`` raises the floor to
    WARNING.
    """
    if debug:
        return logging.DEBUG

    env_level = os.getenv("LOG_LEVEL") or level or "INFO"
    log_level = getattr(logging, env_level.upper(), logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    if quiet:
        log_level = max(log_level, logging.WARNING)
    return log_level


def setup_logging(
    debug: bool = False,
    quiet: bool = False,
    log_file: str | None = None,
    log_format: str = "text",
    level: str | None = None,
) -> None:
    """
    Configure logging for the command line.

    Progress goes to stderr so stdout stays clean for ``--json`` reports.

    Args:
        debug: If True, overrides LOG_LEVEL to DEBUG.
        quiet: If True, only warnings and errors are shown.
        log_file: Also append records to this file.
        log_format: "text" (default) or "json" for structured output.
        level: Level name from the settings file, used when LOG_LEVEL
            is unset.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: INFO.
    """
    log_level = resolve_level(debug=debug, quiet=quiet, level=level)

    handlers: list[logging.Handler] = []
    stderr_handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        stderr_handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT))
    else:
        stderr_handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] [%(levelname)s] %(message)s",
                datefmt=DATE_FORMAT,
            )
        )
    handlers.append(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        if log_format == "json":
            file_handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT))
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "[%(asctime)s] [%(levelname)s] %(name)s %(message)s",
                    datefmt=DATE_FORMAT,
                )
            )
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("charset_normalizer").setLevel(logging.WARNING)
