import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "[%(asctime)s] [%(name)s] %(message)s"
LOG_DATEFMT = "%H:%M:%S"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUP_COUNT = 3

_ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def _named(handler: logging.Handler, name: str, level: int) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATEFMT))
    handler.setLevel(level)
    handler.name = name
    return handler


def _attach(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    logger.handlers = list(handlers)
    logger.propagate = False


def server_log_path(logs_dir: str) -> str:
    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    return os.path.join(logs_dir, f"server_{stamp}.log")


def configure_logging(logs_dir: str) -> str:
    """Send root and uvicorn records to a rotating ``server_<ts>.log`` and stderr.

    The file gets everything from DEBUG up (including ``callcoach.trace`` and
    ``DBG`` lines); the console stays at INFO.
    """
    os.makedirs(logs_dir, exist_ok=True)
    log_path = server_log_path(logs_dir)

    handlers = [
        _named(
            RotatingFileHandler(log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT),
            "callcoach_file",
            logging.DEBUG,
        ),
        _named(logging.StreamHandler(), "callcoach_stream", logging.INFO),
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    _attach(root_logger, handlers)

    for name in _ROUTED_LOGGERS:
        routed = logging.getLogger(name)
        routed.setLevel(logging.INFO)
        _attach(routed, handlers)

    # urllib3 connection chatter stays at INFO
    logging.getLogger("urllib3").setLevel(logging.INFO)

    root_logger.info("Logging initialized: %s", log_path)
    return log_path
