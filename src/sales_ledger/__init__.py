"""Sales ledger package: invoices, payments, purchases, and stock in one workbook.

Importing the package configures the shared ``log`` logger used by every
module. Records go to a rotating file under ``.logs/`` (or the directory named
by ``SALES_LEDGER_LOG_DIR``) and warnings are echoed to stderr.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


__version__ = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("SALES_LEDGER_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "sales_ledger.log"

# Writers may run on several threads; the thread name tells their records apart.
LOG_FORMAT = "%(asctime)s | %(name)s | %(threadName)s | %(levelname)s | %(message)s"


def _configure_logging() -> logging.Logger:
    """Attach the file and console handlers once per process."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(
            f"Warning: ledger log file '{LOG_FILE}' is unavailable ({exc}); logging to stderr only",
            file=sys.stderr,
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.set_name("console")
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def set_console_level(level: int) -> None:
    """Change how much of the ledger log is echoed to stderr."""

    for handler in log.handlers:
        if handler.get_name() == "console":
            handler.setLevel(level)


log = _configure_logging()
log.debug("Ledger logging ready (file: %s)", LOG_FILE)
