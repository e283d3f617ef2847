from __future__ import annotations

import logging
import os
from typing import Optional

from pythonjsonlogger import jsonlogger

PACKAGE_LOGGER = "sc_qc"

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(
        level: int = logging.INFO,
        force_format: Optional[str] = None,
        package_level: Optional[int] = None,
) -> None:
    """
    Send QC logs to stderr, as JSON records or plain lines.

    The format is chosen by force_format ("json" or "plain"), then the
    SC_QC_LOG_FORMAT env var, then JSON. Structured fields passed via
    `extra=` (assay, n_cells, control sets...) become JSON keys.

    `level` applies to the root logger. The "sc_qc" logger gets
    `package_level` when given (e.g. DEBUG to see skipped percent_top sizes
    without third-party debug noise), otherwise it follows the root.
    """
    if force_format is not None:
        format_mode = force_format.lower()
    else:
        format_mode = os.getenv("SC_QC_LOG_FORMAT", "json").lower()

    if format_mode == "plain":
        formatter: logging.Formatter = logging.Formatter(_LOG_FORMAT)
    else:
        formatter = jsonlogger.JsonFormatter(_LOG_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.NOTSET if package_level is None else package_level)
