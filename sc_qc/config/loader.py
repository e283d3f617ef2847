from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from sc_qc.config.model import QCSettings
from sc_qc.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SC_QC_CONFIG"
EXPRS_VALUES_ENV_VAR = "SC_QC_EXPRS_VALUES"


def load_settings(path: Optional[Union[str, Path]] = None) -> QCSettings:
    """
    Load QC settings from a JSON file.

    Resolution order:
        1) `path` argument if provided
        2) env var SC_QC_CONFIG
        3) built-in defaults

    The env var SC_QC_EXPRS_VALUES overrides the configured assay.

    :param path: path to a JSON file holding QCSettings fields
    :return: a QCSettings instance
    :raises FileNotFoundError: if the config file does not exist
    :raises ConfigError: if the file is not valid JSON or has invalid fields
    """
    if path is None:
        env_path = os.getenv(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else None

    if path is None:
        settings = QCSettings()
    else:
        path = Path(path)
        logger.info(
            "Loading QC settings",
            extra={"config_path": str(path)},
        )
        if not path.is_file():
            raise FileNotFoundError(f"File not found at {path}")

        with path.open() as f:
            try:
                raw = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"QC settings in {path} must be a JSON object")

        settings = QCSettings.from_dict(raw)

    override = os.getenv(EXPRS_VALUES_ENV_VAR)
    if override:
        logger.info(
            "Assay overridden from environment",
            extra={"exprs_values": override},
        )
        settings.exprs_values = override

    return settings


def save_settings(settings: QCSettings, path: Union[str, Path]) -> Path:
    """Write settings as pretty-printed JSON and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(settings.to_dict(), f, indent=2)
    return path
