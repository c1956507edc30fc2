"""
Configuration loading for the recovery risk engine
"""

import os
import logging
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from .schema import RiskConfig
from .errors import ConfigError, ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "recovery_risk.yaml"
CONFIG_ENV_VAR = "RECOVERY_RISK_CONFIG"

def load_config(path: Optional[Union[str, Path]] = None) -> RiskConfig:
    """
    Load engine configuration from YAML.

    Resolution order: explicit path, then $RECOVERY_RISK_CONFIG, then the
    packaged config/recovery_risk.yaml. A missing file falls back to the
    built-in defaults; a file that exists but cannot be parsed raises ConfigError.
    """
    config_path = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        logger.warning(f"[{ErrorCode.CFG_FILE_NOT_FOUND.value}] Config file {config_path} not found, using defaults")
        return RiskConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            error_code=ErrorCode.CFG_INVALID_CONFIG,
            message=f"Could not parse {config_path}",
            details={"path": str(config_path)},
            original_exception=e
        ) from e

    if not isinstance(config_data, dict):
        raise ConfigError(
            error_code=ErrorCode.CFG_INVALID_CONFIG,
            message=f"Expected a mapping at the top of {config_path}",
            details={"path": str(config_path)}
        )

    try:
        config = RiskConfig.model_validate(config_data)
    except PydanticValidationError as e:
        raise ConfigError(
            error_code=ErrorCode.CFG_INVALID_CONFIG,
            message=f"Invalid values in {config_path}",
            details={"path": str(config_path), "errors": e.errors(include_url=False)},
            original_exception=e
        ) from e

    for category, total in config.validate_weights().items():
        if abs(total - 1.0) > 0.01:
            logger.warning(f"Domain weights for {category.value} sum to {total:.3f}, not 1.0")

    logger.info(f"Loaded recovery risk config from {config_path}")
    return config
