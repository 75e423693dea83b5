# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tuning settings for mcpz, read from ~/.mcpz/settings.yml.

Example settings.yml:

    timeouts:
      handshake: 20
    launch:
      max_parallel: 8
"""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from mcpz.models.settings import SettingsModel
from mcpz.paths import HostPaths

logger = logging.getLogger(__name__)


def load_settings(path: Optional[Path] = None) -> SettingsModel:
    """Load settings from YAML, falling back to defaults on any problem."""
    settings_path = path or HostPaths.settings_file()
    if not settings_path.exists():
        return SettingsModel()

    try:
        with open(settings_path) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load settings from {settings_path}: {e}")
        return SettingsModel()

    if not isinstance(raw, dict):
        logger.warning(f"Ignoring {settings_path}: expected a mapping at the top level")
        return SettingsModel()

    try:
        return SettingsModel.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Settings validation errors, using defaults: {e}")
        return SettingsModel()


_settings: Optional[SettingsModel] = None


def get_settings() -> SettingsModel:
    """Get the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings (tests switch MCPZ_HOME between cases)."""
    global _settings
    _settings = None
