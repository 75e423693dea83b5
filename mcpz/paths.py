# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized path definitions for mcpz.

Every file mcpz reads or writes lives under a single home directory,
``~/.mcpz`` by default:

    ~/.mcpz/config.json          servers, toolboxes, plugin and skill records
    ~/.mcpz/settings.yml         optional tuning (timeouts, parallelism, registries)
    ~/.mcpz/instances/<id>.json  instance registry, one record per launch
    ~/.mcpz/plugins/             local plugin manifests (developer overrides)
    ~/.mcpz/skills/<name>/       local skills (SKILL.md)
    ~/.mcpz/logs/mcpz.log        rotating log file

Usage:
    from mcpz.paths import HostPaths

    config_file = HostPaths.config_file()
    registry_dir = HostPaths.instances_dir()

Environment Variables:
    MCPZ_HOME=/path     Relocate the whole tree (used by tests)
    MCPZ_CONFIG=/path   Load and save the config document somewhere else
"""

import os
from pathlib import Path


class HostPaths:
    """Paths on the machine where the mcpz controller runs."""

    @staticmethod
    def home() -> Path:
        """~/.mcpz/ (or $MCPZ_HOME)"""
        override = os.environ.get("MCPZ_HOME")
        if override:
            return Path(override).expanduser()
        return Path.home() / ".mcpz"

    @staticmethod
    def config_file() -> Path:
        """~/.mcpz/config.json (or $MCPZ_CONFIG)"""
        override = os.environ.get("MCPZ_CONFIG")
        if override:
            return Path(override).expanduser()
        return HostPaths.home() / "config.json"

    @staticmethod
    def settings_file() -> Path:
        """~/.mcpz/settings.yml"""
        return HostPaths.home() / "settings.yml"

    @staticmethod
    def instances_dir() -> Path:
        """~/.mcpz/instances/ - persisted instance registry."""
        return HostPaths.home() / "instances"

    @staticmethod
    def plugins_dir() -> Path:
        """~/.mcpz/plugins/ - local plugin manifests."""
        return HostPaths.home() / "plugins"

    @staticmethod
    def skills_dir() -> Path:
        """~/.mcpz/skills/ - local skills."""
        return HostPaths.home() / "skills"

    @staticmethod
    def log_dir() -> Path:
        """~/.mcpz/logs/"""
        return HostPaths.home() / "logs"
