# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic model for ~/.mcpz/settings.yml."""

from pydantic import BaseModel, Field


class TimeoutsConfig(BaseModel):
    """Timeouts in seconds."""

    handshake: float = Field(default=10.0, gt=0)
    stop: float = Field(default=5.0, gt=0)
    lock_wait: float = Field(default=5.0, ge=0)
    tool_call: float = Field(default=60.0, gt=0)


class LaunchConfig(BaseModel):
    max_parallel: int = Field(default=4, ge=1)
    handshake_retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=0.5, ge=0)


class RegistryConfig(BaseModel):
    """Network endpoints used by install commands only."""

    npm_url: str = "https://registry.npmjs.org"
    skills_url: str = "https://agentskills.io/api"


class HealthConfig(BaseModel):
    probe_retries: int = Field(default=2, ge=1)


class SettingsModel(BaseModel):
    """Root settings model. Every key is optional and falls back to a default."""

    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    launch: LaunchConfig = Field(default_factory=LaunchConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
