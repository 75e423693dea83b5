# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Capability discovery: plugins contribute servers, skills contribute tools."""

from typing import Optional

from mcpz.discovery.base import CapabilityDiscovery, CapabilitySource, sync_records
from mcpz.discovery.local import LocalCapabilitySource
from mcpz.discovery.npm import NpmCapabilitySource


def default_discovery(npm: Optional[NpmCapabilitySource] = None) -> CapabilityDiscovery:
    """npm packages first, local manifests last (local overrides npm)."""
    return CapabilityDiscovery([npm or NpmCapabilitySource(), LocalCapabilitySource()])


__all__ = [
    "CapabilityDiscovery",
    "CapabilitySource",
    "LocalCapabilitySource",
    "NpmCapabilitySource",
    "default_discovery",
    "sync_records",
]
