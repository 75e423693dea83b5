# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Construct the core services for a CLI invocation.

Core services take their dependencies explicitly; this module is the one
place that wires them from HostPaths and settings.yml.
"""

import asyncio
from typing import Any, Coroutine, List, Optional, TypeVar

from mcpz.config_store import ConfigStore
from mcpz.discovery import CapabilityDiscovery, default_discovery, sync_records
from mcpz.discovery.installers import PluginInstaller, SkillInstaller
from mcpz.discovery.registry import RegistryClient
from mcpz.instances import InstanceManager, InstanceRegistry
from mcpz.settings import get_settings

T = TypeVar("T")


def get_store() -> ConfigStore:
    return ConfigStore(lock_timeout=get_settings().timeouts.lock_wait)


def get_registry() -> InstanceRegistry:
    return InstanceRegistry(lock_timeout=get_settings().timeouts.lock_wait)


def get_manager(registry: Optional[InstanceRegistry] = None) -> InstanceManager:
    return InstanceManager.from_settings(get_settings(), registry=registry or get_registry())


def get_discovery() -> CapabilityDiscovery:
    return default_discovery()


def get_registry_client() -> RegistryClient:
    settings = get_settings()
    return RegistryClient(npm_url=settings.registry.npm_url, skills_url=settings.registry.skills_url)


def get_plugin_installer() -> PluginInstaller:
    return PluginInstaller(registry=get_registry_client())


def get_skill_installer() -> SkillInstaller:
    return SkillInstaller(registry=get_registry_client())


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Drive a coroutine from a synchronous click command."""
    return asyncio.run(coro)


def sync_capabilities(discovery: Optional[CapabilityDiscovery] = None) -> List[str]:
    """Discover plugins and skills and persist their records. Returns the changes."""
    discovery = discovery or get_discovery()
    plugins = discovery.discover_plugins()
    skills = discovery.discover_skills()
    changes: List[str] = []

    def apply(doc):
        changes.extend(sync_records(doc, plugins, skills))

    get_store().update(apply)
    return changes
