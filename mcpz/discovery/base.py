# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Capability discovery interface and the merging front end.

Discovery is read-only: sources produce descriptors, and the command layer
reconciles them into the config document with ``sync_records``.
"""

import logging
from typing import Dict, List, Protocol, Sequence

from mcpz.models.capability import PluginDescriptor, SkillDescriptor
from mcpz.models.config import ConfigDocument, PluginRecord, SkillRecord

logger = logging.getLogger(__name__)


class CapabilitySource(Protocol):
    """Anything that can enumerate plugins and skills."""

    name: str

    def discover_plugins(self) -> List[PluginDescriptor]: ...

    def discover_skills(self) -> List[SkillDescriptor]: ...


class CapabilityDiscovery:
    """Merge several sources; later sources override earlier ones on id collision.

    The default order is npm first, local last, so local manifests act as
    developer overrides of installed packages.
    """

    def __init__(self, sources: Sequence[CapabilitySource]):
        self.sources = list(sources)

    def discover_plugins(self) -> List[PluginDescriptor]:
        merged: Dict[str, PluginDescriptor] = {}
        for source in self.sources:
            for plugin in source.discover_plugins():
                if plugin.id in merged:
                    logger.info(
                        f"Plugin '{plugin.id}' from {source.name} overrides "
                        f"{merged[plugin.id].origin} copy"
                    )
                merged[plugin.id] = plugin
        return sorted(merged.values(), key=lambda p: p.id)

    def discover_skills(self) -> List[SkillDescriptor]:
        merged: Dict[str, SkillDescriptor] = {}
        for source in self.sources:
            for skill in source.discover_skills():
                if skill.id in merged:
                    logger.info(
                        f"Skill '{skill.id}' from {source.name} overrides "
                        f"{merged[skill.id].origin} copy"
                    )
                merged[skill.id] = skill
        return sorted(merged.values(), key=lambda s: s.id)


def sync_records(
    config: ConfigDocument,
    plugins: Sequence[PluginDescriptor],
    skills: Sequence[SkillDescriptor],
) -> List[str]:
    """Reconcile discovered capabilities into ``config`` in place.

    New ids get an enabled record, known ids keep their enabled flag but pick
    up version/server/tool changes, and records whose capability disappeared
    are removed. Returns a human-readable list of changes.
    """
    changes: List[str] = []

    seen_plugins = set()
    for plugin in plugins:
        seen_plugins.add(plugin.id)
        servers = [s.name for s in plugin.servers]
        existing = config.plugins.get(plugin.id)
        if existing is None:
            config.plugins[plugin.id] = PluginRecord(
                enabled=True, version=plugin.version, origin=plugin.origin, servers=servers
            )
            changes.append(f"added plugin {plugin.id}")
        elif (existing.version, existing.origin, existing.servers) != (plugin.version, plugin.origin, servers):
            config.plugins[plugin.id] = existing.model_copy(
                update={"version": plugin.version, "origin": plugin.origin, "servers": servers}
            )
            changes.append(f"updated plugin {plugin.id}")
    for plugin_id in sorted(set(config.plugins) - seen_plugins):
        del config.plugins[plugin_id]
        changes.append(f"removed plugin {plugin_id}")

    seen_skills = set()
    for skill in skills:
        seen_skills.add(skill.id)
        existing_skill = config.skills.get(skill.id)
        tools = list(skill.tools)
        if existing_skill is None:
            config.skills[skill.id] = SkillRecord(enabled=True, version=skill.version, tools=tools)
            changes.append(f"added skill {skill.id}")
        elif (existing_skill.version, existing_skill.tools) != (skill.version, tools):
            config.skills[skill.id] = existing_skill.model_copy(
                update={"version": skill.version, "tools": tools}
            )
            changes.append(f"updated skill {skill.id}")
    for skill_id in sorted(set(config.skills) - seen_skills):
        del config.skills[skill_id]
        changes.append(f"removed skill {skill_id}")

    return changes
