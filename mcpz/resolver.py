# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Turn a run request into a concrete, deduplicated set of servers.

Order of the result is first-seen: explicitly named servers in request order,
then each requested toolbox in request order with its members in toolbox order.
With servers ``a, b, c`` and toolbox ``t = [a, b]``, requesting server ``b``
and toolbox ``t`` resolves to ``[b, a]``.

The resolver performs no I/O. Plugin servers come in as descriptors that the
caller discovered beforehand.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from mcpz.errors import EmptyResolution, UnknownServer, UnknownSkill, UnknownToolbox
from mcpz.models.capability import PluginDescriptor, SkillDescriptor
from mcpz.models.config import ConfigDocument, ServerSpec, ToolDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collision:
    """A server name offered by more than one origin."""

    name: str
    kept: str
    dropped: str

    def __str__(self) -> str:
        return f"server '{self.name}' from {self.dropped} is shadowed by {self.kept}"


@dataclass(frozen=True)
class SkillSelection:
    """Tools contributed by one enabled skill."""

    id: str
    tools: Tuple[ToolDefinition, ...]
    instructions: str = ""


@dataclass(frozen=True)
class ResolvedRunPlan:
    servers: Tuple[ServerSpec, ...]
    tool_filter: Optional[FrozenSet[str]] = None
    skills: Tuple[SkillSelection, ...] = ()
    collisions: Tuple[Collision, ...] = field(default_factory=tuple)

    @property
    def server_names(self) -> List[str]:
        return [s.name for s in self.servers]

    def allows_tool(self, tool_name: str) -> bool:
        """Whether an un-prefixed tool name passes the tool filter."""
        return self.tool_filter is None or tool_name in self.tool_filter


def build_catalog(
    config: ConfigDocument, active_plugins: Sequence[PluginDescriptor]
) -> Tuple[Dict[str, ServerSpec], List[Collision]]:
    """Addressable servers by name: builtins first, then enabled plugin servers.

    Builtins shadow plugin servers of the same name; between plugins the first
    one wins. Every collision is returned, none is dropped silently. Disabled
    builtin servers stay in the catalog so lookups can say why they fail.
    """
    catalog: Dict[str, ServerSpec] = {}
    collisions: List[Collision] = []

    for server in config.servers:
        catalog[server.name] = server

    for plugin in active_plugins:
        record = config.plugins.get(plugin.id)
        # No record yet means the plugin was discovered but never synced: enabled
        if record is not None and not record.enabled:
            continue
        for server in plugin.servers:
            existing = catalog.get(server.name)
            if existing is not None:
                collisions.append(Collision(server.name, kept=existing.origin, dropped=server.origin))
                logger.warning(str(collisions[-1]))
                continue
            catalog[server.name] = server

    return catalog, collisions


def _ordered_unique(names: Optional[Iterable[str]]) -> List[str]:
    return list(dict.fromkeys(names or ()))


def _lookup(catalog: Dict[str, ServerSpec], name: str, toolbox: Optional[str] = None) -> ServerSpec:
    server = catalog.get(name)
    if server is None:
        raise UnknownServer(name, toolbox=toolbox)
    if not server.enabled:
        raise UnknownServer(name, reason="disabled", toolbox=toolbox)
    return server


def _select_skills(
    config: ConfigDocument,
    skills: Optional[Iterable[str]],
    descriptors: Sequence[SkillDescriptor],
) -> Tuple[SkillSelection, ...]:
    instructions = {d.id: d.instructions for d in descriptors}

    if skills is None:
        return tuple(
            SkillSelection(id=skill_id, tools=tuple(record.tools), instructions=instructions.get(skill_id, ""))
            for skill_id, record in sorted(config.skills.items())
            if record.enabled
        )

    selected = []
    for skill_id in _ordered_unique(skills):
        record = config.skills.get(skill_id)
        if record is None:
            raise UnknownSkill(skill_id)
        if not record.enabled:
            raise UnknownSkill(skill_id, reason="disabled")
        selected.append(
            SkillSelection(id=skill_id, tools=tuple(record.tools), instructions=instructions.get(skill_id, ""))
        )
    return tuple(selected)


def resolve(
    servers: Optional[Iterable[str]],
    toolboxes: Optional[Iterable[str]],
    tool_filter: Optional[Iterable[str]],
    config: ConfigDocument,
    active_plugins: Sequence[PluginDescriptor] = (),
    skills: Optional[Iterable[str]] = None,
    skill_descriptors: Sequence[SkillDescriptor] = (),
) -> ResolvedRunPlan:
    """Expand a run request into a ResolvedRunPlan.

    Args:
        servers: explicitly requested server names (ordered, duplicates ignored)
        toolboxes: requested toolbox names (ordered, duplicates ignored)
        tool_filter: un-prefixed tool names to advertise, or None for all.
            Applied at launch time, never here.
        config: the loaded config document
        active_plugins: discovered plugin descriptors
        skills: skill ids to include; None means every enabled skill
        skill_descriptors: discovered skills, source of each skill's instructions

    With neither servers nor toolboxes requested, every enabled server in the
    catalog is selected.

    Raises:
        UnknownToolbox: a requested toolbox does not exist
        UnknownServer: a name (explicit or toolbox member) is missing or disabled
        UnknownSkill: a named skill is missing or disabled
        EmptyResolution: nothing is left to run
    """
    catalog, collisions = build_catalog(config, active_plugins)
    requested_servers = _ordered_unique(servers)
    requested_toolboxes = _ordered_unique(toolboxes)

    # Validate every toolbox before touching servers so the error names the toolbox
    for toolbox in requested_toolboxes:
        if toolbox not in config.toolboxes:
            raise UnknownToolbox(toolbox)

    selected: Dict[str, ServerSpec] = {}
    if not requested_servers and not requested_toolboxes:
        for name, server in catalog.items():
            if server.enabled:
                selected[name] = server
        detail = "no servers are configured"
    else:
        for name in requested_servers:
            selected.setdefault(name, _lookup(catalog, name))
        for toolbox in requested_toolboxes:
            for member in config.toolboxes[toolbox]:
                if member not in selected:
                    selected[member] = _lookup(catalog, member, toolbox=toolbox)
        detail = "the requested servers and toolboxes are empty"

    if not selected:
        raise EmptyResolution(detail)

    filter_set = frozenset(tool_filter) if tool_filter is not None else None
    if filter_set is not None and not filter_set:
        raise EmptyResolution("the tool filter is empty")

    plan = ResolvedRunPlan(
        servers=tuple(selected.values()),
        tool_filter=filter_set,
        skills=_select_skills(config, skills, skill_descriptors),
        collisions=tuple(collisions),
    )
    logger.debug(f"Resolved servers: {', '.join(plan.server_names)}")
    return plan
