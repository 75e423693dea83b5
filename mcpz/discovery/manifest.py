# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Parsing of plugin manifests and SKILL.md files into descriptors."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from mcpz.models.capability import PluginDescriptor, SkillDescriptor, is_valid_skill_name
from mcpz.models.config import ServerSpec, ToolDefinition

logger = logging.getLogger(__name__)

DEFAULT_SKILL_TOOL = "instructions"


class ManifestError(ValueError):
    """A manifest or SKILL.md that cannot be turned into a descriptor."""


def parse_yaml_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    Args:
        content: Markdown content with optional YAML frontmatter

    Returns:
        Tuple of (frontmatter dict, remaining content)
    """
    frontmatter: Dict[str, Any] = {}
    body = content

    if content.startswith("---"):
        match = re.match(r"^---\s*\n(.*?)\n---\s*\n?(.*)", content, re.DOTALL)
        if match:
            body = match.group(2)
            try:
                loaded = yaml.safe_load(match.group(1)) or {}
            except yaml.YAMLError:
                loaded = {}
            if isinstance(loaded, dict):
                frontmatter = loaded

    return frontmatter, body


def plugin_from_manifest(
    data: Dict[str, Any], origin: str, path: Optional[Path] = None
) -> Optional[PluginDescriptor]:
    """Build a descriptor from ``{name, version, mcpz: {servers: [...]}}``.

    Returns None when the manifest has no ``mcpz`` section (an ordinary
    package). Raises ManifestError for a section that is present but broken.
    """
    section = data.get("mcpz")
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ManifestError("'mcpz' must be an object")

    plugin_id = data.get("name")
    if not plugin_id or not isinstance(plugin_id, str):
        raise ManifestError("manifest has no 'name'")

    raw_servers = section.get("servers", [])
    if not isinstance(raw_servers, list):
        raise ManifestError("'mcpz.servers' must be a list")

    servers: List[ServerSpec] = []
    for entry in raw_servers:
        if not isinstance(entry, dict):
            raise ManifestError("each server must be an object")
        try:
            servers.append(
                ServerSpec(
                    name=entry.get("name", ""),
                    command=entry.get("command", ""),
                    args=entry.get("args", []),
                    env=entry.get("env", {}),
                    port=entry.get("port"),
                    origin=f"plugin:{plugin_id}",
                )
            )
        except ValidationError as e:
            raise ManifestError(f"invalid server entry {entry.get('name')!r}: {e}") from e

    version = data.get("version")
    return PluginDescriptor(
        id=plugin_id,
        version=str(version) if version is not None else None,
        origin=origin,
        servers=servers,
        path=path,
    )


def skill_from_markdown(content: str, origin: str, path: Optional[Path] = None) -> SkillDescriptor:
    """Build a skill descriptor from SKILL.md text.

    Frontmatter needs ``name`` and ``description``. Without a ``tools`` list
    the skill contributes one tool, ``instructions``, that returns the
    skill's instructions (advertised as ``<skill>_instructions``).
    """
    frontmatter, body = parse_yaml_frontmatter(content)
    name = frontmatter.get("name")
    description = frontmatter.get("description")
    if not name or not description:
        raise ManifestError("SKILL.md is missing required fields (name, description)")
    name = str(name)
    if not is_valid_skill_name(name):
        raise ManifestError(f"invalid skill name: {name}")

    instructions = body.strip()
    raw_tools = frontmatter.get("tools")
    tools: List[ToolDefinition] = []
    if raw_tools:
        if not isinstance(raw_tools, list):
            raise ManifestError("'tools' must be a list")
        try:
            tools = [ToolDefinition.model_validate(t) for t in raw_tools]
        except ValidationError as e:
            raise ManifestError(f"invalid tool definition: {e}") from e
    else:
        tools = [
            ToolDefinition(
                name=DEFAULT_SKILL_TOOL,
                description=str(description),
                input_schema={"type": "object", "properties": {}},
            )
        ]

    version = frontmatter.get("version")
    return SkillDescriptor(
        id=name,
        description=str(description),
        version=str(version) if version is not None else None,
        origin=origin,
        instructions=instructions,
        tools=tools,
        path=path,
    )


def skills_from_package_section(
    data: Dict[str, Any], package_dir: Path, origin: str
) -> List[SkillDescriptor]:
    """Skills listed under ``mcpz.skills`` of a package: paths to skill directories."""
    section = data.get("mcpz") or {}
    entries = section.get("skills", []) if isinstance(section, dict) else []
    skills: List[SkillDescriptor] = []
    for entry in entries:
        skill_dir = package_dir / str(entry)
        skill_md = skill_dir / "SKILL.md"
        try:
            skills.append(skill_from_markdown(skill_md.read_text(encoding="utf-8"), origin, skill_dir))
        except (OSError, ManifestError) as e:
            logger.warning(f"Skipping skill {entry!r} of {data.get('name')}: {e}")
    return skills
