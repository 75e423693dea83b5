# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Local-directory capability source (~/.mcpz/plugins and ~/.mcpz/skills)."""

import json
import logging
from pathlib import Path
from typing import List, Optional

from mcpz.discovery.manifest import ManifestError, plugin_from_manifest, skill_from_markdown
from mcpz.models.capability import PluginDescriptor, SkillDescriptor
from mcpz.paths import HostPaths

logger = logging.getLogger(__name__)


class LocalCapabilitySource:
    """Manifests dropped into the mcpz home directory.

    Plugins (``plugins_dir``), any of:
        <dir>/mcpz.json                 standalone manifest
        <dir>/package.json              package with an ``mcpz`` section
        <name>.json                     standalone manifest file

    Skills (``skills_dir``): ``<name>/SKILL.md``.
    """

    name = "local"

    def __init__(self, plugins_dir: Optional[Path] = None, skills_dir: Optional[Path] = None):
        self.plugins_dir = plugins_dir or HostPaths.plugins_dir()
        self.skills_dir = skills_dir or HostPaths.skills_dir()

    def discover_plugins(self) -> List[PluginDescriptor]:
        plugins: List[PluginDescriptor] = []
        if not self.plugins_dir.is_dir():
            return plugins

        for entry in sorted(self.plugins_dir.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                manifest = entry / "mcpz.json"
                if not manifest.exists():
                    manifest = entry / "package.json"
            elif entry.suffix == ".json":
                manifest = entry
            else:
                continue

            plugin = self._load_manifest(manifest)
            if plugin:
                plugins.append(plugin)
        return plugins

    def _load_manifest(self, manifest: Path) -> Optional[PluginDescriptor]:
        if not manifest.exists():
            return None
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Skipping plugin manifest {manifest}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Skipping plugin manifest {manifest}: not a JSON object")
            return None

        # A standalone manifest is all about mcpz; tolerate a missing section there
        if manifest.name != "package.json" and "mcpz" not in data:
            data = {**data, "mcpz": {"servers": data.get("servers", [])}}

        try:
            return plugin_from_manifest(data, origin="local", path=manifest.parent)
        except ManifestError as e:
            logger.warning(f"Skipping plugin manifest {manifest}: {e}")
            return None

    def discover_skills(self) -> List[SkillDescriptor]:
        skills: List[SkillDescriptor] = []
        if not self.skills_dir.is_dir():
            return skills

        for skill_dir in sorted(self.skills_dir.iterdir()):
            skill_md = skill_dir / "SKILL.md"
            if skill_dir.name.startswith(".") or not skill_md.is_file():
                continue
            try:
                skill = skill_from_markdown(
                    skill_md.read_text(encoding="utf-8"), origin="local", path=skill_dir
                )
            except (OSError, UnicodeDecodeError, ManifestError) as e:
                logger.warning(f"Skipping skill at {skill_dir}: {e}")
                continue
            skills.append(skill)
        return skills
