# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Capability source backed by globally installed npm packages.

A package takes part when its package.json carries an ``mcpz`` section:

    {
      "name": "@acme/mcpz-tools",
      "version": "1.2.0",
      "mcpz": {
        "servers": [{"name": "acme", "command": "node", "args": ["server.js"]}],
        "skills": ["skills/review"]
      }
    }
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from mcpz.discovery.manifest import ManifestError, plugin_from_manifest, skills_from_package_section
from mcpz.models.capability import PluginDescriptor, SkillDescriptor

logger = logging.getLogger(__name__)

# (argv) -> (returncode, stdout, stderr)
CommandRunner = Callable[[Sequence[str]], Tuple[int, str, str]]


def run_command(argv: Sequence[str], timeout: float = 30.0) -> Tuple[int, str, str]:
    """Run a command and capture its output. Missing binaries return 127."""
    try:
        result = subprocess.run(list(argv), capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        return 127, "", f"{argv[0]}: command not found"
    except subprocess.TimeoutExpired:
        return 124, "", f"{argv[0]}: timed out after {timeout:.0f}s"
    return result.returncode, result.stdout, result.stderr


class NpmCapabilitySource:
    """Scan ``npm root -g`` for packages with an ``mcpz`` section."""

    name = "npm"

    def __init__(self, runner: Optional[CommandRunner] = None, root: Optional[Path] = None):
        self.runner = runner or run_command
        self._root = root
        self._packages: Optional[List[Tuple[Path, Dict]]] = None

    def global_root(self) -> Optional[Path]:
        if self._root is not None:
            return self._root
        code, out, err = self.runner(["npm", "root", "-g"])
        if code != 0 or not out.strip():
            logger.debug(f"npm root -g failed ({code}): {err.strip()}")
            return None
        self._root = Path(out.strip())
        return self._root

    def _iter_package_dirs(self, root: Path) -> Iterator[Path]:
        for entry in sorted(root.iterdir()):
            if entry.name.startswith("@") and entry.is_dir():
                yield from (p for p in sorted(entry.iterdir()) if p.is_dir())
            elif entry.is_dir() and not entry.name.startswith("."):
                yield entry

    def _packages_with_section(self) -> List[Tuple[Path, Dict]]:
        if self._packages is not None:
            return self._packages

        packages: List[Tuple[Path, Dict]] = []
        root = self.global_root()
        if root is None or not root.is_dir():
            self._packages = packages
            return packages

        for package_dir in self._iter_package_dirs(root):
            package_json = package_dir / "package.json"
            if not package_json.is_file():
                continue
            try:
                data = json.loads(package_json.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.debug(f"Unreadable {package_json}: {e}")
                continue
            if isinstance(data, dict) and "mcpz" in data:
                packages.append((package_dir, data))

        self._packages = packages
        return packages

    def discover_plugins(self) -> List[PluginDescriptor]:
        plugins: List[PluginDescriptor] = []
        for package_dir, data in self._packages_with_section():
            try:
                plugin = plugin_from_manifest(data, origin="npm", path=package_dir)
            except ManifestError as e:
                logger.warning(f"Skipping npm package {package_dir.name}: {e}")
                continue
            if plugin and plugin.servers:
                plugins.append(plugin)
        return plugins

    def discover_skills(self) -> List[SkillDescriptor]:
        skills: List[SkillDescriptor] = []
        for package_dir, data in self._packages_with_section():
            skills.extend(skills_from_package_section(data, package_dir, origin="npm"))
        return skills
