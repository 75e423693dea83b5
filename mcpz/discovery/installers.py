# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Install and remove plugins (npm) and skills (skills registry or GitHub)."""

import logging
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mcpz.discovery.manifest import ManifestError, skill_from_markdown
from mcpz.discovery.npm import CommandRunner, run_command
from mcpz.discovery.registry import RegistryClient
from mcpz.errors import CapabilityError
from mcpz.models.capability import SkillDescriptor, is_valid_skill_name
from mcpz.paths import HostPaths

logger = logging.getLogger(__name__)

_GITHUB_URL_RE = re.compile(r"^https?://github\.com/([^/]+)/([^/]+?)(?:\.git)?(?:/tree/([^/]+)/(.+))?/?$")


@dataclass(frozen=True)
class GitHubSource:
    user: str
    repo: str
    path: str = ""
    branch: Optional[str] = None

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.user}/{self.repo}.git"

    @property
    def default_name(self) -> str:
        return Path(self.path).name if self.path else self.repo


def parse_install_source(source: str) -> Optional[GitHubSource]:
    """Parse ``github:user/repo[/path]`` or a GitHub URL. Returns None otherwise."""
    if source.startswith("github:"):
        parts = [p for p in source[len("github:"):].split("/") if p]
        if len(parts) < 2:
            return None
        return GitHubSource(user=parts[0], repo=parts[1], path="/".join(parts[2:]))

    match = _GITHUB_URL_RE.match(source)
    if match:
        return GitHubSource(
            user=match.group(1),
            repo=match.group(2),
            path=match.group(4) or "",
            branch=match.group(3),
        )
    return None


class PluginInstaller:
    """``npm install -g`` / ``npm uninstall -g`` wrapper."""

    def __init__(self, runner: Optional[CommandRunner] = None, registry: Optional[RegistryClient] = None):
        self.runner = runner or (lambda argv: run_command(argv, timeout=300.0))
        self.registry = registry

    def install(self, package: str) -> None:
        if self.registry is not None and not self.registry.is_mcpz_plugin(package):
            raise CapabilityError(
                f"'{package}' is not an mcpz plugin (no 'mcpz' section in package.json)",
                hint="mcpz plugin list",
            )
        logger.info(f"Installing npm package {package}")
        code, _, err = self.runner(["npm", "install", "-g", package])
        if code != 0:
            raise CapabilityError(f"npm install -g {package} failed: {err.strip() or f'exit {code}'}")

    def uninstall(self, package: str) -> None:
        logger.info(f"Uninstalling npm package {package}")
        code, _, err = self.runner(["npm", "uninstall", "-g", package])
        if code != 0:
            raise CapabilityError(f"npm uninstall -g {package} failed: {err.strip() or f'exit {code}'}")


class SkillInstaller:
    """Install skills into ``skills_dir/<name>`` from GitHub or the skills registry."""

    def __init__(
        self,
        skills_dir: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
        registry: Optional[RegistryClient] = None,
    ):
        self.skills_dir = skills_dir or HostPaths.skills_dir()
        self.runner = runner or (lambda argv: run_command(argv, timeout=300.0))
        self.registry = registry

    def install(self, source: str, name: Optional[str] = None) -> SkillDescriptor:
        """Install from a GitHub source, or look up a bare name in the registry."""
        parsed = parse_install_source(source)
        if parsed is None and self.registry is not None and is_valid_skill_name(source):
            info = self.registry.skill_info(source)
            if info and info.get("source"):
                parsed = parse_install_source(str(info["source"]))
                name = name or source
        if parsed is None:
            raise CapabilityError(
                f"Invalid install source: {source}",
                hint="Use github:user/repo[/path] or https://github.com/user/repo",
            )
        return self._install_github(parsed, name or parsed.default_name)

    def _git(self, *args: str) -> None:
        code, _, err = self.runner(["git", *args])
        if code != 0:
            raise CapabilityError(f"git {args[0]} failed: {err.strip() or f'exit {code}'}")

    def _install_github(self, source: GitHubSource, name: str) -> SkillDescriptor:
        if not is_valid_skill_name(name):
            raise CapabilityError(
                f"Invalid skill name: {name}",
                hint="Lowercase letters, digits and hyphens; pass --name to choose one",
            )
        target = self.skills_dir / name
        if target.exists():
            raise CapabilityError(f"Skill already exists: {name}", hint=f"mcpz skill remove {name}")

        self.skills_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="mcpz-skill-") as tmp:
            checkout = Path(tmp) / "repo"
            branch = ["--branch", source.branch] if source.branch else []
            if source.path:
                self._git(
                    "clone", "--filter=blob:none", "--no-checkout", "--depth", "1",
                    *branch, "--sparse", source.clone_url, str(checkout),
                )
                self._git("-C", str(checkout), "sparse-checkout", "set", source.path)
                self._git("-C", str(checkout), "checkout")
            else:
                self._git("clone", "--depth", "1", *branch, source.clone_url, str(checkout))

            skill_src = checkout / source.path if source.path else checkout
            if not skill_src.is_dir():
                raise CapabilityError(f"Skill path not found in repository: {source.path}")
            shutil.copytree(skill_src, target, ignore=shutil.ignore_patterns(".git"))

        try:
            skill = skill_from_markdown(
                (target / "SKILL.md").read_text(encoding="utf-8"), origin="local", path=target
            )
        except (OSError, ManifestError) as e:
            shutil.rmtree(target, ignore_errors=True)
            raise CapabilityError(f"No valid SKILL.md in {source.clone_url}: {e}") from e

        logger.info(f"Installed skill {skill.id} into {target}")
        return skill

    def remove(self, name: str) -> None:
        target = self.skills_dir / name
        if not is_valid_skill_name(name) or not target.is_dir():
            raise CapabilityError(f"Skill not found: {name}", hint="mcpz skill list")
        shutil.rmtree(target)
        logger.info(f"Removed skill {name}")
