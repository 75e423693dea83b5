# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Network lookups used by install commands (npm registry, skills registry).

Nothing on the resolve/launch path imports this module; only ``plugin install``
and ``skill install`` talk to the network.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from mcpz.errors import CapabilityError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class RegistryClient:
    """JSON GETs against the registries. ``opener`` defaults to ``urlopen`` (injectable for tests)."""

    def __init__(
        self,
        npm_url: str = "https://registry.npmjs.org",
        skills_url: str = "https://agentskills.io/api",
        opener: Optional[Callable[..., Any]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.npm_url = npm_url.rstrip("/")
        self.skills_url = skills_url.rstrip("/")
        self.opener = opener or urlopen
        self.timeout = timeout

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if params:
            url = f"{url}?{urlencode(params)}"
        logger.debug(f"GET {url}")
        req = Request(url, headers={"Accept": "application/json"})
        try:
            with self.opener(req, timeout=self.timeout) as resp:
                body = resp.read().decode("utf-8")
        except HTTPError as e:
            if e.code == 404:
                return None
            raise CapabilityError(f"Registry returned HTTP {e.code} for {url}") from e
        except (URLError, TimeoutError) as e:
            raise CapabilityError(f"Registry request failed: {e}", hint="Check your network connection") from e
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise CapabilityError(f"Registry returned invalid JSON for {url}") from e

    def npm_package(self, package: str) -> Optional[Dict[str, Any]]:
        """Metadata of the latest version of ``package``, or None if unknown."""
        data = self._get_json(f"{self.npm_url}/{quote(package, safe='@')}/latest")
        if data is not None and not isinstance(data, dict):
            raise CapabilityError(f"Unexpected npm metadata for {package}")
        return data

    def is_mcpz_plugin(self, package: str) -> bool:
        meta = self.npm_package(package)
        return bool(meta and isinstance(meta.get("mcpz"), dict))

    def skill_info(self, name: str) -> Optional[Dict[str, Any]]:
        """Skill metadata from the skills registry (``source``, ``version``, ...)."""
        data = self._get_json(f"{self.skills_url}/skills/{quote(name)}")
        if data is not None and not isinstance(data, dict):
            raise CapabilityError(f"Unexpected skills registry entry for {name}")
        return data

    def search_skills(self, query: str) -> List[Dict[str, Any]]:
        data = self._get_json(f"{self.skills_url}/skills", params={"q": query})
        if data is None:
            return []
        if isinstance(data, dict):
            data = data.get("skills", [])
        return [entry for entry in data if isinstance(entry, dict)]
