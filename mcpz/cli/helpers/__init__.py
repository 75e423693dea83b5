# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared helpers for the mcpz CLI.

- utils.py: error panels, handle_errors, option parsing
- context.py: wiring of core services from paths and settings
- completions.py: click shell completions

All functions are re-exported here for convenience.
"""

from rich.console import Console

console = Console()

from mcpz.cli.helpers.context import (  # noqa: E402
    get_discovery,
    get_manager,
    get_plugin_installer,
    get_registry,
    get_registry_client,
    get_skill_installer,
    get_store,
    run_async,
    sync_capabilities,
)
from mcpz.cli.helpers.utils import (  # noqa: E402
    BLOCKED_ENV_VARS,
    handle_errors,
    parse_env_pairs,
    show_error_panel,
    split_names,
)

__all__ = [
    "BLOCKED_ENV_VARS",
    "console",
    "get_discovery",
    "get_manager",
    "get_plugin_installer",
    "get_registry",
    "get_registry_client",
    "get_skill_installer",
    "get_store",
    "handle_errors",
    "parse_env_pairs",
    "run_async",
    "show_error_panel",
    "split_names",
    "sync_capabilities",
]
