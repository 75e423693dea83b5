# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Instance lifecycle: spawn, supervise, persist and reconcile server processes."""

from mcpz.instances.manager import InstanceManager, LaunchedInstance, LaunchFailure, RunHandle
from mcpz.instances.process import (
    OsProcessTable,
    ProcessState,
    StdioConnector,
    SubprocessLauncher,
)
from mcpz.instances.registry import InstanceRegistry

__all__ = [
    "InstanceManager",
    "InstanceRegistry",
    "LaunchFailure",
    "LaunchedInstance",
    "OsProcessTable",
    "ProcessState",
    "RunHandle",
    "StdioConnector",
    "SubprocessLauncher",
]
