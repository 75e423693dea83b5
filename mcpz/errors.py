# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Exception taxonomy for mcpz.

Every error raised by the core derives from McpzError. The CLI's
handle_errors decorator catches it and renders a panel titled after the
error family, with the optional hint underneath.

Families:
    ConfigError          - config document could not be read, parsed or written
    ResolutionError      - user asked for something that does not exist
    InstanceError        - process spawn/stop/registry problems
    ProtocolAdapterError - tool schema cannot be expressed in a dialect, or a
                           child session failed
    CapabilityError      - plugin/skill install, uninstall or registry lookup failed
    StoreLocked          - another mcpz process holds a store lock (retryable)
"""

from typing import Optional


class McpzError(Exception):
    """Base class for all mcpz errors."""

    title = "Error"
    retryable = False

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class StoreLocked(McpzError):
    """Raised when an advisory lock could not be acquired within the lock wait."""

    title = "Store Locked"
    retryable = True

    def __init__(self, path, waited: float):
        self.path = path
        self.waited = waited
        super().__init__(
            f"Could not lock {path} after {waited:.1f}s",
            hint="Another mcpz process is writing. Retry in a moment.",
        )


# Config store


class ConfigError(McpzError):
    title = "Config Error"


class ConfigUnreadable(ConfigError):
    """The config file exists but could not be read."""


class ConfigCorrupt(ConfigError):
    """The config file was read but is not a valid document for any known version."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(
            f"Config file {path} is corrupt: {reason}",
            hint=f"Fix or move {path} aside; mcpz does not repair config files.",
        )


class ConfigWriteFailed(ConfigError):
    """The document failed validation before save, or the write itself failed."""


# Resolver


class ResolutionError(McpzError):
    title = "Cannot Resolve"

    def __init__(self, message: str, name: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.name = name


class UnknownServer(ResolutionError):
    def __init__(self, name: str, reason: str = "not defined", toolbox: Optional[str] = None):
        self.reason = reason
        self.toolbox = toolbox
        where = f" (member of toolbox '{toolbox}')" if toolbox else ""
        super().__init__(
            f"Unknown server '{name}'{where}: {reason}",
            name=name,
            hint="mcpz list",
        )


class UnknownToolbox(ResolutionError):
    def __init__(self, name: str):
        super().__init__(f"Unknown toolbox '{name}'", name=name, hint="mcpz toolbox list")


class UnknownSkill(ResolutionError):
    def __init__(self, name: str, reason: str = "not installed"):
        self.reason = reason
        super().__init__(f"Unknown skill '{name}': {reason}", name=name, hint="mcpz skill list")


class EmptyResolution(ResolutionError):
    def __init__(self, detail: str = "no servers selected"):
        super().__init__(f"Nothing to run: {detail}")


# Instance manager


class InstanceError(McpzError):
    title = "Instance Error"


class SpawnFailed(InstanceError):
    def __init__(self, server_name: str, reason: str):
        self.server_name = server_name
        self.reason = reason
        super().__init__(f"Failed to start '{server_name}': {reason}")


class HandshakeFailed(SpawnFailed):
    """The process started but never completed the MCP handshake."""


class PortInUse(InstanceError):
    def __init__(self, server_name: str, port: int):
        self.server_name = server_name
        self.port = port
        super().__init__(
            f"Port {port} needed by '{server_name}' is already in use",
            hint="mcpz instances list",
        )


class StopTimeout(InstanceError):
    def __init__(self, instance_id: str, timeout: float):
        self.instance_id = instance_id
        self.timeout = timeout
        super().__init__(f"Instance {instance_id} did not stop within {timeout:.1f}s")


class NotFound(InstanceError):
    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"No instance with id '{instance_id}'", hint="mcpz instances list")


class InvalidTransition(InstanceError):
    def __init__(self, instance_id: str, current: str, target: str):
        self.instance_id = instance_id
        self.current = current
        self.target = target
        super().__init__(f"Instance {instance_id} cannot move from {current} to {target}")


# Protocol adapter


class ProtocolAdapterError(McpzError):
    title = "Protocol Error"


class UnsupportedConstruct(ProtocolAdapterError):
    def __init__(self, construct: str, target_dialect: str, where: str = ""):
        self.construct = construct
        self.target_dialect = target_dialect
        location = f" at {where}" if where else ""
        super().__init__(f"'{construct}'{location} has no representation in dialect {target_dialect}")


class SchemaIncompatible(ProtocolAdapterError):
    def __init__(self, tool_name: str, reason: str):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Tool '{tool_name}' cannot be registered: {reason}")


class RemoteError(ProtocolAdapterError):
    """A child server answered a request with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data=None):
        self.code = code
        self.data = data
        super().__init__(f"Server error {code}: {message}")


class SessionClosed(ProtocolAdapterError):
    """The child's stdio stream closed or the session was shut down."""


# Capability discovery / install


class CapabilityError(McpzError):
    title = "Capability Error"
