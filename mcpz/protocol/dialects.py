# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tool schema dialects and the translation between them.

LEGACY (protocol 2024-11-05)
    tool = name, description, inputSchema; nested schemas live under
    ``definitions`` (JSON Schema draft-07).

CURRENT (protocol 2025-06-18)
    adds tool ``title``, ``outputSchema`` and ``annotations``; nested schemas
    live under ``$defs`` and may use newer keywords.

LEGACY -> CURRENT fails only when a schema carries both ``definitions`` and
``$defs`` with different subschemas under one name; otherwise the two maps
are merged. CURRENT -> LEGACY raises UnsupportedConstruct for anything the
old dialect cannot say, instead of dropping it. A legacy schema translated to
current and back is unchanged.
"""

import copy
from enum import Enum
from typing import Any, Dict, Optional

from mcpz.errors import UnsupportedConstruct


class Dialect(str, Enum):
    LEGACY = "2024-11-05"
    CURRENT = "2025-06-18"


def dialect_for_version(protocol_version: Optional[str]) -> Dialect:
    """Map a negotiated protocol version to a schema dialect.

    Versions are ISO dates, so string comparison orders them. Anything older
    than CURRENT (or unknown) is treated as LEGACY.
    """
    if protocol_version and protocol_version >= Dialect.CURRENT.value:
        return Dialect.CURRENT
    return Dialect.LEGACY


# Tool-level fields only the current dialect knows
CURRENT_ONLY_TOOL_FIELDS = ("title", "outputSchema", "annotations")

# Schema keywords only the current dialect knows
CURRENT_ONLY_KEYWORDS = (
    "prefixItems",
    "$dynamicRef",
    "$dynamicAnchor",
    "dependentSchemas",
    "dependentRequired",
    "unevaluatedProperties",
    "unevaluatedItems",
)

_DEFS_KEYWORD = {Dialect.LEGACY: "definitions", Dialect.CURRENT: "$defs"}

# Keywords whose value is a single subschema
_SUBSCHEMA_KEYWORDS = (
    "additionalProperties",
    "additionalItems",
    "contains",
    "propertyNames",
    "not",
    "if",
    "then",
    "else",
    "unevaluatedProperties",
    "unevaluatedItems",
)
# Keywords whose value is a list of subschemas
_SUBSCHEMA_LIST_KEYWORDS = ("allOf", "anyOf", "oneOf", "prefixItems")
# Keywords whose value maps names to subschemas
_SUBSCHEMA_MAP_KEYWORDS = ("properties", "patternProperties", "definitions", "$defs", "dependentSchemas")


def _rewrite_ref(ref: str, source: str, target: str) -> str:
    """Rewrite the definitions keyword inside a local JSON pointer.

    Segments that follow a name-map keyword are names, never keywords, so a
    property that happens to be called ``definitions`` is left alone.
    """
    if not ref.startswith("#/"):
        return ref
    out = []
    is_name = False
    for part in ref[2:].split("/"):
        if is_name:
            out.append(part)
            is_name = False
        elif part == source:
            out.append(target)
            is_name = True
        else:
            out.append(part)
            is_name = part in _SUBSCHEMA_MAP_KEYWORDS or part == "dependencies"
    return "#/" + "/".join(out)


def _merge_defs(
    first: Dict[str, Any], second: Dict[str, Any], src_defs: str, dst_defs: str, target: Dialect, where: str
) -> Dict[str, Any]:
    merged = dict(first)
    for name, sub in second.items():
        if name in merged and merged[name] != sub:
            raise UnsupportedConstruct(f"{src_defs}/{name} alongside {dst_defs}/{name}", target.value, where or "/")
        merged[name] = sub
    return merged


def _translate(node: Any, source: Dialect, target: Dialect, where: str) -> Any:
    if isinstance(node, bool) or not isinstance(node, dict):
        return node

    if target is Dialect.LEGACY:
        for keyword in CURRENT_ONLY_KEYWORDS:
            if keyword in node:
                raise UnsupportedConstruct(keyword, target.value, where or "/")

    src_defs, dst_defs = _DEFS_KEYWORD[source], _DEFS_KEYWORD[target]
    out: Dict[str, Any] = {}
    for key, value in node.items():
        path = f"{where}/{key}"
        if key == "$ref" and isinstance(value, str):
            out[key] = _rewrite_ref(value, src_defs, dst_defs)
        elif key in _SUBSCHEMA_MAP_KEYWORDS and isinstance(value, dict):
            new_key = dst_defs if key == src_defs else key
            translated = {
                name: _translate(sub, source, target, f"{where}/{new_key}/{name}")
                for name, sub in value.items()
            }
            if new_key == dst_defs and new_key in out:
                # both definitions keywords present; they land in one map
                translated = _merge_defs(out[new_key], translated, src_defs, dst_defs, target, where)
            out[new_key] = translated
        elif key in _SUBSCHEMA_KEYWORDS:
            out[key] = _translate(value, source, target, path)
        elif key in _SUBSCHEMA_LIST_KEYWORDS and isinstance(value, list):
            out[key] = [_translate(sub, source, target, f"{path}/{i}") for i, sub in enumerate(value)]
        elif key == "items":
            if isinstance(value, list):
                out[key] = [_translate(sub, source, target, f"{path}/{i}") for i, sub in enumerate(value)]
            else:
                out[key] = _translate(value, source, target, path)
        elif key == "dependencies" and isinstance(value, dict):
            out[key] = {
                name: sub if isinstance(sub, list) else _translate(sub, source, target, f"{path}/{name}")
                for name, sub in value.items()
            }
        else:
            out[key] = copy.deepcopy(value)
    return out


def translate_schema(schema: Dict[str, Any], source: Dialect, target: Dialect) -> Dict[str, Any]:
    """Translate one JSON schema between dialects. Never mutates ``schema``.

    Raises:
        UnsupportedConstruct: ``schema`` uses a keyword ``target`` lacks
    """
    source, target = Dialect(source), Dialect(target)
    if source is target:
        return copy.deepcopy(schema)
    return _translate(schema, source, target, "")


def translate_tool(tool: Dict[str, Any], source: Dialect, target: Dialect) -> Dict[str, Any]:
    """Translate a wire-format tool definition between dialects.

    Raises:
        UnsupportedConstruct: a current-only tool field or schema keyword
            has to be expressed in the legacy dialect
    """
    source, target = Dialect(source), Dialect(target)
    name = tool.get("name", "?")
    out = copy.deepcopy(tool)
    if source is target:
        return out

    if target is Dialect.LEGACY:
        for field in CURRENT_ONLY_TOOL_FIELDS:
            if out.get(field) is not None:
                raise UnsupportedConstruct(field, target.value, f"tool {name}")

    if "inputSchema" in out:
        out["inputSchema"] = _translate(out["inputSchema"], source, target, f"tool {name}: inputSchema")
    if out.get("outputSchema") is not None:
        out["outputSchema"] = _translate(out["outputSchema"], source, target, f"tool {name}: outputSchema")
    return out
