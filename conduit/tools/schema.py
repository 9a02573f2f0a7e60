"""
Schema bridge between tool parameter schemas and the two wire formats.

A tool describes its parameters as a JSON-Schema object: keys listed in
``required`` are mandatory, everything else is optional, and a property may
carry a ``default``.  From that one description we derive:

- the *strict* function-calling schema the LLM provider expects, where every
  key must be listed in ``required`` and optionality is expressed as a type
  union with ``"null"``;
- the plain JSON Schema advertised to external tool-protocol clients.

The reverse direction turns a schema advertised by an external server into
an approximate parameter schema.  Only primitive fields are modeled
precisely; anything else becomes a permissive any-type field.
"""

from __future__ import annotations

import copy
import json
import logging

from conduit.tools.base import Tool, normalize_schema

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = ("string", "number", "integer", "boolean")
EXTERNAL_PRECISE_TYPES = ("string", "number", "integer", "boolean")


# ---------------------------------------------------------------------------
# Strict LLM function schema
# ---------------------------------------------------------------------------


def to_llm_function_schema(tool: Tool) -> dict:
    """Build the strict function-calling schema for *tool*."""
    parameters = _object_property(normalize_schema(tool.parameters), tool.name)
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "object",
                "properties": parameters["properties"],
                "required": parameters["required"],
                "additionalProperties": False,
            },
            "strict": True,
        },
    }


def _describe(prop: dict, out: dict) -> dict:
    description = prop.get("description")
    if "default" in prop:
        suffix = f"(default: {json.dumps(prop['default'])})"
        description = f"{description} {suffix}" if description else suffix
    if description:
        out["description"] = description
    return out


def _object_property(schema: dict, path: str) -> dict:
    properties = schema.get("properties") or {}
    source_required = set(schema.get("required") or [])
    out_props: dict[str, dict] = {}

    for key, prop in properties.items():
        converted = _llm_property(prop, f"{path}.{key}")
        if key not in source_required:
            converted = _nullable(converted)
        out_props[key] = converted

    return {
        "type": "object",
        "properties": out_props,
        "required": list(out_props),
        "additionalProperties": False,
    }


def _llm_property(prop: object, path: str) -> dict:
    if not isinstance(prop, dict):
        return _unsupported(prop, path)

    for combinator in ("anyOf", "oneOf"):
        if combinator in prop and "type" not in prop:
            options = [
                o for o in prop[combinator]
                if isinstance(o, dict) and o.get("type") not in (None, "null")
            ]
            if not options:
                return _unsupported(prop, path)
            merged = dict(options[0])
            if "description" in prop and "description" not in merged:
                merged["description"] = prop["description"]
            return _llm_property(merged, path)

    prop_type = prop.get("type")
    if prop_type is None and "enum" in prop:
        prop_type = "string"

    if isinstance(prop_type, list):
        non_null = [t for t in prop_type if t != "null"]
        if len(non_null) == 1:
            converted = _llm_property({**prop, "type": non_null[0]}, path)
            return _nullable(converted) if "null" in prop_type else converted
        if non_null and all(t in PRIMITIVE_TYPES for t in non_null):
            return _describe(prop, {"type": list(prop_type)})
        return _unsupported(prop, path)

    if prop_type == "object":
        out = _object_property(prop, path)
        return _describe(prop, out)

    if prop_type == "array":
        items = prop.get("items")
        if items is None:
            items_schema = _unsupported(items, f"{path}[]")
        else:
            items_schema = _llm_property(items, f"{path}[]")
        return _describe(prop, {"type": "array", "items": items_schema})

    if prop_type in PRIMITIVE_TYPES:
        out: dict = {"type": prop_type}
        if "enum" in prop:
            out["enum"] = list(prop["enum"])
        return _describe(prop, out)

    return _unsupported(prop, path)


def _nullable(prop: dict) -> dict:
    out = dict(prop)
    prop_type = out.get("type")
    if isinstance(prop_type, list):
        if "null" not in prop_type:
            out["type"] = [*prop_type, "null"]
    elif prop_type is not None:
        out["type"] = [prop_type, "null"]
    if "enum" in out and None not in out["enum"]:
        out["enum"] = [*out["enum"], None]
    return out


def _unsupported(prop: object, path: str) -> dict:
    logger.warning("Unsupported schema shape at %s, using string: %r", path, prop)
    out: dict = {"type": "string"}
    if isinstance(prop, dict) and prop.get("description"):
        out["description"] = prop["description"]
    return out


# ---------------------------------------------------------------------------
# External tool-protocol schema
# ---------------------------------------------------------------------------


def to_external_protocol_schema(tool: Tool) -> dict:
    """Plain JSON Schema: only genuinely required fields are required."""
    schema = normalize_schema(tool.parameters)
    properties = copy.deepcopy(schema.get("properties") or {})
    required = [k for k in schema.get("required") or [] if k in properties]
    out: dict = {"type": "object", "properties": properties}
    if required:
        out["required"] = required
    return out


def from_external_protocol_schema(schema: object) -> dict:
    """
    Approximate an internal parameter schema from a server-advertised one.

    String, number, integer and boolean fields keep their type, description
    and default.  Every other field becomes an any-type field (``{}``).
    """
    if not isinstance(schema, dict) or schema.get("type") != "object":
        return {"type": "object", "properties": {}}

    raw_props = schema.get("properties")
    if not isinstance(raw_props, dict):
        return {"type": "object", "properties": {}}

    properties: dict[str, dict] = {}
    for key, raw in raw_props.items():
        raw = raw if isinstance(raw, dict) else {}
        if raw.get("type") in EXTERNAL_PRECISE_TYPES:
            field: dict = {"type": raw["type"]}
            if raw.get("description"):
                field["description"] = raw["description"]
        else:
            field = {}
        if "default" in raw:
            field["default"] = raw["default"]
        properties[key] = field

    required = [k for k in schema.get("required") or [] if k in properties]
    out: dict = {"type": "object", "properties": properties}
    if required:
        out["required"] = required
    return out


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def apply_defaults(schema: dict, params: dict) -> dict:
    """
    Normalize model-supplied arguments against *schema*.

    Strict mode makes the model send ``null`` for optional fields; those are
    removed, and any field that is then absent but declares a ``default``
    receives it.  Nested objects and arrays of objects are handled the same
    way.
    """
    schema = normalize_schema(schema)
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    out = {}
    for key, value in (params or {}).items():
        if value is None and key not in required:
            continue
        out[key] = _apply_nested(properties.get(key), value)
    for key, prop in properties.items():
        if key not in out and isinstance(prop, dict) and "default" in prop:
            out[key] = copy.deepcopy(prop["default"])
    return out


def _apply_nested(prop: object, value: object) -> object:
    if not isinstance(prop, dict):
        return value
    if prop.get("type") == "object" and isinstance(value, dict):
        return apply_defaults(prop, value)
    if prop.get("type") == "array" and isinstance(value, list):
        return [_apply_nested(prop.get("items"), v) for v in value]
    return value
