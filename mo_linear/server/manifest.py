"""Contains the tool manifest announced to the editor on startup."""

from typing import Any, Iterable

from mo_linear.commands.models import CommandRegistration


def _schema_type(schema: dict[str, Any]) -> str:
    """Reduce a pydantic JSON schema fragment to a single type name."""
    if "type" in schema:
        return schema["type"]
    if "enum" in schema:
        return "string"
    for option in schema.get("anyOf", []):
        if option.get("type") not in (None, "null"):
            return option["type"]
        if "$ref" in option:
            return "string"
    return "string"


def tool_manifest_entry(registration: CommandRegistration, namespace: str) -> dict[str, Any]:
    """Describe one command as a tool."""
    schema = registration.params_model.model_json_schema(by_alias=True)
    properties: dict[str, Any] = {}
    for name, property_schema in schema.get("properties", {}).items():
        entry = {"type": _schema_type(property_schema), "description": property_schema.get("description", "")}
        if "default" in property_schema and property_schema["default"] is not None:
            entry["default"] = property_schema["default"]
        properties[name] = entry
    return {
        "name": registration.name,
        "description": registration.description,
        "usage": registration.usage(namespace),
        "parameters": {
            "type": "object",
            "properties": properties,
            "required": list(schema.get("required", [])),
        },
    }


def build_manifest(registrations: Iterable[CommandRegistration], namespace: str) -> list[dict[str, Any]]:
    """Describe every registered command, sorted by name."""
    return [tool_manifest_entry(registration, namespace) for registration in sorted(registrations, key=lambda r: r.name)]
