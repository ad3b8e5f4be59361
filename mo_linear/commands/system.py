"""Contains the help and settings commands."""

from typing import Any

from pydantic import Field
from pydantic.alias_generators import to_snake

from mo_linear.schemas.config import UserSettings
from mo_linear.utils.templates import render_markdown

from .common import CommandValidationError, error_result
from .models import CommandContext, CommandParams, CommandRegistration, CommandResult

CATEGORY_ORDER = ["Tasks", "Synchronization", "Queries", "Authentication", "Webhooks", "System"]


class HelpParams(CommandParams):
    """Parameters for help."""

    command: str | None = Field(default=None, description="Command to describe")


class SettingsParams(CommandParams):
    """Parameters for settings."""

    get: str | None = Field(default=None, description="Setting to show")
    set: str | None = Field(default=None, description="Setting to change, as key=value")


async def show_help(params: HelpParams, context: CommandContext) -> CommandResult:
    """Show all commands grouped by category, or details of one command."""
    if params.command:
        name = params.command.removeprefix(context.namespace).strip()
        registration = context.registry.get(name)
        if registration is None:
            return error_result(
                "Unknown command",
                f"Unknown command: `{name}`",
                error="UNKNOWN_COMMAND",
                hints=[f"Run `{context.namespace} help` to see the available commands."],
            )
        parameters = registration.parameters()
        return CommandResult(
            success=True,
            message=f"Help for {registration.name}",
            markdown=render_markdown(
                "command_help.md.j2",
                registration=registration,
                usage=registration.usage(context.namespace),
                parameters=parameters,
                namespace=context.namespace,
            ),
            data={"command": registration.name, "description": registration.description, "parameters": parameters},
        )

    grouped: dict[str, list[CommandRegistration]] = {}
    for registration in context.registry.values():
        grouped.setdefault(registration.category, []).append(registration)
    categories = [c for c in CATEGORY_ORDER if c in grouped] + sorted(c for c in grouped if c not in CATEGORY_ORDER)
    groups = [(category, sorted(grouped[category], key=lambda r: r.name)) for category in categories]
    return CommandResult(
        success=True,
        message="Available commands",
        markdown=render_markdown("help.md.j2", groups=groups, namespace=context.namespace),
        data={"commands": {category: [r.name for r in registrations] for category, registrations in groups}},
    )


def _setting_name(key: str) -> str:
    name = to_snake(key.strip())
    if name not in UserSettings.model_fields:
        raise CommandValidationError(
            f"Unknown setting: `{key}`",
            hints=[f"Known settings: {', '.join(f'`{field.alias or field_name}`' for field_name, field in UserSettings.model_fields.items())}"],
        )
    return name


def _settings_rows(settings: UserSettings) -> list[tuple[str, Any]]:
    return [(field.alias or name, getattr(settings, name)) for name, field in UserSettings.model_fields.items()]


async def settings(params: SettingsParams, context: CommandContext) -> CommandResult:
    """Show or change user settings."""
    store = context.services.store
    if params.set:
        key, sep, raw_value = params.set.partition("=")
        if not sep or not key.strip():
            raise CommandValidationError("Settings are changed with `set:key=value`.")
        name = _setting_name(key)
        value: Any = raw_value.strip()
        if value.lower() in ("", "none", "null"):
            value = None
        current = await store.update_settings({name: value})
        return CommandResult(
            success=True,
            message=f"Updated setting {key.strip()}",
            markdown=render_markdown("settings.md.j2", settings=_settings_rows(current), changed=key.strip(), namespace=context.namespace),
            data={"settings": current.model_dump(mode="json", by_alias=True)},
        )

    current = await store.get_settings()
    if params.get:
        name = _setting_name(params.get)
        value = getattr(current, name)
        return CommandResult(
            success=True,
            message=f"{params.get} = {value}",
            data={"key": params.get, "value": value},
        )
    return CommandResult(
        success=True,
        message="Current settings",
        markdown=render_markdown("settings.md.j2", settings=_settings_rows(current), changed=None, namespace=context.namespace),
        data={"settings": current.model_dump(mode="json", by_alias=True)},
    )


SYSTEM_COMMANDS = [
    CommandRegistration(
        name="help",
        description="Show available commands",
        handler=show_help,
        params_model=HelpParams,
        category="System",
        examples=["/mo help", "/mo help command:linear-sync"],
    ),
    CommandRegistration(
        name="settings",
        description="View or change settings",
        handler=settings,
        params_model=SettingsParams,
        category="System",
        examples=["/mo settings", "/mo settings set:syncLimit=50", "/mo settings get:defaultPriority"],
    ),
]
