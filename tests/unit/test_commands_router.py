"""Unit tests for command line parsing and routing."""

import pytest

from mo_linear.commands.models import CommandContext, CommandParams, CommandRegistration, CommandResult
from mo_linear.commands.router import CommandRouter, parse_params, split_command
from mo_linear.linear.exceptions import LinearAPIError, LinearRateLimitError
from mo_linear.services import Services


def test_parse_params_unquoted_and_quoted() -> None:
    """Test that quoted values keep their spaces and unquoted values stop at whitespace."""
    params = parse_params('title:"Fix login bug" priority:2 status:todo')
    assert params == {"title": "Fix login bug", "priority": "2", "status": "todo"}


def test_parse_params_skips_malformed_tokens() -> None:
    """Test that tokens without a key:value shape are ignored."""
    assert parse_params('stray words key:value :nokey "loose quote') == {"key": "value"}


def test_parse_params_last_value_wins() -> None:
    """Test that a repeated key keeps its last value."""
    assert parse_params("limit:5 limit:10") == {"limit": "10"}


def test_parse_params_empty_quoted_value() -> None:
    """Test that an empty quoted value parses to an empty string."""
    assert parse_params('description:""') == {"description": ""}


def test_parse_params_value_with_colon() -> None:
    """Test that a URL value keeps everything after the first colon."""
    assert parse_params("url:https://example.com/hook") == {"url": "https://example.com/hook"}


def test_split_command() -> None:
    """Test splitting namespaced lines into name and parameter tail."""
    assert split_command("/mo tasks status:todo") == ("tasks", "status:todo")
    assert split_command("  /mo   new-task title:x ") == ("new-task", "title:x")
    assert split_command("/mo") == ("", "")
    assert split_command("/motasks") is None
    assert split_command("hello /mo tasks") is None


@pytest.mark.asyncio
async def test_unknown_command_returns_error_with_help_button(router: CommandRouter) -> None:
    """Test that an unknown command never raises and offers help."""
    result = await router.dispatch("/mo does-not-exist foo:bar")
    assert result.success is False
    assert result.error == "UNKNOWN_COMMAND"
    assert "does-not-exist" in result.message
    assert result.action_buttons is not None
    assert result.action_buttons[0].command == "/mo help"


@pytest.mark.asyncio
async def test_dispatch_outside_namespace(router: CommandRouter) -> None:
    """Test that a line outside the namespace yields a failure result."""
    result = await router.dispatch("/other tasks")
    assert result.success is False
    assert result.error == "INVALID_NAMESPACE"


@pytest.mark.asyncio
async def test_bare_namespace_shows_help(router: CommandRouter) -> None:
    """Test that the namespace alone runs help."""
    result = await router.dispatch("/mo")
    assert result.success is True
    assert result.message == "Available commands"
    assert "linear-sync" in result.markdown


@pytest.mark.asyncio
async def test_invalid_parameters_show_usage(router: CommandRouter) -> None:
    """Test that a validation failure lists the offending parameter and usage."""
    result = await router.dispatch("/mo new-task title:x priority:9")
    assert result.success is False
    assert result.error == "INVALID_PARAMETERS"
    assert "priority" in result.markdown
    assert "/mo new-task title:<title>" in result.markdown


@pytest.mark.asyncio
async def test_missing_required_parameter(router: CommandRouter) -> None:
    """Test that a missing required parameter is reported."""
    result = await router.dispatch("/mo new-task")
    assert result.success is False
    assert "title" in result.markdown


@pytest.mark.asyncio
async def test_handler_exceptions_become_results(services: Services) -> None:
    """Test that errors raised by handlers are converted into failure results."""
    router = CommandRouter(services)

    async def rate_limited(params: CommandParams, context: CommandContext) -> CommandResult:
        raise LinearRateLimitError("slow down", retry_after=12)

    async def api_error(params: CommandParams, context: CommandContext) -> CommandResult:
        raise LinearAPIError("boom", status_code=500)

    async def crash(params: CommandParams, context: CommandContext) -> CommandResult:
        raise RuntimeError("unexpected")

    router.register(CommandRegistration(name="rate", description="", handler=rate_limited))
    router.register(CommandRegistration(name="api", description="", handler=api_error))
    router.register(CommandRegistration(name="crash", description="", handler=crash))

    rate = await router.dispatch("/mo rate")
    assert rate.success is False
    assert "12 seconds" in rate.message

    api = await router.dispatch("/mo api")
    assert api.success is False
    assert "boom" in api.message

    crashed = await router.dispatch("/mo crash")
    assert crashed.success is False
    assert crashed.error == "unexpected"


@pytest.mark.asyncio
async def test_auth_required_for_linear_commands(router: CommandRouter) -> None:
    """Test that Linear commands prompt for authentication when no credential exists."""
    result = await router.dispatch("/mo linear-teams")
    assert result.success is False
    assert result.error == "AUTH_REQUIRED"
    assert result.action_buttons[0].label == "Authenticate with Linear"
    assert result.action_buttons[0].command == "/mo linear-auth"


@pytest.mark.asyncio
async def test_editor_context_is_passed_to_handlers(router: CommandRouter) -> None:
    """Test that the editor selection becomes the default task description."""
    result = await router.dispatch('/mo new-task title:"From selection"', {"selectedText": "selected code", "currentFilePath": "/src/a.py"})
    assert result.success is True
    assert result.data["task"]["description"] == "selected code"


@pytest.mark.asyncio
async def test_malformed_editor_context_is_ignored(router: CommandRouter) -> None:
    """Test that a malformed editor context does not fail the command."""
    result = await router.dispatch('/mo new-task title:"No context"', {"cursorPosition": "not-a-dict"})
    assert result.success is True
    assert result.data["task"]["description"] == ""


def test_wire_format_uses_camel_case_and_omits_none() -> None:
    """Test the serialized response envelope."""
    result = CommandResult(success=True, message="ok", data={"x": 1})
    assert result.to_wire() == {"success": True, "message": "ok", "data": {"x": 1}}
