"""Contains the router turning ``/mo <command> key:value ...`` lines into handler calls."""

import re
from typing import TYPE_CHECKING, Any, Iterable

import structlog
from pydantic import ValidationError

from mo_linear.auth.credentials import AuthError
from mo_linear.linear.exceptions import LinearAPIError, LinearRateLimitError
from mo_linear.store.exceptions import StoreError, TaskNotFoundError

from .common import CommandValidationError, auth_required_result, error_result
from .models import CommandContext, CommandRegistration, CommandResult, EditorContext

if TYPE_CHECKING:
    from mo_linear.services import Services

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_NAMESPACE = "/mo"
PARAM_PATTERN = re.compile(r'(\w+):("[^"]*"|[^\s"]+)')


def parse_params(text: str) -> dict[str, str]:
    """Parse ``key:value`` and ``key:"quoted value"`` tokens.

    Tokens that do not match are skipped; this never raises. A repeated key
    keeps its last value.
    """
    params: dict[str, str] = {}
    for match in PARAM_PATTERN.finditer(text or ""):
        key, value = match.group(1), match.group(2)
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        params[key] = value
    return params


def split_command(line: str, namespace: str = DEFAULT_NAMESPACE) -> tuple[str, str] | None:
    """Split a namespaced line into the command name and its parameter tail.

    Returns None when the line does not belong to the namespace.
    """
    stripped = line.strip()
    if stripped != namespace and not stripped.startswith(namespace + " "):
        return None
    rest = stripped[len(namespace) :].strip()
    if not rest:
        return "", ""
    name, _, tail = rest.partition(" ")
    return name.strip(), tail.strip()


def format_validation_errors(exc: ValidationError) -> list[str]:
    """One line per offending parameter."""
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "parameters"
        lines.append(f"`{location}`: {error.get('msg', 'invalid value')}")
    return lines


class CommandRouter:
    """Routes command lines to registered handlers."""

    def __init__(self, services: "Services", namespace: str = DEFAULT_NAMESPACE) -> None:
        """Initialize an empty router."""
        self.services = services
        self.namespace = namespace
        self.registry: dict[str, CommandRegistration] = {}

    def register(self, registration: CommandRegistration) -> None:
        """Register a command. A later registration replaces an earlier one of the same name."""
        if registration.name in self.registry:
            logger.warning("Replacing registered command", command=registration.name)
        self.registry[registration.name] = registration

    def register_all(self, registrations: Iterable[CommandRegistration]) -> None:
        """Register several commands."""
        for registration in registrations:
            self.register(registration)

    def handles(self, line: str) -> bool:
        """Whether a line belongs to this router's namespace."""
        return split_command(line, self.namespace) is not None

    async def dispatch(self, line: str, editor_context: dict[str, Any] | EditorContext | None = None) -> CommandResult:
        """Route a command line to its handler and return its result. Never raises."""
        parts = split_command(line, self.namespace)
        if parts is None:
            return error_result("Invalid command", f"Commands must start with `{self.namespace}`.", error="INVALID_NAMESPACE")
        name, tail = parts
        if not name:
            name = "help"
        registration = self.registry.get(name)
        if registration is None:
            logger.info("Unknown command", command=name)
            return error_result(
                "Unknown command",
                f"Unknown command: `{name}`",
                error="UNKNOWN_COMMAND",
                hints=[f"Run `{self.namespace} help` to see the available commands."],
                buttons=[("Show Help", f"{self.namespace} help")],
            )

        raw_params = parse_params(tail)
        try:
            params = registration.params_model.model_validate(raw_params)
        except ValidationError as exc:
            logger.info("Invalid command parameters", command=name, params=sorted(raw_params))
            return error_result(
                "Invalid parameters",
                f"Invalid parameters for `{name}`",
                error="INVALID_PARAMETERS",
                hints=format_validation_errors(exc),
                usage=registration.usage(self.namespace),
                examples=registration.examples,
            )

        if isinstance(editor_context, EditorContext):
            editor = editor_context
        else:
            try:
                editor = EditorContext.model_validate(editor_context or {})
            except ValidationError:
                logger.warning("Ignoring malformed editor context", command=name)
                editor = EditorContext()
        context = CommandContext(editor=editor, services=self.services, registry=self.registry, namespace=self.namespace)

        logger.info("Executing command", command=name)
        try:
            return await registration.handler(params, context)
        except AuthError as exc:
            return auth_required_result(str(exc), self.namespace)
        except CommandValidationError as exc:
            return error_result(
                "Invalid parameters",
                exc.message,
                error="INVALID_PARAMETERS",
                hints=exc.hints,
                usage=registration.usage(self.namespace),
                examples=registration.examples,
            )
        except ValidationError as exc:
            return error_result("Invalid value", f"Invalid value for `{name}`", error="INVALID_VALUE", hints=format_validation_errors(exc))
        except TaskNotFoundError as exc:
            return error_result(
                "Task not found",
                str(exc),
                error="TASK_NOT_FOUND",
                buttons=[("List Tasks", f"{self.namespace} tasks")],
            )
        except LinearRateLimitError as exc:
            wait = f" Try again in {exc.retry_after:.0f} seconds." if exc.retry_after else " Try again shortly."
            return error_result("Linear rate limit exceeded", "Linear is rate limiting requests." + wait, error=str(exc))
        except LinearAPIError as exc:
            logger.error("Linear API error while executing command", command=name, error=str(exc))
            return error_result("Linear API error", f"Linear request failed: {exc.message}", error=str(exc))
        except StoreError as exc:
            logger.error("Store error while executing command", command=name, error=str(exc))
            return error_result("Local storage error", "Could not read or write local data.", error=str(exc))
        except Exception as exc:
            logger.exception("Unhandled error while executing command", command=name)
            return error_result("Command failed", f"Command `{name}` failed unexpectedly.", error=str(exc))
