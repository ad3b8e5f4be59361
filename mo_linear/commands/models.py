"""Contains the models shared by the command router and its handlers."""

from typing import TYPE_CHECKING, Annotated, Any, Awaitable, Callable

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from mo_linear.services import Services


class ActionButton(BaseModel):
    """A button the editor renders under a result."""

    label: str
    command: str


class CommandResult(BaseModel):
    """Result of a command, sent back to the editor."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    markdown: str | None = None
    error: str | None = None
    data: dict[str, Any] | None = None
    action_buttons: list[ActionButton] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the protocol channel."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EditorContext(BaseModel):
    """Context supplied by the editor with each command."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    current_file_path: str | None = None
    selected_text: str | None = None
    workspace_path: str | None = None
    cursor_position: dict[str, int] | None = None
    cursor_version: str | None = None
    additional_context: dict[str, Any] | None = None


def split_csv(value: Any) -> Any:
    """Split a comma-separated parameter into a list of trimmed values."""
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
        return [item for item in items if item] or None
    return value


CsvList = Annotated[list[str] | None, BeforeValidator(split_csv)]


class CommandParams(BaseModel):
    """Base model for command parameters parsed from ``key:value`` tokens.

    Keys are accepted in camelCase (``dryRun``) or snake_case (``dry_run``).
    Unknown keys are ignored.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class NoParams(CommandParams):
    """Parameters for commands that take none."""

    pass


class CommandContext:
    """Everything a handler needs besides its parameters."""

    def __init__(self, editor: EditorContext, services: "Services", registry: dict[str, "CommandRegistration"], namespace: str) -> None:
        """Initialize the context for a single command invocation."""
        self.editor = editor
        self.services = services
        self.registry = registry
        self.namespace = namespace

    def command(self, name: str, **params: Any) -> str:
        """Build a command line for an action button."""
        parts = [self.namespace, name]
        for key, value in params.items():
            if value is None:
                continue
            text = str(value).lower() if isinstance(value, bool) else str(value)
            parts.append(f'{key}:"{text}"' if " " in text else f"{key}:{text}")
        return " ".join(parts)


CommandHandler = Callable[[Any, CommandContext], Awaitable[CommandResult]]


class CommandRegistration(BaseModel):
    """A command registered with the router."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    handler: CommandHandler
    params_model: type[CommandParams] = NoParams
    category: str = "System"
    examples: list[str] = Field(default_factory=list)

    def usage(self, namespace: str) -> str:
        """Usage line listing each parameter, optional ones in brackets."""
        parts = [f"{namespace} {self.name}"]
        for name, field in self.params_model.model_fields.items():
            key = field.alias or name
            parts.append(f"{key}:<{key}>" if field.is_required() else f"[{key}:<{key}>]")
        return " ".join(parts)

    def parameters(self) -> list[dict[str, Any]]:
        """Describe parameters for help output and the tool manifest."""
        described = []
        for name, field in self.params_model.model_fields.items():
            described.append(
                {
                    "name": field.alias or name,
                    "description": field.description or "",
                    "required": field.is_required(),
                }
            )
        return described
