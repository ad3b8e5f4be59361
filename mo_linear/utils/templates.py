"""Contains utilities for rendering Jinja2 markdown templates."""

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any

import jinja2
import structlog

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

PRIORITY_LABELS = {0: "No priority", 1: "Urgent", 2: "High", 3: "Medium", 4: "Low"}


def priority_label(value: int | None) -> str:
    """Human-readable name of a Linear priority."""
    if value is None:
        return "Not set"
    return PRIORITY_LABELS.get(value, str(value))


def format_datetime(value: datetime | str | None) -> str:
    """Format a timestamp for display."""
    if value is None:
        return "never"
    if isinstance(value, str):
        return value
    return value.strftime("%Y-%m-%d %H:%M UTC")


def construct_jinja2_environment(template_dir: Path = TEMPLATES_DIR) -> jinja2.Environment:
    """Construct a Jinja2 environment for markdown templates."""
    jinja_env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(template_dir),
        undefined=jinja2.StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        autoescape=False,
    )
    jinja_env.filters["priority"] = priority_label
    jinja_env.filters["datetime"] = format_datetime
    return jinja_env


@lru_cache(maxsize=1)
def get_jinja2_environment() -> jinja2.Environment:
    """Shared environment for the bundled templates."""
    return construct_jinja2_environment()


def render_markdown(template_name: str, **context: Any) -> str:
    """Render a bundled markdown template."""
    try:
        template = get_jinja2_environment().get_template(template_name)
    except jinja2.TemplateNotFound:
        logger.error("Markdown template not found", template_name=template_name, template_dir=str(TEMPLATES_DIR))
        raise
    try:
        rendered = template.render(**context)
    except jinja2.UndefinedError as exc:
        logger.error("Failed to render markdown template", template_name=template_name, error=str(exc))
        raise
    return rendered.strip() + "\n"
