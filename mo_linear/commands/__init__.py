"""Command handlers exposed through the protocol namespace."""

from .auth import AUTH_COMMANDS
from .query import QUERY_COMMANDS
from .sync import SYNC_COMMANDS
from .system import SYSTEM_COMMANDS
from .tasks import TASK_COMMANDS
from .webhook import WEBHOOK_COMMANDS

ALL_COMMANDS = [
    *AUTH_COMMANDS,
    *SYNC_COMMANDS,
    *QUERY_COMMANDS,
    *WEBHOOK_COMMANDS,
    *TASK_COMMANDS,
    *SYSTEM_COMMANDS,
]

__all__ = ["ALL_COMMANDS"]
