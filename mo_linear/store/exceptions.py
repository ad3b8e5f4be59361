"""Contains exceptions raised by the local task store."""

from pathlib import Path


class StoreError(Exception):
    """Raised when the store cannot read or persist its files."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        """Initializes the exception with the file involved, when known."""
        super().__init__(message)
        self.path = path


class TaskNotFoundError(StoreError):
    """Raised when an operation references a task that does not exist."""

    def __init__(self, task_id: str) -> None:
        """Initializes the exception with the missing task ID."""
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id
