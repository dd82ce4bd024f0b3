"""
Domain errors raised by the goal engine.

Each error carries an ``ErrorKind`` and the HTTP status the API maps it to, so
the HTTP layer never has to inspect messages.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    REJECTED = "REJECTED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"


class GoalError(Exception):
    """Base class for every error the goal engine raises on purpose."""

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.kind.value}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(GoalError):
    """Bad input shape: empty title/task, non-positive ids."""

    kind = ErrorKind.VALIDATION_ERROR
    status_code = 400


class RejectedError(GoalError):
    """One or more referenced article ids do not exist."""

    kind = ErrorKind.REJECTED
    status_code = 400

    def __init__(self, invalid_ids: Iterable[int]):
        self.invalid_ids: List[int] = list(invalid_ids)
        super().__init__(
            f"Invalid article ID(s): {self.invalid_ids}",
            {"invalid_article_ids": self.invalid_ids},
        )


class NotFoundError(GoalError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ConflictError(GoalError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class NotTrackedError(ConflictError):
    """The article is not part of the goal's current reading list."""

    def __init__(self, goal_id: int, article_id: int):
        self.goal_id = goal_id
        self.article_id = article_id
        super().__init__(
            f"Article {article_id} is not tracked by goal {goal_id}",
            {"goal_id": goal_id, "article_id": article_id},
        )


class StorageError(GoalError):
    """A transaction, commit or rollback failed in the backing store."""

    kind = ErrorKind.DATABASE_ERROR
    status_code = 500

    def __init__(self, step: str, cause: Optional[BaseException] = None):
        self.step = step
        self.cause = cause
        super().__init__(f"Failed to {step}")
