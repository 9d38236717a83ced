"""
Typed errors for habit definitions, occurrence tracking and shared habits.

Validation errors carry the offending field so the API layer can surface it
verbatim. Expansion and summary code never raises these for stored data.
"""

from __future__ import annotations

from typing import Any, Optional


class HabitError(Exception):
    """Base class for all habit domain errors."""


class InvalidDefinition(HabitError):
    """A recurrence definition is malformed or contradictory."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class OutOfRange(InvalidDefinition):
    """A numeric or date bound was violated (repeat count, future tracking)."""


class AlreadyActioned(HabitError):
    """A shared-habit request was already resolved."""

    def __init__(self, shared_habit_id: Any, current_status: str, deleted: bool = False) -> None:
        self.shared_habit_id = shared_habit_id
        self.current_status = current_status
        self.deleted = deleted
        state = "deleted" if deleted else current_status
        super().__init__(f"Shared habit {shared_habit_id} already {state}")


class NotFound(HabitError):
    """Unknown habit, shared habit or user."""

    def __init__(self, kind: str, ident: Optional[Any]) -> None:
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class NotParticipant(HabitError):
    """The acting user may not perform this action on the shared habit."""

    def __init__(self, user_id: Any, action: str) -> None:
        self.user_id = user_id
        self.action = action
        super().__init__(f"User {user_id} is not allowed to {action}")


class NotActive(HabitError):
    """Tracking was attempted on a shared habit that is not accepted."""

    def __init__(self, shared_habit_id: Any, current_status: str) -> None:
        self.shared_habit_id = shared_habit_id
        self.current_status = current_status
        super().__init__(f"Shared habit {shared_habit_id} is {current_status}, not accepted")
