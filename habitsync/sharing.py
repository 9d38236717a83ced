"""Lifecycle and dual-sided tracking for a habit shared between two users.

A shared habit starts ``pending``. The participant accepts or rejects it
exactly once; the owner may cancel it while it is still pending. Once
accepted both sides track the same occurrence stream independently, keyed
by ``(user_id, day)`` with last-write-wins upserts. Either side may delete an
accepted or rejected habit, which ends it for both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .dates import to_day
from .errors import AlreadyActioned, NotActive, NotFound, NotParticipant
from .recurrence import HabitDefinition, expand

logger = logging.getLogger(__name__)


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class CompletionStatus(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class EventKind(str, Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    TRACKED = "tracked"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class LifecycleEvent:
    kind: EventKind
    shared_habit_id: Optional[int]
    habit_name: str
    actor_id: int
    recipient_id: int
    day: Optional[date] = None
    completed: Optional[bool] = None


EventHook = Callable[[LifecycleEvent], None]


@dataclass(frozen=True)
class Progress:
    day: date
    owner: bool
    participant: bool


@dataclass
class SharedHabit:
    shared_habit_id: Optional[int]
    definition: HabitDefinition
    owner_id: int
    participant_id: int
    request_status: RequestStatus = RequestStatus.PENDING
    deleted: bool = False
    completion_status: Dict[Tuple[int, date], CompletionStatus] = field(default_factory=dict)
    emit: Optional[EventHook] = field(default=None, repr=False, compare=False)

    @classmethod
    def request(cls, shared_habit_id, definition: HabitDefinition, owner_id: int,
                participant_id: int, emit: Optional[EventHook] = None) -> "SharedHabit":
        habit = cls(shared_habit_id, definition, owner_id, participant_id, emit=emit)
        habit._emit(EventKind.REQUESTED, actor_id=owner_id)
        return habit

    # -- lifecycle --------------------------------------------------------

    def accept(self, user_id: int) -> None:
        self._resolve(user_id, RequestStatus.ACCEPTED, EventKind.ACCEPTED, "accept this request")

    def reject(self, user_id: int) -> None:
        self._resolve(user_id, RequestStatus.REJECTED, EventKind.REJECTED, "reject this request")

    def cancel(self, user_id: int) -> None:
        if user_id != self.owner_id:
            raise NotParticipant(user_id, "cancel this request")
        self._ensure_pending()
        self.deleted = True
        self._emit(EventKind.CANCELLED, actor_id=user_id)

    def delete(self, user_id: int) -> None:
        self._ensure_member(user_id, "delete this shared habit")
        if self.deleted:
            raise NotFound("shared habit", self.shared_habit_id)
        if self.request_status == RequestStatus.PENDING:
            # pending requests are withdrawn by the owner or rejected by the participant
            if user_id != self.owner_id:
                raise NotParticipant(user_id, "delete a pending request")
            self.cancel(user_id)
            return
        self.deleted = True
        self._emit(EventKind.DELETED, actor_id=user_id)

    def ensure_editable(self, user_id: int) -> None:
        """The owner may edit until the habit is deleted; the participant only
        once the request is accepted."""
        self._ensure_member(user_id, "edit this shared habit")
        if self.deleted:
            raise NotFound("shared habit", self.shared_habit_id)
        if user_id == self.participant_id and self.request_status != RequestStatus.ACCEPTED:
            raise NotActive(self.shared_habit_id, self.request_status.value)

    def edit(self, user_id: int, definition: HabitDefinition) -> None:
        self.ensure_editable(user_id)
        self.definition = definition
        self._emit(EventKind.UPDATED, actor_id=user_id)

    # -- tracking ---------------------------------------------------------

    def track(self, user_id: int, day, completed: bool) -> None:
        self._ensure_member(user_id, "track this shared habit")
        if self.deleted:
            raise NotFound("shared habit", self.shared_habit_id)
        if self.request_status != RequestStatus.ACCEPTED:
            raise NotActive(self.shared_habit_id, self.request_status.value)
        d = to_day(day)
        self.completion_status[(user_id, d)] = (
            CompletionStatus.COMPLETE if completed else CompletionStatus.INCOMPLETE
        )
        self._emit(EventKind.TRACKED, actor_id=user_id, day=d, completed=completed)

    def is_completed_by(self, user_id: int, day) -> bool:
        return self.completion_status.get((user_id, to_day(day))) == CompletionStatus.COMPLETE

    def progress(self, day) -> Progress:
        """Two-state comparison: no entry and an explicit ``incomplete`` read the same."""
        d = to_day(day)
        return Progress(
            day=d,
            owner=self.is_completed_by(self.owner_id, d),
            participant=self.is_completed_by(self.participant_id, d),
        )

    def progress_range(self, range_start, range_end) -> List[Progress]:
        return [self.progress(d) for d in expand(self.definition, range_start, range_end)]

    def due_dates(self, range_start, range_end) -> List[date]:
        return expand(self.definition, range_start, range_end)

    @property
    def is_active(self) -> bool:
        return self.request_status == RequestStatus.ACCEPTED and not self.deleted

    def counterpart(self, user_id: int) -> int:
        return self.participant_id if user_id == self.owner_id else self.owner_id

    # -- internals --------------------------------------------------------

    def _resolve(self, user_id: int, target: RequestStatus, kind: EventKind, action: str) -> None:
        """Members see a resolved request as ``AlreadyActioned`` before the
        participant-only rule applies; strangers are refused outright."""
        self._ensure_member(user_id, action)
        self._ensure_pending()
        if user_id != self.participant_id:
            raise NotParticipant(user_id, action)
        self.request_status = target
        self._emit(kind, actor_id=user_id)

    def _ensure_pending(self) -> None:
        if self.deleted or self.request_status != RequestStatus.PENDING:
            raise AlreadyActioned(self.shared_habit_id, self.request_status.value, deleted=self.deleted)

    def _ensure_member(self, user_id: int, action: str) -> None:
        if user_id not in (self.owner_id, self.participant_id):
            raise NotParticipant(user_id, action)

    def _emit(self, kind: EventKind, actor_id: int, day: Optional[date] = None,
              completed: Optional[bool] = None) -> None:
        if self.emit is None:
            return
        event = LifecycleEvent(
            kind=kind,
            shared_habit_id=self.shared_habit_id,
            habit_name=self.definition.name,
            actor_id=actor_id,
            recipient_id=self.counterpart(actor_id),
            day=day,
            completed=completed,
        )
        try:
            self.emit(event)
        except Exception:
            logger.exception("Lifecycle hook failed for %s event on shared habit %s",
                             kind.value, self.shared_habit_id)
