import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .dates import to_day
from .errors import AlreadyActioned, NotFound, NotParticipant, InvalidDefinition, OutOfRange
from .occurrences import OccurrenceState, current_streak, delete_occurrence as exclude_occurrence, toggle_completion
from .recurrence import HabitDefinition, RepeatType, parse_weekdays, reminder_dates, validate
from .sharing import CompletionStatus, EventKind, LifecycleEvent, RequestStatus, SharedHabit
from .stats import Bucket, BucketUnit, Summary, bucketize, classify, combine, summarize

logger = logging.getLogger(__name__)

DEFINITION_FIELDS = (
    "name", "description", "start_date", "repeat_type", "weekly_days", "weekly_interval_weeks",
    "monthly_dates", "monthly_interval_months", "end_date", "repeat_count", "reminder_offsets",
)


# ---------------------------------------------------------------------------
# row <-> core mapping
# ---------------------------------------------------------------------------

def to_definition(row: models.Habit) -> HabitDefinition:
    return HabitDefinition(
        habit_id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description or "",
        start_date=row.start_date,
        repeat_type=RepeatType(row.repeat_type),
        weekly_days=parse_weekdays(row.weekly_days or []),
        weekly_interval_weeks=row.weekly_interval_weeks or 1,
        monthly_dates=tuple(to_day(d) for d in row.monthly_dates or []),
        monthly_interval_months=row.monthly_interval_months or 1,
        end_date=row.end_date,
        repeat_count=row.repeat_count,
        reminder_offsets=tuple(row.reminder_offsets or []),
    )


def _or_default(value, default):
    return default if value is None else value


def build_definition(values: dict, habit_id: Optional[int] = None, owner_id: Optional[int] = None) -> HabitDefinition:
    return HabitDefinition(
        habit_id=habit_id,
        owner_id=owner_id,
        name=values["name"],
        description=values.get("description") or "",
        start_date=values["start_date"],
        repeat_type=RepeatType(values.get("repeat_type") or RepeatType.NONE),
        weekly_days=parse_weekdays(values.get("weekly_days") or []),
        weekly_interval_weeks=_or_default(values.get("weekly_interval_weeks"), 1),
        monthly_dates=tuple(values.get("monthly_dates") or ()),
        monthly_interval_months=_or_default(values.get("monthly_interval_months"), 1),
        end_date=values.get("end_date"),
        repeat_count=values.get("repeat_count"),
        reminder_offsets=tuple(values.get("reminder_offsets") or ()),
    )


def _apply_definition(row: models.Habit, d: HabitDefinition) -> None:
    row.name = d.name
    row.description = d.description
    row.start_date = d.start_date
    row.repeat_type = d.repeat_type.value
    row.weekly_days = sorted(int(w) for w in d.weekly_days)
    row.weekly_interval_weeks = d.weekly_interval_weeks
    row.monthly_dates = [x.isoformat() for x in d.monthly_dates]
    row.monthly_interval_months = d.monthly_interval_months
    row.end_date = d.end_date
    row.repeat_count = d.repeat_count
    row.reminder_offsets = list(d.reminder_offsets)


def load_state(db: Session, habit_id: int) -> OccurrenceState:
    done = [d for (d,) in db.query(models.HabitCompletion.day).filter(models.HabitCompletion.habit_id == habit_id).all()]
    deleted = [d for (d,) in db.query(models.HabitException.day).filter(models.HabitException.habit_id == habit_id).all()]
    return OccurrenceState.from_days(done, deleted)


def _insert_once(db: Session, row) -> bool:
    """Insert a row keyed by a unique constraint; False when a concurrent writer got there first."""
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Concurrent insert on %s, keeping existing row", row.__tablename__)
        return False
    return True


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------

def create_user(db: Session, display_name: str) -> models.User:
    user = models.User(display_name=display_name, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id, models.User.is_active == True).first()
    if not user:
        raise NotFound("user", user_id)
    return user


# ---------------------------------------------------------------------------
# personal habits
# ---------------------------------------------------------------------------

def get_habit(db: Session, habit_id: int, user_id: int) -> models.Habit:
    row = db.query(models.Habit).filter(
        models.Habit.id == habit_id, models.Habit.owner_id == user_id, models.Habit.kind == "personal"
    ).first()
    if not row:
        raise NotFound("habit", habit_id)
    return row


def list_habits(db: Session, user_id: int) -> List[models.Habit]:
    return db.query(models.Habit).filter(
        models.Habit.owner_id == user_id, models.Habit.kind == "personal"
    ).order_by(models.Habit.id).all()


def create_habit(db: Session, user_id: int, values: dict, today: Optional[date] = None,
                 kind: str = "personal", commit: bool = True) -> models.Habit:
    get_user(db, user_id)
    definition = validate(build_definition(values, owner_id=user_id), today=today or date.today())
    row = models.Habit(owner_id=user_id, kind=kind)
    _apply_definition(row, definition)
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
        logger.info("Created %s habit %s for user %s (%s)", kind, row.id, user_id, definition.repeat_type.value)
    else:
        db.flush()
    return row


def _edited_definition(row: models.Habit, changes: dict, today: Optional[date] = None) -> HabitDefinition:
    current = to_definition(row)
    values = {f: getattr(current, f) for f in DEFINITION_FIELDS}
    values.update({k: v for k, v in changes.items() if k in DEFINITION_FIELDS})
    moved = "start_date" in changes and changes["start_date"] != current.start_date
    return validate(
        build_definition(values, habit_id=row.id, owner_id=row.owner_id),
        today=(today or date.today()) if moved else None,
    )


def update_habit(db: Session, habit_id: int, user_id: int, changes: dict, today: Optional[date] = None) -> models.Habit:
    """Apply a partial edit. Completion and exception entries are kept even if
    the new recurrence no longer produces their dates; reads ignore them."""
    row = get_habit(db, habit_id, user_id)
    _apply_definition(row, _edited_definition(row, changes, today))
    db.commit()
    db.refresh(row)
    logger.info("Updated habit %s", row.id)
    return row


def delete_habit(db: Session, habit_id: int, user_id: int) -> None:
    row = get_habit(db, habit_id, user_id)
    db.delete(row)
    db.commit()
    logger.info("Deleted habit %s and its whole series", habit_id)


def track_habit(db: Session, habit_id: int, user_id: int, day: Optional[date], completed: bool,
                today: Optional[date] = None) -> OccurrenceState:
    row = get_habit(db, habit_id, user_id)
    today = today or date.today()
    day = to_day(day or today)
    if day > today:
        raise OutOfRange("day", "cannot track a habit for a future date")

    state = load_state(db, row.id)
    updated = toggle_completion(state, day, completed)
    if updated is state:
        return state
    if completed:
        _insert_once(db, models.HabitCompletion(habit_id=row.id, day=day))
    else:
        db.query(models.HabitCompletion).filter(
            models.HabitCompletion.habit_id == row.id, models.HabitCompletion.day == day
        ).delete(synchronize_session=False)
        db.commit()
    return updated


def delete_occurrence(db: Session, habit_id: int, user_id: int, day) -> str:
    """Remove one occurrence, or the whole habit when ``day`` is its start date.

    Returns ``"series"`` or ``"occurrence"``.
    """
    row = get_habit(db, habit_id, user_id)
    day = to_day(day)
    if day == row.start_date:
        delete_habit(db, habit_id, user_id)
        return "series"
    definition = to_definition(row)
    state = load_state(db, row.id)
    if exclude_occurrence(definition, state, day) is not state:
        _insert_once(db, models.HabitException(habit_id=row.id, day=day))
        logger.info("Excluded %s from habit %s", day, row.id)
    return "occurrence"


def habit_occurrences(db: Session, habit_id: int, user_id: int, start, end):
    row = get_habit(db, habit_id, user_id)
    definition = to_definition(row)
    state = load_state(db, row.id)
    return row, classify(definition, state, start, end), reminder_dates(definition, start, end)


def habits_in_range(db: Session, user_id: int, start, end) -> List[Tuple[models.Habit, list]]:
    out = []
    for row in list_habits(db, user_id):
        days = classify(to_definition(row), load_state(db, row.id), start, end)
        if days:
            out.append((row, days))
    return out


def habit_summary(db: Session, habit_id: int, user_id: int, start, end,
                  unit: BucketUnit = BucketUnit.DAY) -> Tuple[models.Habit, Summary, List[Bucket], int]:
    row = get_habit(db, habit_id, user_id)
    definition = to_definition(row)
    state = load_state(db, row.id)
    return (
        row,
        summarize(definition, state, start, end),
        bucketize(definition, state, start, end, unit),
        current_streak(state),
    )


def dashboard(db: Session, user_id: int, start, end,
              unit: BucketUnit = BucketUnit.DAY) -> Tuple[Summary, List[Bucket]]:
    per_habit = [classify(to_definition(r), load_state(db, r.id), start, end) for r in list_habits(db, user_id)]
    buckets = combine(per_habit, unit)
    return Summary(sum(b.due for b in buckets), sum(b.complete for b in buckets)), buckets


# ---------------------------------------------------------------------------
# shared habits
# ---------------------------------------------------------------------------

_MESSAGES = {
    EventKind.REQUESTED: "{actor} wants to share the habit '{habit}' with you",
    EventKind.ACCEPTED: "{actor} accepted your shared habit '{habit}'",
    EventKind.REJECTED: "{actor} declined your shared habit '{habit}'",
    EventKind.CANCELLED: "{actor} withdrew the shared habit request '{habit}'",
    EventKind.TRACKED: "{actor} tracked '{habit}' for {day}",
    EventKind.UPDATED: "{actor} updated the shared habit '{habit}'",
    EventKind.DELETED: "{actor} deleted the shared habit '{habit}'",
}


def _record_events(db: Session, events: Iterable[LifecycleEvent]) -> None:
    for ev in events:
        actor = db.query(models.User.display_name).filter(models.User.id == ev.actor_id).scalar() or f"User {ev.actor_id}"
        message = _MESSAGES[ev.kind].format(actor=actor, habit=ev.habit_name, day=ev.day)
        db.add(models.Notification(
            recipient_id=ev.recipient_id,
            sender_id=ev.actor_id,
            kind=ev.kind.value,
            shared_habit_id=ev.shared_habit_id,
            message=message[:300],
        ))
        logger.info("Shared habit %s: %s by user %s", ev.shared_habit_id, ev.kind.value, ev.actor_id)


def to_shared(row: models.SharedHabit, emit=None) -> SharedHabit:
    return SharedHabit(
        shared_habit_id=row.id,
        definition=to_definition(row.habit),
        owner_id=row.owner_id,
        participant_id=row.participant_id,
        request_status=RequestStatus(row.request_status),
        deleted=row.deleted_at is not None,
        completion_status={(e.user_id, e.day): CompletionStatus(e.status) for e in row.entries},
        emit=emit,
    )


def get_shared_row(db: Session, shared_id: int) -> models.SharedHabit:
    row = db.query(models.SharedHabit).filter(models.SharedHabit.id == shared_id).first()
    if not row:
        raise NotFound("shared habit", shared_id)
    return row


def get_shared(db: Session, shared_id: int, user_id: int) -> models.SharedHabit:
    row = get_shared_row(db, shared_id)
    if user_id not in (row.owner_id, row.participant_id):
        raise NotParticipant(user_id, "view this shared habit")
    if row.deleted_at is not None:
        raise NotFound("shared habit", shared_id)
    return row


def list_shared(db: Session, user_id: int) -> List[models.SharedHabit]:
    return db.query(models.SharedHabit).filter(
        or_(models.SharedHabit.owner_id == user_id, models.SharedHabit.participant_id == user_id),
        models.SharedHabit.deleted_at.is_(None),
    ).order_by(models.SharedHabit.id).all()


def request_shared_habit(db: Session, owner_id: int, values: dict, participant_id: int,
                         today: Optional[date] = None) -> models.SharedHabit:
    if participant_id == owner_id:
        raise InvalidDefinition("participant_id", "cannot share a habit with yourself")
    get_user(db, participant_id)

    existing = db.query(models.SharedHabit).join(models.Habit, models.SharedHabit.habit_id == models.Habit.id).filter(
        models.SharedHabit.owner_id == owner_id,
        models.SharedHabit.participant_id == participant_id,
        models.SharedHabit.request_status == RequestStatus.PENDING.value,
        models.SharedHabit.deleted_at.is_(None),
        models.Habit.name == values.get("name"),
    ).first()
    if existing:
        raise AlreadyActioned(existing.id, existing.request_status)

    habit = create_habit(db, owner_id, values, today=today, kind="shared", commit=False)
    row = models.SharedHabit(habit_id=habit.id, owner_id=owner_id, participant_id=participant_id,
                             request_status=RequestStatus.PENDING.value)
    db.add(row)
    db.flush()

    events: List[LifecycleEvent] = []
    SharedHabit.request(row.id, to_definition(habit), owner_id, participant_id, emit=events.append)
    _record_events(db, events)
    db.commit()
    db.refresh(row)
    return row


def _resolve(db: Session, shared_id: int, user_id: int, action: str) -> models.SharedHabit:
    row = get_shared_row(db, shared_id)
    events: List[LifecycleEvent] = []
    shared = to_shared(row, emit=events.append)
    getattr(shared, action)(user_id)

    now = datetime.utcnow()
    if shared.deleted:
        values = {models.SharedHabit.deleted_at: now}
    else:
        values = {models.SharedHabit.request_status: shared.request_status.value, models.SharedHabit.resolved_at: now}

    # single winner: only a still-pending, undeleted row transitions
    won = db.query(models.SharedHabit).filter(
        models.SharedHabit.id == shared_id,
        models.SharedHabit.request_status == RequestStatus.PENDING.value,
        models.SharedHabit.deleted_at.is_(None),
    ).update(values, synchronize_session=False)
    if not won:
        db.rollback()
        current = get_shared_row(db, shared_id)
        logger.info("Lost %s race on shared habit %s (now %s)", action, shared_id, current.request_status)
        raise AlreadyActioned(shared_id, current.request_status, deleted=current.deleted_at is not None)

    _record_events(db, events)
    db.commit()
    db.refresh(row)
    return row


def accept_shared(db: Session, shared_id: int, user_id: int) -> models.SharedHabit:
    return _resolve(db, shared_id, user_id, "accept")


def reject_shared(db: Session, shared_id: int, user_id: int) -> models.SharedHabit:
    return _resolve(db, shared_id, user_id, "reject")


def cancel_shared(db: Session, shared_id: int, user_id: int) -> models.SharedHabit:
    return _resolve(db, shared_id, user_id, "cancel")


def delete_shared(db: Session, shared_id: int, user_id: int) -> None:
    row = get_shared_row(db, shared_id)
    if row.request_status == RequestStatus.PENDING.value and row.deleted_at is None:
        # still a request: deleting it is the owner withdrawing it
        if user_id == row.participant_id:
            raise NotParticipant(user_id, "delete a pending request")
        _resolve(db, shared_id, user_id, "cancel")
        return

    events: List[LifecycleEvent] = []
    shared = to_shared(row, emit=events.append)
    shared.delete(user_id)
    gone = db.query(models.SharedHabit).filter(
        models.SharedHabit.id == shared_id, models.SharedHabit.deleted_at.is_(None)
    ).update({models.SharedHabit.deleted_at: datetime.utcnow()}, synchronize_session=False)
    if not gone:
        db.rollback()
        raise NotFound("shared habit", shared_id)
    _record_events(db, events)
    db.commit()


def update_shared_habit(db: Session, shared_id: int, user_id: int, changes: dict,
                        today: Optional[date] = None) -> models.SharedHabit:
    """Edit the definition behind a shared habit; the other member is notified."""
    row = get_shared_row(db, shared_id)
    events: List[LifecycleEvent] = []
    shared = to_shared(row, emit=events.append)
    shared.ensure_editable(user_id)
    definition = _edited_definition(row.habit, changes, today)
    shared.edit(user_id, definition)
    _apply_definition(row.habit, definition)
    _record_events(db, events)
    db.commit()
    db.refresh(row)
    logger.info("Updated shared habit %s by user %s", shared_id, user_id)
    return row


def track_shared(db: Session, shared_id: int, user_id: int, day: Optional[date], completed: bool,
                 today: Optional[date] = None) -> SharedHabit:
    row = get_shared_row(db, shared_id)
    today = today or date.today()
    day = to_day(day or today)
    if day > today:
        raise OutOfRange("day", "cannot track a habit for a future date")

    events: List[LifecycleEvent] = []
    shared = to_shared(row, emit=events.append)
    shared.track(user_id, day, completed)
    status = shared.completion_status[(user_id, day)].value

    key = dict(shared_habit_id=shared_id, user_id=user_id, day=day)
    entry = db.query(models.SharedCompletion).filter_by(**key).first()
    if entry is None and not _insert_once(db, models.SharedCompletion(status=status, **key)):
        entry = db.query(models.SharedCompletion).filter_by(**key).one()
    if entry is not None:
        entry.status = status

    _record_events(db, events)
    db.commit()
    return shared


def shared_progress(db: Session, shared_id: int, user_id: int, start=None, end=None, day=None):
    row = get_shared(db, shared_id, user_id)
    shared = to_shared(row)
    if day is not None:
        return row, [shared.progress(day)]
    return row, shared.progress_range(start, end)


def list_notifications(db: Session, user_id: int, unread_only: bool = False) -> List[models.Notification]:
    q = db.query(models.Notification).filter(models.Notification.recipient_id == user_id)
    if unread_only:
        q = q.filter(models.Notification.is_read == False)
    return q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).all()


def unread_count(db: Session, user_id: int) -> int:
    return db.query(models.Notification).filter(
        models.Notification.recipient_id == user_id, models.Notification.is_read == False
    ).count()


def mark_notification_read(db: Session, notification_id: int, user_id: int) -> models.Notification:
    row = db.query(models.Notification).filter(
        models.Notification.id == notification_id, models.Notification.recipient_id == user_id
    ).first()
    if not row:
        raise NotFound("notification", notification_id)
    if not row.is_read:
        row.is_read = True
        db.commit()
        db.refresh(row)
    return row


def mark_all_read(db: Session, user_id: int) -> int:
    updated = db.query(models.Notification).filter(
        models.Notification.recipient_id == user_id, models.Notification.is_read == False
    ).update({models.Notification.is_read: True}, synchronize_session=False)
    db.commit()
    return updated
