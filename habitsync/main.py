import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Header, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from .config import settings
from .db import Base, engine, get_db
from . import errors, schemas, services
from .charts import StatsCard, render_stats_card_png, render_completion_png
from .logging_config import setup_logging
from .sharing import RequestStatus
from .stats import BucketUnit

logger = logging.getLogger(__name__)

app = FastAPI(title="HabitSync API", version="1.0.0")

DEFAULT_WINDOW_DAYS = 30


@app.on_event("startup")
def on_startup():
    setup_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    logger.info("HabitSync API started (%s)", settings.app_env)


@app.exception_handler(errors.HabitError)
async def habit_error_handler(request: Request, exc: errors.HabitError):
    if isinstance(exc, errors.InvalidDefinition):
        status, body = 422, {"detail": exc.message, "field": exc.field, "code": type(exc).__name__}
    elif isinstance(exc, errors.NotFound):
        status, body = 404, {"detail": str(exc), "code": "NotFound"}
    elif isinstance(exc, errors.NotParticipant):
        status, body = 403, {"detail": str(exc), "code": "NotParticipant"}
    elif isinstance(exc, errors.AlreadyActioned):
        status, body = 409, {"detail": str(exc), "code": "AlreadyActioned", "current_status": exc.current_status}
    elif isinstance(exc, errors.NotActive):
        status, body = 409, {"detail": str(exc), "code": "NotActive", "current_status": exc.current_status}
    else:
        status, body = 400, {"detail": str(exc), "code": type(exc).__name__}
    logger.info("%s %s -> %s %s", request.method, request.url.path, status, body["code"])
    return JSONResponse(status_code=status, content=body)


def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
    if not x_api_key or x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


def current_user_id(x_user_id: int | None = Header(default=None)) -> int:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return x_user_id


def window(start: Optional[date], end: Optional[date]) -> tuple:
    end = end or date.today()
    start = start or end - timedelta(days=DEFAULT_WINDOW_DAYS - 1)
    return start, end


def summary_out(summary, buckets, start, end, unit, habit_id=None, streak=None) -> schemas.SummaryOut:
    return schemas.SummaryOut(
        habit_id=habit_id,
        range_start=start,
        range_end=end,
        unit=unit,
        total_due=summary.total_due,
        total_complete=summary.total_complete,
        rate=summary.rate,
        completion_percent=summary.percent,
        current_streak=streak,
        buckets=[schemas.BucketOut(period_start=b.period_start, due=b.due, complete=b.complete, rate=b.rate)
                 for b in buckets],
    )


@app.get("/health")
def health():
    return {"status": "ok"}


# --- users -----------------------------------------------------------------

@app.post("/users", response_model=schemas.UserOut, dependencies=[Depends(require_api_key)])
def create_user(payload: schemas.UserCreate, db: Session = Depends(get_db)):
    return services.create_user(db, payload.display_name)


@app.get("/users/{user_id}", response_model=schemas.UserOut, dependencies=[Depends(require_api_key)])
def get_user(user_id: int, db: Session = Depends(get_db)):
    return services.get_user(db, user_id)


# --- personal habits -------------------------------------------------------

@app.post("/habits", response_model=schemas.HabitOut, status_code=201, dependencies=[Depends(require_api_key)])
def create_habit(payload: schemas.HabitCreate, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return services.create_habit(db, user_id, payload.model_dump())


@app.get("/habits", response_model=list[schemas.HabitOut], dependencies=[Depends(require_api_key)])
def list_habits(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return services.list_habits(db, user_id)


@app.get("/habits/by-date-range", response_model=list[schemas.HabitOccurrencesOut], dependencies=[Depends(require_api_key)])
def habits_by_date_range(start: date, end: date, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return [
        schemas.HabitOccurrencesOut(
            habit=schemas.HabitOut.model_validate(row),
            occurrences=[schemas.OccurrenceOut(day=d, completed=done) for d, done in days],
        )
        for row, days in services.habits_in_range(db, user_id, start, end)
    ]


@app.get("/habits/{habit_id}", response_model=schemas.HabitOut, dependencies=[Depends(require_api_key)])
def get_habit(habit_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return services.get_habit(db, habit_id, user_id)


@app.put("/habits/{habit_id}", response_model=schemas.HabitOut, dependencies=[Depends(require_api_key)])
def update_habit(habit_id: int, payload: schemas.HabitUpdate, user_id: int = Depends(current_user_id),
                 db: Session = Depends(get_db)):
    return services.update_habit(db, habit_id, user_id, payload.model_dump(exclude_unset=True))


@app.delete("/habits/{habit_id}", dependencies=[Depends(require_api_key)])
def delete_habit(habit_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    services.delete_habit(db, habit_id, user_id)
    return {"deleted": True}


@app.post("/habits/{habit_id}/track", response_model=schemas.OccurrenceOut, dependencies=[Depends(require_api_key)])
def track_habit(habit_id: int, payload: schemas.TrackIn, user_id: int = Depends(current_user_id),
                db: Session = Depends(get_db)):
    day = payload.day or date.today()
    state = services.track_habit(db, habit_id, user_id, day, payload.completed)
    return schemas.OccurrenceOut(day=day, completed=day in state.completion_dates)


@app.get("/habits/{habit_id}/occurrences", response_model=schemas.HabitOccurrencesOut,
         dependencies=[Depends(require_api_key)])
def habit_occurrences(habit_id: int, start: date, end: date, user_id: int = Depends(current_user_id),
                      db: Session = Depends(get_db)):
    row, days, reminders = services.habit_occurrences(db, habit_id, user_id, start, end)
    return schemas.HabitOccurrencesOut(
        habit=schemas.HabitOut.model_validate(row),
        occurrences=[schemas.OccurrenceOut(day=d, completed=done) for d, done in days],
        reminders=reminders,
    )


@app.delete("/habits/{habit_id}/occurrences/{day}", response_model=schemas.DeleteOccurrenceOut,
            dependencies=[Depends(require_api_key)])
def delete_occurrence(habit_id: int, day: date, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    deleted = services.delete_occurrence(db, habit_id, user_id, day)
    return schemas.DeleteOccurrenceOut(habit_id=habit_id, day=day, deleted=deleted)


@app.get("/habits/{habit_id}/stats", response_model=schemas.SummaryOut, dependencies=[Depends(require_api_key)])
def habit_stats(habit_id: int, start: Optional[date] = None, end: Optional[date] = None,
                unit: BucketUnit = BucketUnit.DAY, user_id: int = Depends(current_user_id),
                db: Session = Depends(get_db)):
    start, end = window(start, end)
    _, summary, buckets, streak = services.habit_summary(db, habit_id, user_id, start, end, unit)
    return summary_out(summary, buckets, start, end, unit, habit_id=habit_id, streak=streak)


@app.get("/habits/{habit_id}/stats.png", dependencies=[Depends(require_api_key)])
def habit_stats_png(habit_id: int, start: Optional[date] = None, end: Optional[date] = None,
                    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    start, end = window(start, end)
    row, summary, _, streak = services.habit_summary(db, habit_id, user_id, start, end)
    card = StatsCard(
        habit_name=row.name,
        period_label=f"{start.isoformat()} to {end.isoformat()}",
        total_due=summary.total_due,
        total_complete=summary.total_complete,
        completion_percent=summary.percent,
        streak=streak,
    )
    return Response(content=render_stats_card_png(card), media_type="image/png")


@app.get("/habits/{habit_id}/trend.png", dependencies=[Depends(require_api_key)])
def habit_trend_png(habit_id: int, days: int = 14, unit: BucketUnit = BucketUnit.DAY,
                    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    days = max(2, min(int(days), 366))
    end = date.today()
    start = end - timedelta(days=days - 1)
    row, _, buckets, _ = services.habit_summary(db, habit_id, user_id, start, end, unit)
    png = render_completion_png(buckets, title=f"{row.name} (last {days} days)")
    return Response(content=png, media_type="image/png")


@app.get("/stats", response_model=schemas.SummaryOut, dependencies=[Depends(require_api_key)])
def dashboard_stats(start: Optional[date] = None, end: Optional[date] = None, unit: BucketUnit = BucketUnit.DAY,
                    user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    start, end = window(start, end)
    summary, buckets = services.dashboard(db, user_id, start, end, unit)
    return summary_out(summary, buckets, start, end, unit)


# --- shared habits ---------------------------------------------------------

@app.post("/shared", response_model=schemas.SharedHabitOut, status_code=201, dependencies=[Depends(require_api_key)])
def request_shared_habit(payload: schemas.SharedHabitCreate, user_id: int = Depends(current_user_id),
                         db: Session = Depends(get_db)):
    values = payload.model_dump(exclude={"participant_id"})
    return services.request_shared_habit(db, user_id, values, payload.participant_id)


@app.get("/shared", response_model=list[schemas.SharedHabitOut], dependencies=[Depends(require_api_key)])
def list_shared(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return services.list_shared(db, user_id)


def _resolve_request(db: Session, shared_id: int, user_id: int, target: RequestStatus):
    action = services.accept_shared if target == RequestStatus.ACCEPTED else services.reject_shared
    try:
        return action(db, shared_id, user_id)
    except errors.AlreadyActioned as exc:
        # a retry of the transition that already won is a success
        if not exc.deleted and exc.current_status == target.value:
            row = services.get_shared_row(db, shared_id)
            if user_id == row.participant_id:
                return row
        raise


@app.post("/shared/{shared_id}/accept", response_model=schemas.SharedHabitOut, dependencies=[Depends(require_api_key)])
def accept_shared(shared_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return _resolve_request(db, shared_id, user_id, RequestStatus.ACCEPTED)


@app.post("/shared/{shared_id}/reject", response_model=schemas.SharedHabitOut, dependencies=[Depends(require_api_key)])
def reject_shared(shared_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return _resolve_request(db, shared_id, user_id, RequestStatus.REJECTED)


@app.put("/shared/{shared_id}", response_model=schemas.SharedHabitOut, dependencies=[Depends(require_api_key)])
def update_shared(shared_id: int, payload: schemas.HabitUpdate, user_id: int = Depends(current_user_id),
                  db: Session = Depends(get_db)):
    return services.update_shared_habit(db, shared_id, user_id, payload.model_dump(exclude_unset=True))


@app.post("/shared/{shared_id}/cancel", dependencies=[Depends(require_api_key)])
def cancel_shared(shared_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    services.cancel_shared(db, shared_id, user_id)
    return {"cancelled": True}


@app.post("/shared/{shared_id}/track", response_model=schemas.ProgressOut, dependencies=[Depends(require_api_key)])
def track_shared(shared_id: int, payload: schemas.TrackIn, user_id: int = Depends(current_user_id),
                 db: Session = Depends(get_db)):
    day = payload.day or date.today()
    shared = services.track_shared(db, shared_id, user_id, day, payload.completed)
    p = shared.progress(day)
    return schemas.ProgressOut(day=p.day, owner=p.owner, participant=p.participant)


@app.get("/shared/{shared_id}/progress", response_model=schemas.SharedProgressOut,
         dependencies=[Depends(require_api_key)])
def shared_progress(shared_id: int, day: Optional[date] = None, start: Optional[date] = None,
                    end: Optional[date] = None, user_id: int = Depends(current_user_id),
                    db: Session = Depends(get_db)):
    if day is None:
        start, end = window(start, end)
    row, progress = services.shared_progress(db, shared_id, user_id, start=start, end=end, day=day)
    return schemas.SharedProgressOut(
        shared_habit_id=row.id,
        owner_id=row.owner_id,
        participant_id=row.participant_id,
        progress=[schemas.ProgressOut(day=p.day, owner=p.owner, participant=p.participant) for p in progress],
    )


@app.delete("/shared/{shared_id}", dependencies=[Depends(require_api_key)])
def delete_shared(shared_id: int, user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    services.delete_shared(db, shared_id, user_id)
    return {"deleted": True}


@app.get("/notifications", response_model=list[schemas.NotificationOut], dependencies=[Depends(require_api_key)])
def list_notifications(unread_only: bool = False, user_id: int = Depends(current_user_id),
                       db: Session = Depends(get_db)):
    return services.list_notifications(db, user_id, unread_only=unread_only)


@app.get("/notifications/unread-count", dependencies=[Depends(require_api_key)])
def unread_count(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return {"unread": services.unread_count(db, user_id)}


@app.patch("/notifications/{notification_id}/read", response_model=schemas.NotificationOut,
           dependencies=[Depends(require_api_key)])
def mark_notification_read(notification_id: int, user_id: int = Depends(current_user_id),
                           db: Session = Depends(get_db)):
    return services.mark_notification_read(db, notification_id, user_id)


@app.post("/notifications/mark-all-read", dependencies=[Depends(require_api_key)])
def mark_all_read(user_id: int = Depends(current_user_id), db: Session = Depends(get_db)):
    return {"updated": services.mark_all_read(db, user_id)}
