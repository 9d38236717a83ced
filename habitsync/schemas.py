from pydantic import BaseModel, Field
from typing import List, Optional, Union
from datetime import date, datetime

from .recurrence import RepeatType
from .sharing import RequestStatus
from .stats import BucketUnit


class UserCreate(BaseModel):
    display_name: str = Field(min_length=1, max_length=120)


class UserOut(BaseModel):
    id: int
    display_name: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    start_date: date
    repeat_type: RepeatType = RepeatType.NONE
    weekly_days: List[Union[int, str]] = Field(default_factory=list)   # 0 = Monday, or "Monday" / "Mon"
    weekly_interval_weeks: int = 1
    monthly_dates: List[date] = Field(default_factory=list)
    monthly_interval_months: int = 1
    end_date: Optional[date] = None
    repeat_count: Optional[int] = None
    reminder_offsets: List[int] = Field(default_factory=list)


class HabitUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    start_date: Optional[date] = None
    repeat_type: Optional[RepeatType] = None
    weekly_days: Optional[List[Union[int, str]]] = None
    weekly_interval_weeks: Optional[int] = None
    monthly_dates: Optional[List[date]] = None
    monthly_interval_months: Optional[int] = None
    end_date: Optional[date] = None
    repeat_count: Optional[int] = None
    reminder_offsets: Optional[List[int]] = None


class HabitOut(BaseModel):
    id: int
    owner_id: int
    kind: str
    name: str
    description: str
    start_date: date
    repeat_type: RepeatType
    weekly_days: List[int]
    weekly_interval_weeks: int
    monthly_dates: List[date]
    monthly_interval_months: int
    end_date: Optional[date] = None
    repeat_count: Optional[int] = None
    reminder_offsets: List[int]

    class Config:
        from_attributes = True


class TrackIn(BaseModel):
    day: Optional[date] = None          # defaults to today
    completed: bool = True


class OccurrenceOut(BaseModel):
    day: date
    completed: bool


class HabitOccurrencesOut(BaseModel):
    habit: HabitOut
    occurrences: List[OccurrenceOut]
    reminders: List[date] = Field(default_factory=list)


class DeleteOccurrenceOut(BaseModel):
    habit_id: int
    day: date
    deleted: str                        # "occurrence" | "series"


class BucketOut(BaseModel):
    period_start: date
    due: int
    complete: int
    rate: float


class SummaryOut(BaseModel):
    habit_id: Optional[int] = None
    range_start: date
    range_end: date
    unit: BucketUnit
    total_due: int
    total_complete: int
    rate: float
    completion_percent: float
    current_streak: Optional[int] = None
    buckets: List[BucketOut]


class SharedHabitCreate(HabitCreate):
    participant_id: int


class SharedHabitOut(BaseModel):
    id: int
    habit: HabitOut
    owner_id: int
    participant_id: int
    request_status: RequestStatus
    requested_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProgressOut(BaseModel):
    day: date
    owner: bool
    participant: bool


class SharedProgressOut(BaseModel):
    shared_habit_id: int
    owner_id: int
    participant_id: int
    progress: List[ProgressOut]


class NotificationOut(BaseModel):
    id: int
    sender_id: int
    kind: str
    shared_habit_id: Optional[int] = None
    message: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
