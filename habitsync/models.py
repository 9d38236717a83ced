from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    habits = relationship("Habit", back_populates="owner", cascade="all, delete-orphan")


class Habit(Base):
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(16), default="personal", nullable=False)   # "personal" | "shared"
    name = Column(String(100), nullable=False)
    description = Column(String(500), default="", nullable=False)
    start_date = Column(Date, nullable=False)
    repeat_type = Column(String(16), default="none", nullable=False)
    weekly_days = Column(JSON, default=list, nullable=False)        # weekday indexes, 0 = Monday
    weekly_interval_weeks = Column(Integer, default=1, nullable=False)
    monthly_dates = Column(JSON, default=list, nullable=False)      # ISO dates
    monthly_interval_months = Column(Integer, default=1, nullable=False)
    end_date = Column(Date, nullable=True)
    repeat_count = Column(Integer, nullable=True)
    reminder_offsets = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship("User", back_populates="habits")
    completions = relationship("HabitCompletion", back_populates="habit", cascade="all, delete-orphan")
    exceptions = relationship("HabitException", back_populates="habit", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_habits_owner_kind", "owner_id", "kind"),
    )


class HabitCompletion(Base):
    __tablename__ = "habit_completions"

    id = Column(Integer, primary_key=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    day = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    habit = relationship("Habit", back_populates="completions")

    __table_args__ = (
        UniqueConstraint("habit_id", "day", name="uq_habit_completions_habit_day"),
    )


class HabitException(Base):
    __tablename__ = "habit_exceptions"

    id = Column(Integer, primary_key=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    day = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    habit = relationship("Habit", back_populates="exceptions")

    __table_args__ = (
        UniqueConstraint("habit_id", "day", name="uq_habit_exceptions_habit_day"),
    )


class SharedHabit(Base):
    __tablename__ = "shared_habits"

    id = Column(Integer, primary_key=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    request_status = Column(String(16), default="pending", nullable=False)
    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)

    habit = relationship("Habit")
    entries = relationship("SharedCompletion", back_populates="shared_habit", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_shared_habits_owner", "owner_id", "request_status"),
        Index("ix_shared_habits_participant", "participant_id", "request_status"),
    )


class SharedCompletion(Base):
    __tablename__ = "shared_completions"

    id = Column(Integer, primary_key=True)
    shared_habit_id = Column(Integer, ForeignKey("shared_habits.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    day = Column(Date, nullable=False)
    status = Column(String(16), nullable=False)                       # "complete" | "incomplete"
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    shared_habit = relationship("SharedHabit", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("shared_habit_id", "user_id", "day", name="uq_shared_completions_key"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(32), nullable=False)                        # lifecycle event kind
    shared_habit_id = Column(Integer, nullable=True)
    message = Column(String(300), nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notifications_recipient_time", "recipient_id", "created_at"),
    )
