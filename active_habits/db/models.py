from __future__ import annotations

import enum
import uuid
import datetime as dt

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    pass


class UtcDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC; SQLite drops tzinfo otherwise."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)


class HabitColor(str, enum.Enum):
    GREEN = "green"
    BLUE = "blue"
    RED = "red"
    PURPLE = "purple"

    @property
    def persistence_identifier(self) -> str:
        return self.value

    @classmethod
    def from_persistence_identifier(cls, identifier: str) -> "HabitColor":
        return cls(str(identifier or "").strip().lower())


class NotificationStatus:
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    CANCELED = "canceled"


def encode_weekdays(weekdays) -> str:
    if not weekdays:
        return ""
    days = sorted({int(d) for d in weekdays})
    for d in days:
        if d < 0 or d > 6:
            raise ValueError(f"Weekday out of range: {d}")
    return ",".join(str(d) for d in days)


def decode_weekdays(raw: str | None) -> frozenset[int]:
    if not raw:
        return frozenset()
    return frozenset(int(part) for part in raw.split(",") if part.strip())


class CalendarDay(Base):
    __tablename__ = "calendar_days"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    date: Mapped[dt.date] = mapped_column(Date, unique=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Habit(Base):
    __tablename__ = "habits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default=HabitColor.GREEN.value)
    created_on: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_on: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    weekdays: Mapped[str] = mapped_column(String(32), nullable=False, default="", server_default="")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    days: Mapped[list["HabitDay"]] = relationship(
        "HabitDay", back_populates="habit", cascade="all, delete-orphan"
    )
    fire_times: Mapped[list["FireTime"]] = relationship(
        "FireTime",
        back_populates="habit",
        cascade="all, delete-orphan",
        order_by=lambda: (FireTime.hour, FireTime.minute),
    )
    notifications: Mapped[list["Notification"]] = relationship(
        "Notification", back_populates="habit", cascade="all, delete-orphan"
    )

    @property
    def weekday_set(self) -> frozenset[int]:
        return decode_weekdays(self.weekdays)

    def tracks(self, day: dt.date) -> bool:
        """Whether ``day`` is inside the active range and allowed by the recurrence."""
        if day < self.created_on:
            return False
        if self.end_on is not None and day > self.end_on:
            return False
        weekdays = self.weekday_set
        return not weekdays or day.weekday() in weekdays

    def get_title_text(self) -> str:
        return self.name

    def get_subtitle_text(self) -> str:
        return "Have you practiced this activity?"

    def get_description_text(self) -> str:
        return ""


class HabitDay(Base):
    __tablename__ = "habit_days"
    __table_args__ = (
        UniqueConstraint("habit_id", "calendar_day_id", name="uq_habit_days_habit_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id: Mapped[str] = mapped_column(ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    calendar_day_id: Mapped[str] = mapped_column(ForeignKey("calendar_days.id"), nullable=False, index=True)
    was_executed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)
    executed_at: Mapped[dt.datetime | None] = mapped_column(UtcDateTime(), nullable=True)

    habit: Mapped[Habit] = relationship("Habit", back_populates="days")
    calendar_day: Mapped[CalendarDay] = relationship("CalendarDay", lazy="joined")

    @property
    def date(self) -> dt.date:
        return self.calendar_day.date


class FireTime(Base):
    __tablename__ = "fire_times"
    __table_args__ = (
        UniqueConstraint("habit_id", "hour", "minute", name="uq_fire_times_habit_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id: Mapped[str] = mapped_column(ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    hour: Mapped[int] = mapped_column(Integer, nullable=False)
    minute: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weekdays: Mapped[str] = mapped_column(String(32), nullable=False, default="", server_default="")

    habit: Mapped[Habit] = relationship("Habit", back_populates="fire_times")

    @property
    def weekday_set(self) -> frozenset[int]:
        return decode_weekdays(self.weekdays)

    def applies_to(self, day: dt.date) -> bool:
        weekdays = self.weekday_set
        return not weekdays or day.weekday() in weekdays


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index(
            "uq_notifications_habit_fire_active",
            "habit_id",
            "fire_at",
            unique=True,
            sqlite_where=text("status != 'canceled'"),
            postgresql_where=text("status != 'canceled'"),
        ),
        Index("ix_notifications_habit_status", "habit_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id: Mapped[str] = mapped_column(ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    fire_at: Mapped[dt.datetime] = mapped_column(UtcDateTime(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=NotificationStatus.SCHEDULED, server_default=NotificationStatus.SCHEDULED
    )
    dispatcher_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    canceled_at: Mapped[dt.datetime | None] = mapped_column(UtcDateTime(), nullable=True)
    delivered_at: Mapped[dt.datetime | None] = mapped_column(UtcDateTime(), nullable=True)

    habit: Mapped[Habit] = relationship("Habit", back_populates="notifications")
