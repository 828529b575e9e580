import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class Shift(str, Enum):
    morning = "morning"
    evening = "evening"


class Section(Base):
    __tablename__ = "sections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    student_strength: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shift: Mapped[Shift] = mapped_column(SAEnum(Shift, name="shift"), nullable=False, default=Shift.morning)
    semester: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    major: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (CheckConstraint("student_strength >= 0", name="ck_sections_student_strength"),)


class CourseOffering(Base):
    __tablename__ = "course_offerings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    major: Mapped[str | None] = mapped_column(String(200), nullable=True)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    shift: Mapped[Shift] = mapped_column(SAEnum(Shift, name="shift"), nullable=False, default=Shift.morning)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
