import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class CourseType(str, Enum):
    theory = "theory"
    lab = "lab"


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[CourseType] = mapped_column(SAEnum(CourseType, name="course_type"), nullable=False, default=CourseType.theory)
    # Either a plain count ("3") or theory+lab ("3+1").
    credit_hours: Mapped[str] = mapped_column(String(10), nullable=False, default="3")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
