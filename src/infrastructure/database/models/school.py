# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School structure models.

Students, classrooms, enrollments and the academic calendar. These
tables are maintained by the enrollment and administration workflows;
the progress pipeline only reads them.
"""

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, String
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import Base, TimestampMixin, uuid_pk


class ClassRoom(Base, TimestampMixin):
    """A classroom with its assigned teacher."""

    __tablename__ = "class_rooms"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    section: Mapped[str | None] = mapped_column(String(20), nullable=True)
    teacher_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)

    enrollments: Mapped[list["Enrollment"]] = relationship(back_populates="class_room")


class Student(Base, TimestampMixin):
    """A student and a pointer to their current enrollment.

    Attributes:
        student_type: Programme type, e.g. REGULAR, REGULAR_HIFZ, HIFZ.
        current_enrollment_id: Active enrollment, null when not enrolled.
    """

    __tablename__ = "students"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    admission_no: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    student_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    current_enrollment_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("enrollments.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )

    current_enrollment: Mapped["Enrollment | None"] = relationship(
        foreign_keys=[current_enrollment_id],
        post_update=True,
    )


class Enrollment(Base, TimestampMixin):
    """A student's enrollment in a classroom."""

    __tablename__ = "enrollments"

    id: Mapped[str] = uuid_pk()
    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_room_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("class_rooms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enrolled_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    class_room: Mapped[ClassRoom] = relationship(back_populates="enrollments")
    student: Mapped[Student] = relationship(foreign_keys=[student_id])


class AcademicConfiguration(Base, TimestampMixin):
    """Academic year configuration with weekend days and holidays."""

    __tablename__ = "academic_configurations"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    weekend_days: Mapped[list[str] | None] = mapped_column(ARRAY(String(10)), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    holidays: Mapped[list["Holiday"]] = relationship(
        back_populates="configuration",
        order_by="Holiday.start_date",
    )


class Holiday(Base, TimestampMixin):
    """A single or multi-day holiday within an academic configuration."""

    __tablename__ = "holidays"

    id: Mapped[str] = uuid_pk()
    configuration_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("academic_configurations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    configuration: Mapped[AcademicConfiguration] = relationship(back_populates="holidays")
