# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress notification model.

Stores notifications raised by the progress pipeline, currently risk
alerts addressed to a student's class teacher.
"""

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, uuid_pk


class ProgressNotification(Base, TimestampMixin):
    """A notification about a student's progress."""

    __tablename__ = "progress_notifications"
    __table_args__ = (
        Index(
            "ix_progress_notifications_student_type_created",
            "student_id",
            "notification_type",
            "created_at",
        ),
    )

    id: Mapped[str] = uuid_pk()
    student_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )
    recipient_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    class_room_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    notification_type: Mapped[str] = mapped_column(String(30), nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    requires_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    action_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
