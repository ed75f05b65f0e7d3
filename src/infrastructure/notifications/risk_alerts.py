# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Risk alert sink.

Stores risk alerts as ProgressNotification records addressed to the
student's class teacher and publishes them on a Redis channel for
live dashboards. Delivery is fire-and-forget: failures are logged and
never reach the caller.
"""

import logging
from datetime import datetime
from enum import Enum

from sqlalchemy import select

from src.infrastructure.cache.redis_client import RedisClient, RedisError
from src.infrastructure.database.connection import SessionFactory
from src.infrastructure.database.models.notification import ProgressNotification
from src.models.progress import RiskAlert, RiskLevel

logger = logging.getLogger(__name__)

RISK_ALERT_CHANNEL = "progress:risk_alerts"


class NotificationType(str, Enum):
    """Progress notification types."""

    RISK_ALERT = "RISK_ALERT"


class NotificationCategory(str, Enum):
    """Progress notification categories."""

    ACADEMIC = "ACADEMIC"


class NotificationPriority(str, Enum):
    """Progress notification priorities."""

    HIGH = "HIGH"
    URGENT = "URGENT"


def build_risk_notification(alert: RiskAlert) -> ProgressNotification:
    """Build the notification record for a risk alert."""
    reasons = ", ".join(alert.reasons)
    priority = (
        NotificationPriority.URGENT
        if alert.risk_level == RiskLevel.CRITICAL
        else NotificationPriority.HIGH
    )
    return ProgressNotification(
        student_id=alert.student_id,
        recipient_id=alert.teacher_id,
        class_room_id=alert.class_room_id,
        notification_type=NotificationType.RISK_ALERT.value,
        category=NotificationCategory.ACADEMIC.value,
        priority=priority.value,
        title=f"Student At Risk: {alert.student_name}",
        message=f"Risk level: {alert.risk_level.value}. Reasons: {reasons}",
        data=alert.model_dump(mode="json"),
        requires_action=True,
        action_type="REVIEW_STUDENT",
    )


class RiskAlertSink:
    """Persists and publishes risk alerts.

    Attributes:
        session_factory: Opens a transactional database session.
        redis: Redis client for publishing, or None to skip publishing.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        redis: RedisClient | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.redis = redis

    async def has_recent_alert(self, student_id: str, since: datetime) -> bool:
        """Check whether a risk alert was stored for the student since a time.

        Raises:
            DatabaseError: If the lookup fails.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProgressNotification.id)
                .where(
                    ProgressNotification.student_id == student_id,
                    ProgressNotification.notification_type == NotificationType.RISK_ALERT.value,
                    ProgressNotification.created_at >= since,
                )
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def emit_risk_alert(self, alert: RiskAlert) -> None:
        """Store and publish a risk alert. Never raises."""
        try:
            async with self.session_factory() as session:
                notification = build_risk_notification(alert)
                session.add(notification)
                await session.flush()
            logger.info(
                "Risk alert stored for student %s (level=%s, teacher=%s)",
                alert.student_id,
                alert.risk_level.value,
                alert.teacher_id,
            )
        except Exception as e:
            logger.error(
                "Failed to store risk alert for student %s: %s",
                alert.student_id,
                str(e),
                exc_info=True,
            )
            return

        if self.redis is None:
            return
        try:
            await self.redis.publish(RISK_ALERT_CHANNEL, alert.model_dump(mode="json"))
        except RedisError as e:
            logger.warning("Failed to publish risk alert for student %s: %s", alert.student_id, e)
