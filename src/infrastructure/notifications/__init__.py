# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notifications raised by the progress pipeline.

Risk alerts are stored as in-app notification records for the class
teacher and published on the ``progress:risk_alerts`` Redis channel.

Usage:
    from src.infrastructure.notifications import RiskAlertSink

    sink = RiskAlertSink(get_session, redis=get_redis())
    if not await sink.has_recent_alert(student_id, since=hours_ago(24)):
        await sink.emit_risk_alert(alert)
"""

from src.infrastructure.notifications.risk_alerts import (
    RISK_ALERT_CHANNEL,
    NotificationCategory,
    NotificationPriority,
    NotificationType,
    RiskAlertSink,
    build_risk_notification,
)

__all__ = [
    "RISK_ALERT_CHANNEL",
    "NotificationCategory",
    "NotificationPriority",
    "NotificationType",
    "RiskAlertSink",
    "build_risk_notification",
]
