"""
Donor notifications

Email rendering and delivery live outside the engine; it only hands a
topic and a payload to a sink. A failing sink is logged and counted, and
never undoes or blocks the state change that prompted the notification.
"""

from enum import Enum
from typing import Any, Protocol

from celebration_engine.kernel.errors import DownstreamNotificationFailure
from celebration_engine.kernel.logging import get_logger, redact_context
from celebration_engine.kernel.metrics import notification_failures_total

logger = get_logger(__name__)


class NotificationTopic(str, Enum):
    TIP_LIMIT_REACHED = "tip_limit_reached"
    CELEBRATION_DEFUNCT = "celebration_defunct"
    DEFUNCT_WARNING = "defunct_warning"


class NotificationSink(Protocol):
    """Contract for delivering a notification to a donor"""

    def notify(self, user_id: str, topic: str, payload: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Default sink: records notifications in the structured log"""

    def notify(self, user_id: str, topic: str, payload: dict[str, Any]) -> None:
        logger.info(
            "Notification queued",
            user_id=user_id,
            topic=topic,
            **redact_context(payload),
        )


def deliver(sink: NotificationSink, user_id: str, topic: NotificationTopic, payload: dict) -> bool:
    """
    Send one notification, containing any failure

    Returns:
        True if the sink accepted it
    """
    try:
        sink.notify(user_id, topic.value, payload)
        return True
    except Exception as e:
        failure = DownstreamNotificationFailure(user_id, topic.value, str(e))
        notification_failures_total.labels(topic=topic.value).inc()
        logger.error("Notification failed", user_id=user_id, topic=topic.value, error=str(failure))
        return False
