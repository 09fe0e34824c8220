"""
Notification Publisher
======================

Bounded Context: Hand-off to the notification delivery collaborator

Requests go to "notifications:user:<user_id>". Device-token delivery is
owned by the collaborator subscribed there.
"""

from typing import Dict, Any

from .base import BasePublisher
from ..schemas import NotificationRequest
from ..logging import LogEvent

NOTIFICATION_EVENT = "notification:request"


def user_notification_topic(user_id: str) -> str:
    return f"notifications:user:{user_id}"


class NotificationPublisher(BasePublisher):
    """Publishes NotificationRequest payloads for downstream delivery."""

    def format_message(self, request: NotificationRequest) -> Dict[str, Any]:
        return request.to_dict()

    def request_notification(self, request: NotificationRequest) -> int:
        delivered = self.publish(
            user_notification_topic(request.user_id),
            NOTIFICATION_EVENT,
            self.format_message(request),
        )
        self.logger.info(
            event=LogEvent.NOTIFICATION_REQUESTED,
            message="Requested hotspot zone notification",
            metadata={
                'user_id': request.user_id,
                'zone_id': request.zone_id,
                'action': request.action.value,
            }
        )
        return delivered
