from .push import (
    DeliveryReport,
    Notification,
    NotificationChannel,
    WebPushChannel,
    enqueue_notification,
)

__all__ = [
    "DeliveryReport",
    "Notification",
    "NotificationChannel",
    "WebPushChannel",
    "enqueue_notification",
]
