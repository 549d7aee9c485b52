from .notification_service import NotificationData, NotificationService, NotificationType

__all__ = ["NotificationData", "NotificationService", "NotificationType"]
