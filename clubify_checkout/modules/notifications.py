from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


NOTIFICATIONS = ResourceConfig(name="notification", endpoint="notifications", ttl=120)
NOTIFICATION_LOGS = ResourceConfig(name="notification_log", endpoint="notification-logs", ttl=60, list_ttl=60)


class NotificationsModule(BaseModule):
    name = "notifications"

    @property
    def notifications(self) -> ResourceRepository:
        return self.repository(NOTIFICATIONS)

    @property
    def logs(self) -> ResourceRepository:
        return self.repository(NOTIFICATION_LOGS)

    def send_notification(self, notification_data: dict[str, Any]) -> dict[str, Any]:
        return self.notifications.create(notification_data)

    def bulk_send_notifications(self, notifications: list[dict[str, Any]]) -> Any:
        return self.notifications.bulk_create(notifications)

    def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        return self.notifications.find_by_id(notification_id)

    def list_notifications(self, filters: dict[str, Any] | None = None, page: int = 1, limit: int = 20) -> Any:
        return self.notifications.find_all(limit=limit, offset=(max(page, 1) - 1) * limit, filters=filters)

    def retry_notification(self, notification_id: str) -> Any:
        return self.notifications.action(notification_id, "retry", event="retried")

    def cancel_notification(self, notification_id: str) -> Any:
        return self.notifications.action(notification_id, "cancel", event="cancelled")

    def get_notification_logs(self, filters: dict[str, Any] | None = None, limit: int = 10) -> Any:
        return self.logs.find_all(limit=limit, filters=filters)

    def get_log_by_correlation(self, correlation_id: str) -> dict[str, Any] | None:
        return self.logs.find_one_by({"correlation_id": correlation_id})

    def get_failed_notifications(self, filters: dict[str, Any] | None = None) -> Any:
        return self.notifications.find_by({**(filters or {}), "status": "failed"})

    def get_notification_statistics(self, filters: dict[str, Any] | None = None) -> Any:
        return self.notifications.get_stats(filters)
