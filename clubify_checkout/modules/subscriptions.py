from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


SUBSCRIPTIONS = ResourceConfig(name="subscription", endpoint="subscriptions")
SUBSCRIPTION_PLANS = ResourceConfig(name="subscription_plan", endpoint="subscription-plans", ttl=1800)


class SubscriptionsModule(BaseModule):
    name = "subscriptions"

    @property
    def subscriptions(self) -> ResourceRepository:
        return self.repository(SUBSCRIPTIONS)

    @property
    def plans(self) -> ResourceRepository:
        return self.repository(SUBSCRIPTION_PLANS)

    def create_subscription(self, subscription_data: dict[str, Any]) -> dict[str, Any]:
        return self.subscriptions.create(subscription_data)

    def get_subscription(self, subscription_id: str) -> dict[str, Any] | None:
        return self.subscriptions.find_by_id(subscription_id)

    def update_subscription(self, subscription_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.subscriptions.update(subscription_id, data)

    def list_subscriptions(self, filters: dict[str, Any] | None = None, limit: int = 100, offset: int = 0) -> Any:
        return self.subscriptions.find_all(limit=limit, offset=offset, filters=filters)

    def pause_subscription(self, subscription_id: str) -> Any:
        return self.subscriptions.action(subscription_id, "pause", event="paused")

    def resume_subscription(self, subscription_id: str) -> Any:
        return self.subscriptions.action(subscription_id, "resume", event="resumed")

    def cancel_subscription(self, subscription_id: str, options: dict[str, Any] | None = None) -> Any:
        return self.subscriptions.action(subscription_id, "cancel", options, event="cancelled")

    def change_plan(self, subscription_id: str, new_plan_id: str) -> Any:
        return self.subscriptions.action(
            subscription_id,
            "change-plan",
            {"plan_id": new_plan_id},
            event="plan_changed",
        )

    def get_invoice_history(self, subscription_id: str) -> Any:
        return self.subscriptions.get_related(subscription_id, "invoices")

    def create_plan(self, plan_data: dict[str, Any]) -> dict[str, Any]:
        return self.plans.create(plan_data)

    def get_plan(self, plan_id: str) -> dict[str, Any] | None:
        return self.plans.find_by_id(plan_id)

    def update_plan(self, plan_id: str, plan_data: dict[str, Any]) -> dict[str, Any]:
        return self.plans.patch(plan_id, plan_data)

    def delete_plan(self, plan_id: str) -> bool:
        return self.plans.delete(plan_id)

    def list_plans(self, filters: dict[str, Any] | None = None) -> Any:
        return self.plans.find_all(filters=filters)

    def get_subscription_metrics(self, filters: dict[str, Any] | None = None) -> Any:
        return self.subscriptions.get_stats(filters)
