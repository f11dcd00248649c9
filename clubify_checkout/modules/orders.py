from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


ORDERS = ResourceConfig(name="order", endpoint="orders")


class OrdersModule(BaseModule):
    name = "orders"

    @property
    def orders(self) -> ResourceRepository:
        return self.repository(ORDERS)

    def create_order(self, order_data: dict[str, Any]) -> dict[str, Any]:
        return self.orders.create(order_data)

    def get_order(self, order_id: str) -> dict[str, Any] | None:
        return self.orders.find_by_id(order_id)

    def list_orders(self, filters: dict[str, Any] | None = None, page: int = 1, limit: int = 20) -> Any:
        return self.orders.find_all(limit=limit, offset=(max(page, 1) - 1) * limit, filters=filters)

    def update_order(self, order_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.orders.update(order_id, data)

    def update_order_status(self, order_id: str, status: str, metadata: dict[str, Any] | None = None) -> Any:
        extra = {"metadata": metadata} if metadata else None
        return self.orders.update_status(order_id, status, extra)

    def cancel_order(self, order_id: str, reason: str | None = None) -> Any:
        return self.orders.action(order_id, "cancel", {"reason": reason} if reason else None, event="cancelled")

    def get_order_status_history(self, order_id: str) -> Any:
        return self.orders.get_history(order_id)

    def get_orders_by_status(self, status: str, filters: dict[str, Any] | None = None) -> Any:
        return self.orders.find_by({**(filters or {}), "status": status})

    def get_orders_by_customer(self, customer_id: str, filters: dict[str, Any] | None = None) -> Any:
        return self.orders.find_by({**(filters or {}), "customer_id": customer_id})

    def search_orders(self, query: str, filters: dict[str, Any] | None = None) -> Any:
        return self.orders.search({**(filters or {}), "q": query})

    def add_upsell_to_order(self, order_id: str, upsell_data: dict[str, Any]) -> Any:
        return self.orders.add_relationship(order_id, "upsells", upsell_data)

    def remove_upsell_from_order(self, order_id: str, upsell_id: str) -> bool:
        return self.orders.remove_relationship(order_id, "upsells", upsell_id)

    def get_order_upsells(self, order_id: str) -> Any:
        return self.orders.get_related(order_id, "upsells")

    def get_order_statistics(self, filters: dict[str, Any] | None = None) -> Any:
        return self.orders.get_stats(filters)
