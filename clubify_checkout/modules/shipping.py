from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


SHIPMENTS = ResourceConfig(name="shipment", endpoint="shipping", ttl=120)


class ShippingModule(BaseModule):
    name = "shipping"

    @property
    def shipments(self) -> ResourceRepository:
        return self.repository(SHIPMENTS)

    def calculate_shipping(self, order_id: str, destination: dict[str, Any]) -> Any:
        return self.shipments.collection_action(
            "calculate",
            {"order_id": order_id, "destination": destination},
            mutates=False,
        )

    def get_shipping_methods(self, location: dict[str, Any] | None = None) -> Any:
        return self.shipments.get_view("methods", params=location, ttl=1800)

    def schedule_shipping(self, order_id: str, options: dict[str, Any]) -> Any:
        return self.shipments.collection_action("schedule", {**options, "order_id": order_id}, event="scheduled")

    def get_shipment_status(self, shipment_id: str) -> dict[str, Any] | None:
        return self.shipments.find_by_id(shipment_id)

    def track_shipment(self, tracking_code: str) -> Any:
        return self.shipments.get_view(f"tracking/{tracking_code}", ttl=60)

    def create_shipping_label(self, order_id: str, options: dict[str, Any] | None = None) -> Any:
        return self.shipments.collection_action("labels", {**(options or {}), "order_id": order_id}, event="label_created")

    def cancel_shipment(self, shipment_id: str, reason: str = "") -> Any:
        return self.shipments.action(shipment_id, "cancel", {"reason": reason} if reason else None, event="cancelled")

    def update_tracking_info(self, shipment_id: str, tracking_data: dict[str, Any]) -> Any:
        return self.shipments.action(shipment_id, "tracking", tracking_data, method="PUT", event="tracking_updated")
