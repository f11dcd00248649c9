from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


OFFERS = ResourceConfig(name="offer", endpoint="offers", ttl=1800)


class OfferModule(BaseModule):
    name = "offer"

    @property
    def offers(self) -> ResourceRepository:
        return self.repository(OFFERS)

    def create_offer(self, offer_data: dict[str, Any]) -> dict[str, Any]:
        return self.offers.create(offer_data)

    def get_offer(self, offer_id: str) -> dict[str, Any] | None:
        return self.offers.find_by_id(offer_id)

    def update_offer(self, offer_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.offers.update(offer_id, data)

    def delete_offer(self, offer_id: str) -> bool:
        return self.offers.delete(offer_id)

    def list_offers(self, filters: dict[str, Any] | None = None, limit: int = 100, offset: int = 0) -> Any:
        return self.offers.find_all(limit=limit, offset=offset, filters=filters)

    def get_public_offer(self, slug: str) -> Any:
        return self.offers.get_view(f"public/{slug}")

    def configure_theme(self, offer_id: str, theme_data: dict[str, Any]) -> Any:
        return self.offers.action(offer_id, "theme", theme_data, method="PUT", event="theme_updated")

    def configure_layout(self, offer_id: str, layout_data: dict[str, Any]) -> Any:
        return self.offers.action(offer_id, "layout", layout_data, method="PUT", event="layout_updated")

    def add_upsell(self, offer_id: str, upsell_data: dict[str, Any]) -> Any:
        return self.offers.add_relationship(offer_id, "upsells", upsell_data)

    def list_upsells(self, offer_id: str) -> Any:
        return self.offers.get_related(offer_id, "upsells")

    def remove_upsell(self, offer_id: str, upsell_id: str) -> bool:
        return self.offers.remove_relationship(offer_id, "upsells", upsell_id)
