from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


PAYMENTS = ResourceConfig(name="payment", endpoint="payments", ttl=120)
CARDS = ResourceConfig(name="card", endpoint="cards")


class PaymentsModule(BaseModule):
    name = "payments"

    @property
    def payments(self) -> ResourceRepository:
        return self.repository(PAYMENTS)

    @property
    def cards(self) -> ResourceRepository:
        return self.repository(CARDS)

    def process_payment(self, payment_data: dict[str, Any]) -> Any:
        return self.payments.collection_action("process", payment_data, event="processed")

    def get_payment(self, payment_id: str) -> dict[str, Any] | None:
        return self.payments.find_by_id(payment_id)

    def list_payments(self, filters: dict[str, Any] | None = None, limit: int = 100, offset: int = 0) -> Any:
        return self.payments.find_all(limit=limit, offset=offset, filters=filters)

    def capture_payment(self, payment_id: str, amount: int | None = None) -> Any:
        payload = {"amount": amount} if amount is not None else None
        return self.payments.action(payment_id, "capture", payload, event="captured")

    def refund_payment(self, payment_id: str, amount: int | None = None, reason: str | None = None) -> Any:
        payload: dict[str, Any] = {}
        if amount is not None:
            payload["amount"] = amount
        if reason:
            payload["reason"] = reason
        return self.payments.action(payment_id, "refund", payload, event="refunded")

    def cancel_payment(self, payment_id: str) -> Any:
        return self.payments.action(payment_id, "cancel", event="cancelled")

    def get_payment_history(self, payment_id: str) -> Any:
        return self.payments.get_history(payment_id)

    def tokenize_card(self, card_data: dict[str, Any]) -> Any:
        return self.cards.collection_action("tokenize", card_data, event="tokenized")

    def get_customer_cards(self, customer_id: str) -> Any:
        return self.cards.find_by({"customer_id": customer_id})

    def delete_card(self, card_id: str) -> bool:
        return self.cards.delete(card_id)

    def get_payment_statistics(self, filters: dict[str, Any] | None = None) -> Any:
        return self.payments.get_stats(filters)
