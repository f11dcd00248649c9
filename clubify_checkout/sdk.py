from __future__ import annotations

from clubify_checkout.cache import CacheAside, InMemoryCache
from clubify_checkout.config import Settings, settings as default_settings
from clubify_checkout.domain.secrets import SecretLookup, SecretResolverHook
from clubify_checkout.domain.webhook_validation import WebhookValidator
from clubify_checkout.events import EventDispatcher
from clubify_checkout.modules.base import BaseModule
from clubify_checkout.modules.notifications import NotificationsModule
from clubify_checkout.modules.offer import OfferModule
from clubify_checkout.modules.orders import OrdersModule
from clubify_checkout.modules.organization import OrganizationModule
from clubify_checkout.modules.payments import PaymentsModule
from clubify_checkout.modules.shipping import ShippingModule
from clubify_checkout.modules.subscriptions import SubscriptionsModule
from clubify_checkout.modules.user_management import UserManagementModule
from clubify_checkout.modules.webhooks import WebhooksModule
from clubify_checkout.providers.checkout.client import CheckoutApiClient


class ClubifyCheckout:
    """
    SDK entry point.

    Wires one HTTP client, one cache-aside layer and one event dispatcher
    and shares them across the domain modules. Modules are created on first
    access. Pass ``client``/``cache``/``events`` to substitute any of them.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: CheckoutApiClient | None = None,
        cache: CacheAside | None = None,
        events: EventDispatcher | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.client = client or CheckoutApiClient.from_settings(self.settings)
        if cache is None:
            backend = InMemoryCache() if self.settings.cache_enabled else None
            cache = CacheAside(backend, namespace=self.settings.cache_prefix)
        self.cache = cache
        if events is None and self.settings.events_enabled:
            events = EventDispatcher()
        self.events = events
        self._modules: dict[str, BaseModule] = {}

    def _module(self, module_cls: type[BaseModule]) -> BaseModule:
        module = self._modules.get(module_cls.name)
        if module is None:
            if module_cls is WebhooksModule:
                module = WebhooksModule(self.client, self.cache, self.events, config=self.settings)
            else:
                module = module_cls(self.client, self.cache, self.events)
            self._modules[module_cls.name] = module
        return module

    @property
    def orders(self) -> OrdersModule:
        return self._module(OrdersModule)

    @property
    def payments(self) -> PaymentsModule:
        return self._module(PaymentsModule)

    @property
    def subscriptions(self) -> SubscriptionsModule:
        return self._module(SubscriptionsModule)

    @property
    def notifications(self) -> NotificationsModule:
        return self._module(NotificationsModule)

    @property
    def webhooks(self) -> WebhooksModule:
        return self._module(WebhooksModule)

    @property
    def organization(self) -> OrganizationModule:
        return self._module(OrganizationModule)

    @property
    def users(self) -> UserManagementModule:
        return self._module(UserManagementModule)

    @property
    def shipping(self) -> ShippingModule:
        return self._module(ShippingModule)

    @property
    def offers(self) -> OfferModule:
        return self._module(OfferModule)

    def webhook_validator(
        self,
        organization_lookup: SecretLookup | None = None,
        resolver_hook: SecretResolverHook | None = None,
    ) -> WebhookValidator:
        return self.webhooks.validator(organization_lookup=organization_lookup, resolver_hook=resolver_hook)
