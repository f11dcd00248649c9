from __future__ import annotations

from clubify_checkout.cache import CacheAside
from clubify_checkout.events import EventDispatcher
from clubify_checkout.providers.checkout.client import CheckoutApiClient
from clubify_checkout.repository import ResourceRepository, ResourceConfig


class BaseModule:
    """Shared wiring for domain modules; repositories are built on first use."""

    name = "base"

    def __init__(
        self,
        client: CheckoutApiClient,
        cache: CacheAside,
        events: EventDispatcher | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.events = events
        self._repositories: dict[str, ResourceRepository] = {}

    def repository(self, resource: ResourceConfig) -> ResourceRepository:
        repo = self._repositories.get(resource.name)
        if repo is None:
            repo = ResourceRepository(resource, self.client, self.cache, self.events)
            self._repositories[resource.name] = repo
        return repo
