from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from clubify_checkout.cache import CacheAside
from clubify_checkout.events import EventDispatcher
from clubify_checkout.observability import log_event
from clubify_checkout.providers.checkout.client import CheckoutApiClient, CheckoutApiError


# Key qualifiers for reads that span more than one record; any write clears them.
COLLECTION_QUALIFIERS: tuple[str, ...] = ("all", "ids", "by", "count", "search", "stats", "view")


@dataclass(frozen=True)
class ResourceConfig:
    name: str
    endpoint: str
    plural: str | None = None
    ttl: int = 300
    list_ttl: int = 180
    stats_ttl: int = 600

    @property
    def collection_name(self) -> str:
        return self.plural or f"{self.name}s"


def digest(value: Any) -> str:
    encoded = json.dumps(value, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]


def unwrap_data(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _items(body: Any) -> list[Any]:
    body = unwrap_data(body)
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in ("items", "results", "records"):
            if isinstance(body.get(key), list):
                return body[key]
    return []


def _ids(records: Iterable[Any]) -> list[str]:
    return [str(record["id"]) for record in records if isinstance(record, dict) and record.get("id")]


class ResourceRepository:
    """
    CRUD access to one remote resource with cache-aside reads.

    Cache keys are ``"{name}:{qualifier}"``. Writes invalidate before they
    return: creation clears every collection key plus the record keys of the
    ids it creates (a cached 404 must not outlive the create), a change to
    one record also clears ``name:{id}``, ``name:{id}:*`` and ``name:related:{id}:*``.
    Over-invalidation is accepted; stale reads are not.

    ``events`` is optional. Without a dispatcher, event emission does nothing.
    """

    def __init__(
        self,
        resource: ResourceConfig,
        client: CheckoutApiClient,
        cache: CacheAside,
        events: EventDispatcher | None = None,
    ) -> None:
        self.resource = resource
        self.client = client
        self.cache = cache
        self.events = events

    # keys and invalidation

    def cache_key(self, *parts: Any) -> str:
        return ":".join([self.resource.name, *(str(part) for part in parts)])

    def collection_patterns(self) -> list[str]:
        return [f"{self.resource.name}:{qualifier}:*" for qualifier in COLLECTION_QUALIFIERS]

    def record_patterns(self, resource_id: str) -> list[str]:
        name = self.resource.name
        return [f"{name}:{resource_id}", f"{name}:{resource_id}:*", f"{name}:related:{resource_id}:*"]

    def invalidate(self, resource_ids: Iterable[str] = ()) -> int:
        patterns: list[str] = []
        for resource_id in resource_ids:
            patterns.extend(self.record_patterns(str(resource_id)))
        patterns.extend(self.collection_patterns())
        deleted = self.cache.invalidate(patterns)
        log_event(
            "cache_invalidated",
            level=logging.DEBUG,
            resource=self.resource.name,
            patterns=patterns,
            deleted=deleted,
        )
        return deleted

    def _emit(self, action: str, data: dict[str, Any]) -> None:
        if self.events is None:
            return
        self.events.emit(f"{self.resource.name}.{action}", {"resource": self.resource.name, **data})

    def _path(self, *parts: Any) -> str:
        return "/".join([self.resource.endpoint.strip("/"), *(str(part).strip("/") for part in parts)])

    # reads

    def find_by_id(self, resource_id: str) -> dict[str, Any] | None:
        def _load() -> dict[str, Any] | None:
            try:
                return unwrap_data(self.client.get(self._path(resource_id)))
            except CheckoutApiError as exc:
                if exc.category == "not_found":
                    return None
                raise

        return self.cache.get_cached_or_execute(self.cache_key(resource_id), _load, self.resource.ttl)

    def exists(self, resource_id: str) -> bool:
        return self.find_by_id(resource_id) is not None

    def find_by_ids(self, resource_ids: list[str]) -> list[Any]:
        ids = [str(item) for item in resource_ids]
        return self.cache.get_cached_or_execute(
            self.cache_key("ids", digest(ids)),
            lambda: _items(self.client.get(self._path(), params={"ids": ",".join(ids)})),
            self.resource.list_ttl,
        )

    def find_all(self, limit: int = 100, offset: int = 0, filters: dict[str, Any] | None = None) -> Any:
        params = {**(filters or {}), "limit": limit, "offset": offset}
        return self.cache.get_cached_or_execute(
            self.cache_key("all", limit, offset, digest(filters or {})),
            lambda: self.client.get(self._path(), params=params),
            self.resource.list_ttl,
        )

    def find_by(self, criteria: dict[str, Any], limit: int = 100, offset: int = 0) -> Any:
        params = {**criteria, "limit": limit, "offset": offset}
        return self.cache.get_cached_or_execute(
            self.cache_key("by", digest(criteria), limit, offset),
            lambda: self.client.get(self._path(), params=params),
            self.resource.list_ttl,
        )

    def find_one_by(self, criteria: dict[str, Any]) -> dict[str, Any] | None:
        items = _items(self.find_by(criteria, limit=1, offset=0))
        return items[0] if items else None

    def count(self, criteria: dict[str, Any] | None = None) -> int:
        def _load() -> int:
            body = self.client.get(self._path(), params={**(criteria or {}), "count_only": "true"})
            data = unwrap_data(body)
            for source in (body, data):
                if isinstance(source, dict) and source.get("total") is not None:
                    return int(source["total"])
            return len(_items(body))

        return self.cache.get_cached_or_execute(
            self.cache_key("count", digest(criteria or {})),
            _load,
            self.resource.ttl,
        )

    def search(
        self,
        filters: dict[str, Any],
        sort: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Any:
        params: dict[str, Any] = {**filters, "limit": limit, "offset": offset}
        if sort:
            params["sort"] = json.dumps(sort, sort_keys=True)
        return self.cache.get_cached_or_execute(
            self.cache_key("search", digest({"filters": filters, "sort": sort or {}}), limit, offset),
            lambda: self.client.get(self._path("search"), params=params),
            self.resource.list_ttl,
        )

    def get_stats(self, filters: dict[str, Any] | None = None) -> Any:
        return self.cache.get_cached_or_execute(
            self.cache_key("stats", digest(filters or {})),
            lambda: unwrap_data(self.client.get(self._path("stats"), params=filters or None)),
            self.resource.stats_ttl,
        )

    def get_history(self, resource_id: str, limit: int = 50, offset: int = 0) -> Any:
        return self.cache.get_cached_or_execute(
            self.cache_key(resource_id, "history", limit, offset),
            lambda: unwrap_data(
                self.client.get(self._path(resource_id, "history"), params={"limit": limit, "offset": offset})
            ),
            self.resource.list_ttl,
        )

    def get_related(self, resource_id: str, relation: str, params: dict[str, Any] | None = None) -> Any:
        return self.cache.get_cached_or_execute(
            self.cache_key("related", resource_id, relation, digest(params or {})),
            lambda: unwrap_data(self.client.get(self._path(resource_id, relation), params=params)),
            self.resource.list_ttl,
        )

    def get_view(self, path: str, params: dict[str, Any] | None = None, ttl: int | None = None) -> Any:
        """Cached GET of a collection-level sub path such as ``methods`` or ``slug/{slug}``."""
        return self.cache.get_cached_or_execute(
            self.cache_key("view", path.strip("/"), digest(params or {})),
            lambda: unwrap_data(self.client.get(self._path(path), params=params)),
            ttl if ttl is not None else self.resource.list_ttl,
        )

    # writes

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        created = unwrap_data(self.client.post(self._path(), data))
        resource_id = created.get("id") if isinstance(created, dict) else None
        # A prior 404 for this id may be cached.
        self.invalidate(set(_ids([created, data])))
        self._emit("created", {"resource_id": resource_id, "data": created})
        return created

    def update(self, resource_id: str, data: dict[str, Any]) -> dict[str, Any]:
        updated = unwrap_data(self.client.put(self._path(resource_id), data))
        self.invalidate([resource_id])
        self._emit("updated", {"resource_id": resource_id, "data": updated})
        return updated

    def patch(self, resource_id: str, data: dict[str, Any]) -> dict[str, Any]:
        updated = unwrap_data(self.client.patch(self._path(resource_id), data))
        self.invalidate([resource_id])
        self._emit("updated", {"resource_id": resource_id, "data": updated})
        return updated

    def delete(self, resource_id: str) -> bool:
        try:
            self.client.delete(self._path(resource_id))
        except CheckoutApiError as exc:
            if exc.category != "not_found":
                raise
            self.invalidate([resource_id])
            return False
        self.invalidate([resource_id])
        self._emit("deleted", {"resource_id": resource_id})
        return True

    def update_status(self, resource_id: str, status: str, extra: dict[str, Any] | None = None) -> Any:
        result = unwrap_data(self.client.patch(self._path(resource_id, "status"), {**(extra or {}), "status": status}))
        self.invalidate([resource_id])
        self._emit("status_updated", {"resource_id": resource_id, "status": status})
        return result

    def archive(self, resource_id: str) -> Any:
        return self.action(resource_id, "archive", method="PATCH", event="archived")

    def restore(self, resource_id: str) -> Any:
        return self.action(resource_id, "restore", method="PATCH", event="restored")

    def action(
        self,
        resource_id: str,
        action: str,
        payload: dict[str, Any] | None = None,
        *,
        method: str = "POST",
        event: str | None = None,
    ) -> Any:
        """Call a mutating sub-resource such as ``orders/{id}/cancel``."""
        result = unwrap_data(
            self.client.request_json(method, self._path(resource_id, action), json_payload=payload or {})
        )
        self.invalidate([resource_id])
        self._emit(event or action, {"resource_id": resource_id, "data": result})
        return result

    def collection_action(
        self,
        path: str,
        payload: dict[str, Any] | None = None,
        *,
        method: str = "POST",
        mutates: bool = True,
        event: str | None = None,
    ) -> Any:
        """Call a collection-level endpoint such as ``payments/process``; clears collection keys when it mutates."""
        result = unwrap_data(self.client.request_json(method, self._path(path), json_payload=payload or {}))
        if mutates:
            affected = [result["id"]] if isinstance(result, dict) and result.get("id") else []
            self.invalidate(affected)
            if event:
                self._emit(event, {"resource_id": affected[0] if affected else None, "data": result})
        return result

    def bulk_create(self, items: list[dict[str, Any]]) -> Any:
        result = unwrap_data(self.client.post(self._path("bulk"), {self.resource.collection_name: items}))
        created = _items(result)
        if not created and isinstance(result, dict):
            created = result.get(self.resource.collection_name) or []
        self.invalidate(set(_ids([*items, *created])))
        self._emit("bulk_created", {"count": len(items), "result": result})
        return result

    def bulk_update(self, updates: dict[str, dict[str, Any]]) -> Any:
        result = unwrap_data(self.client.put(self._path("bulk"), {"updates": updates}))
        self.invalidate(updates.keys())
        self._emit("bulk_updated", {"count": len(updates), "result": result})
        return result

    def add_relationship(self, resource_id: str, relation: str, data: dict[str, Any]) -> Any:
        result = unwrap_data(self.client.post(self._path(resource_id, relation), data))
        self.invalidate([resource_id])
        self._emit("relationship_added", {"resource_id": resource_id, "relation": relation})
        return result

    def remove_relationship(self, resource_id: str, relation: str, related_id: str) -> bool:
        self.client.delete(self._path(resource_id, relation, related_id))
        self.invalidate([resource_id])
        self._emit("relationship_removed", {"resource_id": resource_id, "relation": relation, "related_id": related_id})
        return True
