from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


ORGANIZATIONS = ResourceConfig(name="organization", endpoint="organizations", ttl=7200)
API_KEYS = ResourceConfig(name="api_key", endpoint="api-keys", ttl=600)
TENANTS = ResourceConfig(name="tenant", endpoint="tenants", ttl=1800)


class OrganizationModule(BaseModule):
    name = "organization"

    @property
    def organizations(self) -> ResourceRepository:
        return self.repository(ORGANIZATIONS)

    @property
    def api_keys(self) -> ResourceRepository:
        return self.repository(API_KEYS)

    @property
    def tenants(self) -> ResourceRepository:
        return self.repository(TENANTS)

    def get_organization(self, organization_id: str) -> dict[str, Any] | None:
        return self.organizations.find_by_id(organization_id)

    def update_organization(self, organization_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return self.organizations.update(organization_id, data)

    def create_api_key(self, organization_id: str, key_data: dict[str, Any]) -> dict[str, Any]:
        return self.api_keys.create({**key_data, "organization_id": organization_id})

    def list_api_keys(self, organization_id: str) -> Any:
        return self.api_keys.find_by({"organization_id": organization_id})

    def rotate_api_key(self, key_id: str) -> Any:
        return self.api_keys.action(key_id, "rotate", event="rotated")

    def revoke_api_key(self, key_id: str) -> Any:
        return self.api_keys.action(key_id, "revoke", event="revoked")

    def create_tenant(self, tenant_data: dict[str, Any]) -> dict[str, Any]:
        return self.tenants.create(tenant_data)

    def get_tenant(self, tenant_id: str) -> dict[str, Any] | None:
        return self.tenants.find_by_id(tenant_id)

    def list_tenants(self, filters: dict[str, Any] | None = None) -> Any:
        return self.tenants.find_all(filters=filters)

    def update_tenant_status(self, tenant_id: str, status: str) -> Any:
        return self.tenants.update_status(tenant_id, status)
