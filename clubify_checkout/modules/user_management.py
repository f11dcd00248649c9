from __future__ import annotations

from typing import Any

from clubify_checkout.modules.base import BaseModule
from clubify_checkout.repository import ResourceRepository, ResourceConfig


USERS = ResourceConfig(name="user", endpoint="users", ttl=1800)
DOMAINS = ResourceConfig(name="domain", endpoint="domains", ttl=1800)


class UserManagementModule(BaseModule):
    name = "user_management"

    @property
    def users(self) -> ResourceRepository:
        return self.repository(USERS)

    @property
    def domains(self) -> ResourceRepository:
        return self.repository(DOMAINS)

    def create_user(self, user_data: dict[str, Any], tenant_id: str | None = None) -> dict[str, Any]:
        data = {**user_data, "tenant_id": tenant_id} if tenant_id else user_data
        return self.users.create(data)

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return self.users.find_by_id(user_id)

    def find_user_by_email(self, email: str) -> dict[str, Any] | None:
        return self.users.find_one_by({"email": email})

    def update_user(self, user_id: str, user_data: dict[str, Any]) -> dict[str, Any]:
        return self.users.update(user_id, user_data)

    def delete_user(self, user_id: str) -> bool:
        return self.users.delete(user_id)

    def list_users(self, filters: dict[str, Any] | None = None, limit: int = 100, offset: int = 0) -> Any:
        return self.users.find_all(limit=limit, offset=offset, filters=filters)

    def update_user_roles(self, user_id: str, roles: list[str]) -> Any:
        return self.users.action(user_id, "roles", {"roles": roles}, method="PUT", event="roles_updated")

    def add_domain(self, domain_data: dict[str, Any]) -> dict[str, Any]:
        return self.domains.create(domain_data)

    def verify_domain(self, domain_id: str) -> Any:
        return self.domains.action(domain_id, "verify", event="verified")

    def list_domains(self, tenant_id: str) -> Any:
        return self.domains.find_by({"tenant_id": tenant_id})

    def remove_domain(self, domain_id: str) -> bool:
        return self.domains.delete(domain_id)
