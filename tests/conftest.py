"""Shared pytest fixtures for pocketid-sync tests."""

import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest

from pocketid_sync.clients.exceptions import ResourceNotFoundError
from pocketid_sync.clients.pocketid import (
    GroupRequest,
    OIDCClientRequest,
    PocketIDGroup,
    PocketIDOIDCClient,
    PocketIDUser,
    UserRequest,
)
from pocketid_sync.core.declared import DeclaredResource, ResourceKind
from pocketid_sync.core.resolver import IdentityResolver
from pocketid_sync.core.state import ResourceStore
from pocketid_sync.resources import build_reconcilers


class FakePocketIDClient:
    """In-memory stand-in for PocketIDClient with the same async surface."""

    def __init__(self) -> None:
        self.users: Dict[str, PocketIDUser] = {}
        self.groups: Dict[str, PocketIDGroup] = {}
        self.clients: Dict[str, PocketIDOIDCClient] = {}
        self.logos: Dict[str, str] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.base_url = "https://id.example.com"
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "FakePocketIDClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def health_check(self) -> bool:
        return True

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # Users

    async def get_user(self, user_id: str) -> Optional[PocketIDUser]:
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def find_user_by_username(self, username: str) -> Optional[PocketIDUser]:
        for user in self.users.values():
            if user.username == username:
                return user.model_copy(deep=True)
        return None

    async def create_user(self, request: UserRequest) -> PocketIDUser:
        self.calls.append(("create_user", request))
        user = PocketIDUser.model_validate(
            {**request.to_api(), "id": self._next_id("user"), "isAdmin": bool(request.is_admin)}
        )
        self.users[user.id] = user
        return user.model_copy(deep=True)

    async def update_user(self, user_id: str, request: UserRequest) -> PocketIDUser:
        self.calls.append(("update_user", request))
        if user_id not in self.users:
            raise ResourceNotFoundError("Resource not found", status_code=404)
        current = self.users[user_id]
        data = {
            **request.to_api(),
            "id": user_id,
            "isAdmin": current.is_admin,
            "userGroups": current.user_groups,
        }
        data.setdefault("lastName", "")
        data.setdefault("locale", "")
        data.setdefault("customClaims", {})
        self.users[user_id] = PocketIDUser.model_validate(data)
        return self.users[user_id].model_copy(deep=True)

    async def delete_user(self, user_id: str) -> None:
        self.calls.append(("delete_user", user_id))
        self.users.pop(user_id, None)

    # Groups

    async def get_group(self, group_id: str) -> Optional[PocketIDGroup]:
        group = self.groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def find_group_by_name(self, group_name: str) -> Optional[PocketIDGroup]:
        for group in self.groups.values():
            if group.group_name == group_name:
                return group.model_copy(deep=True)
        return None

    async def create_group(self, request: GroupRequest) -> PocketIDGroup:
        self.calls.append(("create_group", request))
        group = PocketIDGroup.model_validate({**request.to_api(), "id": self._next_id("group")})
        self.groups[group.id] = group
        return group.model_copy(deep=True)

    async def update_group(self, group_id: str, request: GroupRequest) -> PocketIDGroup:
        self.calls.append(("update_group", request))
        self.groups[group_id] = PocketIDGroup.model_validate({**request.to_api(), "id": group_id})
        return self.groups[group_id].model_copy(deep=True)

    async def delete_group(self, group_id: str) -> None:
        self.calls.append(("delete_group", group_id))
        self.groups.pop(group_id, None)

    # OIDC clients

    async def get_oidc_client(self, client_id: str) -> Optional[PocketIDOIDCClient]:
        client = self.clients.get(client_id)
        return client.model_copy(update={"client_secret": ""}, deep=True) if client else None

    async def find_oidc_client_by_name(self, client_name: str) -> Optional[PocketIDOIDCClient]:
        for client in self.clients.values():
            if client.client_name == client_name:
                return client.model_copy(update={"client_secret": ""}, deep=True)
        return None

    async def create_oidc_client(self, request: OIDCClientRequest) -> PocketIDOIDCClient:
        self.calls.append(("create_oidc_client", request))
        client_id = self._next_id("client")
        data = {**request.to_api(), "id": client_id}
        if not request.is_public:
            data["clientSecret"] = f"secret-for-{client_id}"
        client = PocketIDOIDCClient.model_validate(data)
        self.clients[client_id] = client
        return client.model_copy(deep=True)

    async def update_oidc_client(
        self, client_id: str, request: OIDCClientRequest
    ) -> PocketIDOIDCClient:
        self.calls.append(("update_oidc_client", request))
        current = self.clients[client_id]
        data = {**request.to_api(), "id": client_id, "groupNames": current.group_names}
        self.clients[client_id] = PocketIDOIDCClient.model_validate(data)
        return self.clients[client_id].model_copy(deep=True)

    async def delete_oidc_client(self, client_id: str) -> None:
        self.calls.append(("delete_oidc_client", client_id))
        self.clients.pop(client_id, None)

    async def upload_oidc_client_logo(self, client_id: str, logo_url: str) -> None:
        self.calls.append(("upload_oidc_client_logo", logo_url))
        self.logos[client_id] = logo_url

    # Memberships

    async def add_user_to_group(self, user_id: str, group_id: str) -> None:
        self.calls.append(("add_user_to_group", (user_id, group_id)))
        self.users[user_id].user_groups.append(self.groups[group_id].group_name)

    async def remove_user_from_group(self, user_id: str, group_id: str) -> None:
        self.calls.append(("remove_user_from_group", (user_id, group_id)))
        user = self.users.get(user_id)
        group = self.groups.get(group_id)
        if user and group and group.group_name in user.user_groups:
            user.user_groups.remove(group.group_name)

    async def is_user_in_group(self, user_id: str, group_id: str) -> bool:
        user = self.users.get(user_id)
        group = self.groups.get(group_id)
        return bool(user and group and group.group_name in user.user_groups)

    async def add_client_to_group(self, client_id: str, group_id: str) -> None:
        self.calls.append(("add_client_to_group", (client_id, group_id)))
        self.clients[client_id].group_names.append(self.groups[group_id].group_name)

    async def remove_client_from_group(self, client_id: str, group_id: str) -> None:
        self.calls.append(("remove_client_from_group", (client_id, group_id)))
        client = self.clients.get(client_id)
        group = self.groups.get(group_id)
        if client and group and group.group_name in client.group_names:
            client.group_names.remove(group.group_name)

    async def is_client_in_group(self, client_id: str, group_id: str) -> bool:
        client = self.clients.get(client_id)
        group = self.groups.get(group_id)
        return bool(client and group and group.group_name in client.group_names)


def make_resource(kind: ResourceKind, name: str, spec: Dict[str, Any]) -> DeclaredResource:
    return DeclaredResource(kind=kind, name=name, spec=spec)


USER_SPEC = {
    "username": "alice",
    "email": "alice@example.com",
    "firstName": "Alice",
    "lastName": "Liddell",
}

GROUP_SPEC = {"name": "engineering", "friendlyName": "Engineering"}

OIDC_CLIENT_SPEC = {
    "name": "grafana",
    "callbackURLs": ["https://grafana.example.com/login/generic_oauth"],
    "launchURL": "https://grafana.example.com",
    "pkceEnabled": True,
}


@pytest.fixture
def fake_client():
    """In-memory Pocket ID."""
    return FakePocketIDClient()


@pytest.fixture
def store(tmp_path):
    """Empty resource store in a temporary directory."""
    return ResourceStore(state_dir=tmp_path / "state")


@pytest.fixture
def resolver(store):
    return IdentityResolver(store)


@pytest.fixture
def reconcilers(fake_client, resolver):
    """One reconciler per kind backed by the in-memory Pocket ID."""
    return build_reconcilers(fake_client, resolver)
