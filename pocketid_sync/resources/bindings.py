"""Handlers for group memberships of users and OIDC clients."""

from typing import Tuple

from pocketid_sync.core.declared import (
    OIDCClientGroupBindingObservation,
    OIDCClientGroupBindingParameters,
    ResourceKind,
    UserGroupBindingObservation,
    UserGroupBindingParameters,
)
from pocketid_sync.resources.base import BindingHandler
from pocketid_sync.resources.groups import GroupHandler
from pocketid_sync.resources.oidc_clients import OIDCClientHandler
from pocketid_sync.resources.users import UserHandler


class UserGroupBindingHandler(BindingHandler):
    """Membership of a user (regular or admin) in a group."""

    kind = ResourceKind.USER_GROUP_BINDING
    display_name = "user group binding"
    member_kinds = (ResourceKind.USER, ResourceKind.ADMIN_USER)
    container_kinds = (ResourceKind.GROUP,)

    def references(self, spec: UserGroupBindingParameters) -> Tuple:
        """Return the (user, group) references in resolution order."""
        return spec.user, spec.group

    async def exists(self, member_id: str, container_id: str) -> bool:
        """Check membership.

        Args:
            member_id: Pocket ID user ID
            container_id: Pocket ID group ID

        Returns:
            True if the user is currently a member of the group
        """
        return await self.client.is_user_in_group(member_id, container_id)

    async def associate(self, member_id: str, container_id: str) -> None:
        await self.client.add_user_to_group(member_id, container_id)

    async def dissociate(self, member_id: str, container_id: str) -> None:
        await self.client.remove_user_from_group(member_id, container_id)

    async def observe(self, member_id: str, container_id: str) -> UserGroupBindingObservation:
        """Snapshot both sides of the membership; a vanished side stays empty."""
        observation = UserGroupBindingObservation()
        user = await self.client.get_user(member_id)
        if user is not None:
            observation.user = UserHandler(self.client).observe(user)
        group = await self.client.get_group(container_id)
        if group is not None:
            observation.group = GroupHandler(self.client).observe(group)
        return observation


class OIDCClientGroupBindingHandler(BindingHandler):
    """Restriction of an OIDC client to the members of a group."""

    kind = ResourceKind.OIDC_CLIENT_GROUP_BINDING
    display_name = "OIDC client group binding"
    member_kinds = (ResourceKind.OIDC_CLIENT,)
    container_kinds = (ResourceKind.GROUP,)

    def references(self, spec: OIDCClientGroupBindingParameters) -> Tuple:
        return spec.client, spec.group

    async def exists(self, member_id: str, container_id: str) -> bool:
        return await self.client.is_client_in_group(member_id, container_id)

    async def associate(self, member_id: str, container_id: str) -> None:
        await self.client.add_client_to_group(member_id, container_id)

    async def dissociate(self, member_id: str, container_id: str) -> None:
        """Remove the group from the client's allowed groups.

        Args:
            member_id: Pocket ID OIDC client ID
            container_id: Pocket ID group ID
        """
        await self.client.remove_client_from_group(member_id, container_id)

    async def observe(
        self, member_id: str, container_id: str
    ) -> OIDCClientGroupBindingObservation:
        observation = OIDCClientGroupBindingObservation()
        oidc_client = await self.client.get_oidc_client(member_id)
        if oidc_client is not None:
            observation.client = OIDCClientHandler(self.client).observe(oidc_client)
        group = await self.client.get_group(container_id)
        if group is not None:
            observation.group = GroupHandler(self.client).observe(group)
        return observation
