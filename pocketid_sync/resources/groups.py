"""Handler for Pocket ID user groups."""

from typing import Optional

from pocketid_sync.clients.pocketid import GroupRequest, PocketIDGroup
from pocketid_sync.core.declared import GroupObservation, GroupParameters, ResourceKind
from pocketid_sync.core.drift import group_is_up_to_date
from pocketid_sync.resources.base import ExternalResourceHandler


class GroupHandler(ExternalResourceHandler[PocketIDGroup]):
    """Groups are discovered by their unique group name."""

    kind = ResourceKind.GROUP
    display_name = "group"

    def stable_name(self, spec: GroupParameters) -> str:
        return spec.name

    def remote_stable_name(self, remote: PocketIDGroup) -> str:
        return remote.group_name

    async def get(self, identity: str) -> Optional[PocketIDGroup]:
        """Fetch a group by ID, or None if it does not exist."""
        return await self.client.get_group(identity)

    async def find(self, stable_name: str) -> Optional[PocketIDGroup]:
        """Find a group whose name matches exactly.

        Args:
            stable_name: Group name recorded at first create or discovery

        Returns:
            The matching group, or None
        """
        return await self.client.find_group_by_name(stable_name)

    @staticmethod
    def _request(spec: GroupParameters) -> GroupRequest:
        # Empty claims are omitted
        return GroupRequest(
            group_name=spec.name,
            friendly_name=spec.friendly_name,
            custom_claims=spec.custom_claims or None,
        )

    async def create(self, spec: GroupParameters) -> PocketIDGroup:
        return await self.client.create_group(self._request(spec))

    async def update(self, identity: str, spec: GroupParameters) -> PocketIDGroup:
        """Replace the group name, friendly name and custom claims."""
        return await self.client.update_group(identity, self._request(spec))

    async def delete(self, identity: str) -> None:
        await self.client.delete_group(identity)

    def is_up_to_date(self, spec: GroupParameters, remote: PocketIDGroup) -> bool:
        return group_is_up_to_date(spec, remote)

    def observe(self, remote: PocketIDGroup) -> GroupObservation:
        return GroupObservation(
            id=remote.id,
            name=remote.group_name,
            friendly_name=remote.friendly_name,
            created_at=remote.created_at,
            custom_claims=dict(remote.custom_claims),
        )
