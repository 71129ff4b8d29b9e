"""Handlers for regular and admin Pocket ID users."""

from typing import Optional

from pocketid_sync.clients.exceptions import InvariantViolatedError
from pocketid_sync.clients.pocketid import PocketIDUser, UserRequest
from pocketid_sync.core.declared import ResourceKind, UserObservation, UserParameters
from pocketid_sync.core.drift import user_is_up_to_date
from pocketid_sync.resources.base import ExternalResourceHandler


class UserHandler(ExternalResourceHandler[PocketIDUser]):
    """Users are discovered by username."""

    kind = ResourceKind.USER
    display_name = "user"
    is_admin = False

    def stable_name(self, spec: UserParameters) -> str:
        return spec.username

    def remote_stable_name(self, remote: PocketIDUser) -> str:
        return remote.username

    async def get(self, identity: str) -> Optional[PocketIDUser]:
        """Fetch a user by ID.

        Args:
            identity: Pocket ID user ID

        Returns:
            The user, or None if Pocket ID has no user with that ID
        """
        return await self.client.get_user(identity)

    async def find(self, stable_name: str) -> Optional[PocketIDUser]:
        """Look up a pre-existing user by exact username."""
        return await self.client.find_user_by_username(stable_name)

    def _request(self, spec: UserParameters, include_privileges: bool = False) -> UserRequest:
        """Build the create/update payload.

        Empty optional strings and maps are sent as absent. The admin flag is
        only part of the payload on create, so an update never changes it.

        Args:
            spec: Declared user parameters
            include_privileges: Whether to send ``isAdmin``

        Returns:
            Request model ready for the client
        """
        return UserRequest(
            username=spec.username,
            email=spec.email,
            first_name=spec.first_name,
            last_name=spec.last_name or None,
            locale=spec.locale or None,
            disabled=spec.disabled,
            is_admin=self.is_admin if include_privileges else None,
            custom_claims=spec.custom_claims or None,
        )

    async def create(self, spec: UserParameters) -> PocketIDUser:
        """Create the user with this handler's admin flag.

        Args:
            spec: Declared user parameters

        Returns:
            The created user as returned by Pocket ID
        """
        return await self.client.create_user(self._request(spec, include_privileges=True))

    async def update(self, identity: str, spec: UserParameters) -> PocketIDUser:
        """Overwrite the user's profile fields, leaving privileges alone.

        Raises:
            ResourceNotFoundError: If the user vanished since it was observed
        """
        return await self.client.update_user(identity, self._request(spec))

    async def delete(self, identity: str) -> None:
        await self.client.delete_user(identity)

    def is_up_to_date(self, spec: UserParameters, remote: PocketIDUser) -> bool:
        return user_is_up_to_date(spec, remote)

    def observe(self, remote: PocketIDUser) -> UserObservation:
        """Copy the remote user into the status observation."""
        return UserObservation(
            id=remote.id,
            username=remote.username,
            email=remote.email,
            first_name=remote.first_name,
            last_name=remote.last_name,
            locale=remote.locale,
            disabled=remote.disabled,
            is_admin=remote.is_admin,
            user_groups=list(remote.user_groups),
            custom_claims=dict(remote.custom_claims),
        )


class AdminUserHandler(UserHandler):
    """Users created with admin privileges.

    An existing user that is not an admin is never adopted or modified.
    """

    kind = ResourceKind.ADMIN_USER
    display_name = "admin user"
    is_admin = True

    def check_invariants(self, remote: PocketIDUser) -> None:
        """Refuse to manage a user that lacks admin privileges.

        Args:
            remote: The observed or discovered user

        Raises:
            InvariantViolatedError: If ``remote.is_admin`` is false
        """
        if not remote.is_admin:
            raise InvariantViolatedError(
                f"user {remote.username!r} exists but is not an admin user",
                kind=self.kind.value,
            )
