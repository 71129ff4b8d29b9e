"""Handler for Pocket ID OIDC clients."""

from typing import Dict, Optional

from pocketid_sync.clients.pocketid import OIDCClientRequest, PocketIDOIDCClient
from pocketid_sync.core.declared import (
    OIDCClientObservation,
    OIDCClientParameters,
    ResourceKind,
)
from pocketid_sync.core.drift import oidc_client_is_up_to_date
from pocketid_sync.resources.base import ExternalResourceHandler


class OIDCClientHandler(ExternalResourceHandler[PocketIDOIDCClient]):
    """OIDC clients are discovered by display name.

    The logo is not part of drift detection: it is re-uploaded after every
    create and update when ``logoUrl`` is declared.
    """

    kind = ResourceKind.OIDC_CLIENT
    display_name = "OIDC client"

    def stable_name(self, spec: OIDCClientParameters) -> str:
        return spec.name

    def remote_stable_name(self, remote: PocketIDOIDCClient) -> str:
        return remote.client_name

    async def get(self, identity: str) -> Optional[PocketIDOIDCClient]:
        return await self.client.get_oidc_client(identity)

    async def find(self, stable_name: str) -> Optional[PocketIDOIDCClient]:
        """Find a client by display name. Secrets are never part of a lookup."""
        return await self.client.find_oidc_client_by_name(stable_name)

    @staticmethod
    def _request(spec: OIDCClientParameters) -> OIDCClientRequest:
        """Map declared parameters onto the API payload.

        Logout URLs, launch URL and federated credentials are sent only when
        declared. The logo travels separately through ``converge_assets``.
        """
        return OIDCClientRequest(
            client_name=spec.name,
            redirect_uris=list(spec.callback_urls),
            post_logout_uris=list(spec.logout_callback_urls) or None,
            launch_url=spec.launch_url or None,
            is_public=spec.is_public,
            require_pkce=spec.pkce_enabled,
            requires_reauthentication=spec.requires_reauthentication,
            credentials=spec.credentials if spec.credentials.federated_identities else None,
        )

    async def create(self, spec: OIDCClientParameters) -> PocketIDOIDCClient:
        """Create the client.

        Args:
            spec: Declared OIDC client parameters

        Returns:
            The created client, carrying the one-time secret for confidential clients
        """
        return await self.client.create_oidc_client(self._request(spec))

    async def update(self, identity: str, spec: OIDCClientParameters) -> PocketIDOIDCClient:
        return await self.client.update_oidc_client(identity, self._request(spec))

    async def delete(self, identity: str) -> None:
        await self.client.delete_oidc_client(identity)

    def is_up_to_date(self, spec: OIDCClientParameters, remote: PocketIDOIDCClient) -> bool:
        return oidc_client_is_up_to_date(spec, remote)

    def observe(self, remote: PocketIDOIDCClient) -> OIDCClientObservation:
        # The client secret never enters the observation
        return OIDCClientObservation(
            id=remote.id,
            name=remote.client_name,
            callback_urls=list(remote.redirect_uris),
            logout_callback_urls=list(remote.post_logout_uris),
            launch_url=remote.launch_url,
            is_public=remote.is_public,
            pkce_enabled=remote.require_pkce,
            requires_reauthentication=remote.requires_reauthentication,
            has_logo=remote.has_logo,
            credentials=remote.credentials,
        )

    def connection_details(self, remote: PocketIDOIDCClient) -> Dict[str, str]:
        """Credentials a relying party needs to use this client.

        Args:
            remote: The client as returned by create

        Returns:
            ``client_id`` always, ``client_secret`` for confidential clients
            when Pocket ID returned one
        """
        details = {"client_id": remote.id}
        if not remote.is_public and remote.client_secret:
            details["client_secret"] = remote.client_secret
        return details

    async def converge_assets(self, identity: str, spec: OIDCClientParameters) -> None:
        """Upload the declared logo, if any.

        Raises:
            AssetError: If the logo can not be downloaded, validated or uploaded
        """
        if spec.logo_url:
            await self.client.upload_oidc_client_logo(identity, spec.logo_url)
