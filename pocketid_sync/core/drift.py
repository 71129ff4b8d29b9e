"""Per-kind comparison of declared specs against observed remote objects."""

from collections import Counter
from typing import Hashable, Iterable, Mapping, Optional

from pocketid_sync.clients.pocketid import (
    FederatedIdentity,
    PocketIDGroup,
    PocketIDOIDCClient,
    PocketIDUser,
)
from pocketid_sync.core.declared import (
    GroupParameters,
    OIDCClientParameters,
    UserParameters,
)


def equal_multisets(left: Optional[Iterable[Hashable]], right: Optional[Iterable[Hashable]]) -> bool:
    """Order-insensitive comparison that still counts duplicates."""
    return Counter(left or ()) == Counter(right or ())


def equal_maps(left: Optional[Mapping], right: Optional[Mapping]) -> bool:
    """Key/value equality where a missing map equals an empty one."""
    return dict(left or {}) == dict(right or {})


def _identity_key(identity: FederatedIdentity) -> tuple:
    return (identity.issuer, identity.subject, identity.audience, identity.jwks)


def user_is_up_to_date(spec: UserParameters, remote: PocketIDUser) -> bool:
    return (
        spec.username == remote.username
        and spec.email == remote.email
        and spec.first_name == remote.first_name
        and spec.last_name == remote.last_name
        and spec.locale == remote.locale
        and spec.disabled == remote.disabled
        and equal_maps(spec.custom_claims, remote.custom_claims)
    )


def group_is_up_to_date(spec: GroupParameters, remote: PocketIDGroup) -> bool:
    return (
        spec.name == remote.group_name
        and spec.friendly_name == remote.friendly_name
        and equal_maps(spec.custom_claims, remote.custom_claims)
    )


def oidc_client_is_up_to_date(spec: OIDCClientParameters, remote: PocketIDOIDCClient) -> bool:
    """Compare an OIDC client.

    URI lists and federated identities are multisets: reordering them on
    either side is not drift. The logo is converged separately and never
    counts as drift.
    """
    return (
        spec.name == remote.client_name
        and equal_multisets(spec.callback_urls, remote.redirect_uris)
        and equal_multisets(spec.logout_callback_urls, remote.post_logout_uris)
        and spec.launch_url == remote.launch_url
        and spec.is_public == remote.is_public
        and spec.pkce_enabled == remote.require_pkce
        and spec.requires_reauthentication == remote.requires_reauthentication
        and equal_multisets(
            [_identity_key(i) for i in spec.credentials.federated_identities],
            [_identity_key(i) for i in remote.credentials.federated_identities],
        )
    )
