"""Pocket ID API client for users, groups, OIDC clients and memberships."""

import posixpath
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar
from urllib.parse import urlparse

import httpx
import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from pocketid_sync.clients.base import BaseAPIClient
from pocketid_sync.clients.exceptions import (
    APIError,
    AssetError,
    ResourceNotFoundError,
)
from pocketid_sync.security.validation import validate_url

logger = structlog.get_logger(__name__)

MAX_LOGO_BYTES = 2 * 1024 * 1024
LOGO_EXTENSIONS = (".png", ".jpeg", ".jpg", ".gif", ".svg")


def _claims_to_map(value: Any) -> Any:
    """Accept custom claims either as a map or as a list of key/value pairs."""
    if value is None:
        return {}
    if isinstance(value, list):
        return {item["key"]: item["value"] for item in value}
    return value


class PocketIDModel(BaseModel):
    """Base for Pocket ID wire objects (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_api(self) -> Dict[str, Any]:
        """Serialize for a request body, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PocketIDObject(PocketIDModel):
    """Object returned by the API, where ``null`` means the field's zero value."""

    @model_validator(mode="before")
    @classmethod
    def _nulls_to_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        # Dropping the key lets the field default apply
        return {key: value for key, value in data.items() if value is not None}


ResponseType = TypeVar("ResponseType", bound=PocketIDObject)


def _parse(model: Type[ResponseType], data: Any) -> ResponseType:
    """Validate a response body, reporting malformed payloads as API errors.

    Raises:
        APIError: If the payload does not match the model
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise APIError(f"failed to parse {model.__name__} response: {e}") from e


class PocketIDUser(PocketIDObject):
    """User object as returned by the Pocket ID API."""

    id: str = ""
    username: str = ""
    email: str = ""
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    locale: str = ""
    disabled: bool = False
    is_admin: bool = Field(False, alias="isAdmin")
    user_groups: List[str] = Field(default_factory=list, alias="userGroups")
    custom_claims: Dict[str, str] = Field(default_factory=dict, alias="customClaims")

    @field_validator("user_groups", mode="before")
    @classmethod
    def _group_names(cls, value: Any) -> Any:
        # Newer servers return group objects rather than names
        return [g.get("name") or g.get("groupName") if isinstance(g, dict) else g for g in value]

    @field_validator("custom_claims", mode="before")
    @classmethod
    def _claims(cls, value: Any) -> Any:
        return _claims_to_map(value)


class PocketIDGroup(PocketIDObject):
    """User group object as returned by the Pocket ID API."""

    id: str = ""
    group_name: str = Field("", alias="groupName")
    friendly_name: str = Field("", alias="friendlyName")
    created_at: str = Field("", alias="createdAt")
    custom_claims: Dict[str, str] = Field(default_factory=dict, alias="customClaims")

    @field_validator("custom_claims", mode="before")
    @classmethod
    def _claims(cls, value: Any) -> Any:
        return _claims_to_map(value)


class FederatedIdentity(PocketIDObject):
    """JWT issuer trusted for federated client authentication."""

    issuer: str = ""
    subject: str = ""
    audience: str = ""
    jwks: str = ""


class OIDCClientCredentials(PocketIDObject):
    """Federated credentials configured on an OIDC client."""

    federated_identities: List[FederatedIdentity] = Field(
        default_factory=list, alias="federatedIdentities"
    )


class PocketIDOIDCClient(PocketIDObject):
    """OIDC client object as returned by the Pocket ID API."""

    id: str = ""
    client_name: str = Field("", alias="clientName")
    client_secret: str = Field("", alias="clientSecret")
    redirect_uris: List[str] = Field(default_factory=list, alias="redirectUris")
    post_logout_uris: List[str] = Field(default_factory=list, alias="postLogoutUris")
    launch_url: str = Field("", alias="launchURL")
    is_public: bool = Field(False, alias="isPublic")
    require_pkce: bool = Field(False, alias="requirePKCE")
    requires_reauthentication: bool = Field(False, alias="requiresReauthentication")
    has_logo: bool = Field(False, alias="hasLogo")
    credentials: OIDCClientCredentials = Field(default_factory=OIDCClientCredentials)
    group_names: List[str] = Field(default_factory=list, alias="groupNames")


class UserRequest(PocketIDModel):
    """Payload for creating or updating a user."""

    username: str
    email: str
    first_name: str = Field(alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    locale: Optional[str] = None
    disabled: bool = False
    # Only sent on create; the update endpoint does not change privileges
    is_admin: Optional[bool] = Field(None, alias="isAdmin")
    custom_claims: Optional[Dict[str, str]] = Field(None, alias="customClaims")


class GroupRequest(PocketIDModel):
    """Payload for creating or updating a user group."""

    group_name: str = Field(alias="groupName")
    friendly_name: Optional[str] = Field(None, alias="friendlyName")
    custom_claims: Optional[Dict[str, str]] = Field(None, alias="customClaims")


class OIDCClientRequest(PocketIDModel):
    """Payload for creating or updating an OIDC client."""

    client_name: str = Field(alias="clientName")
    redirect_uris: List[str] = Field(default_factory=list, alias="redirectUris")
    post_logout_uris: Optional[List[str]] = Field(None, alias="postLogoutUris")
    launch_url: Optional[str] = Field(None, alias="launchURL")
    is_public: bool = Field(False, alias="isPublic")
    require_pkce: bool = Field(False, alias="requirePKCE")
    requires_reauthentication: bool = Field(False, alias="requiresReauthentication")
    credentials: Optional[OIDCClientCredentials] = None


class PocketIDClient(BaseAPIClient):
    """Pocket ID API client.

    Absence is reported as ``None`` (or swallowed on delete) rather than as
    an error; every other non-success response raises from the
    ``APIError`` hierarchy.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: SecretStr,
        timeout_seconds: int = 30,
        rate_limit_per_minute: int = 600,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        **kwargs: Any,
    ) -> None:
        """Initialize Pocket ID client.

        Args:
            endpoint: Base URL of the Pocket ID instance
            api_key: Pocket ID API key
            timeout_seconds: Request timeout in seconds
            rate_limit_per_minute: Maximum requests per minute
            max_retries: Maximum retry attempts
            retry_delay_seconds: Initial retry delay
        """
        if not endpoint:
            raise ValueError("endpoint is required")
        if not validate_url(endpoint):
            raise ValueError(f"Invalid Pocket ID endpoint: {endpoint}")
        if not api_key.get_secret_value():
            raise ValueError("api_key is required in credentials")

        self._api_key = api_key

        super().__init__(
            base_url=endpoint,
            timeout_seconds=timeout_seconds,
            rate_limit_per_minute=rate_limit_per_minute,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            **kwargs,
        )

    def _get_auth_headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self._api_key.get_secret_value()}

    async def health_check(self) -> bool:
        """Check that the API is reachable and the key is accepted."""
        try:
            await self.get("/api/users")
            return True
        except APIError as e:
            self._logger.error("Pocket ID health check failed", error=str(e))
            return False

    # Generic helpers

    async def _get_optional(self, path: str) -> Optional[Any]:
        try:
            return await self.get_json(path)
        except ResourceNotFoundError:
            return None

    async def _list(self, path: str) -> List[Dict[str, Any]]:
        data = await self.get_json(path)
        # Paginated endpoints wrap the items in {"data": [...]}
        if isinstance(data, dict):
            data = data.get("data") or []
        return data

    async def _delete_ignoring_absence(self, path: str) -> None:
        try:
            await self.delete(path)
        except ResourceNotFoundError:
            self._logger.debug("Delete target already absent", path=path)

    # Users

    async def get_user(self, user_id: str) -> Optional[PocketIDUser]:
        """Get a user by ID, or None if it does not exist."""
        data = await self._get_optional(f"/api/users/{user_id}")
        return _parse(PocketIDUser, data) if data is not None else None

    async def list_users(self) -> List[PocketIDUser]:
        """List all users."""
        return [_parse(PocketIDUser, u) for u in await self._list("/api/users")]

    async def find_user_by_username(self, username: str) -> Optional[PocketIDUser]:
        """Find a user by username with a linear scan of the user list."""
        for user in await self.list_users():
            if user.username == username:
                return user
        return None

    async def create_user(self, request: UserRequest) -> PocketIDUser:
        response = await self.post("/api/users", json_data=request.to_api())
        user = _parse(PocketIDUser, self._decode_json(response))
        self._logger.info("Created user", user_id=user.id, username=user.username)
        return user

    async def update_user(self, user_id: str, request: UserRequest) -> PocketIDUser:
        response = await self.put(f"/api/users/{user_id}", json_data=request.to_api())
        self._logger.info("Updated user", user_id=user_id)
        return _parse(PocketIDUser, self._decode_json(response))

    async def delete_user(self, user_id: str) -> None:
        await self._delete_ignoring_absence(f"/api/users/{user_id}")

    # Groups

    async def get_group(self, group_id: str) -> Optional[PocketIDGroup]:
        """Get a group by ID, or None if it does not exist."""
        data = await self._get_optional(f"/api/groups/{group_id}")
        return _parse(PocketIDGroup, data) if data is not None else None

    async def list_groups(self) -> List[PocketIDGroup]:
        """List all groups."""
        return [_parse(PocketIDGroup, g) for g in await self._list("/api/groups")]

    async def find_group_by_name(self, group_name: str) -> Optional[PocketIDGroup]:
        """Find a group by its unique group name."""
        for group in await self.list_groups():
            if group.group_name == group_name:
                return group
        return None

    async def create_group(self, request: GroupRequest) -> PocketIDGroup:
        response = await self.post("/api/groups", json_data=request.to_api())
        group = _parse(PocketIDGroup, self._decode_json(response))
        self._logger.info("Created group", group_id=group.id, group_name=group.group_name)
        return group

    async def update_group(self, group_id: str, request: GroupRequest) -> PocketIDGroup:
        response = await self.put(f"/api/groups/{group_id}", json_data=request.to_api())
        self._logger.info("Updated group", group_id=group_id)
        return _parse(PocketIDGroup, self._decode_json(response))

    async def delete_group(self, group_id: str) -> None:
        await self._delete_ignoring_absence(f"/api/groups/{group_id}")

    # OIDC clients

    async def get_oidc_client(self, client_id: str) -> Optional[PocketIDOIDCClient]:
        """Get an OIDC client by ID, or None if it does not exist."""
        data = await self._get_optional(f"/api/oidc/clients/{client_id}")
        return _parse(PocketIDOIDCClient, data) if data is not None else None

    async def list_oidc_clients(self) -> List[PocketIDOIDCClient]:
        """List all OIDC clients."""
        return [
            _parse(PocketIDOIDCClient, c)
            for c in await self._list("/api/oidc/clients")
        ]

    async def find_oidc_client_by_name(self, client_name: str) -> Optional[PocketIDOIDCClient]:
        """Find an OIDC client by its display name."""
        for client in await self.list_oidc_clients():
            if client.client_name == client_name:
                return client
        return None

    async def create_oidc_client(self, request: OIDCClientRequest) -> PocketIDOIDCClient:
        response = await self.post("/api/oidc/clients", json_data=request.to_api())
        client = _parse(PocketIDOIDCClient, self._decode_json(response))
        self._logger.info("Created OIDC client", client_id=client.id, client_name=client.client_name)
        return client

    async def update_oidc_client(
        self,
        client_id: str,
        request: OIDCClientRequest,
    ) -> PocketIDOIDCClient:
        response = await self.put(f"/api/oidc/clients/{client_id}", json_data=request.to_api())
        self._logger.info("Updated OIDC client", client_id=client_id)
        return _parse(PocketIDOIDCClient, self._decode_json(response))

    async def delete_oidc_client(self, client_id: str) -> None:
        await self._delete_ignoring_absence(f"/api/oidc/clients/{client_id}")

    async def upload_oidc_client_logo(self, client_id: str, logo_url: str) -> None:
        """Download an image from ``logo_url`` and upload it as the client logo.

        Raises:
            AssetError: If the image cannot be fetched, is too large or has an
                unsupported format
            APIError: If the upload itself is rejected
        """
        if not logo_url:
            return

        if not logo_url.lower().endswith(LOGO_EXTENSIONS):
            raise AssetError(
                "invalid image format. Supported formats: PNG, JPEG, JPG, GIF, SVG"
            )

        data, filename = await self._download_file(logo_url, MAX_LOGO_BYTES)

        await self.put(
            f"/api/oidc/clients/{client_id}/logo",
            files={"file": (filename, data)},
        )
        self._logger.info("Uploaded OIDC client logo", client_id=client_id)

    async def _download_file(self, file_url: str, max_bytes: int) -> Tuple[bytes, str]:
        """Fetch a file from an arbitrary URL without sending API credentials.

        The body is streamed and the download abandoned as soon as it grows
        past ``max_bytes``.

        Raises:
            AssetError: If the download fails or exceeds ``max_bytes``
        """
        chunks: List[bytes] = []
        received = 0
        try:
            async with self._client.stream("GET", file_url) as response:
                if response.status_code != 200:
                    raise AssetError(f"failed to download file: HTTP {response.status_code}")
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > max_bytes:
                        raise AssetError(
                            f"logo file size exceeds {max_bytes // (1024 * 1024)}MB limit"
                        )
                    chunks.append(chunk)
        except httpx.HTTPError as e:
            raise AssetError(f"failed to download file from {file_url}: {e}") from e

        filename = posixpath.basename(urlparse(file_url).path) or "logo"
        return b"".join(chunks), filename

    # Memberships

    async def add_user_to_group(self, user_id: str, group_id: str) -> None:
        await self.post(f"/api/users/{user_id}/groups/{group_id}")
        self._logger.info("Added user to group", user_id=user_id, group_id=group_id)

    async def remove_user_from_group(self, user_id: str, group_id: str) -> None:
        await self._delete_ignoring_absence(f"/api/users/{user_id}/groups/{group_id}")

    async def is_user_in_group(self, user_id: str, group_id: str) -> bool:
        """Check membership by matching the group's name in the user's groups."""
        user = await self.get_user(user_id)
        if user is None:
            return False
        group = await self.get_group(group_id)
        if group is None:
            return False
        return group.group_name in user.user_groups

    async def add_client_to_group(self, client_id: str, group_id: str) -> None:
        await self.post(f"/api/oidc/clients/{client_id}/groups/{group_id}")
        self._logger.info("Added OIDC client to group", client_id=client_id, group_id=group_id)

    async def remove_client_from_group(self, client_id: str, group_id: str) -> None:
        await self._delete_ignoring_absence(f"/api/oidc/clients/{client_id}/groups/{group_id}")

    async def is_client_in_group(self, client_id: str, group_id: str) -> bool:
        """Check whether a group is among an OIDC client's allowed groups."""
        client = await self.get_oidc_client(client_id)
        if client is None:
            return False
        group = await self.get_group(group_id)
        if group is None:
            return False
        return group.group_name in client.group_names
