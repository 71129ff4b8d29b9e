"""Tests for the Pocket ID HTTP client."""

import json
from typing import Callable, List

import httpx
import pytest
from pydantic import SecretStr

from pocketid_sync.clients.exceptions import (
    APIError,
    AssetError,
    AuthenticationError,
    ClientError,
    ServerError,
)
from pocketid_sync.clients.pocketid import (
    MAX_LOGO_BYTES,
    GroupRequest,
    PocketIDClient,
    UserRequest,
)

ENDPOINT = "https://id.example.com"


def make_client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> PocketIDClient:
    return PocketIDClient(
        endpoint=ENDPOINT,
        api_key=SecretStr("test-key"),
        max_retries=kwargs.pop("max_retries", 2),
        retry_delay_seconds=0.01,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


USER_JSON = {
    "id": "u1",
    "username": "alice",
    "email": "alice@example.com",
    "firstName": "Alice",
    "lastName": "Liddell",
    "locale": None,
    "disabled": False,
    "isAdmin": False,
    "userGroups": [{"id": "g1", "name": "engineering"}],
    "customClaims": [{"key": "team", "value": "core"}],
}


class TestConstruction:
    """Client construction validation."""

    def test_rejects_invalid_endpoint(self):
        with pytest.raises(ValueError):
            PocketIDClient(endpoint="not-a-url", api_key=SecretStr("key"))

    def test_rejects_empty_api_key(self):
        with pytest.raises(ValueError):
            PocketIDClient(endpoint=ENDPOINT, api_key=SecretStr(""))


class TestUsers:
    """User endpoints."""

    @pytest.mark.asyncio
    async def test_get_user_sends_api_key_and_parses_response(self):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=USER_JSON)

        async with make_client(handler) as client:
            user = await client.get_user("u1")

        assert seen[0].url.path == "/api/users/u1"
        assert seen[0].headers["X-API-KEY"] == "test-key"
        assert user.username == "alice"
        assert user.locale == ""
        assert user.user_groups == ["engineering"]
        assert user.custom_claims == {"team": "core"}

    @pytest.mark.asyncio
    async def test_get_user_returns_none_on_404(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "not found"})

        async with make_client(handler) as client:
            assert await client.get_user("missing") is None

    @pytest.mark.asyncio
    async def test_find_user_by_username_scans_paginated_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"data": [dict(USER_JSON, id="u0", username="bob"), USER_JSON]},
            )

        async with make_client(handler) as client:
            found = await client.find_user_by_username("alice")
            missing = await client.find_user_by_username("carol")

        assert found.id == "u1"
        assert missing is None

    @pytest.mark.asyncio
    async def test_create_sends_admin_flag_but_update_does_not(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append((request.method, json.loads(request.content)))
            return httpx.Response(201 if request.method == "POST" else 200, json=USER_JSON)

        request = UserRequest(
            username="alice", email="alice@example.com", first_name="Alice", is_admin=True
        )
        async with make_client(handler) as client:
            await client.create_user(request)
            await client.update_user("u1", request.model_copy(update={"is_admin": None}))

        assert bodies[0][0] == "POST"
        assert bodies[0][1]["isAdmin"] is True
        assert bodies[0][1]["firstName"] == "Alice"
        assert bodies[1][0] == "PUT"
        assert "isAdmin" not in bodies[1][1]

    @pytest.mark.asyncio
    async def test_delete_ignores_absence(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with make_client(handler) as client:
            await client.delete_user("gone")


class TestErrorHandling:
    """Status code mapping and retries."""

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            groups = await client.list_groups()

        assert groups == []
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_server_error_raised_after_retries_exhausted(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(500, text="boom")

        async with make_client(handler, max_retries=1) as client:
            with pytest.raises(ServerError):
                await client.list_groups()

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_authentication_error_is_not_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(401)

        async with make_client(handler) as client:
            with pytest.raises(AuthenticationError):
                await client.list_users()
            assert await client.health_check() is False

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_bad_request_raises_client_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "groupName taken"})

        async with make_client(handler) as client:
            with pytest.raises(ClientError) as exc_info:
                await client.create_group(GroupRequest(group_name="eng"))

        assert exc_info.value.status_code == 400


class TestMemberships:
    """Membership endpoints and checks."""

    @pytest.mark.asyncio
    async def test_is_user_in_group_matches_group_name(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/users/u1":
                return httpx.Response(200, json=USER_JSON)
            if request.url.path == "/api/groups/g1":
                return httpx.Response(200, json={"id": "g1", "groupName": "engineering"})
            if request.url.path == "/api/groups/g2":
                return httpx.Response(200, json={"id": "g2", "groupName": "sales"})
            return httpx.Response(404)

        async with make_client(handler) as client:
            assert await client.is_user_in_group("u1", "g1") is True
            assert await client.is_user_in_group("u1", "g2") is False
            assert await client.is_user_in_group("u1", "g3") is False

    @pytest.mark.asyncio
    async def test_add_client_to_group_posts_to_membership_path(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(204)

        async with make_client(handler) as client:
            await client.add_client_to_group("c1", "g1")
            await client.remove_client_from_group("c1", "g1")

        assert seen == [
            ("POST", "/api/oidc/clients/c1/groups/g1"),
            ("DELETE", "/api/oidc/clients/c1/groups/g1"),
        ]


class TestLogoUpload:
    """OIDC client logo download and upload."""

    @pytest.mark.asyncio
    async def test_uploads_downloaded_logo_as_multipart(self):
        uploads = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                assert "X-API-KEY" not in request.headers
                return httpx.Response(200, content=b"\x89PNG")
            request.read()
            uploads.append(request)
            return httpx.Response(204)

        async with make_client(handler) as client:
            await client.upload_oidc_client_logo("c1", "https://cdn.example.com/img/logo.png")

        assert len(uploads) == 1
        assert uploads[0].method == "PUT"
        assert uploads[0].url.path == "/api/oidc/clients/c1/logo"
        assert uploads[0].headers["content-type"].startswith("multipart/form-data")
        assert b'filename="logo.png"' in uploads[0].content

    @pytest.mark.asyncio
    async def test_rejects_unsupported_extension_before_download(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with make_client(handler) as client:
            with pytest.raises(AssetError):
                await client.upload_oidc_client_logo("c1", "https://cdn.example.com/logo.bmp")

    @pytest.mark.asyncio
    async def test_rejects_oversized_logo(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"0" * (MAX_LOGO_BYTES + 1))

        async with make_client(handler) as client:
            with pytest.raises(AssetError, match="2MB"):
                await client.upload_oidc_client_logo("c1", "https://cdn.example.com/logo.svg")

    @pytest.mark.asyncio
    async def test_failed_download_raises_asset_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        async with make_client(handler) as client:
            with pytest.raises(AssetError):
                await client.upload_oidc_client_logo("c1", "https://cdn.example.com/logo.gif")

    @pytest.mark.asyncio
    async def test_oversized_logo_download_is_abandoned(self):
        produced = []

        async def body():
            for _ in range(10):
                produced.append(1)
                yield b"0" * (1024 * 1024)

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=body())
            raise AssertionError("no upload expected")

        async with make_client(handler) as client:
            with pytest.raises(AssetError, match="2MB"):
                await client.upload_oidc_client_logo("c1", "https://cdn.example.com/logo.png")

        assert len(produced) == 3


class TestNullFields:
    """Responses that carry ``null`` for unset fields."""

    @pytest.mark.asyncio
    async def test_null_strings_and_lists_become_zero_values(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "id": "c1",
                    "clientName": "grafana",
                    "launchURL": None,
                    "redirectUris": None,
                    "postLogoutUris": None,
                    "credentials": {"federatedIdentities": None},
                    "groupNames": None,
                    "hasLogo": None,
                },
            )

        async with make_client(handler) as client:
            oidc_client = await client.get_oidc_client("c1")

        assert oidc_client.launch_url == ""
        assert oidc_client.redirect_uris == []
        assert oidc_client.credentials.federated_identities == []
        assert oidc_client.has_logo is False

    @pytest.mark.asyncio
    async def test_null_group_fields(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "id": "g1",
                    "groupName": "eng",
                    "friendlyName": None,
                    "createdAt": None,
                    "customClaims": None,
                },
            )

        async with make_client(handler) as client:
            group = await client.get_group("g1")

        assert group.friendly_name == ""
        assert group.created_at == ""
        assert group.custom_claims == {}

    @pytest.mark.asyncio
    async def test_null_user_fields(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=dict(USER_JSON, email=None, firstName=None, userGroups=None),
            )

        async with make_client(handler) as client:
            user = await client.get_user("u1")

        assert user.email == ""
        assert user.first_name == ""
        assert user.user_groups == []

    @pytest.mark.asyncio
    async def test_malformed_payload_raises_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "g1", "groupName": {"nested": True}})

        async with make_client(handler) as client:
            with pytest.raises(APIError, match="failed to parse PocketIDGroup"):
                await client.get_group("g1")
